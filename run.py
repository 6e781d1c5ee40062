from league_scoring import create_app, db
from league_scoring.models import (
    BettingRound,
    Competition,
    Fixture,
    Season,
    SeasonWinner,
    User,
    UserBet,
    UserPointRecord,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Competition": Competition,
        "Season": Season,
        "BettingRound": BettingRound,
        "Fixture": Fixture,
        "UserBet": UserBet,
        "UserPointRecord": UserPointRecord,
        "SeasonWinner": SeasonWinner,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
