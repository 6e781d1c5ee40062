"""
League Scoring Winner Determination Scheduler

Runs the winner sweep in the background with APScheduler. Once a day every
completed season without recorded winners gets them, for the league and
for the cup.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from league_scoring import db
from league_scoring.errors import ScoringError
from league_scoring.models import COMPETITION_TYPES
from league_scoring.services.winner_determination import WinnerDeterminationService

logger = logging.getLogger(__name__)


def _empty_stats():
    return {
        "last_run": None,
        "total_runs": 0,
        "successful_runs": 0,
        "failed_runs": 0,
        "last_error": None,
        "seasons_determined": 0,
    }


class SchedulerService:
    """Manages the background winner determination job"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.run_stats = _empty_stats()

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""
        hour = self.app.config.get("WINNER_DETERMINATION_HOUR", 2)

        self.scheduler.add_job(
            func=self._determine_winners,
            trigger=CronTrigger(hour=hour, minute=0),
            id="winner_determination",
            name="Daily Winner Determination",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info(f"Winner determination scheduled daily at {hour:02d}:00 UTC")

    def _determine_winners(self):
        """Sweep eligible seasons for every competition type"""
        with self.app.app_context():
            logger.info("Running winner determination sweep...")
            service = WinnerDeterminationService()
            summary = {}
            failed = False

            for competition_type in COMPETITION_TYPES:
                try:
                    batch = service.determine_for_eligible_seasons(competition_type)
                except ScoringError as e:
                    db.session.rollback()
                    failed = True
                    self.run_stats["last_error"] = e.message
                    logger.error(
                        f"Winner sweep for {competition_type} failed: {e.message}"
                    )
                    continue

                summary[competition_type] = batch.to_dict()
                self.run_stats["seasons_determined"] += len(batch.newly_determined)
                if batch.errors:
                    failed = True
                    self.run_stats["last_error"] = batch.errors[-1].get("message")
                    logger.warning(
                        f"Winner sweep for {competition_type} finished with "
                        f"{len(batch.errors)} error(s)"
                    )

            self._update_stats(not failed)
            logger.info("Winner determination sweep completed")
            return summary

    def _update_stats(self, success):
        """Update run statistics"""
        self.run_stats["last_run"] = datetime.now(timezone.utc)
        self.run_stats["total_runs"] += 1

        if success:
            self.run_stats["successful_runs"] += 1
            self.run_stats["last_error"] = None
        else:
            self.run_stats["failed_runs"] += 1

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.run_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self):
        """Manually trigger the winner sweep"""
        if self.app is None:
            return False, "Scheduler is not initialized"

        summary = self._determine_winners()
        return True, summary


# Global scheduler instance
scheduler_service = SchedulerService()
