"""
Error taxonomy for standings, winner determination and backfill

NotFound           - referenced user, season or competition is absent
StoreFailure       - read or write error from the data-access layer (retry later)
InvariantViolation - stored or computed data is inconsistent (needs manual repair)
"""


class ScoringError(Exception):
    """Base class for errors reported in service results"""

    kind = "error"

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self):
        data = {"kind": self.kind, "message": self.message}
        data.update(self.context)
        return data


class NotFound(ScoringError):
    kind = "not_found"


class StoreFailure(ScoringError):
    kind = "store_failure"


class InvariantViolation(ScoringError):
    kind = "invariant_violation"


class ConflictingWrite(StoreFailure):
    """A unique constraint rejected a batch insert; another writer got there first"""

    kind = "conflicting_write"
