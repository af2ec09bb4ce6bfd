"""
Domain errors raised by the detection core.

Lookup failures (UnknownUser, UnknownCandidate, UnknownSubscription) and
ownership failures (Unauthorized) live with the database layer in
utils.db.base because they come out of the checked_mandatory_* helpers.
"""


class MalformedRecord(ValueError):
    """A provider record whose amount or date cannot be parsed."""

    def __init__(self, message: str, raw_identifier: str = ""):
        super().__init__(message)
        self.raw_identifier = raw_identifier


class InvalidTransition(ValueError):
    """A decision that conflicts with a candidate's or subscription's terminal state."""
    pass
