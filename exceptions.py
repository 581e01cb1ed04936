"""
Exceptions
Error taxonomy shared by the scheduling, materialization and alarm layers
"""

from typing import Optional


class DoseKeeperError(Exception):
    """Base class for all DoseKeeper errors"""


class ScheduleValidationError(DoseKeeperError, ValueError):
    """Malformed or empty schedule input. The requested operation does not proceed."""


class NoFutureDosesError(ScheduleValidationError):
    """The requested date range yields no dose time after the creation instant"""

    def __init__(self, message: str = "No valid future dose times in the selected date range"):
        super().__init__(message)


class NotFoundError(DoseKeeperError, LookupError):
    """A medication or dose event does not exist for the current subject"""


class PersistenceError(DoseKeeperError):
    """A record store read or write failed"""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class MedicationCreationError(PersistenceError):
    """Event batch persistence failed; the medication was rolled back"""


class DoseAlreadyResolvedError(PersistenceError):
    """A dose event already left the pending state and cannot transition again"""

    def __init__(self, event_id: int, status: str):
        super().__init__(f"Dose event {event_id} is already {status}")
        self.event_id = event_id
        self.status = status


class PresentationFailure(DoseKeeperError):
    """Audio or presenter failure. Never fatal to alarm delivery."""
