"""
Alarm Presenter
Presentation port between the delivery loop and whoever shows the alarm
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from services.record_store import DueDose


logger = logging.getLogger(__name__)


class DecisionOutcome(str, Enum):
    """Result of presenting an alarm to the user"""
    TAKEN = "taken"
    MISSED = "missed"
    ERROR = "error"  # presentation failed; show it again on the next tick


@dataclass
class Alarm:
    """The dose event currently being presented"""
    dose: DueDose
    activated_at: datetime
    presentations: int = 0
    last_error: Optional[str] = None

    @property
    def event_id(self) -> int:
        return self.dose.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.dose.id,
            "medication_id": self.dose.medication_id,
            "medication_name": self.dose.medication_name,
            "dosage": self.dose.dosage,
            "scheduled_time": self.dose.scheduled_time,
            "activated_at": self.activated_at,
            "presentations": self.presentations,
            "last_error": self.last_error
        }


class AlarmPresenter(ABC):
    """
    Shows an active alarm and reports what the user decided.

    present() may block until the user answers and return TAKEN or MISSED,
    return ERROR when the alarm could not be shown, or return None when the
    decision will arrive separately through AlarmDeliveryLoop.record_decision.
    """

    @abstractmethod
    async def present(self, alarm: Alarm) -> Optional[DecisionOutcome]:
        """Present the alarm"""

    def notify_error(self, alarm: Alarm, message: str) -> None:
        """A decision could not be saved; the alarm stays up for a retry"""

    def on_cleared(self) -> None:
        """The alarm left the active state"""


class WebAlarmPresenter(AlarmPresenter):
    """
    Presenter for HTTP clients.

    The client polls the active alarm and posts the decision to the API, so
    present() only publishes the alarm. Rendered alarm audio is kept here for
    the client to fetch while the alarm is up.
    """

    def __init__(self):
        self.current: Optional[Alarm] = None
        self.error_message: Optional[str] = None
        self.sound_data: bytes = b""
        self.sound_looping: bool = False

    async def present(self, alarm: Alarm) -> Optional[DecisionOutcome]:
        self.current = alarm
        logger.debug(f"Presenting dose event {alarm.event_id} ({alarm.dose.medication_name})")
        return None

    def notify_error(self, alarm: Alarm, message: str) -> None:
        self.error_message = message

    def on_cleared(self) -> None:
        self.current = None
        self.error_message = None

    def play_sound(self, data: bytes, loop: bool) -> None:
        """Audio sink for the alarm sound backends"""
        self.sound_data = data
        self.sound_looping = loop

    @property
    def has_sound(self) -> bool:
        return bool(self.sound_data)
