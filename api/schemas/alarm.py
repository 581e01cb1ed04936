"""
Alarm Schemas
Pydantic models for the alarm delivery session API
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel

from actions.alarm_presenter import DecisionOutcome


# ==================== REQUEST SCHEMAS ====================

class AlarmDecision(BaseModel):
    """The user's answer to the active alarm"""
    event_id: int
    outcome: DecisionOutcome


class AudioPreference(BaseModel):
    """Alarm audio on/off"""
    enabled: bool


# ==================== RESPONSE SCHEMAS ====================

class ActiveAlarm(BaseModel):
    """The dose event being presented"""
    event_id: int
    medication_id: int
    medication_name: str
    dosage: str
    scheduled_time: datetime
    activated_at: datetime
    presentations: int
    last_error: Optional[str] = None


class QueuedDose(BaseModel):
    """A due dose waiting behind the active alarm"""
    event_id: int
    medication_id: int
    medication_name: str
    dosage: str
    scheduled_time: datetime


class SoundState(BaseModel):
    """Alarm audio state"""
    opted_in: bool
    enabled: bool
    playing: bool
    source: Optional[str] = None


class AlarmSessionState(BaseModel):
    """Snapshot of a patient's delivery loop"""
    subject_id: int
    state: str
    running: bool
    active_alarm: Optional[ActiveAlarm] = None
    queue: List[QueuedDose]
    sound: SoundState
    sound_banner_visible: bool
    last_error: Optional[str] = None
    last_polled_at: Optional[datetime] = None


class AudioStatus(BaseModel):
    """Persisted audio preference and current playback"""
    enabled: bool
    source: Optional[str] = None
    sound_banner_visible: bool
