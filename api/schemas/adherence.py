"""
Adherence Schemas
Pydantic models for compliance statistics responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, ConfigDict

from api.schemas.medication import ComplianceStatsResponse


class DailySummary(BaseModel):
    """Today's adherence for one or all medications"""
    date: date
    medication_id: Optional[int] = None
    today_taken: int
    today_missed: int
    today_pending: int
    daily_goal: int
    rate: int


class HistoryEvent(BaseModel):
    """One dose event in the history view"""
    id: int
    medication_id: int
    medication_name: Optional[str] = None
    dosage: Optional[str] = None
    scheduled_time: datetime
    taken_at: Optional[datetime] = None
    status: str
    display_status: str  # pending doses in the past read as "missed"


class HistoryDay(BaseModel):
    """Dose events of one calendar day"""
    date: date
    taken: int
    missed: int
    pending: int
    events: List[HistoryEvent]


class DoseHistory(BaseModel):
    """Per-day dose history, newest day first"""
    medication_id: Optional[int] = None
    days: List[HistoryDay]


class MedicationAdherence(BaseModel):
    """Today's and historical compliance of one medication"""
    medication_id: int
    medication_name: str
    daily_goal: int
    today: ComplianceStatsResponse
    history: ComplianceStatsResponse

    model_config = ConfigDict(from_attributes=True)
