"""
Medication Schemas
Pydantic models for medication-related API requests and responses
"""

from typing import Optional, List
from datetime import datetime, date, time
from pydantic import BaseModel, Field, ConfigDict

from models import MedicationStatus, DoseStatus


# ==================== BASE SCHEMAS ====================

class MedicationBase(BaseModel):
    """Base medication schema"""
    name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=100)


# ==================== REQUEST SCHEMAS ====================

class MedicationCreate(MedicationBase):
    """Schema for creating a new medication"""
    # Range (1-24) is checked by the scheduler so it surfaces as a 400
    frequency_count: int = 1
    first_dose_time: str = Field(..., description="Clock time of the first dose, HH:MM")
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None


class MedicationUpdate(BaseModel):
    """Schema for editing a medication; dose events are not regenerated"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    dosage: Optional[str] = Field(None, min_length=1, max_length=100)
    frequency_count: Optional[int] = None
    first_dose_time: Optional[str] = None
    status: Optional[MedicationStatus] = None
    notes: Optional[str] = None


class MedicationBulkDelete(BaseModel):
    """Schema for deleting several medications at once"""
    medication_ids: List[int] = Field(..., min_length=1)


# ==================== RESPONSE SCHEMAS ====================

class MedicationResponse(MedicationBase):
    """Schema for medication response"""
    id: int
    patient_id: int
    status: MedicationStatus
    frequency_count: int
    first_dose_time: time
    interval_hours: int
    reminder_times: List[str]
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ComplianceStatsResponse(BaseModel):
    """Adherence metrics over a set of due doses"""
    taken_count: int
    missed_count: int
    pending_count: int
    rate: int
    denominator: int
    basis: str

    model_config = ConfigDict(from_attributes=True)


class MedicationCreated(BaseModel):
    """Result of creating a medication with its dose events"""
    medication: MedicationResponse
    event_count: int
    first_dose_at: datetime
    last_dose_at: datetime
    capped: bool = False

    model_config = ConfigDict(from_attributes=True)


class MedicationWithStats(BaseModel):
    """Medication with historical compliance"""
    medication: MedicationResponse
    stats: ComplianceStatsResponse


class MedicationList(BaseModel):
    """List of medications"""
    medications: List[MedicationWithStats]
    total: int
    active_count: int


class MedicationDetail(BaseModel):
    """Medication with today's compliance against its daily goal"""
    medication: MedicationResponse
    today: ComplianceStatsResponse
    daily_goal: int


class BulkDeleteResponse(BaseModel):
    """Result of a bulk delete"""
    requested: int
    deleted: int


class DoseEventResponse(BaseModel):
    """Schema for a materialized dose event"""
    id: int
    medication_id: int
    scheduled_time: datetime
    status: DoseStatus
    taken_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DoseEventList(BaseModel):
    """Dose events of one medication"""
    medication_id: int
    events: List[DoseEventResponse]
    total: int
