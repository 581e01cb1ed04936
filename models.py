"""
Database Models
SQLAlchemy ORM models for DoseKeeper
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Date, Time, Enum, Index, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from database import Base


# ==================== ENUMS ====================

class MedicationStatus(str, PyEnum):
    """Whether a medication is currently being taken"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class DoseStatus(str, PyEnum):
    """Lifecycle of a single dose event. TAKEN and MISSED are terminal."""
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"


# ==================== MODELS ====================

class Patient(Base):
    """Patient subject owning medications and dose events"""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(100), unique=True, index=True)  # Identity provider subject

    display_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # One-time audio opt-in captured from a user gesture
    alarm_audio_enabled = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    medications = relationship("Medication", back_populates="patient", cascade="all, delete-orphan")
    dose_events = relationship("DoseEvent", back_populates="patient", passive_deletes=True)


class Medication(Base):
    """Medication with a uniform-interval daily schedule"""
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)  # e.g., "500mg", "1 tablet"
    status = Column(Enum(MedicationStatus), default=MedicationStatus.ACTIVE, nullable=False)

    # Schedule source fields
    frequency_count = Column(Integer, nullable=False, default=1)
    first_dose_time = Column(Time, nullable=False)

    # Cached projection of (first_dose_time, frequency_count)
    interval_hours = Column(Integer, nullable=False)
    reminder_times = Column(JSON, default=list)  # ["08:00", "20:00"]

    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    patient = relationship("Patient", back_populates="medications")
    dose_events = relationship(
        "DoseEvent",
        back_populates="medication",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index("ix_medications_patient_status", "patient_id", "status"),
    )

    def schedule_is_consistent(self) -> bool:
        """Recompute the cached schedule fields and compare with what is stored"""
        from tools.scheduler import build_dose_schedule

        expected = build_dose_schedule(self.first_dose_time, self.frequency_count)
        return (
            self.interval_hours == expected.interval_hours
            and list(self.reminder_times or []) == expected.reminder_time_strings
        )


class DoseEvent(Base):
    """One scheduled occurrence of a medication with its own outcome"""
    __tablename__ = "dose_events"

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id", ondelete="CASCADE"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)

    scheduled_time = Column(DateTime, nullable=False)
    status = Column(Enum(DoseStatus), default=DoseStatus.PENDING, nullable=False)
    taken_at = Column(DateTime)  # Set only on transition to taken

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    medication = relationship("Medication", back_populates="dose_events")
    patient = relationship("Patient", back_populates="dose_events")

    __table_args__ = (
        Index("ix_dose_events_patient_status_time", "patient_id", "status", "scheduled_time"),
        Index("ix_dose_events_medication_time", "medication_id", "scheduled_time"),
    )
