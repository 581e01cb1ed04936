"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Generator, Optional
from fastapi import Depends, HTTPException, status, Header
from sqlalchemy.orm import Session

from database import SessionLocal
import models


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency
    Yields a SQLAlchemy session and ensures cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_subject(
    x_subject_id: Optional[str] = Header(None, alias="X-Subject-Id"),
    db: Session = Depends(get_db)
) -> models.Patient:
    """
    Resolve the authenticated patient from the X-Subject-Id header
    Raises 401 when the header is missing or names no active patient
    """
    if not x_subject_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    try:
        subject_id = int(x_subject_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid subject id",
        )

    patient = db.query(models.Patient).filter(models.Patient.id == subject_id).first()
    if not patient or not patient.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown subject",
        )

    return patient


async def get_current_subject_id(
    patient: models.Patient = Depends(get_current_subject)
) -> int:
    return patient.id


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_patient_service():
        from services.patient_service import patient_service
        return patient_service

    @staticmethod
    def get_medication_service():
        from services.medication_service import medication_service
        return medication_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service

    @staticmethod
    def get_schedule_service():
        from services.schedule_service import schedule_service
        return schedule_service

    @staticmethod
    def get_alarm_sessions():
        from actions.reminder_engine import alarm_sessions
        return alarm_sessions


# Service dependency instances
services = ServiceDependency()


def get_alarm_sessions():
    """Alarm session manager dependency"""
    return services.get_alarm_sessions()
