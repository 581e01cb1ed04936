"""
Patient Service
Business logic for patient (subject) management
"""

import logging
from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Session

import models
from exceptions import NotFoundError
from services.record_store import DoseRecordStore, record_store


logger = logging.getLogger(__name__)


class PatientService:
    """
    Service for patient-related operations
    """

    def __init__(self, store: DoseRecordStore = record_store):
        self.store = store

    async def create_patient(
        self,
        email: str,
        display_name: str,
        external_id: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.Patient:
        """
        Create a new patient record

        Args:
            email: Patient email (unique)
            display_name: Name shown in the client
            external_id: Subject id issued by the identity provider
            db: Database session (optional)

        Returns:
            Created Patient object
        """
        def _create(session: Session) -> models.Patient:
            existing = session.query(models.Patient).filter(
                models.Patient.email == email
            ).first()

            if existing:
                raise ValueError(f"Patient with email {email} already exists")

            patient = models.Patient(
                email=email,
                display_name=display_name,
                external_id=external_id
            )

            session.add(patient)
            session.commit()
            session.refresh(patient)

            logger.info(f"Created patient: {patient.id} - {patient.display_name}")
            return patient

        if db:
            return _create(db)

        with self.store.open_session() as session:
            return _create(session)

    async def get_patient(
        self,
        patient_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.Patient]:
        """Get patient by ID"""
        def _get(session: Session) -> Optional[models.Patient]:
            return session.query(models.Patient).filter(
                models.Patient.id == patient_id
            ).first()

        if db:
            return _get(db)

        with self.store.open_session() as session:
            return _get(session)

    async def set_alarm_audio_enabled(
        self,
        patient_id: int,
        enabled: bool,
        db: Optional[Session] = None
    ) -> models.Patient:
        """
        Persist the alarm audio preference.

        Turning it on is the one-time opt-in captured from a user gesture;
        it survives logout and new alarm sessions.
        """
        def _update(session: Session) -> models.Patient:
            patient = session.query(models.Patient).filter(
                models.Patient.id == patient_id
            ).first()

            if not patient:
                raise NotFoundError(f"Patient {patient_id} not found")

            patient.alarm_audio_enabled = enabled
            patient.updated_at = datetime.now()
            session.commit()
            session.refresh(patient)

            logger.info(f"Alarm audio {'enabled' if enabled else 'disabled'} for patient {patient_id}")
            return patient

        if db:
            return _update(db)

        with self.store.open_session() as session:
            return _update(session)


# Singleton instance
patient_service = PatientService()
