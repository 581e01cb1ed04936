"""
Medication Service
Business logic for medication management
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Any, Iterable, Union
from datetime import datetime, date, time
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

import models
from models import MedicationStatus
from exceptions import NotFoundError, PersistenceError
from services.record_store import DoseRecordStore, MedicationDraft, record_store
from services.schedule_service import MaterializationResult, ScheduleService, schedule_service
from services.adherence_service import (
    AdherenceService,
    adherence_service,
    calculate_historical_compliance,
)
from tools.scheduler import build_dose_schedule, parse_clock_time, validate_frequency


logger = logging.getLogger(__name__)


class MedicationService:
    """
    Service for medication-related operations
    """

    def __init__(
        self,
        store: DoseRecordStore = record_store,
        schedules: ScheduleService = schedule_service,
        adherence: AdherenceService = adherence_service
    ):
        self.store = store
        self.schedules = schedules
        self.adherence = adherence

    async def add_medication(
        self,
        patient_id: int,
        name: str,
        dosage: str,
        frequency_count: int,
        first_dose_time: Union[str, time],
        start_date: date,
        end_date: Optional[date] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> MaterializationResult:
        """
        Add a new medication for a patient and materialize its dose events

        Args:
            patient_id: Patient ID
            name: Medication name
            dosage: Dosage (e.g., "500mg")
            frequency_count: Doses per day (1-24)
            first_dose_time: Time of the first dose of the day
            start_date: First day of treatment
            end_date: Last day of treatment (default: one year after start)
            notes: Free text notes
            now: Creation instant
            db: Database session

        Returns:
            MaterializationResult with the created medication
        """
        draft = MedicationDraft(
            name=name.strip(),
            dosage=dosage.strip(),
            frequency_count=validate_frequency(frequency_count),
            first_dose_time=parse_clock_time(first_dose_time),
            start_date=start_date,
            end_date=end_date,
            notes=notes
        )
        return await self.schedules.create_medication_with_events(
            patient_id, draft, now=now, db=db
        )

    async def get_medication(
        self,
        patient_id: int,
        medication_id: int,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Get a medication by ID; raises NotFoundError if absent"""
        def _get(session: Session) -> models.Medication:
            medication = self.store.get_medication(session, patient_id, medication_id)
            if medication is None:
                raise NotFoundError(f"Medication {medication_id} not found")
            return medication

        if db:
            return _get(db)

        with self.store.open_session() as session:
            return _get(session)

    async def get_patient_medications(
        self,
        patient_id: int,
        status: Optional[MedicationStatus] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """
        List medications with their historical compliance

        Returns:
            List of {"medication", "stats"} entries, newest medication first
        """
        now = now or datetime.now()

        def _get(session: Session) -> List[Dict[str, Any]]:
            medications = self.store.list_medications(session, patient_id, status=status)
            due_events = self.store.query_events(session, patient_id, end=now, ascending=False)

            events_by_medication = defaultdict(list)
            for event in due_events:
                events_by_medication[event.medication_id].append(event)

            return [
                {
                    "medication": medication,
                    "stats": calculate_historical_compliance(events_by_medication[medication.id])
                }
                for medication in medications
            ]

        if db:
            return _get(db)

        with self.store.open_session() as session:
            return _get(session)

    async def get_medication_details(
        self,
        patient_id: int,
        medication_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Get a medication with today's compliance against its daily goal"""
        medication = await self.get_medication(patient_id, medication_id, db=db)
        today = await self.adherence.get_medication_today_stats(
            patient_id, medication_id, now=now, db=db
        )
        return {
            "medication": medication,
            "today": today
        }

    async def update_medication(
        self,
        patient_id: int,
        medication_id: int,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> models.Medication:
        """
        Update medication information.

        A new frequency or first dose time refreshes interval_hours and
        reminder_times. Dose events that were already materialized are left
        exactly as they are.
        """
        def _update(session: Session) -> models.Medication:
            medication = self.store.get_medication(session, patient_id, medication_id)
            if medication is None:
                raise NotFoundError(f"Medication {medication_id} not found")

            allowed_fields = {'name', 'dosage', 'notes', 'status'}
            for field, value in updates.items():
                if field in allowed_fields and value is not None:
                    setattr(medication, field, value)

            frequency_count = updates.get('frequency_count')
            first_dose_time = updates.get('first_dose_time')
            if frequency_count is not None or first_dose_time is not None:
                schedule = build_dose_schedule(
                    parse_clock_time(first_dose_time) if first_dose_time is not None
                    else medication.first_dose_time,
                    validate_frequency(frequency_count) if frequency_count is not None
                    else medication.frequency_count
                )
                medication.frequency_count = schedule.frequency_count
                medication.first_dose_time = schedule.first_dose_time
                medication.interval_hours = schedule.interval_hours
                medication.reminder_times = schedule.reminder_time_strings
                logger.info(
                    f"Medication {medication_id} schedule changed to "
                    f"{schedule.reminder_time_strings}; existing dose events kept"
                )

            medication.updated_at = datetime.now()
            try:
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError(f"Could not update medication {medication_id}", e) from e
            session.refresh(medication)
            return medication

        if db:
            return _update(db)

        with self.store.open_session() as session:
            return _update(session)

    async def set_status(
        self,
        patient_id: int,
        medication_id: int,
        status: MedicationStatus,
        db: Optional[Session] = None
    ) -> models.Medication:
        """Mark a medication active or inactive"""
        return await self.update_medication(patient_id, medication_id, {'status': status}, db)

    async def delete_medications(
        self,
        patient_id: int,
        medication_ids: Iterable[int],
        db: Optional[Session] = None
    ) -> int:
        """
        Delete medications together with their dose events

        Returns:
            Number of medications deleted
        """
        ids = list(dict.fromkeys(medication_ids))

        def _delete(session: Session) -> int:
            deleted = 0
            try:
                for medication_id in ids:
                    if self.store.delete_medication(session, patient_id, medication_id):
                        deleted += 1
                session.commit()
            except (PersistenceError, SQLAlchemyError) as e:
                session.rollback()
                if isinstance(e, PersistenceError):
                    raise
                raise PersistenceError("Could not delete medications", e) from e
            return deleted

        if db:
            return _delete(db)

        with self.store.open_session() as session:
            return _delete(session)


# Singleton instance
medication_service = MedicationService()
