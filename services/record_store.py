"""
Record Store
Persistence contract for medications and dose events.

Every operation takes the subject (patient) id explicitly; nothing here
resolves the current user on its own. Methods that receive a session only
flush, leaving the commit to the caller so several writes can share one
transaction. The loop-facing methods (fetch_due_events, record_outcome)
manage their own short-lived session.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Callable, Generator, Iterable, List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from database import SessionLocal
import models
from models import DoseStatus, MedicationStatus
from exceptions import DoseAlreadyResolvedError, NotFoundError, PersistenceError
from tools.scheduler import DoseSchedule


logger = logging.getLogger(__name__)


@dataclass
class MedicationDraft:
    """Validated input for a new medication"""
    name: str
    dosage: str
    frequency_count: int
    first_dose_time: time
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None
    status: MedicationStatus = MedicationStatus.ACTIVE


@dataclass(frozen=True)
class DueDose:
    """Detached snapshot of a due dose event, safe to hold across sessions"""
    id: int
    medication_id: int
    medication_name: str
    dosage: str
    scheduled_time: datetime

    @classmethod
    def from_event(cls, event: models.DoseEvent) -> "DueDose":
        medication = event.medication
        return cls(
            id=event.id,
            medication_id=event.medication_id,
            medication_name=medication.name if medication else "Medication",
            dosage=medication.dosage if medication else "",
            scheduled_time=event.scheduled_time
        )


class DoseRecordStore:
    """
    SQLAlchemy-backed store for medications and their dose events
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Open a session that commits on success and rolls back on error"""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Record store transaction failed")
            raise PersistenceError("Record store transaction failed", e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def open_session(self) -> Generator[Session, None, None]:
        """Open a plain session; the caller decides whether to commit"""
        session = self.session_factory()
        try:
            yield session
        finally:
            session.close()

    # ==================== MEDICATIONS ====================

    def insert_medication(
        self,
        session: Session,
        subject_id: int,
        draft: MedicationDraft,
        schedule: DoseSchedule
    ) -> models.Medication:
        """Insert a medication with its cached schedule projection"""
        medication = models.Medication(
            patient_id=subject_id,
            name=draft.name,
            dosage=draft.dosage,
            status=draft.status,
            frequency_count=schedule.frequency_count,
            first_dose_time=schedule.first_dose_time,
            interval_hours=schedule.interval_hours,
            reminder_times=schedule.reminder_time_strings,
            start_date=draft.start_date,
            end_date=draft.end_date,
            notes=draft.notes
        )
        try:
            session.add(medication)
            session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not insert medication for patient {subject_id}", e) from e
        return medication

    def get_medication(
        self,
        session: Session,
        subject_id: int,
        medication_id: int
    ) -> Optional[models.Medication]:
        try:
            return session.query(models.Medication).filter(
                and_(
                    models.Medication.id == medication_id,
                    models.Medication.patient_id == subject_id
                )
            ).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load medication {medication_id}", e) from e

    def list_medications(
        self,
        session: Session,
        subject_id: int,
        status: Optional[MedicationStatus] = None,
        medication_ids: Optional[Iterable[int]] = None
    ) -> List[models.Medication]:
        try:
            query = session.query(models.Medication).filter(
                models.Medication.patient_id == subject_id
            )
            if status is not None:
                query = query.filter(models.Medication.status == status)
            if medication_ids is not None:
                query = query.filter(models.Medication.id.in_(list(medication_ids)))
            return query.order_by(models.Medication.created_at.desc(), models.Medication.id.desc()).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list medications for patient {subject_id}", e) from e

    def delete_medication(self, session: Session, subject_id: int, medication_id: int) -> bool:
        """Delete a medication; its dose events go with it"""
        medication = self.get_medication(session, subject_id, medication_id)
        if medication is None:
            return False
        try:
            session.delete(medication)
            session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not delete medication {medication_id}", e) from e
        logger.info(f"Deleted medication {medication_id} for patient {subject_id}")
        return True

    # ==================== DOSE EVENTS ====================

    def insert_events(
        self,
        session: Session,
        subject_id: int,
        medication_id: int,
        scheduled_times: List[datetime]
    ) -> int:
        """Batch insert pending dose events for one medication"""
        events = [
            models.DoseEvent(
                medication_id=medication_id,
                patient_id=subject_id,
                scheduled_time=scheduled_time,
                status=DoseStatus.PENDING
            )
            for scheduled_time in scheduled_times
        ]
        try:
            session.add_all(events)
            session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Could not insert {len(events)} dose events for medication {medication_id}", e
            ) from e
        return len(events)

    def query_events(
        self,
        session: Session,
        subject_id: int,
        medication_id: Optional[int] = None,
        status: Optional[DoseStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        ascending: bool = True
    ) -> List[models.DoseEvent]:
        """
        Query dose events for a subject

        Args:
            session: Database session
            subject_id: Owning patient
            medication_id: Restrict to one medication
            status: Restrict to one status
            start: Inclusive lower bound on scheduled_time
            end: Inclusive upper bound on scheduled_time
            ascending: Order by scheduled_time ascending (id breaks ties)

        Returns:
            Matching DoseEvent rows with their medication loaded
        """
        try:
            query = session.query(models.DoseEvent).options(
                joinedload(models.DoseEvent.medication)
            ).filter(models.DoseEvent.patient_id == subject_id)

            if medication_id is not None:
                query = query.filter(models.DoseEvent.medication_id == medication_id)
            if status is not None:
                query = query.filter(models.DoseEvent.status == status)
            if start is not None:
                query = query.filter(models.DoseEvent.scheduled_time >= start)
            if end is not None:
                query = query.filter(models.DoseEvent.scheduled_time <= end)

            if ascending:
                query = query.order_by(models.DoseEvent.scheduled_time.asc(), models.DoseEvent.id.asc())
            else:
                query = query.order_by(models.DoseEvent.scheduled_time.desc(), models.DoseEvent.id.desc())

            return query.all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not query dose events for patient {subject_id}", e) from e

    def update_event(
        self,
        session: Session,
        subject_id: int,
        event_id: int,
        status: DoseStatus,
        taken_at: Optional[datetime] = None
    ) -> models.DoseEvent:
        """
        Resolve a pending dose event.

        Only pending -> taken (with taken_at) and pending -> missed (without
        taken_at) are allowed. Anything else leaves the row untouched.
        """
        if status == DoseStatus.PENDING:
            raise ValueError("A dose event cannot be moved back to pending")
        if status == DoseStatus.TAKEN and taken_at is None:
            raise ValueError("taken_at is required when a dose is taken")

        try:
            event = session.query(models.DoseEvent).filter(
                and_(
                    models.DoseEvent.id == event_id,
                    models.DoseEvent.patient_id == subject_id
                )
            ).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load dose event {event_id}", e) from e

        if event is None:
            raise NotFoundError(f"Dose event {event_id} not found for patient {subject_id}")
        if event.status != DoseStatus.PENDING:
            raise DoseAlreadyResolvedError(event_id, event.status.value)

        event.status = status
        event.taken_at = taken_at if status == DoseStatus.TAKEN else None
        try:
            session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update dose event {event_id}", e) from e
        return event

    # ==================== ALARM LOOP ====================

    def fetch_due_events(self, subject_id: int, start: datetime, end: datetime) -> List[DueDose]:
        """Pending events with start <= scheduled_time <= end, oldest first"""
        with self.session_scope() as session:
            events = self.query_events(
                session,
                subject_id,
                status=DoseStatus.PENDING,
                start=start,
                end=end,
                ascending=True
            )
            return [DueDose.from_event(e) for e in events]

    def record_outcome(
        self,
        subject_id: int,
        event_id: int,
        status: DoseStatus,
        taken_at: Optional[datetime] = None
    ) -> None:
        """Write a user decision as a single-record transaction"""
        with self.session_scope() as session:
            self.update_event(session, subject_id, event_id, status, taken_at)
        logger.info(f"Dose event {event_id} for patient {subject_id} marked {status.value}")


# Singleton instance
record_store = DoseRecordStore()
