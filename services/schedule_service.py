"""
Schedule Service
Materializes a medication's daily schedule into concrete dose events
"""

import logging
from dataclasses import dataclass
from typing import List, Optional
from datetime import datetime, date, time, timedelta
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from config import scheduling_config
import models
from models import DoseStatus
from exceptions import (
    MedicationCreationError,
    NoFutureDosesError,
    NotFoundError,
    PersistenceError,
)
from services.record_store import DoseRecordStore, MedicationDraft, record_store
from tools.scheduler import build_dose_schedule, validate_frequency


logger = logging.getLogger(__name__)


@dataclass
class MaterializationResult:
    """Outcome of creating a medication together with its dose events"""
    medication: models.Medication
    event_count: int
    first_dose_at: datetime
    last_dose_at: datetime
    capped: bool = False


def resolve_end_date(start_date: date, end_date: Optional[date] = None) -> date:
    """Inclusive last day of materialization; defaults to one year after start"""
    if end_date is not None:
        return end_date

    years = scheduling_config.DEFAULT_HORIZON_YEARS
    try:
        return start_date.replace(year=start_date.year + years)
    except ValueError:
        # Feb 29 has no counterpart in the target year
        return start_date.replace(year=start_date.year + years, day=28)


def generate_dose_times(
    reminder_times: List[time],
    start_date: date,
    end_date: date,
    now: datetime,
    max_events: int = scheduling_config.MAX_MATERIALIZED_EVENTS
) -> List[datetime]:
    """
    Expand daily reminder times over an inclusive date range.

    Instants at or before `now` are dropped. Days are walked in order and,
    within a day, times follow the reminder order. Generation stops as soon
    as `max_events` times have been collected.

    Returns:
        Scheduled datetimes, at most max_events long
    """
    scheduled: List[datetime] = []

    # Every instant on a day before today is already in the past
    current = max(start_date, now.date())
    while current <= end_date:
        for reminder in reminder_times:
            candidate = datetime.combine(current, reminder)
            if candidate <= now:
                continue
            scheduled.append(candidate)
            if len(scheduled) >= max_events:
                return scheduled
        current += timedelta(days=1)

    return scheduled


class ScheduleService:
    """
    Service for dose event materialization and lookup
    """

    def __init__(
        self,
        store: DoseRecordStore = record_store,
        max_events: int = scheduling_config.MAX_MATERIALIZED_EVENTS
    ):
        self.store = store
        self.max_events = max_events

    async def create_medication_with_events(
        self,
        subject_id: int,
        draft: MedicationDraft,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> MaterializationResult:
        """
        Create a medication and all of its dose events in one transaction

        Args:
            subject_id: Owning patient ID
            draft: Medication fields
            now: Materialization instant (default: local wall clock)
            db: Database session

        Returns:
            MaterializationResult with the persisted medication

        Raises:
            ScheduleValidationError: frequency out of range or bad dates
            NoFutureDosesError: the range is empty or has no dose time after now
            MedicationCreationError: events could not be saved; nothing was kept
        """
        validate_frequency(draft.frequency_count)
        if draft.end_date is not None and draft.end_date < draft.start_date:
            raise NoFutureDosesError("End date cannot be before start date")

        now = now or datetime.now()
        schedule = build_dose_schedule(draft.first_dose_time, draft.frequency_count)
        end_date = resolve_end_date(draft.start_date, draft.end_date)

        dose_times = generate_dose_times(
            schedule.reminder_times,
            draft.start_date,
            end_date,
            now,
            max_events=self.max_events
        )
        if not dose_times:
            raise NoFutureDosesError()

        def _create(session: Session) -> MaterializationResult:
            medication_id = None
            try:
                medication = self.store.insert_medication(session, subject_id, draft, schedule)
                medication_id = medication.id
                count = self.store.insert_events(session, subject_id, medication_id, dose_times)
                session.commit()
            except (PersistenceError, SQLAlchemyError) as e:
                session.rollback()
                self._compensate(session, subject_id, medication_id)
                logger.error(
                    f"Medication creation failed for patient {subject_id}: {e}"
                )
                raise MedicationCreationError(
                    "Dose events could not be saved; the medication was not created", e
                ) from e

            session.refresh(medication)
            capped = count >= self.max_events
            logger.info(
                f"Created medication {medication.id} for patient {subject_id} "
                f"with {count} dose events through {dose_times[-1]:%Y-%m-%d}"
                + (" (capped)" if capped else "")
            )
            return MaterializationResult(
                medication=medication,
                event_count=count,
                first_dose_at=dose_times[0],
                last_dose_at=dose_times[-1],
                capped=capped
            )

        if db:
            return _create(db)

        session = self.store.session_factory()
        try:
            return _create(session)
        finally:
            session.close()

    def _compensate(self, session: Session, subject_id: int, medication_id: Optional[int]) -> None:
        """Delete a medication that survived a rolled back creation"""
        if medication_id is None:
            return
        try:
            if self.store.get_medication(session, subject_id, medication_id) is None:
                return
            self.store.delete_medication(session, subject_id, medication_id)
            session.commit()
            logger.warning(f"Removed medication {medication_id} left behind by failed creation")
        except (PersistenceError, SQLAlchemyError):
            session.rollback()
            logger.exception(f"Compensating delete of medication {medication_id} failed")

    async def get_medication_events(
        self,
        subject_id: int,
        medication_id: int,
        status: Optional[DoseStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        ascending: bool = True,
        db: Optional[Session] = None
    ) -> List[models.DoseEvent]:
        """Get dose events of one medication"""
        def _get(session: Session) -> List[models.DoseEvent]:
            if self.store.get_medication(session, subject_id, medication_id) is None:
                raise NotFoundError(f"Medication {medication_id} not found")
            return self.store.query_events(
                session,
                subject_id,
                medication_id=medication_id,
                status=status,
                start=start,
                end=end,
                ascending=ascending
            )

        if db:
            return _get(db)

        with self.store.open_session() as session:
            return _get(session)

    async def get_upcoming_events(
        self,
        subject_id: int,
        hours: int = 4,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.DoseEvent]:
        """Pending doses scheduled after now and within the next few hours"""
        now = now or datetime.now()

        def _get(session: Session) -> List[models.DoseEvent]:
            events = self.store.query_events(
                session,
                subject_id,
                status=DoseStatus.PENDING,
                start=now,
                end=now + timedelta(hours=hours)
            )
            return [e for e in events if e.scheduled_time > now]

        if db:
            return _get(db)

        with self.store.open_session() as session:
            return _get(session)


# Singleton instance
schedule_service = ScheduleService()
