"""
Adherence Service
Compliance statistics computed from dose event outcomes
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime, date, time, timedelta
from sqlalchemy.orm import Session

import models
from models import DoseStatus
from exceptions import NotFoundError
from services.record_store import DoseRecordStore, record_store


logger = logging.getLogger(__name__)


FULL_COMPLIANCE = 100


class ComplianceBasis:
    """How a compliance rate was computed"""
    DAILY_GOAL = "daily_goal"    # taken today against today's expected doses
    HISTORICAL = "historical"    # taken against all resolved doses


@dataclass
class ComplianceStats:
    """Adherence metrics over a set of due dose events"""
    taken_count: int
    missed_count: int
    pending_count: int
    rate: int
    denominator: int
    basis: str
    missed_events: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taken_count": self.taken_count,
            "missed_count": self.missed_count,
            "pending_count": self.pending_count,
            "rate": self.rate,
            "denominator": self.denominator,
            "basis": self.basis,
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _status_of(event) -> DoseStatus:
    status = event.status
    return status if isinstance(status, DoseStatus) else DoseStatus(status)


def _count(events: Iterable) -> Dict[DoseStatus, list]:
    buckets: Dict[DoseStatus, list] = {s: [] for s in DoseStatus}
    for event in events:
        buckets[_status_of(event)].append(event)
    return buckets


def resolve_daily_goal(medication) -> int:
    """
    Doses expected per day for a medication.

    Uses frequency_count, falls back to the number of reminder times and
    finally to one dose a day.
    """
    if medication is None:
        return 1
    frequency = getattr(medication, "frequency_count", None)
    if frequency:
        return frequency
    reminder_times = getattr(medication, "reminder_times", None) or []
    return len(reminder_times) or 1


def calculate_daily_compliance(events: Iterable, daily_goal: int) -> ComplianceStats:
    """
    Same-day compliance: doses taken against the day's goal.

    Args:
        events: Due events (scheduled_time <= now), already restricted to the day
        daily_goal: Doses expected for the day

    Returns:
        ComplianceStats with rate clamped to 100; a zero goal counts as 100
    """
    buckets = _count(events)
    taken = len(buckets[DoseStatus.TAKEN])

    if daily_goal and daily_goal > 0:
        rate = min(_round_half_up(100 * taken / daily_goal), FULL_COMPLIANCE)
    else:
        rate = FULL_COMPLIANCE

    return ComplianceStats(
        taken_count=taken,
        missed_count=len(buckets[DoseStatus.MISSED]),
        pending_count=len(buckets[DoseStatus.PENDING]),
        rate=rate,
        denominator=max(daily_goal or 0, 0),
        basis=ComplianceBasis.DAILY_GOAL,
        missed_events=buckets[DoseStatus.MISSED]
    )


def calculate_historical_compliance(events: Iterable) -> ComplianceStats:
    """
    Historical compliance: taken against all resolved doses.

    No resolved dose yet means nothing has been missed, so the rate is 100.
    """
    buckets = _count(events)
    taken = len(buckets[DoseStatus.TAKEN])
    missed = len(buckets[DoseStatus.MISSED])
    resolved = taken + missed

    rate = _round_half_up(100 * taken / resolved) if resolved else FULL_COMPLIANCE

    return ComplianceStats(
        taken_count=taken,
        missed_count=missed,
        pending_count=len(buckets[DoseStatus.PENDING]),
        rate=rate,
        denominator=resolved,
        basis=ComplianceBasis.HISTORICAL,
        missed_events=buckets[DoseStatus.MISSED]
    )


def display_status(event, now: datetime) -> str:
    """Status shown in history: unresolved past doses read as missed"""
    status = _status_of(event)
    if status != DoseStatus.PENDING:
        return status.value
    return "planned" if event.scheduled_time > now else DoseStatus.MISSED.value


def _start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def _end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max)


def _after_start_date(event) -> bool:
    """Drop events scheduled before their medication's start date"""
    medication = event.medication
    if medication is None or medication.start_date is None:
        return True
    return event.scheduled_time >= datetime.combine(medication.start_date, time.min)


class AdherenceService:
    """
    Service for adherence statistics over stored dose events
    """

    def __init__(self, store: DoseRecordStore = record_store):
        self.store = store

    def _require_medication(self, session: Session, subject_id: int, medication_id: int) -> models.Medication:
        medication = self.store.get_medication(session, subject_id, medication_id)
        if medication is None:
            raise NotFoundError(f"Medication {medication_id} not found")
        return medication

    async def get_medication_today_stats(
        self,
        subject_id: int,
        medication_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> ComplianceStats:
        """Today's due doses of one medication against its daily goal"""
        now = now or datetime.now()

        def _calculate(session: Session) -> ComplianceStats:
            medication = self._require_medication(session, subject_id, medication_id)
            events = self.store.query_events(
                session,
                subject_id,
                medication_id=medication_id,
                start=_start_of_day(now),
                end=now,
                ascending=False
            )
            return calculate_daily_compliance(events, resolve_daily_goal(medication))

        if db:
            return _calculate(db)

        with self.store.open_session() as session:
            return _calculate(session)

    async def get_medication_history_stats(
        self,
        subject_id: int,
        medication_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> ComplianceStats:
        """All-time compliance of one medication over its due doses"""
        now = now or datetime.now()

        def _calculate(session: Session) -> ComplianceStats:
            self._require_medication(session, subject_id, medication_id)
            events = self.store.query_events(
                session,
                subject_id,
                medication_id=medication_id,
                end=now,
                ascending=False
            )
            return calculate_historical_compliance(events)

        if db:
            return _calculate(db)

        with self.store.open_session() as session:
            return _calculate(session)

    async def get_daily_summary(
        self,
        subject_id: int,
        medication_id: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Today's adherence across one or all medications

        The daily goal is the goal of the selected medication, or the sum of
        the goals of all active medications. Without a filter only doses of
        active medications count towards the taken total.

        Returns:
            Summary with today's taken count, goal and clamped rate
        """
        now = now or datetime.now()

        def _summarize(session: Session) -> Dict[str, Any]:
            if medication_id is not None:
                medications = [self._require_medication(session, subject_id, medication_id)]
            else:
                medications = self.store.list_medications(
                    session, subject_id, status=models.MedicationStatus.ACTIVE
                )

            events = self.store.query_events(
                session,
                subject_id,
                medication_id=medication_id,
                start=_start_of_day(now),
                end=now
            )
            events = [e for e in events if _after_start_date(e)]
            if medication_id is None:
                active_ids = {m.id for m in medications}
                events = [e for e in events if e.medication_id in active_ids]

            daily_goal = sum(resolve_daily_goal(m) for m in medications)
            stats = calculate_daily_compliance(events, daily_goal)

            return {
                "date": now.date(),
                "medication_id": medication_id,
                "today_taken": stats.taken_count,
                "today_missed": stats.missed_count,
                "today_pending": stats.pending_count,
                "daily_goal": daily_goal,
                "rate": stats.rate
            }

        if db:
            return _summarize(db)

        with self.store.open_session() as session:
            return _summarize(session)

    async def get_dose_history(
        self,
        subject_id: int,
        medication_id: Optional[int] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """
        Dose events grouped per calendar day, newest day first

        Covers everything up to the end of today, so doses still to come today
        are listed as planned.

        Args:
            subject_id: Patient ID
            medication_id: Optional medication filter
            days: Only include the last N days (including today)
            now: Reference instant
            db: Database session
        """
        now = now or datetime.now()
        start = _start_of_day(now) - timedelta(days=days - 1) if days else None

        def _get(session: Session) -> List[Dict[str, Any]]:
            if medication_id is not None:
                self._require_medication(session, subject_id, medication_id)

            events = self.store.query_events(
                session,
                subject_id,
                medication_id=medication_id,
                start=start,
                end=_end_of_day(now),
                ascending=False
            )

            by_day: Dict[date, list] = defaultdict(list)
            for event in events:
                if _after_start_date(event):
                    by_day[event.scheduled_time.date()].append(event)

            history = []
            for day in sorted(by_day.keys(), reverse=True):
                day_events = by_day[day]
                stats = calculate_historical_compliance(day_events)
                history.append({
                    "date": day,
                    "taken": stats.taken_count,
                    "missed": stats.missed_count,
                    "pending": stats.pending_count,
                    "events": [
                        {
                            "id": e.id,
                            "medication_id": e.medication_id,
                            "medication_name": e.medication.name if e.medication else None,
                            "dosage": e.medication.dosage if e.medication else None,
                            "scheduled_time": e.scheduled_time,
                            "taken_at": e.taken_at,
                            "status": _status_of(e).value,
                            "display_status": display_status(e, now)
                        }
                        for e in day_events
                    ]
                })
            return history

        if db:
            return _get(db)

        with self.store.open_session() as session:
            return _get(session)


# Singleton instance
adherence_service = AdherenceService()
