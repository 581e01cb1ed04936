"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all DoseKeeper tests.
Fixtures include database sessions, services bound to the test database,
test clients and sample data.
"""

import os
import sys
from datetime import datetime, date, time, timedelta
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep the application engine off disk during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from database import Base
from models import Patient, Medication, DoseEvent, DoseStatus
from services.record_store import DoseRecordStore, MedicationDraft
from services.patient_service import PatientService
from services.schedule_service import ScheduleService, generate_dose_times
from services.adherence_service import AdherenceService
from services.medication_service import MedicationService
from tools.scheduler import build_dose_schedule
from actions.reminder_engine import AlarmSessionManager, create_alarm_loop
from api.deps import get_db, get_alarm_sessions
from app import app


# Wall clock used by tests that need a deterministic "now"
FIXED_NOW = datetime(2026, 3, 10, 9, 30)


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session"""
    session = session_factory()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def store(session_factory) -> DoseRecordStore:
    """Record store bound to the test database"""
    return DoseRecordStore(session_factory)


@pytest.fixture
def patient_service(store) -> PatientService:
    return PatientService(store)


@pytest.fixture
def schedule_service(store) -> ScheduleService:
    return ScheduleService(store)


@pytest.fixture
def adherence_service(store) -> AdherenceService:
    return AdherenceService(store)


@pytest.fixture
def medication_service(store, schedule_service, adherence_service) -> MedicationService:
    return MedicationService(store, schedule_service, adherence_service)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def test_patient(db_session: Session) -> Patient:
    """Create and return a test patient"""
    patient = Patient(
        display_name="Jane Doe",
        email="jane.doe@example.com",
        external_id="subject-1"
    )
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def other_patient(db_session: Session) -> Patient:
    """A second patient whose data must stay invisible to test_patient"""
    patient = Patient(display_name="John Roe", email="john.roe@example.com")
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


def add_medication(
    db_session: Session,
    store: DoseRecordStore,
    patient_id: int,
    name: str = "Metformin",
    dosage: str = "500mg",
    frequency_count: int = 2,
    first_dose_time: time = time(8, 0),
    start_date: date = FIXED_NOW.date(),
    end_date: date = None,
    event_times: List[datetime] = None
) -> Medication:
    """
    Insert a medication through the record store.

    event_times defaults to the schedule expanded from start_date to end_date
    (or one week) with nothing filtered out, so past doses exist too.
    """
    schedule = build_dose_schedule(first_dose_time, frequency_count)
    draft = MedicationDraft(
        name=name,
        dosage=dosage,
        frequency_count=frequency_count,
        first_dose_time=schedule.first_dose_time,
        start_date=start_date,
        end_date=end_date
    )
    medication = store.insert_medication(db_session, patient_id, draft, schedule)

    if event_times is None:
        last_day = end_date or start_date + timedelta(days=6)
        event_times = generate_dose_times(
            schedule.reminder_times,
            start_date,
            last_day,
            datetime.combine(start_date, time.min) - timedelta(seconds=1)
        )
    if event_times:
        store.insert_events(db_session, patient_id, medication.id, event_times)

    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def test_medication(db_session: Session, store: DoseRecordStore, test_patient: Patient) -> Medication:
    """Twice-daily medication with a week of dose events starting today"""
    return add_medication(db_session, store, test_patient.id)


def events_of(db_session: Session, medication_id: int) -> List[DoseEvent]:
    db_session.expire_all()
    return db_session.query(DoseEvent).filter(
        DoseEvent.medication_id == medication_id
    ).order_by(DoseEvent.scheduled_time).all()


def resolve(db_session: Session, event: DoseEvent, status: DoseStatus, taken_at: datetime = None):
    """Set an event outcome directly, bypassing the transition checks"""
    event.status = status
    event.taken_at = taken_at if status == DoseStatus.TAKEN else None
    db_session.commit()


@pytest.fixture
def make_medication(db_session: Session, store: DoseRecordStore, test_patient: Patient):
    """Factory for medications owned by test_patient unless patient_id is given"""
    def _make(**kwargs) -> Medication:
        patient_id = kwargs.pop("patient_id", test_patient.id)
        return add_medication(db_session, store, patient_id, **kwargs)
    return _make


@pytest.fixture
def dose_events(db_session: Session):
    """Reload the dose events of a medication in schedule order"""
    return lambda medication_id: events_of(db_session, medication_id)


@pytest.fixture
def set_outcome(db_session: Session):
    """Resolve a dose event directly"""
    return lambda event, status, taken_at=None: resolve(db_session, event, status, taken_at)


# ==================== CLIENT FIXTURES ====================

@pytest.fixture
def alarm_sessions(store, patient_service, fixed_now) -> AlarmSessionManager:
    """Session manager whose loops read the test database on a fixed clock"""
    def factory(subject_id: int, audio_opted_in: bool = False):
        return create_alarm_loop(
            subject_id,
            audio_opted_in=audio_opted_in,
            store=store,
            clock=lambda: fixed_now,
            patients=patient_service
        )

    # Tests drive ticks through the API instead of a background task
    return AlarmSessionManager(loop_factory=factory, autostart=False)


@pytest.fixture(scope="function")
def client(db_session: Session, alarm_sessions: AlarmSessionManager) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_alarm_sessions] = lambda: alarm_sessions

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(test_patient: Patient) -> dict:
    """Identity header of the test patient"""
    return {"X-Subject-Id": str(test_patient.id)}


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
