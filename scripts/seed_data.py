#!/usr/bin/env python
"""
Seed Data
Script to seed the database with a demo patient for development
"""

import sys
import os
import argparse
import asyncio
import logging
import random
from datetime import datetime, timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, engine, Base
from models import Patient, Medication, DoseEvent, DoseStatus
from services.record_store import record_store
from services.medication_service import medication_service


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


DEMO_EMAIL = "demo@dosekeeper.local"

DEMO_MEDICATIONS = [
    {"name": "Metformin", "dosage": "1000mg", "frequency_count": 2, "first_dose_time": "08:00"},
    {"name": "Lisinopril", "dosage": "10mg", "frequency_count": 1, "first_dose_time": "09:30"},
    {"name": "Amoxicillin", "dosage": "500mg", "frequency_count": 3, "first_dose_time": "07:15"},
]


def create_tables():
    """Create all database tables"""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully")


def seed_demo_patient(db) -> Patient:
    """Create the demo patient"""
    existing = db.query(Patient).filter(Patient.email == DEMO_EMAIL).first()
    if existing:
        logger.info("Demo patient already exists")
        return existing

    patient = Patient(display_name="Demo Patient", email=DEMO_EMAIL, external_id="demo")
    db.add(patient)
    db.flush()

    logger.info(f"Created patient: {patient.display_name} (ID: {patient.id})")
    return patient


async def seed_medications(db, patient_id: int, history_days: int):
    """
    Create the demo medications as if they had been added history_days ago,
    so past dose events exist for the history views.
    """
    created_at = datetime.now() - timedelta(days=history_days)
    for data in DEMO_MEDICATIONS:
        result = await medication_service.add_medication(
            patient_id=patient_id,
            start_date=created_at.date(),
            now=created_at,
            db=db,
            **data
        )
        logger.info(f"Added {data['name']} with {result.event_count} dose events")


def seed_outcomes(db, patient_id: int, adherence: float):
    """Resolve past dose events, taking roughly `adherence` of them"""
    now = datetime.now()
    due = record_store.query_events(db, patient_id, status=DoseStatus.PENDING, end=now)

    # Keep the last hour pending so the alarm loop has something to show
    cutoff = now - timedelta(hours=1)
    for event in due:
        if event.scheduled_time >= cutoff:
            continue
        if random.random() < adherence:
            taken_at = event.scheduled_time + timedelta(minutes=random.randint(0, 45))
            record_store.update_event(db, patient_id, event.id, DoseStatus.TAKEN, taken_at)
        else:
            record_store.update_event(db, patient_id, event.id, DoseStatus.MISSED)
    db.commit()


def seed_all(clear_existing: bool = False, history_days: int = 14, adherence: float = 0.85):
    """Run all seed operations"""
    create_tables()

    db = SessionLocal()

    try:
        if clear_existing:
            logger.info("Clearing existing data...")
            db.query(DoseEvent).delete()
            db.query(Medication).delete()
            db.query(Patient).delete()
            db.commit()
            logger.info("Existing data cleared")

        patient = seed_demo_patient(db)
        db.commit()

        if not db.query(Medication).filter(Medication.patient_id == patient.id).count():
            asyncio.run(seed_medications(db, patient.id, history_days))
            seed_outcomes(db, patient.id, adherence)

        logger.info(
            f"Seeding complete: {db.query(Medication).count()} medications, "
            f"{db.query(DoseEvent).count()} dose events"
        )
        logger.info(f"Demo patient id {patient.id}; send it as the X-Subject-Id header")

    except Exception as e:
        db.rollback()
        logger.error(f"Error during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed the database with a demo patient"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear existing data before seeding"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=14,
        help="Days of dose history to generate"
    )
    parser.add_argument(
        "--adherence",
        type=float,
        default=0.85,
        help="Share of past doses marked taken"
    )

    args = parser.parse_args()

    seed_all(clear_existing=args.clear, history_days=args.days, adherence=args.adherence)


if __name__ == "__main__":
    main()
