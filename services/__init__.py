"""
Services Module
Business logic layer for the DoseKeeper application
"""

from services.record_store import DoseRecordStore, MedicationDraft, DueDose, record_store
from services.patient_service import PatientService, patient_service
from services.schedule_service import ScheduleService, MaterializationResult, schedule_service
from services.adherence_service import AdherenceService, ComplianceStats, adherence_service
from services.medication_service import MedicationService, medication_service


__all__ = [
    # Record store
    "DoseRecordStore",
    "MedicationDraft",
    "DueDose",
    "record_store",
    # Service classes
    "PatientService",
    "ScheduleService",
    "MaterializationResult",
    "AdherenceService",
    "ComplianceStats",
    "MedicationService",
    # Singleton instances
    "patient_service",
    "schedule_service",
    "adherence_service",
    "medication_service",
]
