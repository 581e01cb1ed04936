"""
DoseKeeper Test Suite
=====================

This package contains all tests for the DoseKeeper scheduling and alarm service.

Test Structure:
- test_tools/: Schedule generation and alarm sound
- test_services/: Record store, materialization, compliance and medication management
- test_actions/: Alarm presenter and delivery loop
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "api"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

# Common test data
SAMPLE_MEDICATIONS = [
    {"name": "Metformin", "dosage": "500mg", "frequency_count": 2, "first_dose_time": "08:00"},
    {"name": "Lisinopril", "dosage": "10mg", "frequency_count": 1, "first_dose_time": "09:00"},
    {"name": "Amoxicillin", "dosage": "250mg", "frequency_count": 3, "first_dose_time": "07:00"},
]

__all__ = [
    "TEST_DATABASE_URL",
    "SAMPLE_MEDICATIONS",
]
