"""
Test Tools Package
Tests for the tools module (scheduler, alarm sound)
"""

__all__ = [
    "test_scheduler",
    "test_alarm_sound",
]
