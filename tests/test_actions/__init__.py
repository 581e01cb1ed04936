"""
Test Actions Package
Tests for the actions module (alarm presenter, reminder engine)
"""

__all__ = [
    "test_alarm_presenter",
    "test_reminder_engine",
]
