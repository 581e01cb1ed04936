"""
Tools Package
Pure helpers for the DoseKeeper engine: schedule generation and the alarm sound
"""

from .scheduler import (
    DoseSchedule,
    HOURS_PER_DAY,
    validate_frequency,
    parse_clock_time,
    calculate_interval_hours,
    generate_reminder_times,
    format_reminder_times,
    build_dose_schedule
)

from .alarm_sound import (
    AudioSink,
    SoundSource,
    SoundBackend,
    AssetSoundBackend,
    ToneGenerator,
    AlarmSound
)

__all__ = [
    # Scheduler
    "DoseSchedule",
    "HOURS_PER_DAY",
    "validate_frequency",
    "parse_clock_time",
    "calculate_interval_hours",
    "generate_reminder_times",
    "format_reminder_times",
    "build_dose_schedule",

    # Alarm Sound
    "AudioSink",
    "SoundSource",
    "SoundBackend",
    "AssetSoundBackend",
    "ToneGenerator",
    "AlarmSound"
]
