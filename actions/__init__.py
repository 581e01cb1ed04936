"""
Actions Module
Runtime alarm delivery: the polling loop and its presentation port
"""

from .alarm_presenter import (
    Alarm,
    AlarmPresenter,
    DecisionOutcome,
    WebAlarmPresenter
)

from .reminder_engine import (
    AlarmState,
    AlarmDeliveryLoop,
    AlarmSessionManager,
    create_alarm_loop,
    alarm_sessions
)


__all__ = [
    # Alarm Presenter
    "Alarm",
    "AlarmPresenter",
    "DecisionOutcome",
    "WebAlarmPresenter",

    # Reminder Engine
    "AlarmState",
    "AlarmDeliveryLoop",
    "AlarmSessionManager",
    "create_alarm_loop",
    "alarm_sessions"
]
