"""
Alarms API Router
Endpoints driving a patient's alarm delivery session
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query, Response
from sqlalchemy.orm import Session

import models
from api.deps import get_db, get_current_subject, get_alarm_sessions, services
from api.schemas.alarm import (
    AlarmDecision,
    AlarmSessionState,
    AudioPreference,
    AudioStatus,
)
from actions.reminder_engine import AlarmDeliveryLoop, AlarmSessionManager
from exceptions import NotFoundError, PersistenceError


router = APIRouter(prefix="/alarms", tags=["alarms"])


def _require_session(sessions: AlarmSessionManager, subject_id: int) -> AlarmDeliveryLoop:
    loop = sessions.get(subject_id)
    if loop is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No alarm session; start one first"
        )
    return loop


@router.post("/session", response_model=AlarmSessionState)
async def start_session(
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions)
):
    """
    Start polling for due doses (login)
    """
    loop = await sessions.start_session(patient.id, audio_opted_in=patient.alarm_audio_enabled)
    return loop.snapshot()


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions)
):
    """
    Stop polling (logout)
    """
    await sessions.end_session(patient.id)


@router.get("/active", response_model=AlarmSessionState)
async def get_active_alarm(
    refresh: bool = Query(True, description="Poll the store before answering"),
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions)
):
    """
    Get the alarm being presented, the queue behind it and the sound state
    """
    loop = _require_session(sessions, patient.id)
    if refresh:
        await loop.tick()
    return loop.snapshot()


@router.post("/decision", response_model=AlarmSessionState)
async def record_decision(
    decision: AlarmDecision,
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions)
):
    """
    Mark the active alarm's dose as taken or missed

    A failed save keeps the alarm active and answers 503 so the client can retry.
    """
    loop = _require_session(sessions, patient.id)

    try:
        await loop.record_decision(decision.outcome, event_id=decision.event_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Decision not saved, please retry: {e}"
        )

    return loop.snapshot()


@router.get("/sound")
async def get_alarm_sound(
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions)
):
    """
    Audio for the active alarm as WAV; 204 while silent
    """
    loop = _require_session(sessions, patient.id)
    presenter = loop.presenter

    if not loop.sound.is_playing or not getattr(presenter, "has_sound", False):
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return Response(content=presenter.sound_data, media_type="audio/wav")


async def _apply_audio(
    patient: models.Patient,
    sessions: AlarmSessionManager,
    enabled: bool,
    db: Session
) -> AudioStatus:
    loop = sessions.get(patient.id)

    if loop is None:
        patient_service = services.get_patient_service()
        await patient_service.set_alarm_audio_enabled(patient.id, enabled, db=db)
        return AudioStatus(enabled=enabled, source=None, sound_banner_visible=not enabled)

    source = await loop.set_audio_enabled(enabled)
    return AudioStatus(
        enabled=enabled,
        source=source.value if source else None,
        sound_banner_visible=loop.sound_banner_visible
    )


@router.post("/audio/enable", response_model=AudioStatus)
async def enable_audio(
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions),
    db: Session = Depends(get_db)
):
    """
    One-time audio opt-in from a user gesture
    """
    return await _apply_audio(patient, sessions, True, db)


@router.put("/audio", response_model=AudioStatus)
async def set_audio(
    preference: AudioPreference,
    patient: models.Patient = Depends(get_current_subject),
    sessions: AlarmSessionManager = Depends(get_alarm_sessions),
    db: Session = Depends(get_db)
):
    """
    Turn alarm audio on or off
    """
    return await _apply_audio(patient, sessions, preference.enabled, db)
