"""
Adherence API Router
Endpoints for compliance statistics and dose history
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_subject_id, services
from api.schemas.adherence import (
    DailySummary,
    DoseHistory,
    MedicationAdherence,
)
from api.schemas.medication import ComplianceStatsResponse
from exceptions import NotFoundError


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/summary", response_model=DailySummary)
async def get_daily_summary(
    medication_id: Optional[int] = Query(None, description="Restrict to one medication"),
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Today's doses taken against the daily goal

    Without a medication filter both the goal and the taken count cover
    active medications only.
    """
    adherence_service = services.get_adherence_service()

    try:
        summary = await adherence_service.get_daily_summary(subject_id, medication_id=medication_id, db=db)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return DailySummary(**summary)


@router.get("/history", response_model=DoseHistory)
async def get_dose_history(
    medication_id: Optional[int] = Query(None, description="Restrict to one medication"),
    days: Optional[int] = Query(None, ge=1, le=366, description="Number of days to include"),
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Due dose events grouped per day, newest first
    """
    adherence_service = services.get_adherence_service()

    try:
        history = await adherence_service.get_dose_history(
            subject_id,
            medication_id=medication_id,
            days=days,
            db=db
        )
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return DoseHistory(medication_id=medication_id, days=history)


@router.get("/medications/{medication_id}", response_model=MedicationAdherence)
async def get_medication_adherence(
    medication_id: int,
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Today's and all-time compliance of one medication
    """
    adherence_service = services.get_adherence_service()
    medication_service = services.get_medication_service()

    try:
        medication = await medication_service.get_medication(subject_id, medication_id, db=db)
        today = await adherence_service.get_medication_today_stats(subject_id, medication_id, db=db)
        history = await adherence_service.get_medication_history_stats(subject_id, medication_id, db=db)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return MedicationAdherence(
        medication_id=medication.id,
        medication_name=medication.name,
        daily_goal=today.denominator,
        today=ComplianceStatsResponse.model_validate(today),
        history=ComplianceStatsResponse.model_validate(history)
    )
