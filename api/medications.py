"""
Medications API Router
Endpoints for medication management
"""

from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_subject_id, services
from api.schemas.medication import (
    MedicationCreate,
    MedicationUpdate,
    MedicationBulkDelete,
    MedicationResponse,
    MedicationCreated,
    MedicationWithStats,
    MedicationList,
    MedicationDetail,
    ComplianceStatsResponse,
    BulkDeleteResponse,
    DoseEventResponse,
    DoseEventList,
)
from models import MedicationStatus, DoseStatus
from exceptions import NotFoundError, PersistenceError, ScheduleValidationError


router = APIRouter(prefix="/medications", tags=["medications"])


@router.post("/", response_model=MedicationCreated, status_code=status.HTTP_201_CREATED)
async def create_medication(
    medication_data: MedicationCreate,
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Add a new medication and materialize its dose events

    - **name**: Medication name
    - **dosage**: Dosage (e.g., "500mg")
    - **frequency_count**: Doses per day (1-24)
    - **first_dose_time**: Time of the first dose, HH:MM
    - **start_date** / **end_date**: Treatment range (end defaults to one year)
    """
    medication_service = services.get_medication_service()

    try:
        result = await medication_service.add_medication(
            patient_id=subject_id,
            name=medication_data.name,
            dosage=medication_data.dosage,
            frequency_count=medication_data.frequency_count,
            first_dose_time=medication_data.first_dose_time,
            start_date=medication_data.start_date,
            end_date=medication_data.end_date,
            notes=medication_data.notes,
            db=db
        )
    except ScheduleValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    return MedicationCreated(
        medication=MedicationResponse.model_validate(result.medication),
        event_count=result.event_count,
        first_dose_at=result.first_dose_at,
        last_dose_at=result.last_dose_at,
        capped=result.capped
    )


@router.get("/", response_model=MedicationList)
async def list_medications(
    status_filter: Optional[MedicationStatus] = Query(None, alias="status"),
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Get all medications of the current patient with historical compliance
    """
    medication_service = services.get_medication_service()

    entries = await medication_service.get_patient_medications(
        subject_id,
        status=status_filter,
        db=db
    )

    return MedicationList(
        medications=[
            MedicationWithStats(
                medication=MedicationResponse.model_validate(entry["medication"]),
                stats=ComplianceStatsResponse.model_validate(entry["stats"])
            ) for entry in entries
        ],
        total=len(entries),
        active_count=sum(
            1 for entry in entries
            if entry["medication"].status == MedicationStatus.ACTIVE
        )
    )


@router.post("/delete", response_model=BulkDeleteResponse)
async def delete_medications(
    payload: MedicationBulkDelete,
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Delete several medications with their dose events
    """
    medication_service = services.get_medication_service()

    try:
        deleted = await medication_service.delete_medications(subject_id, payload.medication_ids, db=db)
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    return BulkDeleteResponse(requested=len(set(payload.medication_ids)), deleted=deleted)


@router.get("/{medication_id}", response_model=MedicationDetail)
async def get_medication(
    medication_id: int,
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Get medication details with today's compliance
    """
    medication_service = services.get_medication_service()

    try:
        details = await medication_service.get_medication_details(subject_id, medication_id, db=db)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return MedicationDetail(
        medication=MedicationResponse.model_validate(details["medication"]),
        today=ComplianceStatsResponse.model_validate(details["today"]),
        daily_goal=details["today"].denominator
    )


@router.patch("/{medication_id}", response_model=MedicationResponse)
async def update_medication(
    medication_id: int,
    updates: MedicationUpdate,
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Edit a medication. Already materialized dose events are kept as they are.
    """
    medication_service = services.get_medication_service()

    try:
        return await medication_service.update_medication(
            subject_id,
            medication_id,
            updates.model_dump(exclude_unset=True),
            db=db
        )
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ScheduleValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )


@router.delete("/{medication_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medication(
    medication_id: int,
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Delete a medication with its dose events
    """
    medication_service = services.get_medication_service()

    try:
        deleted = await medication_service.delete_medications(subject_id, [medication_id], db=db)
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Medication {medication_id} not found"
        )


@router.get("/{medication_id}/events", response_model=DoseEventList)
async def get_medication_events(
    medication_id: int,
    event_status: Optional[DoseStatus] = Query(None, alias="status"),
    start: Optional[datetime] = Query(None, description="Earliest scheduled time"),
    end: Optional[datetime] = Query(None, description="Latest scheduled time"),
    subject_id: int = Depends(get_current_subject_id),
    db: Session = Depends(get_db)
):
    """
    Get the dose events of a medication in schedule order
    """
    schedule_service = services.get_schedule_service()

    try:
        events = await schedule_service.get_medication_events(
            subject_id,
            medication_id,
            status=event_status,
            start=start,
            end=end,
            db=db
        )
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return DoseEventList(
        medication_id=medication_id,
        events=[DoseEventResponse.model_validate(e) for e in events],
        total=len(events)
    )
