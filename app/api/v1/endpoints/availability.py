from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging
import re

from app.core.config import settings
from app.core.database import get_db
from app.core.auth import get_current_user
from app.core.exceptions import AuthorizationError, DatabaseError, NotFoundError, ValidationError
from app.core.timezone_utils import parse_date, parse_time_string
from app.models.availability import AvailabilityPattern
from app.models.user import User, UserRole
from app.schemas.availability import (
    DATE_PATTERN,
    UUID_PATTERN,
    AvailabilityPatternCreate,
    AvailabilityPatternResponse,
    AvailabilityPatternUpdate,
    AvailableSlotsResponse,
    TutorPatternsResponse,
)
from app.services.availability_service import AvailabilityService, to_uuid

logger = logging.getLogger(__name__)

router = APIRouter()


def _pattern_to_response(pattern: AvailabilityPattern) -> dict:
    return {
        "id": str(pattern.id),
        "tutor_id": str(pattern.tutor_id),
        "day_of_week": pattern.day_of_week,
        "start_time": parse_time_string(pattern.start_time.isoformat()),
        "end_time": parse_time_string(pattern.end_time.isoformat()),
        "is_active": pattern.is_active,
    }


def _require_tutor(user: User) -> None:
    if user.role != UserRole.TUTOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only tutors can manage availability patterns"
        )


@router.get("/slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    tutor_id: str = Query(None, alias="tutorId", description="Tutor ID"),
    date: str = Query(None, description="Date in YYYY-MM-DD format, in the tutor's timezone"),
    duration: int = Query(
        settings.DEFAULT_SLOT_DURATION_MINUTES,
        ge=settings.MIN_SLOT_DURATION_MINUTES,
        le=settings.MAX_SLOT_DURATION_MINUTES,
        description="Slot duration in minutes"
    ),
    db: AsyncSession = Depends(get_db)
):
    """Bookable slots for a tutor on a date (public)"""
    if not tutor_id or not date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="tutorId and date are required")

    if not re.match(DATE_PATTERN, date):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date must be in YYYY-MM-DD format")

    try:
        parse_date(date)
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date must be a valid calendar date")

    if not re.match(UUID_PATTERN, tutor_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid tutorId format")

    try:
        availability_service = AvailabilityService(db)
        slots = await availability_service.get_available_slots(tutor_id, date, duration)
        return {"slots": [slot.to_dict() for slot in slots]}
    except Exception as e:
        logger.exception(f"Error fetching slots: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.get("/tutors/{tutor_id}/patterns", response_model=TutorPatternsResponse)
async def get_tutor_patterns(
    tutor_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Active weekly patterns for a tutor's public profile"""
    if not re.match(UUID_PATTERN, tutor_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid tutorId format")

    tutor = await db.get(User, to_uuid(tutor_id))
    if tutor is None or tutor.role != UserRole.TUTOR:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tutor not found")

    availability_service = AvailabilityService(db)
    patterns = await availability_service.list_patterns(tutor.id, active_only=True)
    return {
        "tutor_id": str(tutor.id),
        "timezone": tutor.timezone,
        "patterns": [_pattern_to_response(p) for p in patterns],
    }


@router.get("/patterns", response_model=List[AvailabilityPatternResponse])
async def list_my_patterns(
    active_only: bool = Query(False, description="Only return active patterns"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current tutor's patterns, ordered by weekday and start time"""
    _require_tutor(current_user)

    availability_service = AvailabilityService(db)
    patterns = await availability_service.list_patterns(current_user.id, active_only=active_only)
    return [_pattern_to_response(p) for p in patterns]


@router.post("/patterns", response_model=AvailabilityPatternResponse, status_code=status.HTTP_201_CREATED)
async def create_pattern(
    pattern: AvailabilityPatternCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a recurring weekly availability pattern"""
    try:
        availability_service = AvailabilityService(db)
        created = await availability_service.create_pattern(
            tutor=current_user,
            day_of_week=pattern.day_of_week,
            start_time=pattern.start_time,
            end_time=pattern.end_time
        )
        return _pattern_to_response(created)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DatabaseError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.patch("/patterns/{pattern_id}", response_model=AvailabilityPatternResponse)
async def update_pattern(
    pattern_id: str,
    update: AvailabilityPatternUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Toggle a pattern or change its day/times"""
    _require_tutor(current_user)

    try:
        availability_service = AvailabilityService(db)
        updated = await availability_service.update_pattern(current_user, pattern_id, update)
        return _pattern_to_response(updated)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DatabaseError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.delete("/patterns/{pattern_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pattern(
    pattern_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a pattern"""
    _require_tutor(current_user)

    try:
        availability_service = AvailabilityService(db)
        await availability_service.delete_pattern(current_user, pattern_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DatabaseError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
