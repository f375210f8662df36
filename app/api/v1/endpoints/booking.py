from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime, timezone
import logging

from app.core.database import get_db
from app.core.auth import get_current_user, get_optional_user
from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.models.booking import Booking
from app.models.user import User
from app.schemas.booking import BookingCreateRequest, BookingCancelRequest, BookingResponse
from app.services.booking_service import (
    BookingFailureReason,
    BookingService,
    CancellationFailureReason,
    effective_status,
)

logger = logging.getLogger(__name__)

router = APIRouter()

BOOKING_FAILURE_STATUS = {
    BookingFailureReason.NOT_AUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    BookingFailureReason.WRONG_ROLE: status.HTTP_403_FORBIDDEN,
    BookingFailureReason.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    BookingFailureReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingFailureReason.PRICE_MISMATCH: status.HTTP_409_CONFLICT,
    BookingFailureReason.SLOT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    BookingFailureReason.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

CANCELLATION_FAILURE_STATUS = {
    CancellationFailureReason.NOT_AUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    CancellationFailureReason.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    CancellationFailureReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CancellationFailureReason.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    CancellationFailureReason.ALREADY_CANCELLED: status.HTTP_409_CONFLICT,
    CancellationFailureReason.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _booking_to_response(booking: Booking, now: Optional[datetime] = None) -> dict:
    return {
        "id": str(booking.id),
        "tutor_id": str(booking.tutor_id),
        "student_id": str(booking.student_id),
        "start_time": booking.start_at.isoformat(),
        "end_time": booking.end_at.isoformat(),
        "status": effective_status(booking, now),
        "price_cents": booking.price_cents,
        "meeting_url": booking.meeting_url,
        "student_note": booking.student_note,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
        "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
        "cancelled_by": str(booking.cancelled_by) if booking.cancelled_by else None,
        "cancellation_reason": booking.cancellation_reason,
    }


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreateRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Book a slot with a tutor"""
    booking_service = BookingService(db)
    result = await booking_service.attempt_booking(
        student=current_user,
        tutor_id=request.tutor_id,
        start_at=request.start_time,
        end_at=request.end_time,
        expected_price=request.expected_price,
        note=request.note
    )

    if not result.success:
        raise HTTPException(
            status_code=BOOKING_FAILURE_STATUS[result.reason],
            detail={"reason": result.reason.value, "message": result.message}
        )

    return _booking_to_response(result.booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    request: Optional[BookingCancelRequest] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a booking (tutor or student of the booking only)"""
    booking_service = BookingService(db)
    result = await booking_service.cancel_booking(current_user, booking_id, request.reason if request else None)

    if not result.success:
        raise HTTPException(
            status_code=CANCELLATION_FAILURE_STATUS[result.reason],
            detail={"reason": result.reason.value, "message": result.message}
        )

    return _booking_to_response(result.booking)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    role: str = Query(..., description="student or tutor"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List bookings for the current user as student or tutor"""
    try:
        booking_service = BookingService(db)
        bookings = await booking_service.list_bookings(current_user, role)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    now = datetime.now(timezone.utc)
    return [_booking_to_response(b, now) for b in bookings]


@router.get("/upcoming", response_model=List[BookingResponse])
async def list_upcoming_bookings(
    role: str = Query(..., description="student or tutor"),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Next live bookings for the current user"""
    try:
        booking_service = BookingService(db)
        bookings = await booking_service.list_upcoming_bookings(current_user, role, limit=limit)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return [_booking_to_response(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Booking details for one of its parties"""
    try:
        booking_service = BookingService(db)
        booking = await booking_service.get_booking(current_user, booking_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return _booking_to_response(booking)
