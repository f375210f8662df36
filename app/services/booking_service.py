from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union
import enum
import logging
import uuid

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.core.pricing import format_price, price_matches, quote_booking_price
from app.models.booking import Booking, BookingStatus, NO_OVERLAP_CONSTRAINT
from app.models.tutor_profile import TutorProfile
from app.models.user import User, UserRole
from app.services.availability_service import AvailabilityService, to_uuid

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE_MESSAGE = "Slot no longer available"


class BookingFailureReason(str, enum.Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    WRONG_ROLE = "wrong_role"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PRICE_MISMATCH = "price_mismatch"
    SLOT_UNAVAILABLE = "slot_unavailable"
    UNKNOWN = "unknown"


class CancellationFailureReason(str, enum.Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    ALREADY_CANCELLED = "already_cancelled"
    UNKNOWN = "unknown"


@dataclass
class BookingResult:
    """Outcome of a booking attempt: the booking, or a typed rejection"""
    success: bool
    booking: Optional[Booking] = None
    reason: Optional[BookingFailureReason] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, booking: Booking) -> "BookingResult":
        return cls(success=True, booking=booking)

    @classmethod
    def rejected(cls, reason: BookingFailureReason, message: str) -> "BookingResult":
        return cls(success=False, reason=reason, message=message)


@dataclass
class CancellationResult:
    success: bool
    booking: Optional[Booking] = None
    reason: Optional[CancellationFailureReason] = None
    message: Optional[str] = None


def generate_meeting_url() -> str:
    """Opaque meeting link; no conferencing provider is contacted"""
    return f"{settings.MEETING_BASE_URL}/{settings.MEETING_ROOM_PREFIX}-{uuid.uuid4()}"


def effective_status(booking: Booking, now: Optional[datetime] = None) -> BookingStatus:
    """Stored status, except that a live booking whose end has passed reads as completed"""
    now = now or datetime.now(timezone.utc)
    if booking.status == BookingStatus.CANCELLED:
        return BookingStatus.CANCELLED
    if booking.end_at <= now:
        return BookingStatus.COMPLETED
    return booking.status


def is_overlap_violation(error: IntegrityError) -> bool:
    """Whether an integrity error came from the per-tutor no-overlap constraint"""
    orig = getattr(error, "orig", None)
    diag = getattr(orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None) == NO_OVERLAP_CONSTRAINT:
        return True
    return NO_OVERLAP_CONSTRAINT in str(orig if orig is not None else error)


class BookingService:
    """Booking write path: price check, optimistic conflict check, guarded insert"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.availability_service = AvailabilityService(db)

    async def _get_tutor_with_profile(self, tutor_id: uuid.UUID):
        result = await self.db.execute(
            select(User, TutorProfile)
            .outerjoin(TutorProfile, TutorProfile.user_id == User.id)
            .where(User.id == tutor_id)
        )
        row = result.first()
        if row is None:
            return None, None
        return row[0], row[1]

    async def attempt_booking(
        self,
        student: Optional[User],
        tutor_id: Union[str, uuid.UUID],
        start_at: datetime,
        end_at: datetime,
        expected_price: float,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> BookingResult:
        """
        Create a booking if the price is current and the interval is free.

        The overlap query here is only a fast path. Two requests can both pass
        it; the storage constraint decides which insert wins, and the loser is
        reported as SLOT_UNAVAILABLE like any other conflict.

        Never raises for expected failures; every outcome is a BookingResult.
        """
        now = now or datetime.now(timezone.utc)

        if student is None:
            return BookingResult.rejected(BookingFailureReason.NOT_AUTHENTICATED, "Not authenticated")

        if student.role != UserRole.STUDENT:
            return BookingResult.rejected(BookingFailureReason.WRONG_ROLE, "Only students can book sessions")

        if start_at.tzinfo is None or end_at.tzinfo is None:
            return BookingResult.rejected(
                BookingFailureReason.VALIDATION, "Start and end times must include a UTC offset"
            )

        if end_at <= start_at:
            return BookingResult.rejected(BookingFailureReason.VALIDATION, "End time must be after start time")

        if start_at <= now:
            return BookingResult.rejected(BookingFailureReason.VALIDATION, "Cannot book a session in the past")

        if note and len(note) > settings.MAX_NOTE_LENGTH:
            return BookingResult.rejected(
                BookingFailureReason.VALIDATION,
                f"Note must be less than {settings.MAX_NOTE_LENGTH} characters"
            )

        try:
            tutor_uuid = to_uuid(tutor_id)
        except ValidationError:
            return BookingResult.rejected(BookingFailureReason.VALIDATION, "Invalid tutor ID")

        try:
            tutor, tutor_profile = await self._get_tutor_with_profile(tutor_uuid)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching tutor {tutor_uuid}: {e}")
            return BookingResult.rejected(BookingFailureReason.UNKNOWN, "Failed to create booking. Please try again")

        if tutor is None or tutor.role != UserRole.TUTOR or tutor_profile is None:
            return BookingResult.rejected(BookingFailureReason.NOT_FOUND, "Tutor not found")

        # 1. Authoritative price from the tutor's current rate
        quote = quote_booking_price(tutor_profile.hourly_rate_cents, start_at, end_at)
        if not price_matches(quote, expected_price):
            return BookingResult.rejected(
                BookingFailureReason.PRICE_MISMATCH,
                f"Price has changed. New price is: {format_price(quote.price_cents)}. Please refresh and try again"
            )

        # 2. Optimistic conflict check
        try:
            conflicts = await self.availability_service.find_overlapping_bookings(tutor_uuid, start_at, end_at)
        except SQLAlchemyError as e:
            logger.error(f"Error checking conflicts for tutor {tutor_uuid}: {e}")
            return BookingResult.rejected(BookingFailureReason.UNKNOWN, "Failed to create booking. Please try again")

        if conflicts:
            return BookingResult.rejected(BookingFailureReason.SLOT_UNAVAILABLE, SLOT_UNAVAILABLE_MESSAGE)

        # 3. Insert; the no-overlap constraint is the final arbiter
        booking = Booking(
            tutor_id=tutor_uuid,
            student_id=student.id,
            start_at=start_at,
            end_at=end_at,
            status=BookingStatus.PENDING,
            price_cents=quote.price_cents,
            meeting_url=generate_meeting_url(),
            student_note=note or None
        )
        self.db.add(booking)

        try:
            await self.db.commit()
            await self.db.refresh(booking)
        except IntegrityError as e:
            await self.db.rollback()
            if is_overlap_violation(e):
                logger.info(f"Booking for tutor {tutor_uuid} at {start_at.isoformat()} lost the race: {e.orig}")
                return BookingResult.rejected(BookingFailureReason.SLOT_UNAVAILABLE, SLOT_UNAVAILABLE_MESSAGE)
            logger.error(f"Booking insert error: {e}")
            return BookingResult.rejected(BookingFailureReason.UNKNOWN, "Failed to create booking. Please try again")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Booking insert error: {e}")
            return BookingResult.rejected(BookingFailureReason.UNKNOWN, "Failed to create booking. Please try again")

        logger.info(
            f"Booking {booking.id} created: tutor={tutor_uuid} student={student.id} "
            f"{booking.start_at.isoformat()} - {booking.end_at.isoformat()}"
        )
        return BookingResult.ok(booking)

    async def cancel_booking(
        self,
        actor: Optional[User],
        booking_id: Union[str, uuid.UUID],
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CancellationResult:
        """Cancel a booking on behalf of its tutor or student"""
        now = now or datetime.now(timezone.utc)

        if actor is None:
            return CancellationResult(
                success=False, reason=CancellationFailureReason.NOT_AUTHENTICATED, message="Not authenticated"
            )

        if reason and len(reason) > settings.MAX_NOTE_LENGTH:
            return CancellationResult(
                success=False,
                reason=CancellationFailureReason.VALIDATION,
                message=f"Reason must be less than {settings.MAX_NOTE_LENGTH} characters"
            )

        try:
            booking_uuid = to_uuid(booking_id)
        except ValidationError:
            return CancellationResult(
                success=False, reason=CancellationFailureReason.VALIDATION, message="Invalid booking ID"
            )

        try:
            result = await self.db.execute(
                select(Booking).where(Booking.id == booking_uuid).with_for_update()
            )
            booking = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching booking {booking_uuid}: {e}")
            return CancellationResult(
                success=False, reason=CancellationFailureReason.UNKNOWN, message="Failed to cancel booking"
            )

        if not booking:
            return CancellationResult(
                success=False, reason=CancellationFailureReason.NOT_FOUND, message="Booking not found"
            )

        if actor.id not in (booking.tutor_id, booking.student_id):
            return CancellationResult(
                success=False, reason=CancellationFailureReason.UNAUTHORIZED, message="Unauthorized"
            )

        if booking.status == BookingStatus.CANCELLED:
            return CancellationResult(
                success=False,
                reason=CancellationFailureReason.ALREADY_CANCELLED,
                message="Booking is already cancelled"
            )

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        booking.cancelled_by = actor.id
        booking.cancellation_reason = reason or None

        try:
            await self.db.commit()
            await self.db.refresh(booking)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Cancellation error for booking {booking_uuid}: {e}")
            return CancellationResult(
                success=False, reason=CancellationFailureReason.UNKNOWN, message="Failed to cancel booking"
            )

        logger.info(f"Booking {booking.id} cancelled by {actor.id}")
        return CancellationResult(success=True, booking=booking)

    def _party_filter(self, user: User, role: str):
        if role == "student":
            return Booking.student_id == user.id
        if role == "tutor":
            return Booking.tutor_id == user.id
        raise ValidationError("Role must be 'student' or 'tutor'")

    async def list_bookings(self, user: User, role: str) -> List[Booking]:
        """All bookings where the user is the given party, oldest first"""
        result = await self.db.execute(
            select(Booking).where(self._party_filter(user, role)).order_by(Booking.start_at)
        )
        return list(result.scalars().all())

    async def list_upcoming_bookings(
        self,
        user: User,
        role: str,
        limit: int = 10,
        now: Optional[datetime] = None
    ) -> List[Booking]:
        """Live bookings starting from now, soonest first"""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(Booking).where(
                and_(
                    self._party_filter(user, role),
                    Booking.start_at >= now,
                    Booking.status != BookingStatus.CANCELLED
                )
            ).order_by(Booking.start_at).limit(limit)
        )
        return list(result.scalars().all())

    async def get_booking(self, user: User, booking_id: Union[str, uuid.UUID]) -> Booking:
        booking = await self.db.get(Booking, to_uuid(booking_id))
        if booking is None:
            raise NotFoundError("Booking not found")

        if user.id not in (booking.tutor_id, booking.student_id) and user.role != UserRole.ADMIN:
            raise AuthorizationError("Not authorized to view this booking")

        return booking
