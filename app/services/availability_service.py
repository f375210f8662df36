from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, and_
from typing import List, Dict, Optional, Iterable, Union
from datetime import datetime, timezone, time, date
import logging
import uuid

from app.models.availability import AvailabilityPattern
from app.models.booking import Booking, BookingStatus
from app.models.user import User, UserRole
from app.schemas.availability import AvailabilityPatternUpdate
from app.core.exceptions import AuthorizationError, DatabaseError, NotFoundError, ValidationError
from app.core.timezone_utils import (
    TimeSlot,
    day_boundaries_in_utc,
    day_of_week_in_timezone,
    generate_time_slots,
    is_valid_timezone,
    local_time_to_utc,
    normalize_timezone,
    parse_date,
    parse_time,
    time_ranges_overlap,
)

logger = logging.getLogger(__name__)

# Weekday probe is anchored at local noon, clear of any midnight DST transition
NOON = time(12, 0)


def to_uuid(value: Union[str, uuid.UUID]) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid identifier: {value!r}")


def _truncate_seconds(value: time) -> time:
    return value.replace(second=0, microsecond=0)


class AvailabilityService:
    """Service for tutor availability patterns and bookable slot resolution"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Pattern store
    # ------------------------------------------------------------------

    async def get_patterns_for_day(
        self,
        tutor_id: uuid.UUID,
        day_of_week: int,
        active_only: bool = True
    ) -> List[AvailabilityPattern]:
        """Patterns for a tutor on one weekday, ordered by start time"""
        query = select(AvailabilityPattern).where(
            and_(
                AvailabilityPattern.tutor_id == tutor_id,
                AvailabilityPattern.day_of_week == day_of_week
            )
        )
        if active_only:
            query = query.where(AvailabilityPattern.is_active.is_(True))

        result = await self.db.execute(query.order_by(AvailabilityPattern.start_time))
        return list(result.scalars().all())

    async def list_patterns(self, tutor_id: Union[str, uuid.UUID], active_only: bool = False) -> List[AvailabilityPattern]:
        """All of a tutor's patterns, ordered by weekday then start time"""
        query = select(AvailabilityPattern).where(AvailabilityPattern.tutor_id == to_uuid(tutor_id))
        if active_only:
            query = query.where(AvailabilityPattern.is_active.is_(True))

        result = await self.db.execute(
            query.order_by(AvailabilityPattern.day_of_week, AvailabilityPattern.start_time)
        )
        return list(result.scalars().all())

    async def get_patterns_grouped_by_day(
        self,
        tutor_id: Union[str, uuid.UUID],
        active_only: bool = True
    ) -> Dict[int, List[AvailabilityPattern]]:
        grouped = {day: [] for day in range(7)}
        for pattern in await self.list_patterns(tutor_id, active_only=active_only):
            grouped[pattern.day_of_week].append(pattern)
        return grouped

    async def create_pattern(
        self,
        tutor: User,
        day_of_week: int,
        start_time: str,
        end_time: str
    ) -> AvailabilityPattern:
        """Create a recurring weekly availability pattern for a tutor"""
        if tutor.role != UserRole.TUTOR:
            raise AuthorizationError("Only tutors can create availability patterns")

        if day_of_week < 0 or day_of_week > 6:
            raise ValidationError("Day must be between 0-6")

        start = parse_time(start_time)
        end = parse_time(end_time)
        if end <= start:
            raise ValidationError("End time must be after start time")

        pattern = AvailabilityPattern(
            tutor_id=tutor.id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_active=True
        )
        self.db.add(pattern)

        try:
            await self.db.commit()
            await self.db.refresh(pattern)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error creating availability pattern for tutor {tutor.id}: {e}")
            raise DatabaseError("Failed to create availability pattern")

        logger.info(f"Created availability pattern {pattern.id} for tutor {tutor.id}")
        return pattern

    async def _get_owned_pattern(self, tutor: User, pattern_id: Union[str, uuid.UUID]) -> AvailabilityPattern:
        pattern = await self.db.get(AvailabilityPattern, to_uuid(pattern_id))
        if not pattern or pattern.tutor_id != tutor.id:
            raise NotFoundError("Pattern not found or unauthorized")
        return pattern

    async def update_pattern(
        self,
        tutor: User,
        pattern_id: Union[str, uuid.UUID],
        update: AvailabilityPatternUpdate
    ) -> AvailabilityPattern:
        """Apply the set fields of `update` (toggle active, move day or times)"""
        pattern = await self._get_owned_pattern(tutor, pattern_id)

        changes = update.model_dump(exclude_unset=True)
        start = parse_time(changes["start_time"]) if changes.get("start_time") else pattern.start_time
        end = parse_time(changes["end_time"]) if changes.get("end_time") else pattern.end_time
        if end <= start:
            raise ValidationError("End time must be after start time")

        if changes.get("day_of_week") is not None:
            pattern.day_of_week = changes["day_of_week"]
        if changes.get("is_active") is not None:
            pattern.is_active = changes["is_active"]
        pattern.start_time = start
        pattern.end_time = end

        try:
            await self.db.commit()
            await self.db.refresh(pattern)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error updating availability pattern {pattern_id}: {e}")
            raise DatabaseError("Failed to update pattern")

        return pattern

    async def delete_pattern(self, tutor: User, pattern_id: Union[str, uuid.UUID]) -> None:
        pattern = await self._get_owned_pattern(tutor, pattern_id)

        try:
            await self.db.delete(pattern)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error deleting availability pattern {pattern_id}: {e}")
            raise DatabaseError("Failed to delete availability pattern")

        logger.info(f"Deleted availability pattern {pattern_id} for tutor {tutor.id}")

    # ------------------------------------------------------------------
    # Booking lookups
    # ------------------------------------------------------------------

    async def find_overlapping_bookings(
        self,
        tutor_id: uuid.UUID,
        range_start: datetime,
        range_end: datetime,
        exclude_statuses: Iterable[BookingStatus] = (BookingStatus.CANCELLED,)
    ) -> List[Booking]:
        """Bookings for a tutor intersecting [range_start, range_end)"""
        query = select(Booking).where(
            and_(
                Booking.tutor_id == tutor_id,
                Booking.start_at < range_end,
                Booking.end_at > range_start
            )
        )
        excluded = list(exclude_statuses)
        if excluded:
            query = query.where(Booking.status.notin_(excluded))

        result = await self.db.execute(query.order_by(Booking.start_at))
        return list(result.scalars().all())

    async def is_slot_available(
        self,
        tutor_id: Union[str, uuid.UUID],
        start_at: datetime,
        end_at: datetime
    ) -> bool:
        """Optimistic check that no live booking overlaps [start_at, end_at)"""
        try:
            conflicts = await self.find_overlapping_bookings(to_uuid(tutor_id), start_at, end_at)
        except (SQLAlchemyError, ValidationError) as e:
            logger.error(f"Error checking slot availability for tutor {tutor_id}: {e}")
            return False

        return not conflicts

    # ------------------------------------------------------------------
    # Slot resolution
    # ------------------------------------------------------------------

    async def get_available_slots(
        self,
        tutor_id: Union[str, uuid.UUID],
        target_date: Union[str, date],
        duration_minutes: int = 60,
        now: Optional[datetime] = None
    ) -> List[TimeSlot]:
        """
        Bookable slots for a tutor on a civil date in the tutor's timezone.

        Recurring patterns for the weekday are expanded into fixed-length UTC
        slots, then slots overlapping a live booking or starting at or before
        `now` are dropped. Result is sorted by start time.

        Every failure (unknown tutor, bad timezone, storage error) yields an
        empty list; this is a read path and never raises.
        """
        now = now or datetime.now(timezone.utc)

        try:
            tutor_uuid = to_uuid(tutor_id)
            slot_date = parse_date(target_date)
        except ValidationError as e:
            logger.warning(f"Slot query rejected: {e}")
            return []

        # Step 1: tutor and timezone
        try:
            tutor = await self.db.get(User, tutor_uuid)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching tutor {tutor_uuid}: {e}")
            return []

        if tutor is None:
            logger.info(f"Tutor not found: {tutor_uuid}")
            return []

        if tutor.role != UserRole.TUTOR:
            logger.info(f"User {tutor_uuid} is not a tutor")
            return []

        tutor_timezone = normalize_timezone(tutor.timezone)
        if not is_valid_timezone(tutor_timezone):
            logger.error(f"Tutor {tutor_uuid} has no valid timezone set: {tutor_timezone!r}")
            return []

        # Step 2: weekday in the tutor's zone
        try:
            noon_utc = local_time_to_utc(slot_date, NOON, tutor_timezone)
        except ValidationError as e:
            logger.error(f"Could not anchor {slot_date} in {tutor_timezone}: {e}")
            return []

        day_of_week = day_of_week_in_timezone(noon_utc, tutor_timezone)
        if day_of_week is None:
            logger.error(f"Day of week calculation failed for {slot_date} in {tutor_timezone}")
            return []

        # Step 3: active patterns for that weekday
        try:
            patterns = await self.get_patterns_for_day(tutor_uuid, day_of_week, active_only=True)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching patterns for tutor {tutor_uuid}: {e}")
            return []

        if not patterns:
            logger.debug(f"No active patterns for tutor {tutor_uuid} on day {day_of_week}")
            return []

        # Step 4: candidate slots from every pattern
        candidates = []
        try:
            for pattern in patterns:
                window_start = local_time_to_utc(slot_date, _truncate_seconds(pattern.start_time), tutor_timezone)
                window_end = local_time_to_utc(slot_date, _truncate_seconds(pattern.end_time), tutor_timezone)
                candidates.extend(generate_time_slots(window_start, window_end, duration_minutes))
        except (ValidationError, OverflowError) as e:
            logger.error(f"Error expanding patterns for tutor {tutor_uuid}: {e}")
            return []

        # Step 5: live bookings on that civil day
        try:
            day_start, day_end = day_boundaries_in_utc(slot_date, tutor_timezone)
        except ValidationError as e:
            logger.error(f"Could not bound {slot_date} in {tutor_timezone}: {e}")
            return []

        try:
            bookings = await self.find_overlapping_bookings(tutor_uuid, day_start, day_end)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching bookings for tutor {tutor_uuid}: {e}")
            return []

        # Steps 6 and 7: drop conflicts and anything not strictly in the future
        available = [
            slot for slot in candidates
            if slot.start > now and not any(
                time_ranges_overlap(slot.start, slot.end, booking.start_at, booking.end_at)
                for booking in bookings
            )
        ]

        # Overlapping patterns can yield the same interval twice
        slots = sorted(set(available), key=lambda slot: slot.start)
        logger.debug(
            f"Resolved {len(slots)} of {len(candidates)} candidate slots for tutor {tutor_uuid} on {slot_date}"
        )
        return slots
