from datetime import datetime, time, timedelta, timezone
import uuid

import pytest

from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.models import AvailabilityPattern, Booking, BookingStatus, TutorProfile, User, UserRole
from app.schemas.availability import AvailabilityPatternUpdate
from app.services.availability_service import AvailabilityService

from conftest import FIXED_NOW

MONDAY = 1
MONDAY_9_TO_5 = [(MONDAY, "09:00", "17:00")]


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


async def add_booking(db, tutor, student, start_at, end_at, status=BookingStatus.CONFIRMED):
    booking = Booking(
        tutor_id=tutor.id,
        student_id=student.id,
        start_at=start_at,
        end_at=end_at,
        status=status,
        price_cents=6000,
    )
    db.add(booking)
    await db.commit()
    return booking


class TestGetAvailableSlots:
    @pytest.mark.asyncio
    async def test_full_day_without_bookings(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert len(slots) == 8
        assert slots[0].start == utc(2024, 1, 15, 14, 0)
        assert slots[-1].end == utc(2024, 1, 15, 22, 0)
        assert all(slot.end - slot.start == timedelta(hours=1) for slot in slots)

    @pytest.mark.asyncio
    async def test_summer_date_uses_daylight_offset(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-07-15", 60, now=FIXED_NOW)

        assert len(slots) == 8
        assert slots[0].start == utc(2024, 7, 15, 13, 0)
        assert slots[-1].end == utc(2024, 7, 15, 21, 0)

    @pytest.mark.asyncio
    async def test_booked_slot_is_removed(self, db, make_tutor, student):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        # 11:00-12:00 New York time
        await add_booking(db, tutor, student, utc(2024, 1, 15, 16), utc(2024, 1, 15, 17))

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert len(slots) == 7
        assert utc(2024, 1, 15, 16) not in [slot.start for slot in slots]
        assert slots[0].start == utc(2024, 1, 15, 14)
        assert slots[-1].end == utc(2024, 1, 15, 22)

    @pytest.mark.asyncio
    async def test_partially_overlapping_booking_blocks_both_slots(self, db, make_tutor, student):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        await add_booking(db, tutor, student, utc(2024, 1, 15, 16, 30), utc(2024, 1, 15, 17, 30))

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        starts = [slot.start for slot in slots]
        assert len(slots) == 6
        assert utc(2024, 1, 15, 16) not in starts
        assert utc(2024, 1, 15, 17) not in starts

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_block(self, db, make_tutor, student):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        await add_booking(
            db, tutor, student, utc(2024, 1, 15, 16), utc(2024, 1, 15, 17), status=BookingStatus.CANCELLED
        )

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert len(slots) == 8

    @pytest.mark.asyncio
    async def test_other_tutors_bookings_do_not_block(self, db, make_tutor, student):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        other = await make_tutor(patterns=MONDAY_9_TO_5)
        await add_booking(db, other, student, utc(2024, 1, 15, 16), utc(2024, 1, 15, 17))

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert len(slots) == 8

    @pytest.mark.asyncio
    async def test_elapsed_slots_are_excluded(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        # 11:30 in New York; the 11:00 slot has already started
        now = utc(2024, 1, 15, 16, 30)

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=now)

        assert len(slots) == 5
        assert slots[0].start == utc(2024, 1, 15, 17)
        assert all(slot.start > now for slot in slots)

    @pytest.mark.asyncio
    async def test_past_date_yields_nothing(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)

        slots = await AvailabilityService(db).get_available_slots(
            tutor.id, "2024-01-15", 60, now=utc(2024, 2, 1)
        )

        assert slots == []

    @pytest.mark.asyncio
    async def test_weekday_is_taken_in_tutor_timezone(self, db, make_tutor):
        # Monday morning in Tokyo is still Sunday in UTC
        tutor = await make_tutor(timezone_name="Asia/Tokyo", patterns=[(MONDAY, "08:00", "10:00")])

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert [slot.start for slot in slots] == [utc(2024, 1, 14, 23), utc(2024, 1, 15, 0)]

    @pytest.mark.asyncio
    async def test_no_pattern_for_weekday(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)

        # 2024-01-16 is a Tuesday
        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-16", 60, now=FIXED_NOW)

        assert slots == []

    @pytest.mark.asyncio
    async def test_inactive_pattern_is_ignored(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        service = AvailabilityService(db)
        pattern = (await service.list_patterns(tutor.id))[0]
        await service.update_pattern(tutor, pattern.id, AvailabilityPatternUpdate(is_active=False))

        slots = await service.get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert slots == []

    @pytest.mark.asyncio
    async def test_overlapping_patterns_are_merged_and_sorted(self, db, make_tutor):
        tutor = await make_tutor(patterns=[(MONDAY, "10:00", "12:00"), (MONDAY, "09:00", "11:00")])

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert [slot.start for slot in slots] == [
            utc(2024, 1, 15, 14),
            utc(2024, 1, 15, 15),
            utc(2024, 1, 15, 16),
        ]

    @pytest.mark.asyncio
    async def test_shorter_duration(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 30, now=FIXED_NOW)

        assert len(slots) == 16

    @pytest.mark.asyncio
    async def test_repeated_queries_agree(self, db, make_tutor, student):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        await add_booking(db, tutor, student, utc(2024, 1, 15, 16), utc(2024, 1, 15, 17))
        service = AvailabilityService(db)

        first = await service.get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)
        second = await service.get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert first == second

    @pytest.mark.asyncio
    async def test_unknown_tutor(self, db):
        slots = await AvailabilityService(db).get_available_slots(uuid.uuid4(), "2024-01-15", 60, now=FIXED_NOW)
        assert slots == []

    @pytest.mark.asyncio
    async def test_malformed_inputs(self, db, make_tutor):
        tutor = await make_tutor(patterns=MONDAY_9_TO_5)
        service = AvailabilityService(db)

        assert await service.get_available_slots("not-a-uuid", "2024-01-15", now=FIXED_NOW) == []
        assert await service.get_available_slots(tutor.id, "15-01-2024", now=FIXED_NOW) == []

    @pytest.mark.asyncio
    async def test_student_id_is_not_a_tutor(self, db, student):
        slots = await AvailabilityService(db).get_available_slots(student.id, "2024-01-15", 60, now=FIXED_NOW)
        assert slots == []

    @pytest.mark.asyncio
    async def test_invalid_tutor_timezone(self, db, make_tutor):
        tutor = await make_tutor(timezone_name="Invalid/Zone", patterns=MONDAY_9_TO_5)

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert slots == []


class TestSlotAvailability:
    @pytest.mark.asyncio
    async def test_adjacent_booking_leaves_slot_free(self, db, make_tutor, student):
        tutor = await make_tutor()
        await add_booking(db, tutor, student, utc(2024, 1, 15, 16), utc(2024, 1, 15, 17))
        service = AvailabilityService(db)

        assert await service.is_slot_available(tutor.id, utc(2024, 1, 15, 17), utc(2024, 1, 15, 18))
        assert await service.is_slot_available(tutor.id, utc(2024, 1, 15, 15), utc(2024, 1, 15, 16))
        assert not await service.is_slot_available(tutor.id, utc(2024, 1, 15, 16, 30), utc(2024, 1, 15, 17, 30))

    @pytest.mark.asyncio
    async def test_find_overlapping_bookings_can_include_cancelled(self, db, make_tutor, student):
        tutor = await make_tutor()
        await add_booking(
            db, tutor, student, utc(2024, 1, 15, 16), utc(2024, 1, 15, 17), status=BookingStatus.CANCELLED
        )
        service = AvailabilityService(db)

        assert await service.find_overlapping_bookings(tutor.id, utc(2024, 1, 15), utc(2024, 1, 16)) == []
        everything = await service.find_overlapping_bookings(
            tutor.id, utc(2024, 1, 15), utc(2024, 1, 16), exclude_statuses=()
        )
        assert len(everything) == 1


class TestPatternManagement:
    @pytest.mark.asyncio
    async def test_create_and_list(self, db, make_tutor):
        tutor = await make_tutor()
        service = AvailabilityService(db)

        await service.create_pattern(tutor, 3, "13:00", "15:00")
        await service.create_pattern(tutor, 1, "09:00", "12:00")

        patterns = await service.list_patterns(tutor.id)
        assert [(p.day_of_week, p.start_time.strftime("%H:%M")) for p in patterns] == [(1, "09:00"), (3, "13:00")]

        grouped = await service.get_patterns_grouped_by_day(tutor.id)
        assert len(grouped[1]) == 1
        assert grouped[0] == []

    @pytest.mark.asyncio
    async def test_only_tutors_create_patterns(self, db, student):
        with pytest.raises(AuthorizationError):
            await AvailabilityService(db).create_pattern(student, 1, "09:00", "10:00")

    @pytest.mark.asyncio
    async def test_pattern_time_order_enforced(self, db, make_tutor):
        tutor = await make_tutor()
        service = AvailabilityService(db)

        with pytest.raises(ValidationError):
            await service.create_pattern(tutor, 1, "10:00", "09:00")
        with pytest.raises(ValidationError):
            await service.create_pattern(tutor, 7, "09:00", "10:00")

    @pytest.mark.asyncio
    async def test_update_moves_pattern(self, db, make_tutor):
        tutor = await make_tutor()
        service = AvailabilityService(db)
        pattern = await service.create_pattern(tutor, 1, "09:00", "12:00")

        updated = await service.update_pattern(
            tutor, str(pattern.id), AvailabilityPatternUpdate(day_of_week=2, end_time="10:00")
        )

        assert updated.day_of_week == 2
        assert updated.end_time.strftime("%H:%M") == "10:00"
        assert updated.is_active is True

    @pytest.mark.asyncio
    async def test_update_rejects_inverted_times(self, db, make_tutor):
        tutor = await make_tutor()
        service = AvailabilityService(db)
        pattern = await service.create_pattern(tutor, 1, "09:00", "12:00")

        with pytest.raises(ValidationError):
            await service.update_pattern(tutor, pattern.id, AvailabilityPatternUpdate(start_time="13:00"))

    @pytest.mark.asyncio
    async def test_other_tutor_cannot_touch_pattern(self, db, make_tutor):
        owner = await make_tutor()
        intruder = await make_tutor()
        service = AvailabilityService(db)
        pattern = await service.create_pattern(owner, 1, "09:00", "12:00")

        with pytest.raises(NotFoundError):
            await service.delete_pattern(intruder, pattern.id)
        with pytest.raises(NotFoundError):
            await service.update_pattern(intruder, pattern.id, AvailabilityPatternUpdate(is_active=False))

    @pytest.mark.asyncio
    async def test_delete(self, db, make_tutor):
        tutor = await make_tutor()
        service = AvailabilityService(db)
        pattern = await service.create_pattern(tutor, 1, "09:00", "12:00")

        await service.delete_pattern(tutor, pattern.id)

        assert await service.list_patterns(tutor.id) == []


class TestTutorTimezoneHandling:
    @pytest.mark.asyncio
    async def test_last_day_of_calendar_yields_nothing(self, db, make_tutor):
        # 9999-12-31 is a Friday
        tutor = await make_tutor(patterns=[(5, "20:00", "23:00")])

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "9999-12-31", 60, now=FIXED_NOW)

        assert slots == []

    @pytest.mark.asyncio
    async def test_first_day_of_calendar_yields_nothing(self, db, make_tutor):
        tutor = await make_tutor(timezone_name="Asia/Tokyo", patterns=[(MONDAY, "08:00", "10:00")])

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "0001-01-01", 60, now=FIXED_NOW)

        assert slots == []

    @pytest.mark.asyncio
    async def test_misspelled_zone_is_normalized(self, db, make_tutor):
        tutor = await make_tutor(timezone_name="America/New York", patterns=MONDAY_9_TO_5)

        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)

        assert len(slots) == 8
        assert slots[0].start == utc(2024, 1, 15, 14, 0)

    @pytest.mark.asyncio
    async def test_tutor_created_without_zone_fails_closed(self, db):
        tutor = User(
            auth_provider_id=f"auth-{uuid.uuid4().hex}",
            role=UserRole.TUTOR,
            name="No Zone",
            email=f"{uuid.uuid4().hex[:8]}@example.com",
        )
        db.add(tutor)
        await db.commit()
        await db.refresh(tutor)
        db.add(TutorProfile(user_id=tutor.id, hourly_rate_cents=6000))
        db.add(AvailabilityPattern(
            tutor_id=tutor.id, day_of_week=MONDAY, start_time=time(9, 0), end_time=time(17, 0), is_active=True
        ))
        await db.commit()

        assert tutor.timezone is None
        slots = await AvailabilityService(db).get_available_slots(tutor.id, "2024-01-15", 60, now=FIXED_NOW)
        assert slots == []
