import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from app.models import Booking, BookingStatus
from app.services.booking_service import BookingFailureReason, BookingService

from conftest import FIXED_NOW

START = datetime(2024, 1, 15, 16, 0, tzinfo=timezone.utc)
END = datetime(2024, 1, 15, 17, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_identical_concurrent_requests_book_once(db, session_factory, make_tutor, make_user):
    tutor = await make_tutor()
    tutor_id = tutor.id
    first_student = await make_user()
    second_student = await make_user()

    async def attempt(student):
        async with session_factory() as session:
            return await BookingService(session).attempt_booking(
                student, tutor_id, START, END, 60.0, now=FIXED_NOW
            )

    results = await asyncio.gather(attempt(first_student), attempt(second_student))

    winners = [r for r in results if r.success]
    losers = [r for r in results if not r.success]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].reason == BookingFailureReason.SLOT_UNAVAILABLE

    async with session_factory() as session:
        rows = (await session.execute(
            select(Booking).where(Booking.tutor_id == tutor_id, Booking.status != BookingStatus.CANCELLED)
        )).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_concurrent_requests_for_different_slots_both_succeed(db, session_factory, make_tutor, make_user):
    tutor = await make_tutor()
    tutor_id = tutor.id
    student = await make_user()

    async def attempt(start, end):
        async with session_factory() as session:
            return await BookingService(session).attempt_booking(student, tutor_id, start, end, 60.0, now=FIXED_NOW)

    results = await asyncio.gather(
        attempt(START, END),
        attempt(END, datetime(2024, 1, 15, 18, 0, tzinfo=timezone.utc)),
    )

    assert all(r.success for r in results)
