from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid

from app.models.booking import BookingStatus


class BookingCreateRequest(BaseModel):
    tutor_id: uuid.UUID = Field(..., description="Tutor ID")
    start_time: datetime = Field(..., description="Session start (absolute, with offset)")
    end_time: datetime = Field(..., description="Session end (absolute, with offset)")
    expected_price: float = Field(..., gt=0, description="Price shown to the student, in currency units")
    note: Optional[str] = Field(None, max_length=500, description="Note for the tutor")


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Cancellation reason")


class BookingResponse(BaseModel):
    id: str = Field(..., description="Booking ID")
    tutor_id: str = Field(..., description="Tutor ID")
    student_id: str = Field(..., description="Student ID")
    start_time: str = Field(..., description="Session start time (UTC)")
    end_time: str = Field(..., description="Session end time (UTC)")
    status: BookingStatus = Field(..., description="Effective booking status")
    price_cents: int = Field(..., description="Price in cents")
    meeting_url: Optional[str] = Field(None, description="Meeting link")
    student_note: Optional[str] = Field(None, description="Note from the student")
    created_at: Optional[str] = Field(None, description="Creation time")
    cancelled_at: Optional[str] = Field(None, description="Cancellation time")
    cancelled_by: Optional[str] = Field(None, description="User who cancelled")
    cancellation_reason: Optional[str] = Field(None, description="Cancellation reason")
