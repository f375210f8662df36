from sqlalchemy import Column, String, Integer, ForeignKey, Text, Enum, Index, CheckConstraint, DDL, event
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
import enum

from app.core.database import Base, UTCDateTime


# Name shared by the Postgres exclusion constraint and the SQLite triggers so
# conflict errors can be recognized regardless of backend.
NO_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_tutor"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_bookings_time_order"),
    )

    # User relationships
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    tutor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    # Time information
    start_at = Column(UTCDateTime, nullable=False)  # UTC
    end_at = Column(UTCDateTime, nullable=False)  # UTC

    # Status and price
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)
    price_cents = Column(Integer, nullable=False)  # Price in cents

    # Meeting details
    meeting_url = Column(String, nullable=True)  # Opaque generated meeting link
    student_note = Column(Text, nullable=True)

    # Cancellation metadata
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Relationships
    student = relationship("User", foreign_keys=[student_id], back_populates="bookings_as_student")
    tutor = relationship("User", foreign_keys=[tutor_id], back_populates="bookings_as_tutor")

    def __repr__(self):
        return f"<Booking(student_id={self.student_id}, tutor_id={self.tutor_id}, start_at={self.start_at}, status={self.status})>"


Index('idx_bookings_tutor_start', Booking.tutor_id, Booking.start_at)


# Storage-level guard against double-booking. The application pre-check is
# advisory; these constraints are the final arbiter under concurrency.
_CANCELLED = BookingStatus.CANCELLED.name

event.listen(
    Booking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE bookings ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} "
        f"EXCLUDE USING gist (tutor_id WITH =, tstzrange(start_at, end_at, '[)') WITH &&) "
        f"WHERE (status <> '{_CANCELLED}')"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"CREATE TRIGGER {NO_OVERLAP_CONSTRAINT}_insert BEFORE INSERT ON bookings "
        f"WHEN NEW.status <> '{_CANCELLED}' AND EXISTS ("
        f"SELECT 1 FROM bookings WHERE tutor_id = NEW.tutor_id "
        f"AND status <> '{_CANCELLED}' "
        f"AND start_at < NEW.end_at AND NEW.start_at < end_at) "
        f"BEGIN SELECT RAISE(ABORT, '{NO_OVERLAP_CONSTRAINT}'); END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"CREATE TRIGGER {NO_OVERLAP_CONSTRAINT}_update BEFORE UPDATE OF tutor_id, start_at, end_at, status ON bookings "
        f"WHEN NEW.status <> '{_CANCELLED}' AND EXISTS ("
        f"SELECT 1 FROM bookings WHERE tutor_id = NEW.tutor_id AND id <> NEW.id "
        f"AND status <> '{_CANCELLED}' "
        f"AND start_at < NEW.end_at AND NEW.start_at < end_at) "
        f"BEGIN SELECT RAISE(ABORT, '{NO_OVERLAP_CONSTRAINT}'); END"
    ).execute_if(dialect="sqlite"),
)
