from sqlalchemy import Column, Integer, Time, Boolean, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID

from app.core.database import Base


class AvailabilityPattern(Base):
    """Recurring weekly availability rule, expressed in the tutor's local time"""

    __tablename__ = "availability_patterns"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_patterns_day_of_week"),
        CheckConstraint("end_time > start_time", name="ck_availability_patterns_time_order"),
    )

    # Foreign key to tutor
    tutor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    # Recurrence: 0 = Sunday ... 6 = Saturday, in the tutor's civil calendar
    day_of_week = Column(Integer, nullable=False)

    # Local time-of-day; never spans midnight
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tutor = relationship("User", back_populates="availability_patterns")

    def __repr__(self):
        return (
            f"<AvailabilityPattern(tutor_id={self.tutor_id}, day_of_week={self.day_of_week}, "
            f"start_time={self.start_time}, end_time={self.end_time}, is_active={self.is_active})>"
        )


# Resolver lookups are always by tutor + weekday
Index('idx_availability_patterns_tutor_day', AvailabilityPattern.tutor_id, AvailabilityPattern.day_of_week)
