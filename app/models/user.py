from sqlalchemy import Column, String, Enum
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class UserRole(str, enum.Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    # Core user fields
    auth_provider_id = Column(String, unique=True, index=True, nullable=False)  # External auth user ID
    role = Column(Enum(UserRole), default=UserRole.STUDENT, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    timezone = Column(String, nullable=True)  # IANA zone identifier; required for tutors to expose slots

    # Relationships
    tutor_profile = relationship("TutorProfile", back_populates="user", uselist=False)
    availability_patterns = relationship("AvailabilityPattern", back_populates="tutor")
    bookings_as_student = relationship("Booking", foreign_keys="Booking.student_id", back_populates="student")
    bookings_as_tutor = relationship("Booking", foreign_keys="Booking.tutor_id", back_populates="tutor")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
