from sqlalchemy import Column, Integer, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID

from app.core.database import Base


class TutorProfile(Base):
    __tablename__ = "tutor_profiles"

    # Foreign key to user
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, unique=True)

    # Pricing
    hourly_rate_cents = Column(Integer, nullable=False)  # Rate in cents

    # Relationships
    user = relationship("User", back_populates="tutor_profile")

    def __repr__(self):
        return f"<TutorProfile(user_id={self.user_id}, hourly_rate_cents={self.hourly_rate_cents})>"
