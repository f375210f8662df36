from app.core.database import Base
from .user import User, UserRole
from .tutor_profile import TutorProfile
from .availability import AvailabilityPattern
from .booking import Booking, BookingStatus, NO_OVERLAP_CONSTRAINT

__all__ = [
    "Base",

    # Core models
    "User",
    "UserRole",
    "TutorProfile",

    # Availability and booking
    "AvailabilityPattern",
    "Booking",
    "BookingStatus",
    "NO_OVERLAP_CONSTRAINT",
]
