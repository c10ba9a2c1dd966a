from .entitlement import Entitlement
from .profile import Profile
from .progress import LessonProgress

__all__ = ["Entitlement", "LessonProgress", "Profile"]
