"""Users and their call preferences."""

from claritycall.modules.users.models import User, UserCreate, UserPreferences
from claritycall.modules.users.service import UserService

__all__ = ["User", "UserCreate", "UserPreferences", "UserService"]
