"""Google OAuth credentials and the get_valid_token capability."""

from claritycall.modules.tokens.models import GoogleToken
from claritycall.modules.tokens.service import TokenService

__all__ = ["GoogleToken", "TokenService"]
