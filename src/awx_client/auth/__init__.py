"""Authentication for the Airwallex client core."""

from .token_manager import LOGIN_PATH, TokenManager

__all__ = ["LOGIN_PATH", "TokenManager"]
