"""Configuration for the Airwallex client core."""

from .settings import Settings, settings, validate_base_url

__all__ = ["Settings", "settings", "validate_base_url"]
