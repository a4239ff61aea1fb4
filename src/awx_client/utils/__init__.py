"""Utility modules for the Airwallex client core."""
