"""Client side of the Breathwork REST API."""

from .client import ApiError, BreathworkApiClient

__all__ = ["ApiError", "BreathworkApiClient"]
