"""Domain validation utilities."""

from .security_validator import PathValidationError, SecurityValidator

__all__ = [
    "PathValidationError",
    "SecurityValidator",
]
