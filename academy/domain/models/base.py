"""
Validation primitives shared by Academy domain models.

Domain models are frozen dataclasses that validate themselves in
`__post_init__` and raise `DomainValidationError` on a broken invariant.
They are separate from the ORM models; stores convert between the two.
"""

from __future__ import annotations

from typing import Optional


class DomainValidationError(Exception):
    """
    Raised when a domain model invariant is violated.

    Parameters
    ----------
    message : str
        Human-readable error message
    field : Optional[str]
        Field name that failed validation (if applicable)
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_positive(value: int, field_name: str) -> None:
    if value <= 0:
        raise DomainValidationError(
            f"{field_name} must be positive, got {value}",
            field=field_name,
        )


def validate_non_negative(value: int, field_name: str) -> None:
    if value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value}",
            field=field_name,
        )


def validate_range(value: int, min_val: int, max_val: int, field_name: str) -> None:
    """Inclusive range check."""
    if not (min_val <= value <= max_val):
        raise DomainValidationError(
            f"{field_name} must be between {min_val} and {max_val}, got {value}",
            field=field_name,
        )


def validate_not_empty(value: str, field_name: str) -> None:
    if not value or not str(value).strip():
        raise DomainValidationError(
            f"{field_name} cannot be empty",
            field=field_name,
        )
