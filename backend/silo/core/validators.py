"""Reusable parameter validators and optimistic locking utilities."""

from typing import Annotated, Optional

from fastapi import Path

from silo.services.exceptions import ConflictError

# Positive integer ID validator for path parameters
PositiveIntId = Annotated[int, Path(gt=0, description="Resource ID (must be positive)")]


def optimistic_update(instance, expected_version: Optional[int]) -> None:
    """Perform optimistic locking check before update.

    Raises 409 Conflict if the record was modified by another user since it was read.
    Increments the version counter on success. A missing expected version skips the check.
    """
    if expected_version is not None and instance.version != expected_version:
        raise ConflictError("Record was modified by another user. Please refresh and try again.")
    instance.increment_version()
