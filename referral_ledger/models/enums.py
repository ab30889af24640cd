"""
Model enums.

String enums stored in status columns.
"""

from enum import StrEnum


class PayoutStatus(StrEnum):
    """Lifecycle status of a commission entry or milestone claim."""

    COMPLETED = "completed"
    FAILED = "failed"
