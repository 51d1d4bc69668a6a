"""Points scoring and submission validation."""

from .points import calculate_points, validate_points_calculation
from .validation import (
    RejectionReason,
    SubmissionDecision,
    SubmissionPolicy,
    SubmissionValidator,
)

__all__ = [
    "RejectionReason",
    "SubmissionDecision",
    "SubmissionPolicy",
    "SubmissionValidator",
    "calculate_points",
    "validate_points_calculation",
]
