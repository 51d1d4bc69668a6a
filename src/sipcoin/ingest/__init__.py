"""Receipt ingestion orchestration."""

from .locks import DEFAULT_USER_LOCKS, UserLockRegistry
from .service import ProcessingResult, ReceiptIngestionService, SubmissionResult

__all__ = [
    "DEFAULT_USER_LOCKS",
    "ProcessingResult",
    "ReceiptIngestionService",
    "SubmissionResult",
    "UserLockRegistry",
]
