"""Data models and error types for the outreach engine."""

from .errors import (
    OutreachError,
    ValidationError,
    NotFoundError,
    ConflictError,
    GenerationError,
    GenerationTimeoutError,
    GenerationServiceError,
    LockContentionError,
    PersistenceError,
    NotificationError,
)
from .outreach import (
    OutreachStatus,
    EngagementEvent,
    GenerationStatus,
    ActivityType,
    ProspectInput,
    Prospect,
    Offering,
    GenerationRequest,
    DraftResult,
    ProspectActivity,
    parse_model,
)

__all__ = [
    "OutreachError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "GenerationError",
    "GenerationTimeoutError",
    "GenerationServiceError",
    "LockContentionError",
    "PersistenceError",
    "NotificationError",
    "OutreachStatus",
    "EngagementEvent",
    "GenerationStatus",
    "ActivityType",
    "ProspectInput",
    "Prospect",
    "Offering",
    "GenerationRequest",
    "DraftResult",
    "ProspectActivity",
    "parse_model",
]
