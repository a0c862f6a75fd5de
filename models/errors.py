"""
🚨 OUTREACH ERRORS
==================
Typed failures surfaced by the matching, orchestration and state layers.

Each error carries a ``user_message`` the console can show as-is:

- ValidationError        -> "fix the highlighted fields"
- NotFoundError          -> "this prospect no longer exists"
- ConflictError          -> "already sent" / "refresh and try again"
- GenerationError        -> "generation failed, try again"
- LockContentionError    -> "someone is already generating this draft"
- PersistenceError       -> "storage unavailable, nothing was changed"
"""

from typing import Dict, Optional


class OutreachError(Exception):
    """Base class for every error raised by the engine."""

    user_message = "Something went wrong."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message:
            self.user_message = user_message


class ValidationError(OutreachError):
    """Malformed or missing prospect/offering fields. Raised before any mutation."""

    user_message = "Some fields are missing or invalid."

    def __init__(
        self,
        message: str,
        fields: Optional[Dict[str, str]] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message)
        self.fields = fields or {}


class NotFoundError(OutreachError):
    """Record does not exist for this owner."""

    user_message = "This prospect no longer exists."


class ConflictError(OutreachError):
    """Transition not allowed from the current state, or a concurrent edit won."""

    user_message = "This prospect changed in the meantime. Refresh and try again."

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message)
        self.current_status = current_status


class GenerationError(OutreachError):
    """The generation service did not produce a usable draft."""

    user_message = "Draft generation failed, please try again."


class GenerationTimeoutError(GenerationError):
    """The generation service did not answer within the configured timeout."""

    user_message = "Draft generation timed out, please try again."


class GenerationServiceError(GenerationError):
    """Transport error, non-2xx response or a response without draft content."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message)
        self.status_code = status_code


class LockContentionError(OutreachError):
    """A draft is already being generated for this prospect."""

    user_message = "A draft is already being generated for this prospect."

    def __init__(self, prospect_id: str):
        super().__init__(f"Generation already in flight for prospect {prospect_id}")
        self.prospect_id = prospect_id


class PersistenceError(OutreachError):
    """Underlying store unavailable or rejected the write."""

    user_message = "Storage is unavailable, nothing was changed."


class NotificationError(OutreachError):
    """Change notification channel unavailable."""

    user_message = "Live updates are unavailable; refresh to see changes."
