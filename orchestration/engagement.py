"""
👀 ENGAGEMENT CALLBACKS
=======================
Entry point for delivery-tracking callbacks (open and reply events).

Payload:
    {"prospect_id": "...", "event": "opened" | "replied"}

Aliases such as "email_opened" or "REPLIED" are accepted. Trackers resend
freely, so duplicates and late opens are accepted and ignored.
"""

from typing import Any, Dict

from loguru import logger
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_fixed

from models.errors import ConflictError, ValidationError
from models.outreach import DELIVERED_STATES, EngagementEvent, Prospect
from orchestration.outreach_state import OutreachStateMachine

EVENT_ALIASES: Dict[str, str] = {
    "open": "opened",
    "opened": "opened",
    "email_opened": "opened",
    "reply": "replied",
    "replied": "replied",
    "email_replied": "replied",
}

_DELIVERED = {s.value for s in DELIVERED_STATES}


def _lost_race(error: BaseException) -> bool:
    # A version conflict on an already-sent prospect; re-reading resolves it
    return isinstance(error, ConflictError) and error.current_status in _DELIVERED


class EngagementCallbackHandler:
    """
    Validates callback payloads and applies them through the state machine.

    Usage:
        handler = EngagementCallbackHandler(state_machine)
        prospect = handler.handle({"prospect_id": pid, "event": "email_opened"})
    """

    def __init__(self, state: OutreachStateMachine):
        self.state = state

    @staticmethod
    def parse_event(raw: Any) -> EngagementEvent:
        key = str(raw or "").strip().lower()
        if key not in EVENT_ALIASES:
            raise ValidationError(
                f"Unknown engagement event '{raw}'",
                fields={"event": "expected opened or replied"},
            )
        return EngagementEvent(EVENT_ALIASES[key])

    def handle(self, payload: Dict[str, Any]) -> Prospect:
        """Apply one callback. Returns the prospect as stored afterwards."""
        if not isinstance(payload, dict):
            raise ValidationError("Callback payload must be a JSON object")

        prospect_id = str(payload.get("prospect_id") or "").strip()
        if not prospect_id:
            raise ValidationError("prospect_id is required", fields={"prospect_id": "required"})
        event = self.parse_event(payload.get("event"))

        logger.info(f"👀 Engagement callback: {event.value} for {prospect_id}")
        return self._apply(prospect_id, event)

    @retry(
        retry=retry_if_exception(_lost_race),
        stop=stop_after_attempt(3),
        wait=wait_fixed(0.1),
        reraise=True,
    )
    def _apply(self, prospect_id: str, event: EngagementEvent) -> Prospect:
        return self.state.record_engagement(prospect_id, event.value)
