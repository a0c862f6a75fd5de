"""
🤝 OUTREACH ENGINE ORCHESTRATION
================================
Matching, draft generation and outreach lifecycle for a creator's prospects.

Components:
- MatchingEngine: Scores prospects against a creator's offerings
- OutreachStateMachine: Single write path for prospects and outreach status
- DraftGenerationOrchestrator: Generates drafts through the generation service
- ChangeNotificationChannel: Pushes committed changes to live viewers
- EngagementCallbackHandler: Applies open/reply callbacks

Usage:
    from database.connection import get_database
    from orchestration import (
        ChangeNotificationChannel, DraftGenerationOrchestrator, OutreachStateMachine,
    )

    channel = ChangeNotificationChannel()
    machine = OutreachStateMachine(get_database(), channel=channel)
    orchestrator = DraftGenerationOrchestrator(machine)

    prospect = machine.create_prospect(owner_id, {...})
    draft = orchestrator.request_draft(owner_id, prospect.id)
    machine.mark_sent(owner_id, prospect.id)
"""

from .matching_engine import MatchingEngine, ScoreResult, SectorRecommendation
from .notifications import ChangeNotificationChannel, EventKind, ProspectEvent, ProspectView, Subscription
from .outreach_state import BulkResult, OutreachStateMachine
from .generation_client import HttpGenerationClient, TemplateGenerationClient, build_generation_client
from .draft_generator import DraftGenerationOrchestrator
from .engagement import EngagementCallbackHandler

__all__ = [
    "MatchingEngine",
    "ScoreResult",
    "SectorRecommendation",
    "ChangeNotificationChannel",
    "EventKind",
    "ProspectEvent",
    "ProspectView",
    "Subscription",
    "BulkResult",
    "OutreachStateMachine",
    "HttpGenerationClient",
    "TemplateGenerationClient",
    "build_generation_client",
    "DraftGenerationOrchestrator",
    "EngagementCallbackHandler",
]
