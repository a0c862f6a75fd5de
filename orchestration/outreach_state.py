"""
📬 OUTREACH STATE MACHINE
=========================
Single write path for prospects and their outreach lifecycle.

    NOT_SENT → PENDING → SENT → OPENED → REPLIED
                                  (skips allowed, never backwards)

- NOT_SENT → PENDING : a draft generation starts
- PENDING  → SENT    : the creator confirms the draft was sent (needs a draft)
- SENT     → OPENED/REPLIED, OPENED → REPLIED : engagement callbacks
- any      → NOT_SENT : explicit reset, clears draft and sent_at

Every write is conditional on the version the change was computed from, so a
concurrent edit surfaces as ConflictError instead of a lost update. A write
that fails with PersistenceError is retried once.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from config.settings import settings
from database.repository import (
    ActivityRepository,
    OfferingRepository,
    ProspectRepository,
)
from models.errors import (
    ConflictError,
    NotFoundError,
    NotificationError,
    OutreachError,
    PersistenceError,
    ValidationError,
)
from models.outreach import (
    DELIVERED_STATES,
    EDITABLE_FIELDS,
    ActivityType,
    EngagementEvent,
    Offering,
    OutreachStatus,
    Prospect,
    ProspectActivity,
    ProspectInput,
    normalize_budget,
    normalize_sector,
    parse_model,
    utcnow,
)
from orchestration.matching_engine import MatchingEngine, SectorRecommendation
from orchestration.notifications import ChangeNotificationChannel, EventKind, ProspectEvent

write_retry = retry(
    retry=retry_if_exception_type(PersistenceError),
    stop=stop_after_attempt(2),
    wait=wait_fixed(0.2),
    reraise=True,
)

# Columns that do not describe the prospect's state
_BOOKKEEPING = ("version", "updated_at")

_ENGAGEMENT_ACTIVITY = {
    OutreachStatus.OPENED: ActivityType.EMAIL_OPENED,
    OutreachStatus.REPLIED: ActivityType.EMAIL_REPLIED,
}


@dataclass
class BulkResult:
    """Outcome of a bulk import."""
    created: List[Prospect] = field(default_factory=list)
    failed: List[Tuple[int, OutreachError]] = field(default_factory=list)


class OutreachStateMachine:
    """
    Owns every mutation of a prospect.

    Usage:
        machine = OutreachStateMachine(db, channel=channel)

        prospect = machine.create_prospect(owner_id, {
            "name": "Finance Conseil", "sector": "finance",
            "estimated_budget": "500-1000", "company_size": "medium",
        })
        machine.mark_sent(owner_id, prospect.id)
    """

    def __init__(
        self,
        db,
        channel: Optional[ChangeNotificationChannel] = None,
        engine: Optional[MatchingEngine] = None,
    ):
        self.prospects = ProspectRepository(db)
        self.offerings = OfferingRepository(db)
        self.activity_log = ActivityRepository(db)
        self.channel = channel
        self.engine = engine or MatchingEngine()

    # ===================================
    # READS
    # ===================================

    def get_prospect(self, owner_id: str, prospect_id: str) -> Prospect:
        prospect = self.prospects.get(owner_id, prospect_id)
        if prospect is None:
            raise NotFoundError(f"Prospect {prospect_id} not found for owner {owner_id}")
        return prospect

    def list_prospects(
        self,
        owner_id: str,
        sector: Optional[str] = None,
        budget: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Prospect]:
        """Owner's prospects, best score first, optionally filtered."""
        try:
            budget = normalize_budget(budget) if budget else None
            status = OutreachStatus(status) if status else None
        except ValueError as e:
            raise ValidationError(str(e)) from e
        sector = normalize_sector(sector) if sector else None

        prospects = self.prospects.list(owner_id, sector=sector, budget=budget, status=status)
        return self.engine.rank_prospects(prospects)

    def activities(self, owner_id: str, prospect_id: str, page: int = 1) -> List[ProspectActivity]:
        self.get_prospect(owner_id, prospect_id)
        return self.activity_log.list(
            owner_id, prospect_id, page=page,
            page_size=settings.orchestrator.activity_page_size,
        )

    def recommendations(self, owner_id: str) -> List[SectorRecommendation]:
        return self.engine.recommend_sectors(self.prospects.list(owner_id))

    # ===================================
    # PROSPECT CRUD
    # ===================================

    def create_prospect(self, owner_id: str, data: Dict[str, Any]) -> Prospect:
        """
        Validate, score and store a new prospect.

        A submission carrying an ``id`` that already exists for this owner is
        treated as a retry and updates the existing record instead of
        duplicating it.
        """
        if not owner_id:
            raise ValidationError("owner_id is required", fields={"owner_id": "required"})
        fields = parse_model(ProspectInput, data)

        if fields.id:
            existing = self.prospects.get(owner_id, fields.id)
            if existing is not None:
                logger.info(f"♻️ Prospect {fields.id} already exists, applying as update")
                return self.update_prospect(
                    owner_id, fields.id, fields.model_dump(include=set(EDITABLE_FIELDS))
                )

        values = fields.model_dump(exclude={"id"})
        prospect = Prospect(owner_id=owner_id, version=1, **values)
        if fields.id:
            prospect.id = fields.id
        self._apply_score(prospect, self.offerings.list(owner_id))

        committed = self._insert(prospect)
        logger.info(f"➕ Created prospect {committed.id} ({committed.name}) "
                    f"score={committed.compatibility_score}")
        self._log(committed, ActivityType.CREATED, f"Score {committed.compatibility_score}")
        self._publish(committed, EventKind.CREATED)
        return committed

    def bulk_create(self, owner_id: str, rows: Sequence[Dict[str, Any]]) -> BulkResult:
        """Create many prospects; one bad row does not stop the others."""
        result = BulkResult()
        for index, row in enumerate(rows):
            try:
                result.created.append(self.create_prospect(owner_id, row))
            except OutreachError as e:
                logger.warning(f"⚠️ Row {index} rejected: {e}")
                result.failed.append((index, e))
        logger.info(f"📥 Bulk import for {owner_id}: {len(result.created)} created, "
                    f"{len(result.failed)} failed")
        return result

    def update_prospect(self, owner_id: str, prospect_id: str, changes: Dict[str, Any]) -> Prospect:
        """
        Edit descriptive fields. Rescores when scoring inputs change and flags
        an unsent draft as stale when the inputs it was written from change.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS) - {"budget"}
        if unknown:
            raise ValidationError(
                f"Fields cannot be edited: {sorted(unknown)}",
                fields={name: "not editable" for name in unknown},
            )

        current = self.get_prospect(owner_id, prospect_id)
        merged = {name: getattr(current, name) for name in EDITABLE_FIELDS}
        if "budget" in changes:
            changes = dict(changes)
            changes["estimated_budget"] = changes.pop("budget")
        merged.update(changes)
        fields = parse_model(ProspectInput, merged)

        updated = current.model_copy(update=fields.model_dump(include=set(EDITABLE_FIELDS)))
        if updated.scoring_inputs() != current.scoring_inputs():
            self._apply_score(updated, self.offerings.list(owner_id))
        if (
            current.has_draft
            and current.outreach_status is OutreachStatus.PENDING
            and updated.draft_inputs() != current.draft_inputs()
        ):
            logger.info(f"📝 Draft for {prospect_id} flagged stale after edit")
            updated.draft_stale = True

        if self._same_state(updated, current):
            return current

        committed = self._write(updated, current.version)
        self._log(committed, ActivityType.UPDATED)
        self._publish(committed, EventKind.UPDATED)
        return committed

    def delete_prospect(self, owner_id: str, prospect_id: str) -> None:
        """Hard delete."""
        current = self.get_prospect(owner_id, prospect_id)
        self._delete(owner_id, prospect_id)
        logger.info(f"🗑️ Deleted prospect {prospect_id}")
        tombstone = current.model_copy(update={"version": current.version + 1})
        self._publish(tombstone, EventKind.DELETED)

    def rescore_owner(self, owner_id: str) -> List[Prospect]:
        """
        Recompute every prospect's score against the owner's current offerings.

        Returns:
            Prospects whose score or best offering changed
        """
        offerings = self.offerings.list(owner_id)
        changed = []
        for current in self.prospects.list(owner_id):
            updated = current.model_copy()
            self._apply_score(updated, offerings)
            if (
                updated.compatibility_score == current.compatibility_score
                and updated.best_offering_id == current.best_offering_id
            ):
                continue
            try:
                committed = self._write(updated, current.version)
            except ConflictError as e:
                logger.warning(f"⚠️ Skipped rescoring {current.id}: {e}")
                continue
            self._publish(committed, EventKind.UPDATED)
            changed.append(committed)

        logger.info(f"🎯 Rescored {owner_id}: {len(changed)} prospect(s) changed")
        return changed

    # ===================================
    # GENERATION TRANSITIONS (orchestrator only)
    # ===================================

    @staticmethod
    def ensure_draftable(prospect: Prospect) -> None:
        """A sent outreach must be reset before a new draft is written."""
        status = prospect.outreach_status
        if status in DELIVERED_STATES:
            raise ConflictError(
                f"Prospect {prospect.id} is already {status.value}",
                current_status=status.value,
                user_message="This outreach was already sent. Reset it to write a new draft.",
            )

    def begin_generation(self, owner_id: str, prospect_id: str) -> Tuple[Prospect, OutreachStatus]:
        """
        NOT_SENT → PENDING before the generation call.

        Returns:
            (prospect as committed, status before the call)
        """
        current = self.get_prospect(owner_id, prospect_id)
        prior = current.outreach_status

        self.ensure_draftable(current)
        if prior is OutreachStatus.PENDING:
            return current, prior

        committed = self._write(
            current.model_copy(update={"outreach_status": OutreachStatus.PENDING}),
            current.version,
        )
        self._publish(committed, EventKind.UPDATED)
        return committed, prior

    def complete_generation(
        self,
        owner_id: str,
        prospect_id: str,
        snapshot: Prospect,
        offering: Offering,
        draft_content: str,
    ) -> Prospect:
        """
        Store a fresh draft. Replaces any previous draft; status stays PENDING.

        ``snapshot`` is the prospect the draft was written from; if its draft
        inputs were edited while the call was in flight the draft is stored
        but flagged stale.
        """
        current = self.get_prospect(owner_id, prospect_id)
        if current.outreach_status is not OutreachStatus.PENDING:
            raise ConflictError(
                f"Prospect {prospect_id} moved to {current.outreach_status.value} "
                f"during generation; draft discarded",
                current_status=current.outreach_status.value,
            )

        updated = current.model_copy(update={
            "draft_content": draft_content,
            "draft_offering_id": offering.id,
            "draft_generated_at": utcnow(),
            "draft_stale": current.draft_inputs() != snapshot.draft_inputs(),
        })
        committed = self._write(updated, current.version)
        self._log(committed, ActivityType.DRAFT_GENERATED, f"Offering {offering.name}")
        self._publish(committed, EventKind.UPDATED)
        return committed

    def fail_generation(
        self,
        owner_id: str,
        prospect_id: str,
        prior_status: OutreachStatus,
        error: str,
    ) -> Optional[Prospect]:
        """
        Roll back the tentative NOT_SENT → PENDING step after a failed call.
        Content is never touched.
        """
        current = self.prospects.get(owner_id, prospect_id)
        if current is None:
            return None

        self._log(current, ActivityType.DRAFT_FAILED, error)
        if (
            prior_status is OutreachStatus.NOT_SENT
            and current.outreach_status is OutreachStatus.PENDING
            and not current.has_draft
        ):
            committed = self._write(
                current.model_copy(update={"outreach_status": OutreachStatus.NOT_SENT}),
                current.version,
            )
            self._publish(committed, EventKind.UPDATED)
            return committed
        return current

    # ===================================
    # USER & ENGAGEMENT TRANSITIONS
    # ===================================

    def mark_sent(self, owner_id: str, prospect_id: str) -> Prospect:
        """
        PENDING → SENT. Idempotent once sent: no write, sent_at unchanged.
        """
        current = self.get_prospect(owner_id, prospect_id)
        status = current.outreach_status

        if status is OutreachStatus.SENT:
            return current
        if status in DELIVERED_STATES:
            raise ConflictError(
                f"Prospect {prospect_id} is already {status.value}",
                current_status=status.value,
                user_message="This outreach was already sent.",
            )
        if not current.has_draft:
            raise ConflictError(
                f"Prospect {prospect_id} has no draft to send (status {status.value})",
                current_status=status.value,
                user_message="Generate a draft before marking this outreach as sent.",
            )

        committed = self._write(
            current.model_copy(update={
                "outreach_status": OutreachStatus.SENT,
                "sent_at": utcnow(),
            }),
            current.version,
        )
        logger.info(f"✉️ Prospect {prospect_id} marked as sent")
        self._log(committed, ActivityType.EMAIL_SENT)
        self._publish(committed, EventKind.UPDATED)
        return committed

    def record_engagement(
        self,
        prospect_id: str,
        event: str,
        owner_id: Optional[str] = None,
    ) -> Prospect:
        """
        Apply an open/reply callback. Monotonic: a reply while SENT jumps to
        REPLIED, an open after a reply is accepted and ignored.
        """
        try:
            engagement = EngagementEvent(str(event).strip().lower())
        except ValueError as e:
            raise ValidationError(
                f"Unknown engagement event '{event}'", fields={"event": "unknown"}
            ) from e

        if owner_id:
            current = self.get_prospect(owner_id, prospect_id)
        else:
            current = self.prospects.get_unscoped(prospect_id)
            if current is None:
                raise NotFoundError(f"Prospect {prospect_id} not found")

        status = current.outreach_status
        if status not in DELIVERED_STATES:
            raise ConflictError(
                f"Engagement '{engagement.value}' for {prospect_id} before it was sent "
                f"(status {status.value})",
                current_status=status.value,
            )

        target = engagement.target_status
        if not target.is_after(status):
            logger.debug(f"Ignoring {engagement.value} for {prospect_id}: already {status.value}")
            return current

        committed = self._write(
            current.model_copy(update={"outreach_status": target}), current.version
        )
        logger.info(f"👀 Prospect {prospect_id}: {status.value} → {target.value}")
        self._log(committed, _ENGAGEMENT_ACTIVITY[target])
        self._publish(committed, EventKind.UPDATED)
        return committed

    def reset(self, owner_id: str, prospect_id: str) -> Prospect:
        """Back to NOT_SENT from any state; clears draft and sent_at."""
        current = self.get_prospect(owner_id, prospect_id)
        updated = current.model_copy(update={
            "outreach_status": OutreachStatus.NOT_SENT,
            "draft_content": None,
            "draft_offering_id": None,
            "draft_generated_at": None,
            "draft_stale": False,
            "sent_at": None,
        })
        if self._same_state(updated, current):
            return current

        committed = self._write(updated, current.version)
        logger.info(f"↩️ Prospect {prospect_id} reset from {current.outreach_status.value}")
        self._log(committed, ActivityType.RESET, f"From {current.outreach_status.value}")
        self._publish(committed, EventKind.UPDATED)
        return committed

    # ===================================
    # INTERNALS
    # ===================================

    def _apply_score(self, prospect: Prospect, offerings: Sequence[Offering]) -> None:
        result = self.engine.score_prospect(prospect, offerings)
        prospect.compatibility_score = result.score
        prospect.best_offering_id = result.offering_id
        prospect.score_computed_at = utcnow()

    @write_retry
    def _insert(self, prospect: Prospect) -> Prospect:
        return self.prospects.upsert(prospect)

    @write_retry
    def _delete(self, owner_id: str, prospect_id: str) -> None:
        self.prospects.delete(owner_id, prospect_id)

    @write_retry
    def _write(self, prospect: Prospect, expected_version: int) -> Prospect:
        committed = self.prospects.update_if_version(prospect, expected_version)
        if committed is not None:
            return committed

        latest = self.prospects.get(prospect.owner_id, prospect.id)
        if latest is None:
            raise NotFoundError(f"Prospect {prospect.id} was deleted")
        # An earlier attempt may have landed before the connection dropped
        if latest.version == expected_version + 1 and self._same_state(latest, prospect):
            return latest
        raise ConflictError(
            f"Prospect {prospect.id} changed concurrently "
            f"(expected v{expected_version}, found v{latest.version})",
            current_status=latest.outreach_status.value,
        )

    @staticmethod
    def _same_state(a: Prospect, b: Prospect) -> bool:
        return (
            a.model_dump(exclude=set(_BOOKKEEPING) | {"score_computed_at"})
            == b.model_dump(exclude=set(_BOOKKEEPING) | {"score_computed_at"})
        )

    def _log(self, prospect: Prospect, kind: ActivityType, details: Optional[str] = None) -> None:
        self.activity_log.log(ProspectActivity(
            prospect_id=prospect.id,
            owner_id=prospect.owner_id,
            type=kind,
            details=details,
        ))

    def _publish(self, prospect: Prospect, kind: EventKind) -> None:
        if self.channel is None:
            return
        try:
            self.channel.publish(ProspectEvent.for_prospect(prospect, kind))
        except NotificationError as e:
            logger.warning(f"⚠️ Change for {prospect.id} committed but not broadcast: {e}")
