"""
🚀 DRAFT GENERATION ORCHESTRATOR
================================
Drives one outreach draft from request to stored result.

FLOW:
1. Claim the prospect (non-blocking; a second request fails fast)
2. Pick the offering: the caller's choice or the best match
3. NOT_SENT → PENDING, audit an IN_FLIGHT generation request
4. Call the generation service
5. Store the draft (status stays PENDING, nothing is sent)
   or roll the status back and raise a typed error
6. Release the claim, whatever happened

Usage:
    orchestrator = DraftGenerationOrchestrator(state_machine)

    # Blocking
    result = orchestrator.request_draft(owner_id, prospect_id)

    # From a UI thread
    future = orchestrator.submit_draft(owner_id, prospect_id)
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Set

from loguru import logger

from config.settings import settings
from database.repository import GenerationRequestRepository
from models.errors import LockContentionError, NotFoundError, OutreachError, ValidationError
from models.outreach import (
    DraftResult,
    GenerationRequest,
    GenerationStatus,
    Offering,
    OutreachStatus,
    Prospect,
    utcnow,
)
from orchestration.generation_client import build_generation_client
from orchestration.outreach_state import OutreachStateMachine


class DraftGenerationOrchestrator:
    """
    Coordinates matching, the generation service and the state machine.

    At most one generation runs per prospect in this process. The claim is
    taken and released here only, on every exit path.
    """

    def __init__(
        self,
        state: OutreachStateMachine,
        client=None,
        db=None,
        max_workers: Optional[int] = None,
    ):
        self.state = state
        self.client = client or build_generation_client()
        self.requests = GenerationRequestRepository(db or state.prospects.db)
        self.max_workers = max_workers or settings.orchestrator.max_workers

        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self._history: Dict[str, List[GenerationRequest]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    # ===================================
    # PUBLIC API
    # ===================================

    def request_draft(
        self,
        owner_id: str,
        prospect_id: str,
        offering_id: Optional[str] = None,
    ) -> DraftResult:
        """
        Generate a draft for a prospect and store it.

        Raises:
            LockContentionError: a generation is already running for it
            NotFoundError: unknown prospect or offering for this owner
            ValidationError: the owner has no offering to pitch
            ConflictError: already sent, or reset/edited concurrently
            GenerationTimeoutError / GenerationServiceError: the call failed
        """
        self._acquire(prospect_id)
        try:
            return self._generate(owner_id, prospect_id, offering_id)
        finally:
            self._release(prospect_id)

    def submit_draft(
        self,
        owner_id: str,
        prospect_id: str,
        offering_id: Optional[str] = None,
    ) -> Future:
        """
        Run request_draft on the worker pool.

        The claim is taken before returning, so contention is raised here and
        not through the future. Abandoning the future does not cancel the
        generation; its result is still stored.
        """
        self._acquire(prospect_id)
        try:
            return self._pool().submit(self._run_claimed, owner_id, prospect_id, offering_id)
        except RuntimeError:
            self._release(prospect_id)
            raise

    def in_flight(self, prospect_id: str) -> bool:
        with self._lock:
            return prospect_id in self._in_flight

    def history(self, prospect_id: str) -> List[GenerationRequest]:
        """Generation requests made by this process for a prospect, oldest first."""
        with self._lock:
            return [r.model_copy() for r in self._history.get(prospect_id, [])]

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self) -> "DraftGenerationOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ===================================
    # CLAIMS
    # ===================================

    def _acquire(self, prospect_id: str) -> None:
        with self._lock:
            if prospect_id in self._in_flight:
                logger.info(f"🔒 Generation already in flight for {prospect_id}")
                raise LockContentionError(prospect_id)
            self._in_flight.add(prospect_id)

    def _release(self, prospect_id: str) -> None:
        with self._lock:
            self._in_flight.discard(prospect_id)

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="draft"
                )
            return self._executor

    def _run_claimed(self, owner_id: str, prospect_id: str, offering_id: Optional[str]) -> DraftResult:
        try:
            return self._generate(owner_id, prospect_id, offering_id)
        finally:
            self._release(prospect_id)

    # ===================================
    # GENERATION
    # ===================================

    def _choose_offering(
        self,
        owner_id: str,
        prospect: Prospect,
        offering_id: Optional[str],
    ) -> Offering:
        if offering_id:
            offering = self.state.offerings.get(owner_id, offering_id)
            if offering is None:
                raise NotFoundError(
                    f"Offering {offering_id} not found for owner {owner_id}",
                    user_message="This offering no longer exists.",
                )
            return offering

        offering = self.state.engine.best_offering(prospect, self.state.offerings.list(owner_id))
        if offering is None:
            raise ValidationError(
                f"Owner {owner_id} has no offering to pitch",
                fields={"offering_id": "no offering available"},
                user_message="Publish an agent before generating outreach drafts.",
            )
        return offering

    def _generate(self, owner_id: str, prospect_id: str, offering_id: Optional[str]) -> DraftResult:
        prospect = self.state.get_prospect(owner_id, prospect_id)
        self.state.ensure_draftable(prospect)
        offering = self._choose_offering(owner_id, prospect, offering_id)

        snapshot, prior = self.state.begin_generation(owner_id, prospect_id)
        request = GenerationRequest(
            owner_id=owner_id, prospect_id=prospect_id, offering_id=offering.id
        )
        self._track(request)
        logger.info(f"✍️ Generating draft for {snapshot.name} with {offering.name} "
                    f"({getattr(self.client, 'name', 'custom')} client)")

        try:
            content = self.client.generate(snapshot, offering)
        except Exception as e:
            self._abort(request, prior, e)
            raise

        try:
            committed = self.state.complete_generation(
                owner_id, prospect_id, snapshot, offering, content
            )
        except NotFoundError as e:
            logger.warning(f"⚠️ Draft for {prospect_id} discarded: {e}")
            self._finish(request, GenerationStatus.FAILED, f"discarded: {e}")
            raise
        except OutreachError as e:
            # fail_generation only reverts a prospect still PENDING without a draft
            self._abort(request, prior, e, reason="discarded")
            raise

        self._finish(request, GenerationStatus.SUCCEEDED)
        logger.info(f"✅ Draft ready for {snapshot.name}"
                    f"{' (stale)' if committed.draft_stale else ''}")
        return DraftResult(
            prospect=committed, offering=offering, draft_content=content, request=request
        )

    def _abort(
        self,
        request: GenerationRequest,
        prior: OutreachStatus,
        error: Exception,
        reason: Optional[str] = None,
    ) -> None:
        message = f"{reason}: {error}" if reason else str(error)
        logger.error(f"❌ Generation failed for {request.prospect_id}: {message}")
        self._finish(request, GenerationStatus.FAILED, message)
        try:
            self.state.fail_generation(
                request.owner_id, request.prospect_id, prior, str(error)
            )
        except OutreachError as rollback_error:
            logger.error(f"❌ Could not roll back {request.prospect_id} "
                         f"to {prior.value}: {rollback_error}")

    # ===================================
    # AUDIT
    # ===================================

    def _track(self, request: GenerationRequest) -> None:
        with self._lock:
            self._history.setdefault(request.prospect_id, []).append(request)
        self.requests.record(request)

    def _finish(
        self,
        request: GenerationRequest,
        status: GenerationStatus,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            request.status = status
            request.completed_at = utcnow()
            request.error = error
        self.requests.record(request)
