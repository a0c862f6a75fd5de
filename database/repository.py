"""
🗂️ OWNER-SCOPED REPOSITORIES
=============================
Typed access to the prospects, offerings, prospect_activities and
generation_requests tables. Every read and write is filtered by ``owner_id``;
a record owned by someone else is indistinguishable from a missing one.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from models.errors import ConflictError
from models.outreach import (
    GenerationRequest,
    Offering,
    OutreachStatus,
    Prospect,
    ProspectActivity,
    utcnow,
)

PROSPECTS = "prospects"
OFFERINGS = "offerings"
ACTIVITIES = "prospect_activities"
GENERATION_REQUESTS = "generation_requests"


class ProspectRepository:
    """Row-level CRUD for prospects with version-checked updates."""

    def __init__(self, db):
        self.db = db

    def get(self, owner_id: str, prospect_id: str) -> Optional[Prospect]:
        rows = self.db.query(
            PROSPECTS, filters={"id": prospect_id, "owner_id": owner_id}, limit=1
        )
        return Prospect.from_row(rows[0]) if rows else None

    def get_unscoped(self, prospect_id: str) -> Optional[Prospect]:
        """Lookup by id alone; only for inbound callbacks that carry no owner."""
        row = self.db.get_by_id(PROSPECTS, prospect_id)
        return Prospect.from_row(row) if row else None

    def list(
        self,
        owner_id: str,
        sector: Optional[str] = None,
        budget: Optional[str] = None,
        status: Optional[OutreachStatus] = None,
    ) -> List[Prospect]:
        filters: Dict[str, Any] = {"owner_id": owner_id}
        if sector:
            filters["sector"] = sector
        if budget:
            filters["estimated_budget"] = budget
        if status:
            filters["outreach_status"] = OutreachStatus(status).value
        rows = self.db.query(PROSPECTS, filters=filters, order_by="-compatibility_score")
        return [Prospect.from_row(r) for r in rows]

    def upsert(self, prospect: Prospect) -> Prospect:
        """Create-if-absent else update, keyed by ``id``."""
        existing = self.db.get_by_id(PROSPECTS, prospect.id)
        if existing and existing.get("owner_id") != prospect.owner_id:
            raise ConflictError(
                f"Prospect id {prospect.id} is already taken",
                user_message="This prospect id is already in use.",
            )
        row = self.db.upsert(PROSPECTS, prospect.to_row(), conflict_columns=["id"])
        return Prospect.from_row(row) if row else prospect

    def update_if_version(self, prospect: Prospect, expected_version: int) -> Optional[Prospect]:
        """
        Write ``prospect`` only if the stored version is still ``expected_version``.

        Returns the committed prospect (version bumped) or None when another
        writer committed first or the row is gone.
        """
        changes = prospect.model_copy(
            update={"version": expected_version + 1, "updated_at": utcnow()}
        ).to_row()
        # Identity columns never change
        for column in ("id", "owner_id", "created_at"):
            changes.pop(column, None)
        row = self.db.update_where(
            PROSPECTS,
            {"id": prospect.id, "owner_id": prospect.owner_id, "version": expected_version},
            changes,
        )
        return Prospect.from_row(row) if row else None

    def delete(self, owner_id: str, prospect_id: str) -> bool:
        return self.db.delete_where(PROSPECTS, {"id": prospect_id, "owner_id": owner_id}) > 0


class OfferingRepository:
    """Read access to a creator's offerings (plus upsert for administration)."""

    def __init__(self, db):
        self.db = db

    def list(self, owner_id: str) -> List[Offering]:
        rows = self.db.query(OFFERINGS, filters={"owner_id": owner_id}, order_by="name")
        return [Offering.from_row(r) for r in rows]

    def get(self, owner_id: str, offering_id: str) -> Optional[Offering]:
        rows = self.db.query(
            OFFERINGS, filters={"id": offering_id, "owner_id": owner_id}, limit=1
        )
        return Offering.from_row(rows[0]) if rows else None

    def upsert(self, offering: Offering) -> Offering:
        row = self.db.upsert(OFFERINGS, offering.to_row(), conflict_columns=["id"])
        return Offering.from_row(row) if row else offering


class ActivityRepository:
    """Prospect timeline. Writes are best-effort audit."""

    def __init__(self, db):
        self.db = db

    def log(self, activity: ProspectActivity) -> None:
        try:
            self.db.insert(ACTIVITIES, activity.to_row())
        except Exception as e:
            logger.warning(f"⚠️ Could not record activity {activity.type.value} "
                           f"for {activity.prospect_id}: {e}")

    def list(
        self,
        owner_id: str,
        prospect_id: str,
        page: int = 1,
        page_size: int = 10,
    ) -> List[ProspectActivity]:
        page = max(page, 1)
        rows = self.db.query(
            ACTIVITIES,
            filters={"owner_id": owner_id, "prospect_id": prospect_id},
            order_by="-created_at",
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        return [ProspectActivity.model_validate(r) for r in rows]


class GenerationRequestRepository:
    """Audit trail of generation attempts. Writes are best-effort."""

    def __init__(self, db):
        self.db = db

    def record(self, request: GenerationRequest) -> None:
        try:
            self.db.upsert(GENERATION_REQUESTS, request.to_row(), conflict_columns=["id"])
        except Exception as e:
            logger.warning(f"⚠️ Could not record generation request {request.id}: {e}")

    def list(self, owner_id: str, prospect_id: str) -> List[GenerationRequest]:
        rows = self.db.query(
            GENERATION_REQUESTS,
            filters={"owner_id": owner_id, "prospect_id": prospect_id},
            order_by="-requested_at",
        )
        return [GenerationRequest.model_validate(r) for r in rows]
