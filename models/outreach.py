"""Prospect, offering and outreach data models."""

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from config.settings import (
    BUDGET_ALIASES,
    BUDGET_BUCKETS,
    COMPANY_SIZE_ALIASES,
    COMPANY_SIZES,
    SECTOR_ALIASES,
    SECTORS,
)
from models.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ===========================================
# ENUMERATIONS
# ===========================================

class OutreachStatus(str, Enum):
    """Outreach lifecycle, in forward order."""
    NOT_SENT = "NOT_SENT"
    PENDING = "PENDING"
    SENT = "SENT"
    OPENED = "OPENED"
    REPLIED = "REPLIED"

    @property
    def rank(self) -> int:
        return STATUS_ORDER.index(self)

    def is_after(self, other: "OutreachStatus") -> bool:
        return self.rank > other.rank


STATUS_ORDER: List[OutreachStatus] = [
    OutreachStatus.NOT_SENT,
    OutreachStatus.PENDING,
    OutreachStatus.SENT,
    OutreachStatus.OPENED,
    OutreachStatus.REPLIED,
]

# States reached only once the message left the creator's hands
DELIVERED_STATES = {OutreachStatus.SENT, OutreachStatus.OPENED, OutreachStatus.REPLIED}


class EngagementEvent(str, Enum):
    OPENED = "opened"
    REPLIED = "replied"

    @property
    def target_status(self) -> OutreachStatus:
        if self is EngagementEvent.OPENED:
            return OutreachStatus.OPENED
        return OutreachStatus.REPLIED


class GenerationStatus(str, Enum):
    IN_FLIGHT = "IN_FLIGHT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class ActivityType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DRAFT_GENERATED = "draft_generated"
    DRAFT_FAILED = "draft_failed"
    EMAIL_SENT = "email_sent"
    EMAIL_OPENED = "email_opened"
    EMAIL_REPLIED = "email_replied"
    RESET = "reset"


# ===========================================
# NORMALIZATION
# ===========================================

def normalize_sector(value: str) -> str:
    """Lower-case a sector and map known aliases. Unknown sectors pass through."""
    cleaned = (value or "").strip().lower()
    return SECTOR_ALIASES.get(cleaned, cleaned)


def is_known_sector(sector: Optional[str]) -> bool:
    return normalize_sector(sector or "") in SECTORS


def normalize_budget(value: str) -> str:
    cleaned = (value or "").strip()
    labels = [label for label, _, _ in BUDGET_BUCKETS]
    if cleaned in labels:
        return cleaned
    alias = BUDGET_ALIASES.get(cleaned) or BUDGET_ALIASES.get(cleaned.lower())
    if alias:
        return alias
    # "500 - 1000", "500€-1000€", "1000 +"
    compact = re.sub(r"[\s€$]", "", cleaned)
    if compact in labels:
        return compact
    raise ValueError(f"unknown budget bucket '{value}' (expected one of {', '.join(labels)})")


def budget_index(label: str) -> int:
    for index, (bucket, _, _) in enumerate(BUDGET_BUCKETS):
        if bucket == label:
            return index
    raise ValueError(f"unknown budget bucket '{label}'")


def price_index(price: float) -> int:
    """Index of the budget bucket a price falls into."""
    for index, (_, low, high) in enumerate(BUDGET_BUCKETS):
        if price >= low and (high is None or price < high):
            return index
    return 0


def normalize_company_size(value: str) -> str:
    cleaned = (value or "").strip().lower()
    cleaned = COMPANY_SIZE_ALIASES.get(cleaned, cleaned)
    if cleaned not in COMPANY_SIZES:
        raise ValueError(
            f"unknown company size '{value}' (expected one of {', '.join(COMPANY_SIZES)})"
        )
    return cleaned


def parse_model(model_cls: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate ``data`` into ``model_cls``, raising the engine's ValidationError."""
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        fields = {
            ".".join(str(part) for part in err["loc"]) or "__root__": err["msg"]
            for err in e.errors()
        }
        raise ValidationError(
            f"Invalid {model_cls.__name__}: {fields}", fields=fields
        ) from e


# ===========================================
# PROSPECTS
# ===========================================

class ProspectInput(BaseModel):
    """Fields a creator provides when adding or importing a prospect."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: Optional[str] = Field(None, description="Client-supplied id for retry-safe upserts")
    name: str = Field(..., min_length=1, description="Prospect name")
    sector: str = Field(..., min_length=1, description="Business sector")
    estimated_budget: str = Field(
        ...,
        validation_alias=AliasChoices("estimated_budget", "budget"),
        description="Budget bucket",
    )
    company_size: str = Field(..., description="Company size bucket")
    needs: Optional[str] = Field(None, description="Free-text needs")

    company: Optional[str] = Field(None, description="Company name")
    email: Optional[str] = Field(None, description="Contact email")
    location: Optional[str] = Field(None, description="City or region")

    @field_validator("sector")
    @classmethod
    def _sector(cls, v: str) -> str:
        return normalize_sector(v)

    @field_validator("estimated_budget")
    @classmethod
    def _budget(cls, v: str) -> str:
        return normalize_budget(v)

    @field_validator("company_size")
    @classmethod
    def _size(cls, v: str) -> str:
        return normalize_company_size(v)

    @field_validator("needs", "company", "email", "location")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


# Fields a creator may edit after creation
EDITABLE_FIELDS = (
    "name", "sector", "estimated_budget", "company_size",
    "needs", "company", "email", "location",
)

# Fields that feed the compatibility score
SCORING_FIELDS = ("sector", "estimated_budget", "company_size")

# Fields sent to the generation service
DRAFT_INPUT_FIELDS = ("name", "sector", "estimated_budget", "company_size", "needs")


class Prospect(BaseModel):
    """A potential customer tracked by a creator, with its outreach state."""

    model_config = ConfigDict(extra="ignore", validate_assignment=False)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)

    name: str
    sector: str
    estimated_budget: str
    company_size: str
    needs: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None

    compatibility_score: int = Field(default=0, ge=0, le=100)
    score_computed_at: Optional[datetime] = None
    best_offering_id: Optional[str] = None

    outreach_status: OutreachStatus = OutreachStatus.NOT_SENT
    draft_content: Optional[str] = None
    draft_offering_id: Optional[str] = None
    draft_generated_at: Optional[datetime] = None
    draft_stale: bool = False
    sent_at: Optional[datetime] = None

    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Prospect":
        return cls.model_validate(row)

    def scoring_inputs(self) -> Tuple[str, str, str]:
        return tuple(getattr(self, f) for f in SCORING_FIELDS)

    def draft_inputs(self) -> Tuple[Optional[str], ...]:
        return tuple(getattr(self, f) for f in DRAFT_INPUT_FIELDS)

    @property
    def has_draft(self) -> bool:
        return self.draft_content is not None


# ===========================================
# OFFERINGS
# ===========================================

class Offering(BaseModel):
    """A creator's published agent, used as the subject of outreach."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    sector: str = Field(..., min_length=1)
    description: str = ""
    features: List[str] = Field(default_factory=list)
    price: float = Field(..., ge=0)

    @field_validator("sector")
    @classmethod
    def _sector(cls, v: str) -> str:
        return normalize_sector(v)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> Any:
        # "750€", "1 200 €", "$49"
        if isinstance(v, str):
            cleaned = re.sub(r"[^\d.,]", "", v).replace(",", ".")
            return cleaned or v
        return v

    @field_validator("features", mode="before")
    @classmethod
    def _features(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Offering":
        return cls.model_validate(row)


# ===========================================
# GENERATION & ACTIVITY
# ===========================================

class GenerationRequest(BaseModel):
    """One call to the generation service for a (prospect, offering) pair."""

    id: str = Field(default_factory=new_id)
    owner_id: str
    prospect_id: str
    offering_id: str
    requested_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    status: GenerationStatus = GenerationStatus.IN_FLIGHT
    error: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class DraftResult(BaseModel):
    """Outcome of a successful draft generation."""

    prospect: Prospect
    offering: Offering
    draft_content: str
    request: GenerationRequest


class ProspectActivity(BaseModel):
    """Timeline entry for a prospect."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    prospect_id: str
    owner_id: str
    type: ActivityType
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
