"""
Suggestion Schema

Core principle: a suggestion is a proposed change to canonical knowledge.
It moves forward through detected -> pending -> approved/rejected and is
never deleted, only superseded by newer suggestions.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Enums
# ============================================================================

class SourceType(str, Enum):
    """Kind of artifact a suggestion was detected in"""
    CHAT = "chat"
    FILE_STORAGE = "file-storage"
    MEETING_AUDIO = "meeting-audio"
    MEETING_VIDEO = "meeting-video"
    DOCS = "docs"


class KnowledgeType(str, Enum):
    """Domain tag for the knowledge being changed"""
    POLICY = "policy"
    PROCESS = "process"
    FAQ = "faq"
    ONBOARDING = "onboarding"
    PRODUCT = "product"
    TECHNICAL = "technical"
    GENERAL = "general"


class SuggestionStatus(str, Enum):
    """Lifecycle status"""
    DETECTED = "detected"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (SuggestionStatus.APPROVED, SuggestionStatus.REJECTED)


class PlanTier(str, Enum):
    """Subscription plan tiers"""
    STARTER = "starter"
    GROWTH = "growth"
    SCALE = "scale"
    PRO_SCALE = "pro_scale"
    ENTERPRISE = "enterprise"


class QuotaDimension(str, Enum):
    """Independently metered resources"""
    SUGGESTIONS = "suggestions"
    SEATS = "seats"
    SOURCES = "sources"


# -1 and None both mean "no cap"
UNLIMITED = -1

PLAN_LIMITS: Dict[PlanTier, Dict[str, int]] = {
    PlanTier.STARTER: {"suggestions": 20, "sources": 1, "seats": 5},
    PlanTier.GROWTH: {"suggestions": 75, "sources": 2, "seats": 15},
    PlanTier.SCALE: {"suggestions": 200, "sources": 4, "seats": 30},
    PlanTier.PRO_SCALE: {"suggestions": UNLIMITED, "sources": UNLIMITED, "seats": 75},
    PlanTier.ENTERPRISE: {"suggestions": UNLIMITED, "sources": UNLIMITED, "seats": UNLIMITED},
}


def generate_suggestion_id() -> str:
    return f"sug_{uuid.uuid4().hex[:12]}"


def is_unlimited(limit: Optional[int]) -> bool:
    return limit is None or limit == UNLIMITED


# ============================================================================
# Sub-models
# ============================================================================

class PageRef(BaseModel):
    """Reference to a page in the canonical store"""
    model_config = ConfigDict(frozen=True)

    page_id: str
    url: Optional[str] = None


class PageCandidate(BaseModel):
    """One page returned by a page-index search"""
    model_config = ConfigDict(frozen=True)

    id: str
    url: str = ""
    title: str = "Untitled"
    excerpt: str = ""

    def to_ref(self) -> PageRef:
        return PageRef(page_id=self.id, url=self.url or None)


# ============================================================================
# Main Schemas
# ============================================================================

class Suggestion(BaseModel):
    """
    One proposed knowledge change.

    decided_at/decided_by are set iff status is approved or rejected.
    Only the LifecycleController mutates a stored suggestion.
    """
    id: str = Field(default_factory=generate_suggestion_id)
    team_id: str
    source: str = Field(default="", description="Integration name (slack, notion, zoom...)")
    source_type: SourceType
    knowledge_type: KnowledgeType = Field(default=KnowledgeType.GENERAL)

    title: str = Field(..., min_length=1)
    current_content: str = Field(default="", description="Empty means a new page")
    proposed_content: str = Field(default="")
    is_deletion: bool = False
    confidence: float = Field(ge=0.0, le=1.0)

    status: SuggestionStatus = Field(default=SuggestionStatus.PENDING)
    source_link: str = Field(..., description="URL of the originating artifact")
    target_page_ref: Optional[PageRef] = None
    content_fingerprint: Optional[str] = None
    published_content_hash: Optional[str] = Field(
        default=None, description="Hash of the page text written on approval"
    )

    created_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None

    @field_validator("created_at", "decided_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal


class ActivityEntry(BaseModel):
    """Immutable record of one lifecycle transition"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"act_{uuid.uuid4().hex[:12]}")
    suggestion_id: str
    team_id: str
    resulting_status: SuggestionStatus
    title: str
    source_type: SourceType
    actor_name: Optional[str] = None
    occurred_at: datetime = Field(default_factory=utcnow)

    @field_validator("occurred_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return as_utc(value)


class UsageSnapshot(BaseModel):
    """
    Per-team usage counters, owned by the subscription collaborator.

    A limit of None or -1 means unlimited.
    """
    team_id: str
    plan: PlanTier = PlanTier.STARTER
    suggestions_used: int = Field(default=0, ge=0)
    suggestions_limit: Optional[int] = 20
    seats_used: int = Field(default=0, ge=0)
    seats_limit: Optional[int] = 5
    sources_connected: int = Field(default=0, ge=0)
    sources_limit: Optional[int] = 1
    trial_ends_at: Optional[datetime] = None

    @field_validator("trial_ends_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @classmethod
    def for_plan(cls, team_id: str, plan: PlanTier, **counters: Any) -> "UsageSnapshot":
        """Build a snapshot whose limits come from the plan table"""
        limits = PLAN_LIMITS[PlanTier(plan)]
        return cls(
            team_id=team_id,
            plan=plan,
            suggestions_limit=limits["suggestions"],
            seats_limit=limits["seats"],
            sources_limit=limits["sources"],
            **counters,
        )

    def counters(self, dimension: QuotaDimension) -> tuple:
        """(used, limit) for a dimension"""
        dimension = QuotaDimension(dimension)
        if dimension == QuotaDimension.SUGGESTIONS:
            return self.suggestions_used, self.suggestions_limit
        if dimension == QuotaDimension.SEATS:
            return self.seats_used, self.seats_limit
        return self.sources_connected, self.sources_limit


class DetectionPayload(BaseModel):
    """
    What the upstream detection producer hands over.

    ``triage`` marks a low-confidence detection that enters as ``detected``
    and needs promotion before it shows up in the review queue.
    """
    team_id: str = Field(..., min_length=1)
    source: str = ""
    source_type: SourceType
    knowledge_type: KnowledgeType = KnowledgeType.GENERAL
    title: str = Field(..., min_length=1)
    current_content: Optional[str] = ""
    proposed_content: str
    is_deletion: bool = False
    confidence: float = Field(ge=0.0, le=1.0)
    source_link: str = Field(..., min_length=1)
    triage: bool = False

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value.strip()


def sort_activity(entries: List[ActivityEntry]) -> List[ActivityEntry]:
    """Canonical display order: newest first"""
    return sorted(entries, key=lambda e: e.occurred_at, reverse=True)
