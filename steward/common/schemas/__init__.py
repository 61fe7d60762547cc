"""
Steward Schemas

Suggestion, activity and usage models shared by the review components.
"""

from .suggestion import (
    Suggestion,
    ActivityEntry,
    UsageSnapshot,
    PageCandidate,
    PageRef,
    DetectionPayload,
    SourceType,
    KnowledgeType,
    SuggestionStatus,
    PlanTier,
    QuotaDimension,
    PLAN_LIMITS,
    UNLIMITED,
    is_unlimited,
    generate_suggestion_id,
    sort_activity,
    utcnow,
    as_utc,
)
from .templates import render_review_text, render_compact_line

__all__ = [
    "Suggestion",
    "ActivityEntry",
    "UsageSnapshot",
    "PageCandidate",
    "PageRef",
    "DetectionPayload",
    "SourceType",
    "KnowledgeType",
    "SuggestionStatus",
    "PlanTier",
    "QuotaDimension",
    "PLAN_LIMITS",
    "UNLIMITED",
    "is_unlimited",
    "generate_suggestion_id",
    "sort_activity",
    "utcnow",
    "as_utc",
    "render_review_text",
    "render_compact_line",
]
