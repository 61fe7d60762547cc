"""
Review - Suggestion Lifecycle and Review Surfaces

Key Components:
- LifecycleController: detected -> pending -> approved/rejected, with activity trail
- QuotaAccountant: plan usage evaluation and atomic approval reservation
- DiffRenderer: preview, side-by-side and unified views of a change
- PageResolver: page search with stale-result suppression, and re-targeting
- ActivityProjector: day buckets, filters and stats over the activity trail
"""

from .activity import ActivityBuckets, ActivityProjector, ReviewStats
from .diff_renderer import DiffView, render, render_preview, render_side_by_side, render_unified
from .lifecycle import BulkResult, LifecycleController
from .page_resolver import PageResolver, SearchResult, SearchState
from .quota import (
    InMemorySubscriptionLedger,
    QuotaAccountant,
    QuotaDecision,
    QuotaEvaluation,
    SubscriptionLedger,
)
from .store import SuggestionStore

__all__ = [
    "ActivityBuckets",
    "ActivityProjector",
    "ReviewStats",
    "DiffView",
    "render",
    "render_preview",
    "render_side_by_side",
    "render_unified",
    "BulkResult",
    "LifecycleController",
    "PageResolver",
    "SearchResult",
    "SearchState",
    "InMemorySubscriptionLedger",
    "QuotaAccountant",
    "QuotaDecision",
    "QuotaEvaluation",
    "SubscriptionLedger",
    "SuggestionStore",
]
