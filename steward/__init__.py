"""
Steward

Keeps a team's canonical knowledge base current by turning detected
knowledge changes into suggestions that a human reviews.

Philosophy:
- Nothing reaches the canonical store without a human approval
- Every transition leaves an immutable activity entry
- Plan limits are enforced atomically at approval time

Usage:
    from steward.common import load_config
    from steward.common.schemas import Suggestion, SuggestionStatus
    from steward.review import LifecycleController, QuotaAccountant, PageResolver
    from steward.review.diff_renderer import render
"""

__version__ = "0.1.0"
