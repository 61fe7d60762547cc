"""Shared fixtures for the review tests"""

from datetime import datetime, timezone

import pytest

from steward.common.schemas import PageRef, PlanTier, UsageSnapshot
from steward.review.publishers.base import CanonicalPublisher, PublishAck, PublisherError


FIXED_NOW = datetime(2026, 3, 14, 15, 0, tzinfo=timezone.utc)


class RecordingPublisher(CanonicalPublisher):
    """Publisher double that records requests and can be told to fail"""

    content_hash = "0123456789abcdef"

    def __init__(self, fail: bool = False, ack_ok: bool = True):
        self.fail = fail
        self.ack_ok = ack_ok
        self.error = None
        self.requests = []

    def publish(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise PublisherError("Notion returned 500 during block append")
        if not self.ack_ok:
            return PublishAck(ok=False, error="rejected")
        return PublishAck(
            ok=True,
            page_ref=request.target_page_ref or PageRef(page_id="page-new"),
            details={"content_hash": self.content_hash},
        )


def make_detection(**overrides):
    data = {
        "team_id": "team-a",
        "source": "slack",
        "source_type": "chat",
        "knowledge_type": "policy",
        "title": "Remote work policy",
        "current_content": "Employees work from the office.",
        "proposed_content": "# Remote work\n\nEmployees may work remotely two days a week.",
        "confidence": 0.95,
        "source_link": "https://slack.example.com/archives/C1/p1",
    }
    data.update(overrides)
    return data


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def ledger():
    from steward.review.quota import InMemorySubscriptionLedger
    return InMemorySubscriptionLedger({
        "team-a": UsageSnapshot.for_plan("team-a", PlanTier.STARTER),
    })


@pytest.fixture
def accountant(ledger):
    from steward.review.quota import QuotaAccountant
    return QuotaAccountant(ledger)


@pytest.fixture
def store():
    from steward.review.store import SuggestionStore
    return SuggestionStore()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def controller(store, accountant, publisher):
    from steward.review.lifecycle import LifecycleController
    return LifecycleController(store, accountant, publisher, clock=lambda: FIXED_NOW)


@pytest.fixture
def detection():
    """Factory for detection payload dicts"""
    return make_detection


@pytest.fixture
def pending(controller, detection):
    """A pending suggestion for team-a"""
    return controller.detect_and_enqueue(detection())
