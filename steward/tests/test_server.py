"""
Tests for the review server

Components are patched into the module globals, so the lifespan (which
talks to Notion and the filesystem) never runs.
"""

import asyncio
import logging
import threading
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from steward.common.errors import PageIndexUnavailable
from steward.common.schemas import PageCandidate, PageRef, PlanTier, UsageSnapshot
from steward.review.publishers.base import CanonicalPublisher, PageIndex, PublishAck, PublisherError


class StaticPageIndex(PageIndex):
    def __init__(self):
        self.pages = {"page-1": PageCandidate(id="page-1", url="https://notion.so/page-1",
                                              title="Remote Work Policy")}

    async def search(self, query):
        return [p for p in self.pages.values() if query.lower() in p.title.lower()]

    async def get_page(self, page_id):
        return self.pages.get(page_id)


@pytest.fixture
def client(controller, store, accountant):
    from steward.review import server
    from steward.review.activity import ActivityProjector
    from steward.review.page_resolver import PageResolver

    resolver = PageResolver(StaticPageIndex(), controller, debounce_ms=0)
    with patch.object(server, "controller", controller), \
         patch.object(server, "store", store), \
         patch.object(server, "accountant", accountant), \
         patch.object(server, "resolver", resolver), \
         patch.object(server, "projector", ActivityProjector()):
        yield TestClient(server.app)


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["initialized"] is True

    def test_uninitialized_returns_503(self):
        from steward.review import server

        with patch.object(server, "controller", None):
            response = TestClient(server.app).get("/suggestions")

        assert response.status_code == 503


class TestDetections:

    def test_enqueue_and_duplicate(self, client, detection):
        first = client.post("/detections", json=detection())
        second = client.post("/detections", json=detection())

        assert first.json()["accepted"] is True
        assert first.json()["suggestion"]["status"] == "pending"
        assert second.json() == {"accepted": False, "suggestion": None}

    def test_malformed_is_422(self, client, detection):
        payload = detection()
        del payload["source_link"]

        response = client.post("/detections", json=payload)

        assert response.status_code == 422
        assert response.json()["code"] == "malformed_content"
        assert "source_link" in response.json()["fields"]


class TestDecisions:

    def test_approve(self, client, pending):
        response = client.post(f"/suggestions/{pending.id}/approve", json={"actor_name": "Dana"})

        assert response.status_code == 200
        assert response.json()["suggestion"]["status"] == "approved"
        assert response.json()["suggestion"]["decided_by"] == "Dana"

    def test_reject_without_body(self, client, pending):
        response = client.post(f"/suggestions/{pending.id}/reject")

        assert response.status_code == 200
        assert response.json()["suggestion"]["decided_by"] == "User"

    def test_second_decision_is_409(self, client, pending):
        client.post(f"/suggestions/{pending.id}/reject")

        response = client.post(f"/suggestions/{pending.id}/approve")

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_transition"

    def test_unknown_is_404(self, client):
        assert client.post("/suggestions/sug_missing/approve").status_code == 404
        assert client.get("/suggestions/sug_missing").status_code == 404

    def test_quota_exceeded_is_402(self, client, pending, ledger):
        ledger.put(UsageSnapshot.for_plan("team-a", PlanTier.STARTER, suggestions_used=20))

        response = client.post(f"/suggestions/{pending.id}/approve")

        assert response.status_code == 402
        body = response.json()
        assert body["quota_type"] == "suggestions"
        assert body["used"] == 20
        assert body["limit"] == 20
        assert body["upgrade_url"] == "/pricing"

    def test_publish_failure_is_502(self, client, pending, publisher):
        publisher.fail = True

        response = client.post(f"/suggestions/{pending.id}/approve")

        assert response.status_code == 502
        assert client.get(f"/suggestions/{pending.id}").json()["suggestion"]["status"] == "pending"

    def test_promote(self, client, controller, detection):
        suggestion = controller.detect_and_enqueue(detection(triage=True))

        response = client.post(f"/suggestions/{suggestion.id}/promote")

        assert response.json()["suggestion"]["status"] == "pending"

    def test_bulk_reject(self, client, pending):
        response = client.post("/suggestions/bulk-reject", json={"ids": [pending.id, "sug_missing"]})

        assert response.status_code == 200
        assert response.json()["succeeded"] == [pending.id]
        assert response.json()["failed"][0]["id"] == "sug_missing"


class TestReads:

    def test_get_suggestion_formatted(self, client, pending):
        body = client.get(f"/suggestions/{pending.id}").json()

        assert body["suggestion"]["id"] == pending.id
        assert f"SUGGESTION: {pending.id}" in body["formatted"]

    def test_list_filters(self, client, pending):
        assert client.get("/suggestions", params={"status": "pending"}).json()["count"] == 1
        assert client.get("/suggestions", params={"status": "approved"}).json()["count"] == 0
        assert client.get("/suggestions", params={"status": "bogus"}).status_code == 422

    def test_diff(self, client, pending):
        body = client.get(f"/suggestions/{pending.id}/diff").json()

        assert body["side_by_side"]["current"] == "Employees work from the office."
        assert body["removed_count"] == 1
        assert body["added_count"] == 2
        assert body["preview"][0] == {"kind": "heading", "level": 1, "text": "Remote work"}

    def test_activity_and_stats(self, client, pending):
        client.post(f"/suggestions/{pending.id}/approve")

        activity = client.get("/activity").json()
        grouped = client.get("/activity", params={"grouped": "true"}).json()
        stats = client.get("/stats").json()

        assert activity["count"] == 1
        assert activity["items"][0]["resulting_status"] == "approved"
        assert set(grouped["buckets"]) == {"today", "yesterday", "last_7_days", "older"}
        assert stats["pending"] == 0
        assert stats["accuracy_rate"] == 100

    def test_usage(self, client, ledger):
        ledger.put(UsageSnapshot.for_plan("team-a", PlanTier.STARTER, suggestions_used=17))

        body = client.get("/usage/team-a").json()

        assert body["plan"] == "starter"
        assert body["suggestions"]["percent"] == 85
        assert body["suggestions"]["warn"] is True
        assert body["upgrade_suggested"] is True

    def test_usage_unknown_team(self, client):
        assert client.get("/usage/nobody").status_code == 404


class TestPages:

    def test_search(self, client):
        body = client.get("/pages", params={"query": "remote"}).json()

        assert body["state"] == "results"
        assert body["candidates"][0]["id"] == "page-1"

    def test_empty_query(self, client):
        assert client.get("/pages").json()["state"] == "empty_query"

    def test_rebind_then_noop(self, client, pending):
        first = client.patch(f"/suggestions/{pending.id}/page", json={"page_id": "page-1"})
        second = client.patch(f"/suggestions/{pending.id}/page", json={"page_id": "page-1"})

        assert first.json()["changed"] is True
        assert first.json()["suggestion"]["target_page_ref"]["page_id"] == "page-1"
        assert second.status_code == 200
        assert second.json()["changed"] is False

    def test_rebind_unknown_page(self, client, pending):
        response = client.patch(f"/suggestions/{pending.id}/page", json={"page_id": "page-404"})

        assert response.status_code == 404


class FailingPageIndex(PageIndex):
    async def search(self, query):
        raise PageIndexUnavailable("Notion returned 500 during search")

    async def get_page(self, page_id):
        raise PageIndexUnavailable("Notion returned 500 during page fetch")


class TestPageIndexErrors:

    def test_search_failure_is_502(self, client, controller):
        from steward.review import server
        from steward.review.page_resolver import PageResolver

        with patch.object(server, "resolver", PageResolver(FailingPageIndex(), controller, debounce_ms=0)):
            response = client.get("/pages", params={"query": "remote"})

        assert response.status_code == 502
        assert response.json()["code"] == "page_index_unavailable"

    def test_rebind_lookup_failure_is_502(self, client, controller, pending):
        from steward.review import server
        from steward.review.page_resolver import PageResolver

        with patch.object(server, "resolver", PageResolver(FailingPageIndex(), controller, debounce_ms=0)):
            response = client.patch(f"/suggestions/{pending.id}/page", json={"page_id": "page-1"})

        assert response.status_code == 502
        assert controller.get(pending.id).target_page_ref is None

    def test_search_is_scoped_to_client(self, client):
        from steward.review import server

        client.get("/pages", params={"query": "remote", "client_id": "alice"})

        assert server.resolver.latest_generation("alice") > 0
        assert server.resolver.latest_generation("bob") == 0


class TestConflict:

    def test_edited_page_is_409(self, client, pending, publisher, ledger):
        publisher.error = PublisherError("Page content has been modified", code="CONFLICT",
                                         current_hash="fedcba9876543210")

        response = client.post(f"/suggestions/{pending.id}/approve",
                               json={"expected_content_hash": "0000000000000000"})

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "publish_failed"
        assert body["reason"] == "CONFLICT"
        assert body["current_hash"] == "fedcba9876543210"
        assert publisher.requests[0].expected_content_hash == "0000000000000000"
        assert ledger.snapshot("team-a").suggestions_used == 0

    def test_approve_returns_published_hash(self, client, pending, publisher):
        response = client.post(f"/suggestions/{pending.id}/approve")

        assert response.json()["suggestion"]["published_content_hash"] == publisher.content_hash


class BlockingPublisher(CanonicalPublisher):
    """Holds every publish until ``release`` is set"""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def publish(self, request):
        self.entered.set()
        self.release.wait(timeout=5)
        return PublishAck(ok=True, page_ref=PageRef(page_id="page-new"))


class TestBlockingCalls:

    @pytest.mark.asyncio
    async def test_slow_publish_does_not_stall_other_requests(self, store, accountant, pending):
        from steward.review import server
        from steward.review.lifecycle import LifecycleController

        publisher = BlockingPublisher()
        blocking = LifecycleController(store, accountant, publisher)
        transport = httpx.ASGITransport(app=server.app)

        with patch.object(server, "controller", blocking), patch.object(server, "store", store):
            async with httpx.AsyncClient(transport=transport, base_url="http://steward.test") as client:
                approve = asyncio.ensure_future(client.post(f"/suggestions/{pending.id}/approve"))
                assert await asyncio.to_thread(publisher.entered.wait, 5)

                health = await asyncio.wait_for(client.get("/health"), timeout=2)

                assert health.status_code == 200
                assert not approve.done()
                publisher.release.set()
                response = await approve

        assert response.json()["suggestion"]["status"] == "approved"


class TestLogging:

    def test_configure_logging_adds_file_handler(self, tmp_path):
        from steward.review import server

        with patch("logging.basicConfig") as basic_config:
            log_file = server.configure_logging("info", logs_dir=tmp_path / "logs")

        handlers = basic_config.call_args.kwargs["handlers"]
        try:
            file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
            assert log_file == tmp_path / "logs" / "steward.log"
            assert file_handlers[0].baseFilename == str(log_file)
            assert basic_config.call_args.kwargs["level"] == "INFO"
        finally:
            for handler in handlers:
                handler.close()

    def test_run_server_configures_logging(self, tmp_path):
        from steward.common.config import StewardConfig
        from steward.review import server

        with patch("uvicorn.run") as run, \
             patch.object(server, "load_dotenv"), \
             patch.object(server, "ensure_directories"), \
             patch.object(server, "load_config", return_value=StewardConfig()), \
             patch.object(server, "configure_logging", return_value=tmp_path / "steward.log") as configure:
            server.run_server()

        configure.assert_called_once_with(StewardConfig().server.log_level)
        run.assert_called_once()
