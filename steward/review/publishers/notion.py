"""
Notion Collaborators

NotionPublisher writes approved suggestions to Notion pages and
NotionPageIndex searches them, both over the Notion REST API.

Notion limits:
- block listings are paginated (``has_more`` / ``next_cursor``)
- one append or page create carries at most 100 children
- 429, 409 and 503 are transient and retried with backoff
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ...common.config import NotionConfig
from ...common.errors import PageIndexUnavailable
from ...common.fingerprint import content_hash
from ...common.schemas import PageCandidate, PageRef
from .base import CanonicalPublisher, PageIndex, PublishAck, PublishRequest, PublisherError

logger = logging.getLogger("steward.review.notion")

SEARCH_PAGE_SIZE = 10
BLOCK_PAGE_SIZE = 100
APPEND_BATCH_SIZE = 100
EXCERPT_LENGTH = 280

RETRY_STATUSES = {409, 429, 503}
MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 10.0


def _headers(config: NotionConfig) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {config.api_key}",
        "Notion-Version": config.api_version,
        "Content-Type": "application/json",
    }


def _plain_text(rich_text: List[Dict[str, Any]]) -> str:
    # API responses carry plain_text; blocks we render carry text.content
    return "".join(
        t.get("plain_text") or t.get("text", {}).get("content", "") for t in rich_text
    )


def extract_title(page: Dict[str, Any]) -> str:
    """Page title from whichever property has type 'title'"""
    properties = page.get("properties", {})
    for prop in properties.values():
        if prop.get("type") == "title":
            title = _plain_text(prop.get("title", []))
            if title:
                return title
    return "Untitled"


def extract_block_text(block: Dict[str, Any]) -> str:
    block_type = block.get("type", "")
    return _plain_text(block.get(block_type, {}).get("rich_text", []))


def page_text(blocks: List[Dict[str, Any]]) -> str:
    """Text of every non-empty block, one per line"""
    return "\n".join(t for t in (extract_block_text(b) for b in blocks) if t)


def retry_delay(response: httpx.Response, attempt: int) -> float:
    """
    Seconds to wait before retrying a transient failure.

    429 honors Retry-After when given, 409 backs off linearly, everything
    else exponentially up to MAX_DELAY_SECONDS.
    """
    if response.status_code == 429:
        retry_after = response.headers.get("retry-after", "").strip()
        if retry_after.isdigit():
            return float(retry_after)
    if response.status_code == 409:
        return BASE_DELAY_SECONDS * attempt
    return min(BASE_DELAY_SECONDS * 2 ** attempt, MAX_DELAY_SECONDS)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.status_code == 401:
        raise PublisherError(f"Notion rejected credentials during {action}", code="NOT_CONNECTED")
    if response.status_code == 404:
        raise PublisherError(f"Notion object not found during {action}", code="NOT_FOUND")
    if response.status_code == 429:
        raise PublisherError(f"Notion rate limited {action}; try again in a few minutes",
                             code="RATE_LIMITED")
    if response.status_code >= 400:
        raise PublisherError(
            f"Notion returned {response.status_code} during {action}: {response.text[:200]}"
        )


class NotionPublisher(CanonicalPublisher):
    """
    Replaces a page's blocks with the rendered suggestion.

    With no target page, a new page is created under the configured
    parent page and its reference is returned in the acknowledgment.
    When the request carries ``expected_content_hash`` and the page's
    current text hashes differently, nothing is written and a CONFLICT
    PublisherError is raised.
    """

    def __init__(
        self,
        config: NotionConfig,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._client = client or httpx.Client(
            base_url=config.api_base,
            headers=_headers(config),
            timeout=httpx.Timeout(config.timeout_seconds),
        )
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def publish(self, request: PublishRequest) -> PublishAck:
        try:
            if request.target_page_ref is None:
                return self._create_page(request)
            return self._replace_children(request)
        except httpx.HTTPError as e:
            raise PublisherError(f"Notion request failed: {e}") from e

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        attempt = 1
        while True:
            response = self._client.request(method, url, **kwargs)
            if response.status_code not in RETRY_STATUSES or attempt >= MAX_ATTEMPTS:
                return response
            delay = retry_delay(response, attempt)
            logger.info("Notion %s %s returned %d, retry %d/%d in %.1fs",
                        method, url, response.status_code, attempt, MAX_ATTEMPTS - 1, delay)
            self._sleep(delay)
            attempt += 1

    def _create_page(self, request: PublishRequest) -> PublishAck:
        if not self._config.parent_page_id:
            raise PublisherError("No target page and no parent page configured", code="NOT_FOUND")

        blocks = request.rendered_blocks
        response = self._request("POST", "/pages", json={
            "parent": {"page_id": self._config.parent_page_id},
            "properties": {
                "title": {"title": [{"type": "text", "text": {"content": request.title}}]},
            },
            "children": blocks[:APPEND_BATCH_SIZE],
        })
        _raise_for_status(response, "page create")
        page = response.json()
        self._append_children(page["id"], blocks[APPEND_BATCH_SIZE:])

        logger.info("Created Notion page %s for %s (%d blocks)",
                    page.get("id"), request.suggestion_id, len(blocks))
        return PublishAck(
            ok=True,
            page_ref=PageRef(page_id=page["id"], url=page.get("url")),
            details={"content_hash": content_hash(page_text(blocks))},
        )

    def _replace_children(self, request: PublishRequest) -> PublishAck:
        page_ref = request.target_page_ref
        existing = self._list_children(page_ref.page_id)

        if request.expected_content_hash:
            current = content_hash(page_text(existing))
            if current != request.expected_content_hash:
                logger.info("Conflict on page %s: expected %s, found %s",
                            page_ref.page_id, request.expected_content_hash, current)
                raise PublisherError(
                    "Page content has been modified since you last viewed it. "
                    "Please refresh and try again.",
                    code="CONFLICT",
                    current_hash=current,
                )

        for block in existing:
            deleted = self._request("DELETE", f"/blocks/{block['id']}")
            if deleted.status_code >= 400:
                logger.warning("Could not delete block %s: %s", block["id"], deleted.status_code)

        self._append_children(page_ref.page_id, request.rendered_blocks)

        logger.info("Updated Notion page %s (%d blocks)", page_ref.page_id, len(request.rendered_blocks))
        return PublishAck(
            ok=True,
            page_ref=page_ref,
            details={"content_hash": content_hash(page_text(request.rendered_blocks))},
        )

    def _list_children(self, block_id: str) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []
        cursor = None
        while True:
            params: Dict[str, Any] = {"page_size": BLOCK_PAGE_SIZE}
            if cursor:
                params["start_cursor"] = cursor
            response = self._request("GET", f"/blocks/{block_id}/children", params=params)
            _raise_for_status(response, "block list")

            body = response.json()
            blocks.extend(body.get("results", []))
            cursor = body.get("next_cursor")
            if not body.get("has_more") or not cursor:
                return blocks

    def _append_children(self, block_id: str, blocks: List[Dict[str, Any]]) -> None:
        for start in range(0, len(blocks), APPEND_BATCH_SIZE):
            response = self._request(
                "PATCH",
                f"/blocks/{block_id}/children",
                json={"children": blocks[start:start + APPEND_BATCH_SIZE]},
            )
            _raise_for_status(response, "block append")


class NotionPageIndex(PageIndex):
    """
    Page search backed by Notion's search endpoint.

    Search and lookup failures raise PageIndexUnavailable; a missing page
    is None, not an error.
    """

    def __init__(
        self,
        config: NotionConfig,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.api_base,
            headers=_headers(config),
            timeout=httpx.Timeout(config.timeout_seconds),
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        attempt = 1
        while True:
            response = await self._client.request(method, url, **kwargs)
            if response.status_code not in RETRY_STATUSES or attempt >= MAX_ATTEMPTS:
                return response
            delay = retry_delay(response, attempt)
            logger.info("Notion %s %s returned %d, retry %d/%d in %.1fs",
                        method, url, response.status_code, attempt, MAX_ATTEMPTS - 1, delay)
            await self._sleep(delay)
            attempt += 1

    async def search(self, query: str) -> List[PageCandidate]:
        try:
            response = await self._request("POST", "/search", json={
                "query": query,
                "filter": {"property": "object", "value": "page"},
                "page_size": SEARCH_PAGE_SIZE,
            })
            _raise_for_status(response, "search")
        except (httpx.HTTPError, PublisherError) as e:
            raise PageIndexUnavailable(f"Notion page search failed: {e}") from e

        pages = [p for p in response.json().get("results", []) if p.get("object") == "page"]
        return list(await asyncio.gather(*(self._to_candidate(p) for p in pages)))

    async def get_page(self, page_id: str) -> Optional[PageCandidate]:
        try:
            response = await self._request("GET", f"/pages/{page_id}")
            if response.status_code == 404:
                return None
            _raise_for_status(response, "page fetch")
        except (httpx.HTTPError, PublisherError) as e:
            raise PageIndexUnavailable(f"Notion page lookup failed for {page_id}: {e}") from e
        return await self._to_candidate(response.json())

    async def _to_candidate(self, page: Dict[str, Any]) -> PageCandidate:
        return PageCandidate(
            id=page["id"],
            url=page.get("url", ""),
            title=extract_title(page),
            excerpt=await self._excerpt(page["id"]),
        )

    async def _excerpt(self, page_id: str) -> str:
        try:
            response = await self._request(
                "GET",
                f"/blocks/{page_id}/children",
                params={"page_size": BLOCK_PAGE_SIZE},
            )
            _raise_for_status(response, "block list")
        except (httpx.HTTPError, PublisherError) as e:
            logger.warning("Could not fetch blocks for page %s: %s", page_id, e)
            return ""

        return page_text(response.json().get("results", []))[:EXCERPT_LENGTH]
