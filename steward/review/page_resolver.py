"""
Page Resolver

Search-and-select flow for re-targeting a suggestion to another canonical page.

Every search takes an increasing generation number. Only a client's newest
generation's result is acted upon: a call that finds the same client issued
a newer search, either after its debounce wait or after the page index
answers, returns SUPERSEDED and carries no candidates.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..common.errors import NoOp, NotFound, PageIndexUnavailable
from ..common.schemas import PageCandidate, Suggestion
from .lifecycle import LifecycleController
from .publishers.base import PageIndex

logger = logging.getLogger("steward.review.page_resolver")

DEFAULT_DEBOUNCE_MS = 300
DEFAULT_CLIENT = "default"


class SearchState(str, Enum):
    EMPTY_QUERY = "empty_query"
    NO_MATCHES = "no_matches"
    RESULTS = "results"
    SUPERSEDED = "superseded"


@dataclass
class SearchResult:
    state: SearchState
    generation: int
    candidates: List[PageCandidate] = field(default_factory=list)

    @property
    def superseded(self) -> bool:
        return self.state == SearchState.SUPERSEDED

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "generation": self.generation,
            "candidates": [c.model_dump() for c in self.candidates],
        }


class PageResolver:
    """
    Page search with stale-result suppression, plus rebinding.

    Generations are tracked per client, so one reviewer's typing never
    supersedes another's search.
    """

    def __init__(
        self,
        page_index: PageIndex,
        controller: LifecycleController,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ):
        self._page_index = page_index
        self._controller = controller
        self._debounce_ms = debounce_ms
        self._generations = itertools.count(1)
        self._latest: Dict[str, int] = {}

    def latest_generation(self, client_id: str = DEFAULT_CLIENT) -> int:
        return self._latest.get(client_id, 0)

    def _is_current(self, client_id: str, generation: int) -> bool:
        return self._latest.get(client_id) == generation

    async def search(
        self,
        query: str,
        debounce_ms: Optional[int] = None,
        client_id: str = DEFAULT_CLIENT,
    ) -> SearchResult:
        """
        Search the page index on behalf of ``client_id``.

        An empty or whitespace query short-circuits to EMPTY_QUERY without
        touching the index, but still claims a generation so the client's
        in-flight search is superseded.

        Raises:
            PageIndexUnavailable: the index failed and this search is still
                the client's newest (a superseded failure is SUPERSEDED)
        """
        generation = next(self._generations)
        self._latest[client_id] = generation

        query = (query or "").strip()
        if not query:
            return SearchResult(state=SearchState.EMPTY_QUERY, generation=generation)

        delay = self._debounce_ms if debounce_ms is None else debounce_ms
        if delay > 0:
            await asyncio.sleep(delay / 1000)
        if not self._is_current(client_id, generation):
            logger.debug("Search %d superseded before dispatch", generation)
            return SearchResult(state=SearchState.SUPERSEDED, generation=generation)

        try:
            candidates = await self._page_index.search(query)
        except PageIndexUnavailable as e:
            if not self._is_current(client_id, generation):
                logger.debug("Search %d failed after being superseded: %s", generation, e)
                return SearchResult(state=SearchState.SUPERSEDED, generation=generation)
            raise

        if not self._is_current(client_id, generation):
            logger.debug("Search %d superseded after response", generation)
            return SearchResult(state=SearchState.SUPERSEDED, generation=generation)

        if not candidates:
            return SearchResult(state=SearchState.NO_MATCHES, generation=generation)
        return SearchResult(state=SearchState.RESULTS, generation=generation, candidates=list(candidates))

    async def rebind(self, suggestion_id: str, page_id: str) -> Suggestion:
        """
        Point a suggestion at the selected page.

        Raises:
            NotFound: unknown suggestion or page
            NoOp: page_id is already the target
            PageIndexUnavailable: the page lookup failed
        """
        suggestion = self._controller.get(suggestion_id)
        current = suggestion.target_page_ref
        if current is not None and current.page_id == page_id:
            raise NoOp(f"Suggestion {suggestion_id} already targets page {page_id}")

        page = await self._page_index.get_page(page_id)
        if page is None:
            raise NotFound(f"Page not found: {page_id}")

        # retarget waits on the suggestion lock, which an approval holds while publishing
        return await asyncio.to_thread(self._controller.retarget, suggestion_id, page.to_ref())
