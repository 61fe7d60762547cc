"""
Collaborator Interfaces

Abstract seams to the canonical store:
- CanonicalPublisher: writes an approved suggestion to its page
- PageIndex: searches and fetches canonical pages
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ...common.schemas import PageCandidate, PageRef


@dataclass
class PublishRequest:
    """What the core emits on approval"""
    title: str
    rendered_blocks: List[Dict[str, Any]]
    target_page_ref: Optional[PageRef] = None
    suggestion_id: Optional[str] = None
    is_deletion: bool = False
    # refuse to overwrite when the page's current content hashes differently
    expected_content_hash: Optional[str] = None


@dataclass
class PublishAck:
    """Acknowledgment from the publisher"""
    ok: bool
    page_ref: Optional[PageRef] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class PublisherError(Exception):
    """Canonical store rejected or failed a write"""

    def __init__(self, message: str, code: str = "API_ERROR", current_hash: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.current_hash = current_hash


class CanonicalPublisher(ABC):
    """
    Writes approved content to the canonical store.

    Implementations either return a PublishAck or raise PublisherError;
    the core treats both ``ok=False`` and an exception as a failed publish.
    """

    @abstractmethod
    def publish(self, request: PublishRequest) -> PublishAck:
        pass


class PageIndex(ABC):
    """
    Search surface over canonical pages.

    Implementations raise PageIndexUnavailable when the store cannot answer.
    """

    @abstractmethod
    async def search(self, query: str) -> List[PageCandidate]:
        pass

    @abstractmethod
    async def get_page(self, page_id: str) -> Optional[PageCandidate]:
        """The page, or None when it does not exist"""
        pass
