"""
Canonical Store Collaborators

Publishers write approved content; page indexes search existing pages.

Available:
- NotionPublisher / NotionPageIndex: Notion REST API
"""

from .base import CanonicalPublisher, PageIndex, PublishAck, PublishRequest, PublisherError
from .notion import NotionPublisher, NotionPageIndex

__all__ = [
    "CanonicalPublisher",
    "PageIndex",
    "PublishAck",
    "PublishRequest",
    "PublisherError",
    "NotionPublisher",
    "NotionPageIndex",
]
