"""
Steward Common Module

Shared infrastructure for the review components.
"""

from .config import StewardConfig, load_config
from .errors import (
    StewardError,
    NotFound,
    InvalidTransition,
    QuotaExceeded,
    PublishFailed,
    NoOp,
    MalformedContent,
)
from .fingerprint import content_fingerprint

__all__ = [
    "StewardConfig",
    "load_config",
    "StewardError",
    "NotFound",
    "InvalidTransition",
    "QuotaExceeded",
    "PublishFailed",
    "NoOp",
    "MalformedContent",
    "content_fingerprint",
]
