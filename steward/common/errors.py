"""
Error Kinds

Every core operation either returns a value or raises one of these.
The HTTP layer maps each ``code`` to a status; nothing here is swallowed.
"""

from typing import Optional


class StewardError(Exception):
    """Base class for core errors"""
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFound(StewardError):
    """Unknown suggestion or page id"""
    code = "not_found"


class InvalidTransition(StewardError):
    """Mutation of a suggestion that is not in the required state"""
    code = "invalid_transition"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class QuotaExceeded(StewardError):
    """Suggestions dimension at/over its limit, or the trial has expired"""
    code = "quota_exceeded"
    upgrade_url = "/pricing"

    def __init__(
        self,
        message: str,
        dimension: str = "suggestions",
        used: int = 0,
        limit: Optional[int] = None,
        trial_expired: bool = False,
    ):
        super().__init__(message)
        self.dimension = dimension
        self.used = used
        self.limit = limit
        self.trial_expired = trial_expired

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "quota_type": self.dimension,
            "used": self.used,
            "limit": self.limit,
            "trial_expired": self.trial_expired,
            "upgrade_url": self.upgrade_url,
        })
        return data


class PublishFailed(StewardError):
    """
    Canonical-store write failed after the quota reservation.

    ``reason`` carries the publisher's error code, e.g. CONFLICT when the
    page was edited since the reviewer last saw it.
    """
    code = "publish_failed"

    def __init__(self, message: str, reason: str = "API_ERROR", current_hash: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.current_hash = current_hash

    @property
    def conflict(self) -> bool:
        return self.reason == "CONFLICT"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        if self.current_hash is not None:
            data["current_hash"] = self.current_hash
        return data


class PageIndexUnavailable(StewardError):
    """Page search or lookup failed at the canonical store"""
    code = "page_index_unavailable"


class NoOp(StewardError):
    """
    Idempotent request that changed nothing.

    Not a failure: callers treat it as success with ``changed=False``.
    """
    code = "no_op"


class MalformedContent(StewardError):
    """Detection payload missing or carrying invalid required fields"""
    code = "malformed_content"

    def __init__(self, message: str, fields: Optional[list] = None):
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["fields"] = self.fields
        return data
