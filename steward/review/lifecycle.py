"""
Lifecycle Controller

Owns every suggestion state change and the activity trail.

State machine:
    detected -> pending -> approved
                        -> rejected
approved and rejected are terminal.

Approval order (all under the suggestion's lock):
1. Reserve one suggestion from the team's quota (atomic, may deny)
2. Publish to the canonical store
3. Commit status + activity entry
A publish failure releases the reservation and leaves the suggestion
pending, so a failed call changes nothing. So does a failed commit: the
page has been written, but the quota is given back and the suggestion can
be approved again.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from ..common.errors import (
    InvalidTransition,
    MalformedContent,
    NoOp,
    PublishFailed,
    QuotaExceeded,
    StewardError,
)
from ..common.fingerprint import content_fingerprint
from ..common.schemas import (
    ActivityEntry,
    DetectionPayload,
    PageRef,
    QuotaDimension,
    SourceType,
    Suggestion,
    SuggestionStatus,
    render_compact_line,
    utcnow,
)
from .diff_renderer import render_preview, to_canonical_blocks
from .publishers.base import CanonicalPublisher, PublishAck, PublishRequest, PublisherError
from .quota import QuotaAccountant
from .store import SuggestionStore

logger = logging.getLogger("steward.review.lifecycle")

DEFAULT_ACTOR = "User"

DECISION_STATUSES = (SuggestionStatus.APPROVED, SuggestionStatus.REJECTED)


@dataclass
class BulkResult:
    """Per-id outcome of a bulk approve/reject"""
    succeeded: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"succeeded": self.succeeded, "failed": self.failed}


class LifecycleController:
    """
    Serializes mutations per suggestion id.

    Suggestions are independent of each other except through the team's
    usage counter, which the QuotaAccountant reserves atomically.
    """

    def __init__(
        self,
        store: SuggestionStore,
        accountant: QuotaAccountant,
        publisher: CanonicalPublisher,
        default_actor: str = DEFAULT_ACTOR,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize controller.

        Args:
            store: Suggestion and activity store
            accountant: Quota gate for approvals
            publisher: Canonical-store writer called on approval
            default_actor: decided_by label when no actor is given
            clock: Source of "now" (injectable for tests)
        """
        self._store = store
        self._accountant = accountant
        self._publisher = publisher
        self._default_actor = default_actor
        self._clock = clock

    @property
    def store(self) -> SuggestionStore:
        return self._store

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def detect_and_enqueue(
        self,
        raw_detection: Union[DetectionPayload, Dict[str, Any]],
    ) -> Optional[Suggestion]:
        """
        Create a suggestion from an upstream detection.

        Returns:
            The new suggestion (pending, or detected when triage is set),
            or None when an open suggestion already covers it

        Raises:
            MalformedContent: payload missing or invalid required fields
        """
        payload = self._validate_detection(raw_detection)
        fingerprint = content_fingerprint(payload.title, payload.proposed_content)

        existing = self._store.find_open(
            team_id=payload.team_id,
            source_link=payload.source_link,
            knowledge_type=payload.knowledge_type.value,
            fingerprint=fingerprint,
        )
        if existing is not None:
            logger.info("Duplicate detection for %s (open: %s)", payload.source_link, existing.id)
            return None

        suggestion = Suggestion(
            team_id=payload.team_id,
            source=payload.source or payload.source_type.value,
            source_type=payload.source_type,
            knowledge_type=payload.knowledge_type,
            title=payload.title,
            current_content=payload.current_content or "",
            proposed_content=payload.proposed_content,
            is_deletion=payload.is_deletion,
            confidence=payload.confidence,
            status=SuggestionStatus.DETECTED if payload.triage else SuggestionStatus.PENDING,
            source_link=payload.source_link,
            content_fingerprint=fingerprint,
            created_at=self._clock(),
        )
        self._store.add(suggestion)
        logger.info("Enqueued %s %s", suggestion.id, render_compact_line(suggestion))
        return suggestion

    def _validate_detection(self, raw: Union[DetectionPayload, Dict[str, Any]]) -> DetectionPayload:
        if isinstance(raw, DetectionPayload):
            payload = raw
        else:
            try:
                payload = DetectionPayload.model_validate(raw)
            except ValidationError as e:
                fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
                raise MalformedContent(
                    f"Detection payload is malformed: {', '.join(fields)}", fields=fields
                ) from e

        if not payload.proposed_content and not payload.is_deletion:
            raise MalformedContent(
                "proposed_content may only be empty for a deletion",
                fields=["proposed_content"],
            )
        return payload

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def promote(self, suggestion_id: str, actor_name: Optional[str] = None) -> Suggestion:
        """detected -> pending"""
        with self._store.lock_for(suggestion_id):
            suggestion = self._store.get(suggestion_id)
            if suggestion.status != SuggestionStatus.DETECTED:
                raise InvalidTransition(
                    f"Cannot promote {suggestion_id}: status is {suggestion.status.value}",
                    current_status=suggestion.status.value,
                )
            updated = suggestion.model_copy(update={"status": SuggestionStatus.PENDING})
            self._store.save(updated, self._entry(updated, actor_name))
            logger.info("Promoted %s to pending", suggestion_id)
            return updated

    def transition(
        self,
        suggestion_id: str,
        target_status: SuggestionStatus,
        actor_name: Optional[str] = None,
        expected_content_hash: Optional[str] = None,
    ) -> Suggestion:
        """
        Approve or reject a pending suggestion.

        Args:
            expected_content_hash: On approve, refuse to overwrite a target
                page whose text no longer hashes to this value

        Raises:
            NotFound: unknown id
            InvalidTransition: not pending, or target is not a decision
            QuotaExceeded: approval denied by the suggestions quota
            PublishFailed: canonical-store write failed (reservation released);
                reason CONFLICT when the page changed underneath
        """
        try:
            target_status = SuggestionStatus(target_status)
        except ValueError:
            raise InvalidTransition(f"Unknown target status: {target_status}")
        if target_status not in DECISION_STATUSES:
            raise InvalidTransition(f"Cannot transition to {target_status.value}")

        with self._store.lock_for(suggestion_id):
            suggestion = self._store.get(suggestion_id)
            if suggestion.status != SuggestionStatus.PENDING:
                raise InvalidTransition(
                    f"Suggestion {suggestion_id} is {suggestion.status.value}, not pending",
                    current_status=suggestion.status.value,
                )

            update: Dict[str, Any] = {}
            approving = target_status == SuggestionStatus.APPROVED
            if approving:
                ack = self._reserve_and_publish(suggestion, expected_content_hash)
                if suggestion.target_page_ref is None and ack.page_ref is not None:
                    update["target_page_ref"] = ack.page_ref
                if ack.details.get("content_hash"):
                    update["published_content_hash"] = ack.details["content_hash"]

            actor = actor_name or self._default_actor
            update.update({
                "status": target_status,
                "decided_at": self._clock(),
                "decided_by": actor,
            })
            updated = suggestion.model_copy(update=update)
            try:
                self._store.save(updated, self._entry(updated, actor))
            except Exception:
                if approving:
                    self._accountant.release(suggestion.team_id, QuotaDimension.SUGGESTIONS)
                logger.error("Could not record %s for %s; suggestion stays pending",
                             target_status.value, suggestion_id)
                raise

        logger.info("Suggestion %s %s by %s", suggestion_id, target_status.value, actor)
        return updated

    def _reserve_and_publish(
        self,
        suggestion: Suggestion,
        expected_content_hash: Optional[str] = None,
    ) -> PublishAck:
        decision = self._accountant.check_and_reserve(
            suggestion.team_id, QuotaDimension.SUGGESTIONS, now=self._clock()
        )
        if decision.denied:
            evaluation = decision.evaluation
            raise QuotaExceeded(
                decision.message or "Suggestions quota exceeded",
                dimension=QuotaDimension.SUGGESTIONS.value,
                used=evaluation.used,
                limit=evaluation.limit,
                trial_expired=evaluation.trial_expired,
            )

        request = PublishRequest(
            title=suggestion.title,
            rendered_blocks=[] if suggestion.is_deletion else to_canonical_blocks(
                render_preview(suggestion.proposed_content)
            ),
            target_page_ref=suggestion.target_page_ref,
            suggestion_id=suggestion.id,
            is_deletion=suggestion.is_deletion,
            expected_content_hash=expected_content_hash,
        )
        try:
            ack = self._publisher.publish(request)
        except PublisherError as e:
            self._accountant.release(suggestion.team_id, QuotaDimension.SUGGESTIONS)
            logger.warning("Publish failed for %s: %s", suggestion.id, e)
            raise PublishFailed(
                f"Publishing {suggestion.id} failed: {e}",
                reason=e.code,
                current_hash=e.current_hash,
            ) from e

        if not ack.ok:
            self._accountant.release(suggestion.team_id, QuotaDimension.SUGGESTIONS)
            logger.warning("Publish rejected for %s: %s", suggestion.id, ack.error)
            raise PublishFailed(f"Publishing {suggestion.id} failed: {ack.error or 'no acknowledgment'}")

        return ack

    def transition_many(
        self,
        suggestion_ids: List[str],
        target_status: SuggestionStatus,
        actor_name: Optional[str] = None,
    ) -> BulkResult:
        """Apply transition to each id; one failure does not stop the rest"""
        result = BulkResult()
        for suggestion_id in suggestion_ids:
            try:
                self.transition(suggestion_id, target_status, actor_name)
                result.succeeded.append(suggestion_id)
            except StewardError as e:
                result.failed.append({"id": suggestion_id, "error": e.message, "code": e.code})
        return result

    def retarget(self, suggestion_id: str, page_ref: PageRef) -> Suggestion:
        """
        Point a suggestion at a different canonical page.

        Status is untouched and no activity entry is written.

        Raises:
            NotFound: unknown id
            NoOp: page_ref already is the target
        """
        with self._store.lock_for(suggestion_id):
            suggestion = self._store.get(suggestion_id)
            current = suggestion.target_page_ref
            if current is not None and current.page_id == page_ref.page_id:
                raise NoOp(f"Suggestion {suggestion_id} already targets page {page_ref.page_id}")
            updated = suggestion.model_copy(update={"target_page_ref": page_ref})
            self._store.save(updated)
        logger.info("Suggestion %s retargeted to page %s", suggestion_id, page_ref.page_id)
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, suggestion_id: str) -> Suggestion:
        return self._store.get(suggestion_id)

    def list_suggestions(
        self,
        team_id: Optional[str] = None,
        status: Optional[SuggestionStatus] = None,
        source_type: Optional[SourceType] = None,
        min_confidence: Optional[float] = None,
    ) -> List[Suggestion]:
        return self._store.list(team_id, status, source_type, min_confidence)

    def activity(self, team_id: Optional[str] = None, limit: Optional[int] = None) -> List[ActivityEntry]:
        return self._store.activity(team_id, limit)

    def _entry(self, suggestion: Suggestion, actor_name: Optional[str]) -> ActivityEntry:
        return ActivityEntry(
            suggestion_id=suggestion.id,
            team_id=suggestion.team_id,
            resulting_status=suggestion.status,
            title=suggestion.title,
            source_type=suggestion.source_type,
            actor_name=actor_name,
            occurred_at=self._clock(),
        )
