"""
Quota Accountant

Decides allow/deny/warn for plan usage.

Only the suggestions dimension gates an action (approval). Seats and
sources are provisioning signals: they drive warnings and never block.
The accountant never persists counters; it asks the subscription ledger
for one atomic evaluate-and-increment step.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Dict, Optional

from ..common.errors import NotFound
from ..common.schemas import (
    PlanTier,
    QuotaDimension,
    UsageSnapshot,
    as_utc,
    is_unlimited,
    utcnow,
)

logger = logging.getLogger("steward.review.quota")

WARN_PERCENT = 80
EXCEEDED_PERCENT = 100


@dataclass(frozen=True)
class QuotaEvaluation:
    """Usage of one dimension"""
    dimension: str
    used: int
    limit: Optional[int]
    percent: int
    unlimited: bool
    warn: bool
    exceeded: bool
    trial_expired: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of check_and_reserve"""
    allowed: bool
    evaluation: QuotaEvaluation
    reserved: bool = False
    message: Optional[str] = None

    @property
    def denied(self) -> bool:
        return not self.allowed


@dataclass(frozen=True)
class TrialStatus:
    active: bool
    days_remaining: Optional[int]  # None when there is no trial


@dataclass(frozen=True)
class QuotaStatus:
    """All three dimensions plus trial state, for usage meters"""
    plan: str
    suggestions: QuotaEvaluation
    seats: QuotaEvaluation
    sources: QuotaEvaluation
    trial: TrialStatus

    @property
    def upgrade_suggested(self) -> bool:
        return any(e.warn for e in (self.suggestions, self.seats, self.sources))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["upgrade_suggested"] = self.upgrade_suggested
        return data


def usage_percent(used: int, limit: int) -> int:
    """min(100, round(100 * used / max(limit, 1))) with half-up rounding"""
    denominator = max(limit, 1)
    # integer arithmetic keeps the half-up rounding exact
    return min(EXCEEDED_PERCENT, (200 * used + denominator) // (2 * denominator))


def trial_expired(usage: UsageSnapshot, now: datetime) -> bool:
    ends_at = as_utc(usage.trial_ends_at)
    return ends_at is not None and ends_at < as_utc(now)


# ============================================================================
# Subscription ledger (collaborator)
# ============================================================================

class SubscriptionLedger(ABC):
    """
    Owner of the per-team usage counters.

    ``reserve`` must run ``admit`` and the increment as one atomic step.
    """

    @abstractmethod
    def snapshot(self, team_id: str) -> UsageSnapshot:
        pass

    @abstractmethod
    def reserve(
        self,
        team_id: str,
        dimension: QuotaDimension,
        admit: Callable[[UsageSnapshot], bool],
    ) -> Optional[UsageSnapshot]:
        """
        Increment ``dimension`` if ``admit(snapshot)`` is true.

        Returns:
            The snapshot after the increment, or None when not admitted
        """
        pass

    @abstractmethod
    def release(self, team_id: str, dimension: QuotaDimension) -> UsageSnapshot:
        """Undo one reservation"""
        pass


_COUNTER_FIELDS = {
    QuotaDimension.SUGGESTIONS: "suggestions_used",
    QuotaDimension.SEATS: "seats_used",
    QuotaDimension.SOURCES: "sources_connected",
}


class InMemorySubscriptionLedger(SubscriptionLedger):
    """Process-local ledger; one lock guards every team's counters"""

    def __init__(self, snapshots: Optional[Dict[str, UsageSnapshot]] = None):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, UsageSnapshot] = dict(snapshots or {})

    @classmethod
    def from_plans(cls, teams: Dict[str, str]) -> "InMemorySubscriptionLedger":
        """Seed from a team_id -> plan name mapping"""
        return cls({
            team_id: UsageSnapshot.for_plan(team_id, PlanTier(plan))
            for team_id, plan in teams.items()
        })

    def put(self, snapshot: UsageSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.team_id] = snapshot

    def snapshot(self, team_id: str) -> UsageSnapshot:
        with self._lock:
            return self._get(team_id)

    def _get(self, team_id: str) -> UsageSnapshot:
        snapshot = self._snapshots.get(team_id)
        if snapshot is None:
            raise NotFound(f"Team not found: {team_id}")
        return snapshot

    def reserve(self, team_id, dimension, admit):
        counter = _COUNTER_FIELDS[QuotaDimension(dimension)]
        with self._lock:
            current = self._get(team_id)
            if not admit(current):
                return None
            updated = current.model_copy(update={counter: getattr(current, counter) + 1})
            self._snapshots[team_id] = updated
            return updated

    def release(self, team_id, dimension):
        counter = _COUNTER_FIELDS[QuotaDimension(dimension)]
        with self._lock:
            current = self._get(team_id)
            updated = current.model_copy(update={counter: max(0, getattr(current, counter) - 1)})
            self._snapshots[team_id] = updated
            return updated


# ============================================================================
# Accountant
# ============================================================================

class QuotaAccountant:
    """Evaluates plan usage and gates the suggestions dimension"""

    def __init__(self, ledger: SubscriptionLedger):
        self._ledger = ledger

    @property
    def ledger(self) -> SubscriptionLedger:
        return self._ledger

    def evaluate(
        self,
        usage: UsageSnapshot,
        dimension: QuotaDimension,
        now: Optional[datetime] = None,
    ) -> QuotaEvaluation:
        """
        Pure and total for any non-negative used/limit pair.

        An expired trial forces exceeded=True on the suggestions dimension
        regardless of the counters.
        """
        dimension = QuotaDimension(dimension)
        now = as_utc(now) if now else utcnow()
        used, limit = usage.counters(dimension)
        expired = dimension == QuotaDimension.SUGGESTIONS and trial_expired(usage, now)

        if is_unlimited(limit):
            return QuotaEvaluation(
                dimension=dimension.value,
                used=used,
                limit=None,
                percent=0,
                unlimited=True,
                warn=False,
                exceeded=expired,
                trial_expired=expired,
            )

        percent = usage_percent(used, limit)
        return QuotaEvaluation(
            dimension=dimension.value,
            used=used,
            limit=limit,
            percent=percent,
            unlimited=False,
            warn=percent >= WARN_PERCENT,
            exceeded=expired or percent >= EXCEEDED_PERCENT,
            trial_expired=expired,
        )

    def check_and_reserve(
        self,
        team_id: str,
        dimension: QuotaDimension,
        now: Optional[datetime] = None,
    ) -> QuotaDecision:
        """
        Allowed or Denied for one unit of ``dimension``.

        Suggestions: evaluated and incremented inside a single ledger step,
        so two concurrent approvals cannot both pass the last slot.
        Seats/sources: advisory only, always Allowed, nothing reserved.
        """
        dimension = QuotaDimension(dimension)
        now = as_utc(now) if now else utcnow()

        if dimension != QuotaDimension.SUGGESTIONS:
            evaluation = self.evaluate(self._ledger.snapshot(team_id), dimension, now)
            if evaluation.warn:
                logger.info("Team %s %s usage at %d%%", team_id, dimension.value, evaluation.percent)
            return QuotaDecision(allowed=True, evaluation=evaluation)

        seen: Dict[str, QuotaEvaluation] = {}

        def admit(snapshot: UsageSnapshot) -> bool:
            seen["evaluation"] = self.evaluate(snapshot, dimension, now)
            return not seen["evaluation"].exceeded

        updated = self._ledger.reserve(team_id, dimension, admit)
        evaluation = seen["evaluation"]

        if updated is None:
            if evaluation.trial_expired:
                message = "Your trial has expired. Please subscribe to continue approving suggestions."
            else:
                message = (
                    f"Suggestions quota exceeded. You've used {evaluation.used} "
                    f"of {evaluation.limit} suggestions this month."
                )
            logger.info("Quota denied for team %s: %s", team_id, message)
            return QuotaDecision(allowed=False, evaluation=evaluation, message=message)

        return QuotaDecision(allowed=True, evaluation=evaluation, reserved=True)

    def release(self, team_id: str, dimension: QuotaDimension = QuotaDimension.SUGGESTIONS) -> None:
        """Compensating action for a reservation whose action failed"""
        snapshot = self._ledger.release(team_id, QuotaDimension(dimension))
        logger.info("Released %s reservation for team %s (used: %d)",
                    QuotaDimension(dimension).value, team_id, snapshot.suggestions_used)

    def trial_status(self, usage: UsageSnapshot, now: Optional[datetime] = None) -> TrialStatus:
        if usage.trial_ends_at is None:
            return TrialStatus(active=True, days_remaining=None)
        now = as_utc(now) if now else utcnow()
        seconds = (as_utc(usage.trial_ends_at) - now).total_seconds()
        days = max(0, math.ceil(seconds / 86400))
        return TrialStatus(active=not trial_expired(usage, now), days_remaining=days)

    def summary(self, usage: UsageSnapshot, now: Optional[datetime] = None) -> QuotaStatus:
        now = as_utc(now) if now else utcnow()
        return QuotaStatus(
            plan=usage.plan.value,
            suggestions=self.evaluate(usage, QuotaDimension.SUGGESTIONS, now),
            seats=self.evaluate(usage, QuotaDimension.SEATS, now),
            sources=self.evaluate(usage, QuotaDimension.SOURCES, now),
            trial=self.trial_status(usage, now),
        )
