"""
Activity Projector

Read-only views over the append-only activity trail: day buckets for the
activity log, filters, and review statistics.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from ..common.schemas import ActivityEntry, SourceType, Suggestion, SuggestionStatus, as_utc


def midnight(now: datetime) -> datetime:
    """Start of ``now``'s day, in ``now``'s timezone"""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class ActivityBuckets:
    today: List[ActivityEntry] = field(default_factory=list)
    yesterday: List[ActivityEntry] = field(default_factory=list)
    last_7_days: List[ActivityEntry] = field(default_factory=list)
    older: List[ActivityEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.today) + len(self.yesterday) + len(self.last_7_days) + len(self.older)

    def to_dict(self) -> dict:
        return {
            name: [e.model_dump(mode="json") for e in getattr(self, name)]
            for name in ("today", "yesterday", "last_7_days", "older")
        }


@dataclass(frozen=True)
class ReviewStats:
    pending: int
    approved_today: int
    accuracy_rate: int  # percent of decisions that were approvals

    def to_dict(self) -> dict:
        return {
            "pending": self.pending,
            "approved_today": self.approved_today,
            "accuracy_rate": self.accuracy_rate,
        }


class ActivityProjector:
    """Stateless; every method is a pure function of its inputs"""

    def bucket(self, entries: Iterable[ActivityEntry], now: datetime) -> ActivityBuckets:
        """
        Partition entries by day relative to ``now``.

        today:       [midnight(now), ...)   (future-dated entries included)
        yesterday:   [midnight(now) - 1d, midnight(now))
        last_7_days: [midnight(now) - 7d, midnight(now) - 1d)
        older:       everything before

        Caller order is preserved within each bucket.
        """
        now = as_utc(now)
        start_today = midnight(now)
        start_yesterday = start_today - timedelta(days=1)
        start_week = start_today - timedelta(days=7)

        buckets = ActivityBuckets()
        for entry in entries:
            occurred = as_utc(entry.occurred_at)
            if occurred >= start_today:
                buckets.today.append(entry)
            elif occurred >= start_yesterday:
                buckets.yesterday.append(entry)
            elif occurred >= start_week:
                buckets.last_7_days.append(entry)
            else:
                buckets.older.append(entry)
        return buckets

    def filter_entries(
        self,
        entries: Iterable[ActivityEntry],
        status: Optional[SuggestionStatus] = None,
        source_type: Optional[SourceType] = None,
        search: Optional[str] = None,
    ) -> List[ActivityEntry]:
        """Filter by resulting status, source type and case-insensitive title substring"""
        needle = search.strip().lower() if search else ""
        result = []
        for entry in entries:
            if status is not None and entry.resulting_status != SuggestionStatus(status):
                continue
            if source_type is not None and entry.source_type != SourceType(source_type):
                continue
            if needle and needle not in entry.title.lower():
                continue
            result.append(entry)
        return result

    def stats(
        self,
        suggestions: Iterable[Suggestion],
        entries: Iterable[ActivityEntry],
        now: datetime,
    ) -> ReviewStats:
        now = as_utc(now)
        pending = sum(1 for s in suggestions if s.status == SuggestionStatus.PENDING)

        start_today = midnight(now)
        decisions = [e for e in entries if e.resulting_status.is_terminal]
        approved = [e for e in decisions if e.resulting_status == SuggestionStatus.APPROVED]
        approved_today = sum(1 for e in approved if as_utc(e.occurred_at) >= start_today)

        # half-up rounding
        accuracy = (200 * len(approved) + len(decisions)) // (2 * len(decisions)) if decisions else 0
        return ReviewStats(pending=pending, approved_today=approved_today, accuracy_rate=accuracy)
