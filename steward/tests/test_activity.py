"""
Tests for Activity Projector
"""

from datetime import datetime, timedelta, timezone

import pytest

from steward.common.schemas import ActivityEntry, SourceType, Suggestion, SuggestionStatus


def _entry(occurred_at, status=SuggestionStatus.APPROVED, title="Remote work policy",
           source_type=SourceType.CHAT):
    return ActivityEntry(
        suggestion_id="sug_000000000001",
        team_id="team-a",
        resulting_status=status,
        title=title,
        source_type=source_type,
        actor_name="Dana",
        occurred_at=occurred_at,
    )


@pytest.fixture
def projector():
    from steward.review.activity import ActivityProjector
    return ActivityProjector()


class TestBucket:
    """Tests for day bucketing"""

    def test_boundaries(self, projector, now):
        midnight = now.replace(hour=0, minute=0)
        entries = [
            _entry(now),                                         # today
            _entry(midnight),                                    # today (inclusive)
            _entry(midnight - timedelta(microseconds=1)),        # yesterday
            _entry(midnight - timedelta(days=1)),                # yesterday (inclusive)
            _entry(midnight - timedelta(days=1, seconds=1)),     # last 7 days
            _entry(midnight - timedelta(days=7)),                # last 7 days (inclusive)
            _entry(midnight - timedelta(days=7, seconds=1)),     # older
        ]

        buckets = projector.bucket(entries, now)

        assert buckets.today == entries[0:2]
        assert buckets.yesterday == entries[2:4]
        assert buckets.last_7_days == entries[4:6]
        assert buckets.older == entries[6:]

    def test_future_entries_land_in_today(self, projector, now):
        future = _entry(now + timedelta(days=3))

        buckets = projector.bucket([future], now)

        assert buckets.today == [future]

    def test_partition_preserves_order_and_count(self, projector, now):
        entries = [_entry(now - timedelta(hours=h)) for h in (0, 40, 5, 300, 20, 100)]

        buckets = projector.bucket(entries, now)
        flattened = buckets.today + buckets.yesterday + buckets.last_7_days + buckets.older

        assert len(buckets) == len(entries)
        assert sorted(e.id for e in flattened) == sorted(e.id for e in entries)
        # caller order kept inside a bucket
        assert buckets.today == [entries[0], entries[2]]

    def test_midnight_uses_now_timezone(self, projector):
        tz = timezone(timedelta(hours=9))
        now = datetime(2026, 3, 14, 1, 0, tzinfo=tz)
        # 23:30 UTC on the 13th is 08:30 on the 14th in UTC+9
        entry = _entry(datetime(2026, 3, 13, 23, 30, tzinfo=timezone.utc))

        buckets = projector.bucket([entry], now)

        assert buckets.today == [entry]

    def test_naive_times_are_read_as_utc(self, projector):
        now = datetime(2026, 3, 14, 15, 0)
        today = _entry(datetime(2026, 3, 14, 9, 0))
        yesterday = _entry(datetime(2026, 3, 13, 9, 0, tzinfo=timezone.utc))

        buckets = projector.bucket([today, yesterday], now)
        stats = projector.stats([], [today, yesterday], now)

        assert today.occurred_at.tzinfo is not None
        assert buckets.today == [today]
        assert buckets.yesterday == [yesterday]
        assert stats.approved_today == 1

    def test_empty(self, projector, now):
        buckets = projector.bucket([], now)

        assert len(buckets) == 0
        assert buckets.to_dict() == {"today": [], "yesterday": [], "last_7_days": [], "older": []}


class TestFilterEntries:

    def test_filters(self, projector, now):
        entries = [
            _entry(now, SuggestionStatus.APPROVED, "Remote work policy", SourceType.CHAT),
            _entry(now, SuggestionStatus.REJECTED, "Expense policy", SourceType.DOCS),
            _entry(now, SuggestionStatus.APPROVED, "Onboarding checklist", SourceType.MEETING_AUDIO),
        ]

        assert projector.filter_entries(entries, status="approved") == [entries[0], entries[2]]
        assert projector.filter_entries(entries, source_type=SourceType.DOCS) == [entries[1]]
        assert projector.filter_entries(entries, search="POLICY") == entries[:2]
        assert projector.filter_entries(entries, status="approved", search="policy") == [entries[0]]
        assert projector.filter_entries(entries, search="  ") == entries


class TestStats:

    def _suggestion(self, status):
        return Suggestion(
            team_id="team-a",
            source_type=SourceType.CHAT,
            title="t",
            proposed_content="p",
            confidence=0.9,
            source_link="https://example.com",
            status=status,
        )

    def test_stats(self, projector, now):
        suggestions = [
            self._suggestion(SuggestionStatus.PENDING),
            self._suggestion(SuggestionStatus.PENDING),
            self._suggestion(SuggestionStatus.APPROVED),
        ]
        entries = [
            _entry(now, SuggestionStatus.APPROVED),
            _entry(now - timedelta(days=2), SuggestionStatus.APPROVED),
            _entry(now, SuggestionStatus.REJECTED),
            _entry(now, SuggestionStatus.PENDING),  # promotion, not a decision
        ]

        stats = projector.stats(suggestions, entries, now)

        assert stats.pending == 2
        assert stats.approved_today == 1
        assert stats.accuracy_rate == 67

    def test_stats_without_decisions(self, projector, now):
        stats = projector.stats([], [], now)

        assert stats.to_dict() == {"pending": 0, "approved_today": 0, "accuracy_rate": 0}
