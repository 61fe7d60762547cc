"""
Suggestion Store

Holds suggestions and the append-only activity trail.
Optionally persisted to a JSON file (e.g. ~/.steward/suggestions.json).

Locking:
- ``lock_for(id)`` hands out one lock per stored suggestion; callers hold
  it across a read-check-write so mutations of one suggestion are serialized.
- An internal lock guards the dicts and the file write.

Writes go to a temporary file that replaces the store file, and memory is
only updated once that succeeds, so a failed write leaves both unchanged.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..common.errors import NotFound
from ..common.schemas import (
    ActivityEntry,
    Suggestion,
    SuggestionStatus,
    SourceType,
    sort_activity,
)

logger = logging.getLogger("steward.review.store")


class SuggestionStore:
    """
    In-process store for suggestions and activity.

    Suggestions handed out are copies; writes go through ``save``.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize store.

        Args:
            path: JSON file to persist to (None keeps everything in memory)
        """
        self._path = Path(path) if path else None
        self._lock = threading.RLock()
        self._locks: Dict[str, threading.Lock] = {}
        self._suggestions: Dict[str, Suggestion] = {}
        self._activity: List[ActivityEntry] = []
        self._load()

    def _load(self) -> None:
        """Load store from disk"""
        if self._path is None or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)

            for item in data.get("suggestions", []):
                suggestion = Suggestion.model_validate(item)
                self._suggestions[suggestion.id] = suggestion
            self._activity = [
                ActivityEntry.model_validate(item) for item in data.get("activity", [])
            ]
        except (json.JSONDecodeError, IOError, ValidationError) as e:
            logger.warning("Failed to load store %s: %s", self._path, e)
            self._suggestions = {}
            self._activity = []

    def _save(self, suggestions: Dict[str, Suggestion], activity: List[ActivityEntry]) -> None:
        """Save the given state to disk"""
        if self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "suggestions": [s.model_dump(mode="json") for s in suggestions.values()],
            "activity": [a.model_dump(mode="json") for a in activity],
        }
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, self._path)
        except OSError:
            if tmp_path.is_file():
                tmp_path.unlink()
            raise

    def _commit(self, suggestions: Dict[str, Suggestion], activity: List[ActivityEntry]) -> None:
        self._save(suggestions, activity)
        self._suggestions = suggestions
        self._activity = activity

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock_for(self, suggestion_id: str) -> threading.Lock:
        """
        Raises:
            NotFound: unknown id (no lock is kept for it)
        """
        with self._lock:
            if suggestion_id not in self._suggestions:
                raise NotFound(f"Suggestion not found: {suggestion_id}")
            lock = self._locks.get(suggestion_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[suggestion_id] = lock
            return lock

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def get(self, suggestion_id: str) -> Suggestion:
        with self._lock:
            suggestion = self._suggestions.get(suggestion_id)
            if suggestion is None:
                raise NotFound(f"Suggestion not found: {suggestion_id}")
            return suggestion.model_copy(deep=True)

    def exists(self, suggestion_id: str) -> bool:
        with self._lock:
            return suggestion_id in self._suggestions

    def add(self, suggestion: Suggestion) -> Suggestion:
        with self._lock:
            suggestions = dict(self._suggestions)
            suggestions[suggestion.id] = suggestion.model_copy(deep=True)
            self._commit(suggestions, self._activity)
        return suggestion

    def save(self, suggestion: Suggestion, activity: Optional[ActivityEntry] = None) -> Suggestion:
        """
        Replace a stored suggestion, appending its activity entry in the same write.

        Raises:
            NotFound: unknown id
            OSError: the store file could not be written (nothing changed)
        """
        with self._lock:
            if suggestion.id not in self._suggestions:
                raise NotFound(f"Suggestion not found: {suggestion.id}")
            suggestions = dict(self._suggestions)
            suggestions[suggestion.id] = suggestion.model_copy(deep=True)
            entries = self._activity + [activity] if activity is not None else self._activity
            self._commit(suggestions, entries)
        return suggestion

    def list(
        self,
        team_id: Optional[str] = None,
        status: Optional[SuggestionStatus] = None,
        source_type: Optional[SourceType] = None,
        min_confidence: Optional[float] = None,
    ) -> List[Suggestion]:
        """Suggestions newest first, optionally filtered"""
        with self._lock:
            items: Iterable[Suggestion] = list(self._suggestions.values())

        if team_id is not None:
            items = [s for s in items if s.team_id == team_id]
        if status is not None:
            items = [s for s in items if s.status == SuggestionStatus(status)]
        if source_type is not None:
            items = [s for s in items if s.source_type == SourceType(source_type)]
        if min_confidence is not None:
            items = [s for s in items if s.confidence >= min_confidence]

        return [
            s.model_copy(deep=True)
            for s in sorted(items, key=lambda s: s.created_at, reverse=True)
        ]

    def find_open(
        self,
        team_id: str,
        source_link: str,
        knowledge_type: str,
        fingerprint: Optional[str] = None,
    ) -> Optional[Suggestion]:
        """An open suggestion for the same artifact + knowledge type, or the same content"""
        with self._lock:
            for suggestion in self._suggestions.values():
                if suggestion.team_id != team_id or not suggestion.is_open:
                    continue
                same_artifact = (
                    suggestion.source_link == source_link
                    and suggestion.knowledge_type.value == knowledge_type
                )
                same_content = fingerprint is not None and suggestion.content_fingerprint == fingerprint
                if same_artifact or same_content:
                    return suggestion.model_copy(deep=True)
        return None

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def activity(self, team_id: Optional[str] = None, limit: Optional[int] = None) -> List[ActivityEntry]:
        """Activity newest first"""
        with self._lock:
            entries = list(self._activity)
        if team_id is not None:
            entries = [e for e in entries if e.team_id == team_id]
        entries = sort_activity(entries)
        return entries[:limit] if limit is not None else entries

    def activity_for(self, suggestion_id: str) -> List[ActivityEntry]:
        with self._lock:
            return [e for e in self._activity if e.suggestion_id == suggestion_id]

    def get_stats(self) -> Dict[str, int]:
        """Count of suggestions per status"""
        stats = {"total": 0}
        stats.update({status.value: 0 for status in SuggestionStatus})
        with self._lock:
            for suggestion in self._suggestions.values():
                stats["total"] += 1
                stats[suggestion.status.value] += 1
        return stats
