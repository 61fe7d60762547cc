"""
Content Fingerprint

Stable fingerprint of a suggestion's title and proposed content, used to
spot the same knowledge change arriving twice from different artifacts.
"""

import hashlib
import re
from typing import List

_STOP_WORDS = {
    "the", "and", "for", "that", "this", "with", "from", "have", "been",
    "will", "would", "could", "should", "what", "when", "where", "which",
    "their", "there", "about", "into", "more", "some", "than", "them",
    "then", "these", "they", "were", "your",
}


def normalize_text(text: str) -> str:
    """Lowercase, collapse whitespace, drop punctuation"""
    text = re.sub(r"\s+", " ", text.lower())
    text = re.sub(r"[^\w\s]", "", text)
    return text.strip()


def extract_key_phrases(text: str) -> List[str]:
    words = [w for w in normalize_text(text).split(" ") if len(w) > 3]
    return [w for w in words if w not in _STOP_WORDS]


def _short_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def content_fingerprint(title: str, content: str) -> str:
    """title hash : key-phrase hash : content hash"""
    key_phrases = " ".join(extract_key_phrases(content)[:20])
    return ":".join([
        _short_hash(normalize_text(title)),
        _short_hash(key_phrases),
        _short_hash(normalize_text(content)),
    ])


def content_hash(text: str) -> str:
    """Hash of a page's exact text, compared before overwriting it"""
    return _short_hash(text)
