"""
Diff Renderer

Turns a suggestion's current and proposed content into three views:

- Preview: proposed content as typed blocks (heading / list / paragraph)
- Side-by-side: both texts verbatim, no alignment
- Unified: every current line removed, then every proposed line added

The unified view is a whole-block replacement, not a minimal edit script.
Nothing here mutates content; blocks only tag structure.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple, Dict, Any


NEW_PAGE_PLACEHOLDER = "No existing content - this is a new page"
# Older records stored this literal instead of an empty string
LEGACY_EMPTY_MARKER = "No existing content"

_BLOCK_SPLIT = re.compile(r"\n[ \t]*\n")
_UNORDERED_MARKER = re.compile(r"^[-*]\s*")
_ORDERED_PREFIX = re.compile(r"^\d+\.\s")
_ORDERED_MARKER = re.compile(r"^\d+\.\s*")

# Checked in order, first match wins
_HEADING_PREFIXES: List[Tuple[str, int]] = [("# ", 1), ("## ", 2), ("### ", 3)]


class BlockKind(str, Enum):
    HEADING = "heading"
    UNORDERED_LIST = "unordered_list"
    ORDERED_LIST = "ordered_list"
    PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class PreviewBlock:
    """One structural block of the preview"""
    kind: BlockKind
    text: str = ""
    level: Optional[int] = None
    items: Tuple[str, ...] = ()

    @property
    def is_list(self) -> bool:
        return self.kind in (BlockKind.UNORDERED_LIST, BlockKind.ORDERED_LIST)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value}
        if self.kind == BlockKind.HEADING:
            data.update({"level": self.level, "text": self.text})
        elif self.is_list:
            data.update({"ordered": self.kind == BlockKind.ORDERED_LIST, "items": list(self.items)})
        else:
            data["text"] = self.text
        return data


class PreviewDocument:
    """
    Lazy, restartable sequence of preview blocks.

    Each iteration re-parses the source text, so the document can be
    walked any number of times without holding parsed state.
    """

    def __init__(self, content: str):
        self._content = content or ""

    def __iter__(self) -> Iterator[PreviewBlock]:
        for raw_block in _BLOCK_SPLIT.split(self._content):
            trimmed = raw_block.strip()
            if not trimmed:
                continue
            yield classify_block(trimmed)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def to_list(self) -> List[Dict[str, Any]]:
        return [block.to_dict() for block in self]


def _list_items(block: str, marker: "re.Pattern") -> Tuple[str, ...]:
    lines = [line.strip() for line in block.split("\n") if line.strip()]
    return tuple(marker.sub("", line, count=1) for line in lines)


def classify_block(trimmed: str) -> PreviewBlock:
    """
    Tag one trimmed block.

    Order: heading prefixes, then list markers, then paragraph.
    """
    # "## " does not start with "# ", so prefix order does not shadow levels
    for prefix, level in _HEADING_PREFIXES:
        if trimmed.startswith(prefix):
            return PreviewBlock(kind=BlockKind.HEADING, text=trimmed[len(prefix):], level=level)

    if trimmed.startswith("- ") or trimmed.startswith("* "):
        return PreviewBlock(
            kind=BlockKind.UNORDERED_LIST,
            items=_list_items(trimmed, _UNORDERED_MARKER),
        )

    if _ORDERED_PREFIX.match(trimmed):
        return PreviewBlock(
            kind=BlockKind.ORDERED_LIST,
            items=_list_items(trimmed, _ORDERED_MARKER),
        )

    return PreviewBlock(kind=BlockKind.PARAGRAPH, text=trimmed)


def render_preview(proposed_content: str) -> PreviewDocument:
    return PreviewDocument(proposed_content)


# ============================================================================
# Side-by-side
# ============================================================================

@dataclass(frozen=True)
class SideBySideView:
    """Raw dual display; no alignment or semantic diffing"""
    current: str
    proposed: str
    is_new_page: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "proposed": self.proposed,
            "is_new_page": self.is_new_page,
        }


def _has_current(current_content: str) -> bool:
    return bool(current_content) and current_content != LEGACY_EMPTY_MARKER


def render_side_by_side(current_content: str, proposed_content: str) -> SideBySideView:
    is_new = not _has_current(current_content)
    return SideBySideView(
        current=NEW_PAGE_PLACEHOLDER if is_new else current_content,
        proposed=proposed_content or "",
        is_new_page=is_new,
    )


# ============================================================================
# Unified
# ============================================================================

class LineTag(str, Enum):
    REMOVED = "removed"
    ADDED = "added"


@dataclass(frozen=True)
class DiffLine:
    tag: LineTag
    number: int  # 1-based position in its own source text
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"tag": self.tag.value, "number": self.number, "text": self.text}

    def __str__(self) -> str:
        sign = "-" if self.tag == LineTag.REMOVED else "+"
        return f"{self.number:>4} {sign} {self.text}"


def _tagged_lines(content: str, tag: LineTag) -> List[DiffLine]:
    if not content:
        return []
    return [
        DiffLine(tag=tag, number=idx, text=line)
        for idx, line in enumerate(content.split("\n"), 1)
        if line.strip()
    ]


def render_unified(current_content: str, proposed_content: str) -> List[DiffLine]:
    """
    All current lines as removed, then all proposed lines as added.

    Blank lines are skipped; each block keeps its own 1-based numbering
    by source line position.
    """
    lines: List[DiffLine] = []
    if _has_current(current_content):
        lines.extend(_tagged_lines(current_content, LineTag.REMOVED))
    lines.extend(_tagged_lines(proposed_content, LineTag.ADDED))
    return lines


# ============================================================================
# Bundle
# ============================================================================

@dataclass
class DiffView:
    preview: PreviewDocument
    side_by_side: SideBySideView
    unified: List[DiffLine] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return sum(1 for line in self.unified if line.tag == LineTag.REMOVED)

    @property
    def added_count(self) -> int:
        return sum(1 for line in self.unified if line.tag == LineTag.ADDED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preview": self.preview.to_list(),
            "side_by_side": self.side_by_side.to_dict(),
            "unified": [line.to_dict() for line in self.unified],
            "removed_count": self.removed_count,
            "added_count": self.added_count,
        }


def render(current_content: str, proposed_content: str) -> DiffView:
    """Build all three views from the same pair of texts"""
    return DiffView(
        preview=render_preview(proposed_content),
        side_by_side=render_side_by_side(current_content, proposed_content),
        unified=render_unified(current_content, proposed_content),
    )


# ============================================================================
# Canonical-store blocks
# ============================================================================

def _rich_text(text: str) -> List[Dict[str, Any]]:
    return [{"type": "text", "text": {"content": text}}]


def to_canonical_blocks(blocks: PreviewDocument) -> List[Dict[str, Any]]:
    """Convert preview blocks to Notion block objects for publishing"""
    children: List[Dict[str, Any]] = []
    for block in blocks:
        if block.kind == BlockKind.HEADING:
            block_type = f"heading_{block.level}"
            children.append({"object": "block", "type": block_type, block_type: {"rich_text": _rich_text(block.text)}})
        elif block.is_list:
            block_type = (
                "numbered_list_item" if block.kind == BlockKind.ORDERED_LIST else "bulleted_list_item"
            )
            for item in block.items:
                children.append({"object": "block", "type": block_type, block_type: {"rich_text": _rich_text(item)}})
        else:
            children.append({"object": "block", "type": "paragraph", "paragraph": {"rich_text": _rich_text(block.text)}})
    return children
