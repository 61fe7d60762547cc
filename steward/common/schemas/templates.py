"""
Review Text Templates

Renders a Suggestion to plain text for CLI review and log output.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .suggestion import Suggestion


REVIEW_TEMPLATE = """{rule}
SUGGESTION: {id}
Status: {status} | Confidence: {confidence:.0%} | Knowledge: {knowledge_type}
Source: {source_type} {source_link}
Target page: {target}
Created: {created_at}
{rule}

Title: {title}

Current content:
{current}

Proposed content:
{proposed}
{decision}{rule}"""

NEW_PAGE_TEXT = "(new page)"


def _excerpt(text: str, limit: int = 400) -> str:
    """Indent and truncate a content block"""
    if not text:
        return ""
    if len(text) > limit:
        text = text[:limit].rstrip() + "..."
    return "\n".join(f"  {line}" for line in text.split("\n"))


def _format_target(suggestion: "Suggestion") -> str:
    ref = suggestion.target_page_ref
    if ref is None:
        return "(unresolved)"
    return f"{ref.page_id} {ref.url or ''}".strip()


def render_review_text(suggestion: "Suggestion") -> str:
    """
    Render a suggestion for a human reviewer.

    The text is self-contained: what changes, where it came from, and
    whether it has been decided.
    """
    decision = ""
    if suggestion.decided_at is not None:
        decision = (
            f"\nDecided: {suggestion.status.value} by {suggestion.decided_by} "
            f"at {suggestion.decided_at.isoformat()}\n"
        )

    if suggestion.is_deletion:
        proposed = "  (delete page content)"
    else:
        proposed = _excerpt(suggestion.proposed_content) or "  (empty)"

    return REVIEW_TEMPLATE.format(
        rule="=" * 60,
        id=suggestion.id,
        status=suggestion.status.value,
        confidence=suggestion.confidence,
        knowledge_type=suggestion.knowledge_type.value,
        source_type=suggestion.source_type.value,
        source_link=suggestion.source_link,
        target=_format_target(suggestion),
        created_at=suggestion.created_at.isoformat(),
        title=suggestion.title,
        current=_excerpt(suggestion.current_content) or f"  {NEW_PAGE_TEXT}",
        proposed=proposed,
        decision=decision,
    )


def render_compact_line(suggestion: "Suggestion") -> str:
    """One-line summary for queue listings"""
    return (
        f"[{suggestion.status.value}] {suggestion.title} "
        f"({suggestion.source_type.value}, {suggestion.confidence:.2f})"
    )
