"""
Context assembly for generation.

ContextBuilder turns a ranked result list and its quality tier into bounded
prompt context:

- not a search            -> ""
- search, no records      -> NO_RESULTS_SENTINEL
- search, low quality     -> LOW_CONFIDENCE_PREFIX + up to N record blocks,
                             each marked low confidence
- search, high quality    -> up to N record blocks, only the first marked
                             high confidence

build_turns_context() renders recent chat turns under a fixed character
budget, stopping before the first line that would overflow it.
"""

import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .prompts import NO_RESULTS_SENTINEL, LOW_CONFIDENCE_PREFIX
from .quality import QualityAssessment, QUALITY_HIGH, QUALITY_LOW
from .session import ChatTurn, USER

TURNS_HEADER = "Recent chat context (most recent last):\n\n"

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_relative_time(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human-readable age of a visit ("5 minutes ago", "2 weeks ago")."""
    if when is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    seconds = (now - when).total_seconds()
    if seconds < 60:
        return "just now"

    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{_plural(minutes, 'minute')} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{_plural(hours, 'hour')} ago"
    days = hours // 24
    if days < 7:
        return f"{_plural(days, 'day')} ago"
    if days < 30:
        return f"{_plural(days // 7, 'week')} ago"
    if days < 365:
        return f"{_plural(days // 30, 'month')} ago"
    return f"{_plural(days // 365, 'year')} ago"


def format_visits(visit_count: Optional[int]) -> str:
    if not visit_count or visit_count <= 1:
        return "1 visit"
    return f"{visit_count} visits"


def excerpt(record, max_chars: int = 200) -> str:
    """Summary (preferred) or snippet, whitespace-collapsed and trimmed."""
    text = collapse_whitespace(getattr(record, "summary", "") or getattr(record, "snippet", ""))
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


class ContextBuilder:
    """Builds deterministic, bounded context text from search results."""

    def __init__(self, max_records: int = 3, excerpt_chars: int = 200):
        self.max_records = max_records
        self.excerpt_chars = excerpt_chars

    def build(
        self,
        records: Sequence,
        assessment: QualityAssessment,
        is_search_query: bool,
        now: Optional[datetime] = None,
    ) -> str:
        if not is_search_query:
            return ""
        if not records:
            return NO_RESULTS_SENTINEL

        blocks = []
        for index, record in enumerate(records[: self.max_records]):
            if assessment.quality == QUALITY_HIGH:
                confidence = "high confidence" if index == 0 else None
            elif assessment.quality == QUALITY_LOW:
                confidence = "low confidence"
            else:
                confidence = None
            blocks.append(self._render_block(record, confidence, now))

        body = "\n\n".join(blocks)
        if assessment.quality == QUALITY_LOW:
            return LOW_CONFIDENCE_PREFIX + body
        return body

    def _render_block(self, record, confidence: Optional[str], now: Optional[datetime]) -> str:
        lines = [f"### {record.title or 'Untitled'}"]
        if confidence:
            lines.append(f"Relevance: {confidence}")
        lines.append(f"Website: {record.domain or 'unknown'}")
        lines.append(f"URL: {record.url}")
        lines.append(f"Visits: {format_visits(record.visit_count)}")
        lines.append(f"Last visited: {format_relative_time(record.last_visit_at, now)}")
        text = excerpt(record, self.excerpt_chars)
        if text:
            lines.append(f"Content: {text}")
        return "\n".join(lines)


def build_turns_context(turns: List[ChatTurn], max_turns: int = 10, max_chars: int = 2000) -> str:
    """
    Render the last ``max_turns`` turns as "User:"/"Assistant:" lines.

    Lines are appended whole until the next one would push the text past
    ``max_chars``; the result never exceeds the budget.
    """
    if not turns or max_turns <= 0 or len(TURNS_HEADER) > max_chars:
        return ""

    buf = TURNS_HEADER
    for turn in turns[-max_turns:]:
        role = "User" if turn.role == USER else "Assistant"
        line = f"{role}: {collapse_whitespace(turn.content)}\n"
        if len(buf) + len(line) > max_chars:
            break
        buf += line
    return buf
