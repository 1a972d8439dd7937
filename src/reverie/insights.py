"""Insight extraction and excerpt quality filtering."""

import logging
import re
from collections.abc import Iterable
from typing import Any

from reverie.config import ReverieSettings, get_settings
from reverie.messages import (
    classify_message_type,
    contains_instruction_marker,
    extract_text_content,
    parse_record,
)
from reverie.models import MessageType, QualityFilterStats, SearchResult

logger = logging.getLogger(__name__)

MIN_INSIGHT_CHARS = 100
MAX_INSIGHT_CHARS = 400
FINGERPRINT_CHARS = 60
MIN_UNIQUE_WORD_RATIO = 0.4

# Records that look like metadata, code or markup
_STRUCTURED_PREFIXES = ("{", "[", "```", "type:", "id:")
# Emphasis, preambles, headings and tags (checked lower-cased)
_PREAMBLE_PREFIXES = ("**", "context", "hello", "#", "<")

MIN_EXCERPT_CHARS = 20
RESULT_FINGERPRINT_CHARS = 100
BOILERPLATE_MARKERS = (
    "# agents.md instructions",
    "agents.md instructions for",
    "<instructions>",
    "<environment_context>",
    "<system>",
    "sandbox env vars",
    "tool output:",
    "approval_policy",
    "sandbox_mode",
    "network_access",
    "<cwd>",
    "</cwd>",
    "respond strictly with json",
    "<claude_background_info>",
    "</claude_background_info>",
    "function_calls",
    "<invoke",
)
_PROGRESS_SUFFIX_RE = re.compile(r"\(\d{2,3}%\)\s*$")
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def _fingerprint(record: str) -> str:
    """First 60 characters of content, after a leading timestamp line."""
    start = 0
    if record.lower().startswith("timestamp:"):
        newline = record.find("\n")
        start = newline + 1 if newline >= 0 else 0
    return record[start:start + FINGERPRINT_CHARS]


def _unique_word_ratio(text: str) -> float:
    words = text.split()
    if not words:
        return 1.0
    return len(set(words)) / len(words)


def is_insight_candidate(record: str) -> bool:
    """Quality checks for a single trimmed record."""
    if len(record) < MIN_INSIGHT_CHARS:
        return False
    if record.startswith(_STRUCTURED_PREFIXES):
        return False
    lowercase = record.lower()
    if lowercase.startswith(_PREAMBLE_PREFIXES):
        return False
    # Too repetitive
    return _unique_word_ratio(lowercase) >= MIN_UNIQUE_WORD_RATIO


def extract_insights(
    head_records: Iterable[str],
    tail_records: Iterable[str],
    limit: int | None = None,
    settings: ReverieSettings | None = None,
) -> list[str]:
    """Pick a few substantive, distinct records to summarize a conversation.

    Head records are considered before tail records. Accepted records are
    truncated to 400 characters.
    """
    if limit is None:
        limit = (settings or get_settings()).max_insights_per_conversation

    insights: list[str] = []
    seen: set[str] = set()

    for records in (head_records, tail_records):
        for record in records:
            if len(insights) >= limit:
                return insights

            trimmed = record.strip()
            if not is_insight_candidate(trimmed):
                continue

            fingerprint = _fingerprint(trimmed)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            insights.append(trimmed[:MAX_INSIGHT_CHARS])

    return insights


def extract_insight_from_record(record: dict[str, Any]) -> str | None:
    """Text of a user, agent or reasoning record; None for anything else."""
    msg_type = classify_message_type(record)
    if msg_type in (MessageType.SYSTEM, MessageType.TOOL):
        return None

    text = extract_text_content(record)
    if text is None or contains_instruction_marker(text):
        return None
    return text


def collect_conversation_insights(
    segments: Iterable[str | dict[str, Any]],
    query: str | None = None,
    limit: int = 50,
) -> list[str]:
    """All conversational text of a loaded conversation.

    When a query is given only insights containing it (case-insensitive) are kept.
    """
    query_lower = query.lower() if query else None
    insights: list[str] = []

    for raw in segments:
        if isinstance(raw, str) and not raw.strip():
            continue
        record = parse_record(raw)
        if record is None:
            continue

        insight = extract_insight_from_record(record)
        if insight is None:
            continue
        if query_lower is not None and query_lower not in insight.lower():
            continue

        insights.append(insight)
        if len(insights) >= limit:
            break

    return insights


def is_valid_excerpt(excerpt: str) -> bool:
    """Whether an excerpt is conversation rather than prompts, tool output or markup."""
    if not excerpt or len(excerpt.strip()) < MIN_EXCERPT_CHARS:
        return False

    normalized = excerpt.lower()
    if any(marker in normalized for marker in BOILERPLATE_MARKERS):
        return False

    stripped = excerpt.strip()
    # Progress counters such as "(89%)" at the end of tool output
    if _PROGRESS_SUFFIX_RE.search(stripped):
        return False

    if stripped.startswith("{") and '"file"' in excerpt:
        return False

    return len(_TAG_RE.findall(excerpt)) <= 3


def _result_fingerprint(result: SearchResult) -> str:
    excerpt = result.matching_excerpts[0] if result.matching_excerpts else ""
    return _WHITESPACE_RE.sub(" ", excerpt[:RESULT_FINGERPRINT_CHARS].lower())


def deduplicate_results(results: Iterable[SearchResult]) -> list[SearchResult]:
    """Drop results whose lead excerpt duplicates another's.

    The highest-relevance result of each group is kept, wherever it appears.
    Output is sorted by relevance, highest first.
    """
    best: dict[str, SearchResult] = {}
    for result in results:
        fingerprint = _result_fingerprint(result)
        existing = best.get(fingerprint)
        if existing is None or result.relevance_score > existing.relevance_score:
            best[fingerprint] = result
    return sorted(best.values(), key=lambda r: r.relevance_score, reverse=True)


def apply_quality_pipeline(
    results: list[SearchResult], limit: int = 10
) -> tuple[list[SearchResult], QualityFilterStats]:
    """Filter invalid excerpts, deduplicate, and keep the top results."""
    stats = QualityFilterStats(initial=len(results))

    valid = [
        r for r in results
        if r.matching_excerpts and is_valid_excerpt(r.matching_excerpts[0])
    ]
    stats.after_validity_filter = len(valid)

    deduplicated = deduplicate_results(valid)
    stats.after_deduplication = len(deduplicated)

    final = deduplicated[:limit]
    stats.final = len(final)

    logger.debug(
        "Quality pipeline: %d -> %d valid -> %d unique -> %d final",
        stats.initial,
        stats.after_validity_filter,
        stats.after_deduplication,
        stats.final,
    )
    return final, stats
