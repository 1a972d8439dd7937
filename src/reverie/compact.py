"""Size-bounded digest of a conversation for rerankers and model context."""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from reverie.config import ReverieSettings, get_settings
from reverie.messages import (
    classify_message_type,
    contains_instruction_marker,
    extract_text_content,
    parse_record,
)
from reverie.models import Conversation, MessageType
from reverie.scoring import score_message_importance, score_query_relevance

logger = logging.getLogger(__name__)


def _score_segments(
    segments: Iterable[str | dict[str, Any]],
    query: str | None,
    language: str,
) -> list[tuple[str, int]]:
    scored = []
    for raw in segments:
        record = parse_record(raw)
        if record is None:
            continue
        if classify_message_type(record) in (MessageType.SYSTEM, MessageType.TOOL):
            continue

        text = (extract_text_content(record) or "").strip()
        if not text or contains_instruction_marker(text):
            continue

        if query:
            score = score_query_relevance(text, query, language)
        else:
            score = score_message_importance(text)
        scored.append((text, score))
    return scored


def fit_to_budget(chunks: Iterable[str], max_chars: int) -> list[str]:
    """Accumulate whole chunks until the character budget is reached.

    Only an oversized first chunk is ever cut; any later chunk that does not
    fit ends the document.
    """
    selected: list[str] = []
    total = 0
    for chunk in chunks:
        trimmed = chunk.strip()
        if not trimmed:
            continue

        if total + len(trimmed) <= max_chars:
            selected.append(trimmed)
            total += len(trimmed)
        elif not selected:
            selected.append(trimmed[:max_chars])
            break
        else:
            break
    return selected


def build_compact_document(
    conversation: Conversation,
    insights: Sequence[str],
    query: str | None = None,
    segments: Sequence[str | dict[str, Any]] = (),
    settings: ReverieSettings | None = None,
) -> list[str]:
    """Digest a conversation: its insights, then its most relevant messages.

    ``segments`` are the conversation's structured records, already loaded by
    the caller. When none of them yields usable text, the head/tail records
    stand in.
    """
    settings = settings or get_settings()
    max_messages = settings.compact_max_messages
    query = query if query and query.strip() else None

    scored = _score_segments(
        segments[: settings.compact_segment_window], query, settings.language
    )
    scored.sort(key=lambda item: item[1], reverse=True)
    message_chunks = [text for text, _ in scored[:max_messages]]

    if not message_chunks:
        records = conversation.head_records + conversation.tail_records
        message_chunks = [r.strip() for r in records if r.strip()][:max_messages]

    chunks = list(insights) + message_chunks
    selected = fit_to_budget(chunks, settings.compact_max_chars)

    logger.debug(
        "Compact document for %s: %d of %d chunks, %d chars",
        conversation.id,
        len(selected),
        len(chunks),
        sum(len(c) for c in selected),
    )
    return selected
