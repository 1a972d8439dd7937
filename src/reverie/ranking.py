"""Per-conversation ranking: blend message scores into one relevance score."""

import logging
import re
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from reverie.config import ReverieSettings, get_settings
from reverie.insights import extract_insights
from reverie.models import (
    Conversation,
    MessageMatch,
    RankedMatch,
    SearchResult,
    SemanticCandidate,
)
from reverie.scoring import (
    blend_similarity_scores,
    compute_conversation_importance,
    normalize_keyword_score,
    normalize_semantic_score,
    recency_score,
    score_query_relevance,
)

logger = logging.getLogger(__name__)

# Matches averaged for the semantic component, and excerpts per result
TOP_MATCHES = 3

_WHITESPACE_RE = re.compile(r"\s+")


def build_excerpt(text: str, max_chars: int | None = None) -> str:
    """Collapse whitespace and cap the length, marking truncation with an ellipsis."""
    if max_chars is None:
        max_chars = get_settings().excerpt_max_chars
    collapsed = _WHITESPACE_RE.sub(" ", text).strip()
    if len(collapsed) <= max_chars:
        return collapsed
    return collapsed[: max_chars - 1].rstrip() + "…"


def build_candidate(
    conversation: Conversation,
    message_chunks: Sequence[str],
    settings: ReverieSettings | None = None,
) -> SemanticCandidate:
    """Prepare a conversation for ranking, extracting its insights once."""
    return SemanticCandidate(
        conversation=conversation,
        insights=extract_insights(
            conversation.head_records, conversation.tail_records, settings=settings
        ),
        message_chunks=list(message_chunks),
    )


def build_message_matches(
    candidate: SemanticCandidate,
    query: str,
    semantic_scores: Sequence[float],
    language: str = "english",
) -> list[MessageMatch]:
    """Pair each chunk's semantic score with its keyword score for the query.

    Chunks with neither a semantic nor a keyword signal are left out.
    """
    if len(semantic_scores) != len(candidate.message_chunks):
        raise ValueError(
            f"got {len(semantic_scores)} semantic scores for "
            f"{len(candidate.message_chunks)} message chunks"
        )

    matches = []
    for idx, (chunk, semantic) in enumerate(zip(candidate.message_chunks, semantic_scores)):
        keyword = score_query_relevance(chunk, query, language) if query.strip() else 0
        if semantic != 0 or keyword > 0:
            matches.append(MessageMatch(idx, float(semantic), keyword))
    return matches


def rank_candidate(
    candidate: SemanticCandidate,
    message_matches: Iterable[MessageMatch],
    settings: ReverieSettings | None = None,
    now: datetime | None = None,
) -> RankedMatch | None:
    """Rank one candidate from its per-message matches.

    Returns None when there is nothing to rank. The primary document is the
    chunk with the best semantic score (keyword score breaks ties), even when
    another chunk has a higher keyword score.
    """
    settings = settings or get_settings()
    chunks = candidate.message_chunks
    conversation_id = candidate.conversation.id

    matches = []
    for entry in message_matches:
        if 0 <= entry.message_idx < len(chunks):
            matches.append(entry)
        else:
            logger.warning(
                "Dropping match with invalid message index %d for conversation %s (%d chunks)",
                entry.message_idx,
                conversation_id,
                len(chunks),
            )
    if not matches:
        return None

    matches.sort(key=lambda m: (m.semantic_score, m.keyword_score), reverse=True)

    doc_text = chunks[matches[0].message_idx]
    top = matches[:TOP_MATCHES]
    avg_semantic = sum(m.semantic_score for m in top) / len(top)
    best_keyword = max(m.keyword_score for m in top)

    semantic_component = normalize_semantic_score(avg_semantic)
    keyword_component = normalize_keyword_score(best_keyword, settings)
    recency_component = recency_score(candidate.conversation.updated_at, now, settings)
    importance_component = compute_conversation_importance(matches, chunks, settings)
    blended = blend_similarity_scores(
        semantic_component,
        keyword_component,
        recency_component,
        importance_component,
        settings,
    )
    relevance = min(1.0, max(0.0, blended))

    logger.debug(
        "Ranked %s: semantic=%.3f keyword=%.3f recency=%.3f importance=%.3f -> %.3f",
        conversation_id,
        semantic_component,
        keyword_component,
        recency_component,
        importance_component,
        relevance,
    )

    excerpts = []
    for entry in top:
        excerpt = build_excerpt(chunks[entry.message_idx], settings.excerpt_max_chars)
        if excerpt:
            excerpts.append(excerpt)
    if not excerpts:
        fallback = build_excerpt(doc_text, settings.excerpt_max_chars)
        if fallback:
            excerpts.append(fallback)

    return RankedMatch(
        doc_text=doc_text,
        result=SearchResult(
            conversation=candidate.conversation,
            relevance_score=relevance,
            matching_excerpts=excerpts,
            insights=list(candidate.insights),
        ),
    )


def rank_candidates(
    pairs: Iterable[tuple[SemanticCandidate, Sequence[MessageMatch]]],
    settings: ReverieSettings | None = None,
    max_workers: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[RankedMatch]:
    """Rank independent candidates concurrently, best first."""
    settings = settings or get_settings()
    pairs = list(pairs)
    if not pairs:
        return []

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(rank_candidate, candidate, matches, settings, now)
            for candidate, matches in pairs
        ]
        ranked = [f.result() for f in futures]

    results = [r for r in ranked if r is not None]
    results.sort(key=lambda r: r.result.relevance_score, reverse=True)

    logger.debug("Ranked %d of %d candidates", len(results), len(pairs))
    if limit is not None:
        results = results[:limit]
    return results
