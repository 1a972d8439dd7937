"""Lexical relevance, structural importance and score blending."""

import math
import string
from datetime import datetime, timezone

from reverie.analyzer import extract_technical_terms, get_analyzer
from reverie.config import ReverieSettings, get_settings
from reverie.models import Conversation, MessageMatch

CODE_MARKERS = ("```", "fn ", "function ", "class ")

# Points awarded by score_query_relevance
TECHNICAL_TERM_POINTS = 100
TECHNICAL_REPEAT_POINTS = 20
PHRASE_POINTS = 150
EXACT_TERM_POINTS = 25
STEMMED_TERM_POINTS = 15
TERM_REPEAT_POINTS = 5
MAX_COUNTED_REPEATS = 3
NGRAM_POINTS = 8
PROXIMITY_WINDOW = 10

# Conversation-level prefilter looks at this many head+tail records
LEXICAL_RECORD_WINDOW = 20


def has_code_marker(text: str) -> bool:
    return any(marker in text for marker in CODE_MARKERS)


def score_message_importance(text: str) -> int:
    """Score a message by structure alone (questions, length, code).

    Used when there is no query, and as a low-weight baseline otherwise.
    """
    score = 0
    length = len(text)

    if "?" in text:
        score += 5

    if 200 <= length < 1000:
        score += 3
    elif 100 <= length < 200:
        score += 2

    # Very short messages carry little information
    if length < 50:
        score = max(0, score - 3)

    if has_code_marker(text):
        score += 4

    return score


def extract_ngrams(term: str) -> list[str]:
    """Overlapping 3-character windows of a term (empty for terms under 4 chars)."""
    if len(term) < 4:
        return []
    return [term[i:i + 3] for i in range(len(term) - 2)]


def calculate_proximity_score(text: str, query_terms: list[str]) -> int:
    """Reward query terms appearing close to each other in the text."""
    words = text.split()
    hits = [any(term in word for term in query_terms) for word in words]

    max_proximity = 0
    for i, hit in enumerate(hits):
        if not hit:
            continue
        start = max(0, i - PROXIMITY_WINDOW)
        end = min(len(words), i + PROXIMITY_WINDOW + 1)
        max_proximity = max(max_proximity, sum(hits[start:end]))

    if max_proximity <= 1:
        return 0
    if max_proximity == 2:
        return 15
    if max_proximity == 3:
        return 25
    if max_proximity <= 5:
        return 35
    return 50


def score_query_relevance(text: str, query: str, language: str = "english") -> int:
    """Score a passage against a query.

    Combines technical-term hits, verbatim phrase hits, exact and stemmed
    term matches, 3-character partial matches, the share of matched terms
    and term proximity, plus a third of the structural importance score.
    The result is unbounded; callers normalize it.
    """
    analyzer = get_analyzer(language)
    query_terms = analyzer.filter_terms(query)
    if not query_terms:
        return score_message_importance(text)

    text_lower = text.lower()
    query_lower = query.lower()
    score = 0

    # Technical terms are checked before stop-word filtering
    tech_terms = dict.fromkeys(term.lower() for term in extract_technical_terms(query))
    for tech_term in tech_terms:
        occurrences = text_lower.count(tech_term)
        if occurrences:
            score += TECHNICAL_TERM_POINTS
            score += min(occurrences - 1, MAX_COUNTED_REPEATS) * TECHNICAL_REPEAT_POINTS

    if query_lower in text_lower:
        score += PHRASE_POINTS

    stemmed_query = analyzer.stem_words(query_terms)
    stemmed_text = analyzer.stem_words(
        [word.strip(string.punctuation) for word in text_lower.split()]
    )

    matched_terms = 0
    rare_term_bonus = 0
    for term, stemmed_term in zip(query_terms, stemmed_query):
        term_matched = False
        term_count = 0

        exact_count = text_lower.count(term)
        if exact_count:
            term_matched = True
            term_count += exact_count
            score += EXACT_TERM_POINTS

        # Catches plurals and tenses the substring check misses
        stemmed_count = sum(1 for word in stemmed_text if word == stemmed_term)
        if stemmed_count > exact_count:
            term_matched = True
            term_count += stemmed_count - exact_count
            score += STEMMED_TERM_POINTS

        if term_matched:
            matched_terms += 1
            if term_count > 1:
                score += min(term_count - 1, MAX_COUNTED_REPEATS) * TERM_REPEAT_POINTS
            # Longer terms tend to be more specific
            if len(term) > 8:
                rare_term_bonus += 10
            elif len(term) > 6:
                rare_term_bonus += 5

    score += rare_term_bonus

    # Partial matches, e.g. "fastembed" against "fast" and "embed"
    for term in query_terms:
        if len(term) > 5:
            score += sum(NGRAM_POINTS for gram in extract_ngrams(term) if gram in text_lower)

    match_ratio = matched_terms / len(query_terms)
    if match_ratio > 0.7:
        score += 50
    elif match_ratio > 0.5:
        score += 30
    elif match_ratio > 0.3:
        score += 15

    if matched_terms >= 2:
        score += calculate_proximity_score(text_lower, query_terms)

    score += score_message_importance(text) // 3
    return score


def normalize_semantic_score(value: float) -> float:
    """Map a cosine similarity in [-1, 1] onto [0, 1]."""
    return min(1.0, max(0.0, (value + 1.0) / 2.0))


def normalize_keyword_score(value: int, settings: ReverieSettings | None = None) -> float:
    """Saturating transform of a raw keyword score into [0, 1)."""
    if value <= 0:
        return 0.0
    smoothing = (settings or get_settings()).keyword_smoothing
    return value / (value + smoothing)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into a UTC-aware datetime, or None."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    # If naive, assume UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def recency_score(
    updated_at: str | None,
    now: datetime | None = None,
    settings: ReverieSettings | None = None,
) -> float:
    """Exponential decay over conversation age; 0.5 when the age is unknown."""
    timestamp = parse_timestamp(updated_at)
    if timestamp is None:
        return 0.5

    now = now or datetime.now(tz=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age_days = max(0.0, (now - timestamp).total_seconds()) / 86400
    decay = (settings or get_settings()).recency_decay_lambda
    return min(1.0, max(0.0, math.exp(-decay * age_days)))


def compute_conversation_importance(
    message_matches: list[MessageMatch],
    message_chunks: list[str],
    settings: ReverieSettings | None = None,
) -> float:
    """Best structural importance among the leading matches, scaled to [0, 1]."""
    if not message_matches:
        return 0.0

    best = 0
    for entry in message_matches[:8]:
        if 0 <= entry.message_idx < len(message_chunks):
            best = max(best, score_message_importance(message_chunks[entry.message_idx]))

    divisor = (settings or get_settings()).importance_divisor
    return min(1.0, max(0.0, best / divisor))


def blend_similarity_scores(
    semantic_component: float,
    keyword_component: float,
    recency_component: float,
    importance_component: float,
    settings: ReverieSettings | None = None,
) -> float:
    settings = settings or get_settings()
    return (
        semantic_component * settings.semantic_weight
        + keyword_component * settings.keyword_weight
        + min(1.0, max(0.0, recency_component)) * settings.recency_weight
        + min(1.0, max(0.0, importance_component)) * settings.importance_weight
    )


def conversation_lexical_score(
    conversation: Conversation, query: str, language: str = "english"
) -> int:
    """Best keyword score over the conversation's leading head/tail records.

    Cheap enough to prefilter conversations before loading full messages.
    """
    records = (conversation.head_records + conversation.tail_records)[:LEXICAL_RECORD_WINDOW]
    return max((score_query_relevance(record, query, language) for record in records), default=0)
