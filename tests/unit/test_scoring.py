"""Tests for the scoring module."""

import math
from datetime import timedelta

import pytest

from reverie.config import ReverieSettings
from reverie.models import Conversation, MessageMatch
from reverie.scoring import (
    blend_similarity_scores,
    calculate_proximity_score,
    compute_conversation_importance,
    conversation_lexical_score,
    extract_ngrams,
    normalize_keyword_score,
    normalize_semantic_score,
    parse_timestamp,
    recency_score,
    score_message_importance,
    score_query_relevance,
)

FILLER = (
    "We compared several embedding backends for the local search feature and wrote "
    "down what we saw while profiling the indexing pipeline on a laptop. "
) * 2


def test_importance_of_empty_text_is_zero():
    assert score_message_importance("") == 0


def test_importance_short_question_saturates():
    """The short-text penalty never drives the score below zero."""
    assert score_message_importance("why?") == 2
    assert score_message_importance("ok") == 0


def test_importance_length_bands():
    """Medium and long texts earn length points."""
    assert score_message_importance("a" * 150) == 2
    assert score_message_importance("a" * 300) == 3
    assert score_message_importance("a" * 1000) == 0


def test_importance_code_markers():
    """Code markers add points, even for short text."""
    assert score_message_importance("class Foo") == 4
    assert score_message_importance("```\n" + "x" * 300) == 7


def test_extract_ngrams():
    assert extract_ngrams("embed") == ["emb", "mbe", "bed"]
    assert extract_ngrams("abc") == []


def test_phrase_match_bonus():
    """A verbatim phrase match alone is worth 150 points."""
    score = score_query_relevance("We hit a latency issue in prod yesterday.", "latency issue")
    assert score >= 150


def test_phrase_match_outscores_scattered_terms():
    """The same terms score higher when they appear as the exact phrase."""
    phrase = score_query_relevance("a latency issue again", "latency issue")
    scattered = score_query_relevance("issue: again latency", "latency issue")
    assert phrase > scattered


def test_query_without_terms_falls_back_to_importance():
    """Stop-word-only queries score by structure alone."""
    text = "How does the ranking work for old conversations?"
    assert score_query_relevance(text, "the and of") == score_message_importance(text)


def test_technical_term_match():
    """An exact technical identifier match is worth at least 100 points."""
    with_term = score_query_relevance("Initialise FastEmbed before indexing.", "FastEmbed")
    without_term = score_query_relevance("Initialise the model before indexing.", "FastEmbed")
    assert with_term >= 100
    assert with_term > without_term


def test_technical_term_repeats_are_capped():
    """Repeats raise the score up to three extra occurrences, then stop."""
    scores = [
        score_query_relevance(FILLER + "FastEmbed " * count, "FastEmbed")
        for count in range(1, 7)
    ]
    assert scores == sorted(scores)
    assert scores[0] < scores[3]
    assert scores[3] == scores[4] == scores[5]


def test_stemmed_match_counts():
    """Inflected forms match through the stemmer."""
    matched = score_query_relevance("One error was logged during startup", "errors")
    unmatched = score_query_relevance("Nothing was logged during startup", "errors")
    assert matched > unmatched


def test_proximity_rewards_nearby_terms():
    """Query terms close together score higher than far apart."""
    near = "cache latency " + "word " * 30
    far = "cache " + "word " * 30 + "latency"
    assert score_query_relevance(near, "cache latency") > score_query_relevance(far, "cache latency")


def test_proximity_bands():
    assert calculate_proximity_score("cache alone", ["cache", "latency"]) == 0
    assert calculate_proximity_score("cache latency", ["cache", "latency"]) == 15
    assert calculate_proximity_score("cache latency cache", ["cache", "latency"]) == 25
    assert calculate_proximity_score("cache latency " * 3, ["cache", "latency"]) == 50


def test_proximity_window_edges():
    """Hits exactly ten words apart still count; eleven apart do not."""
    terms = ["cache", "latency"]
    assert calculate_proximity_score("cache " + "word " * 9 + "latency", terms) == 15
    assert calculate_proximity_score("cache " + "word " * 10 + "latency", terms) == 0


def test_relevance_is_never_negative():
    assert score_query_relevance("", "anything at all") >= 0


def test_normalize_semantic_score():
    assert normalize_semantic_score(-1.0) == 0.0
    assert normalize_semantic_score(0.0) == 0.5
    assert normalize_semantic_score(1.0) == 1.0
    assert normalize_semantic_score(5.0) == 1.0
    assert normalize_semantic_score(-3.0) == 0.0


def test_normalize_keyword_score():
    settings = ReverieSettings(keyword_smoothing=100.0)
    assert normalize_keyword_score(0, settings) == 0.0
    assert normalize_keyword_score(100, settings) == pytest.approx(0.5)
    assert normalize_keyword_score(10_000, settings) < 1.0


def test_parse_timestamp():
    assert parse_timestamp("2025-03-01T12:00:00Z").tzinfo is not None
    assert parse_timestamp("2025-03-01T12:00:00").tzinfo is not None
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


def test_recency_score(now):
    """Recency decays with a roughly two week half-life."""
    assert recency_score(now.isoformat(), now) == pytest.approx(1.0)
    two_weeks_ago = (now - timedelta(days=14)).isoformat()
    assert recency_score(two_weeks_ago, now) == pytest.approx(math.exp(-0.7))
    assert 0.45 < recency_score(two_weeks_ago, now) < 0.55


def test_recency_score_unknown_age_is_neutral(now):
    assert recency_score(None, now) == 0.5
    assert recency_score("yesterday", now) == 0.5


def test_recency_score_future_timestamp_is_capped(now):
    future = (now + timedelta(days=3)).isoformat()
    assert recency_score(future, now) == 1.0


def test_conversation_importance():
    chunks = ["ok", "Is this a question worth asking in the design review tomorrow morning? " * 3]
    matches = [MessageMatch(0, 0.5, 0), MessageMatch(1, 0.4, 0)]
    settings = ReverieSettings(importance_divisor=20.0)
    # 5 for the question mark, 3 for the length band
    assert compute_conversation_importance(matches, chunks, settings) == pytest.approx(8 / 20)
    assert compute_conversation_importance([], chunks, settings) == 0.0


def test_blend_clamps_recency_and_importance():
    settings = ReverieSettings()
    full = blend_similarity_scores(1.0, 1.0, 1.0, 1.0, settings)
    assert full == pytest.approx(1.0)
    assert blend_similarity_scores(1.0, 1.0, 7.0, 3.0, settings) == pytest.approx(full)


def test_conversation_lexical_score():
    conversation = Conversation(
        id="c", head_records=["nothing relevant"], tail_records=["slow cache latency numbers"]
    )
    assert conversation_lexical_score(conversation, "latency") > 0
    assert conversation_lexical_score(Conversation(id="empty"), "latency") == 0
