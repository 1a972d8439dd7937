"""End-to-end ranking over several conversations."""

import reverie
from reverie.analyzer import expanded_query
from reverie.compact import build_compact_document
from reverie.insights import apply_quality_pipeline
from reverie.models import Conversation
from reverie.ranking import build_candidate, build_message_matches, rank_candidates


def fake_semantic_scores(chunks, vocabulary):
    """Stand-in for the embedding subsystem: share of vocabulary words present."""
    return [
        sum(word in chunk.lower() for word in vocabulary) / len(vocabulary) * 2 - 1
        for chunk in chunks
    ]


def test_search_pipeline(now, sample_conversation, rollout_segments):
    unrelated = Conversation(id="conv-002", updated_at="2024-06-01T00:00:00Z")
    corpus = [
        (sample_conversation, [
            "Why is the semantic search so slow after the upgrade?",
            "The embedding cache is rebuilt per request; caching the model per worker "
            "removes the slowdown.",
        ]),
        (unrelated, [
            "Can you rename the settings page title?",
            "Renamed the title in the settings template.",
        ]),
    ]

    query = expanded_query("slow search")
    vocabulary = ["slow", "search", "cache", "latency"]

    pairs = []
    for conversation, chunks in corpus:
        candidate = build_candidate(conversation, chunks)
        scores = fake_semantic_scores(chunks, vocabulary)
        pairs.append((candidate, build_message_matches(candidate, query, scores)))

    ranked = rank_candidates(pairs, max_workers=2, now=now)

    assert [r.result.conversation.id for r in ranked] == ["conv-001", "conv-002"]
    top = ranked[0].result
    assert 0.0 <= top.relevance_score <= 1.0
    assert top.relevance_score > ranked[1].result.relevance_score
    assert top.insights  # extracted from the head/tail records

    final, stats = apply_quality_pipeline([r.result for r in ranked], limit=1)
    assert stats.final == 1
    assert final[0].conversation.id == "conv-001"

    document = build_compact_document(
        top.conversation, top.insights, query="slow search", segments=rollout_segments
    )
    assert document[: len(top.insights)] == top.insights
    assert sum(len(chunk) for chunk in document) <= 6000


def test_composite_query_feeds_ranking(now, make_message, sample_conversation):
    current = [
        make_message("user", "The semantic search feels slow again after deploying."),
        make_message("assistant", "I will profile the embedding cache first."),
    ]
    query = reverie.build_composite_query(current)
    assert "semantic search" in query

    candidate = build_candidate(sample_conversation, ["search got slow after the upgrade"])
    matches = build_message_matches(candidate, query, [0.6])
    ranked = reverie.rank_candidate(candidate, matches, now=now)
    assert ranked is not None
    assert ranked.result.matching_excerpts == ["search got slow after the upgrade"]
