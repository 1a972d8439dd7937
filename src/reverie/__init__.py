"""Relevance ranking and excerpting for past agent conversations."""

__version__ = "0.1.0"

from reverie.analyzer import expand_query_terms, extract_technical_terms, is_technical_term
from reverie.compact import build_compact_document
from reverie.composite import build_composite_query
from reverie.insights import extract_insights
from reverie.models import (
    Conversation,
    MessageMatch,
    RankedMatch,
    SearchResult,
    SemanticCandidate,
)
from reverie.ranking import rank_candidate, rank_candidates
from reverie.scoring import score_message_importance, score_query_relevance

__all__ = [
    "Conversation",
    "MessageMatch",
    "RankedMatch",
    "SearchResult",
    "SemanticCandidate",
    "__version__",
    "build_compact_document",
    "build_composite_query",
    "expand_query_terms",
    "extract_insights",
    "extract_technical_terms",
    "is_technical_term",
    "rank_candidate",
    "rank_candidates",
    "score_message_importance",
    "score_query_relevance",
]
