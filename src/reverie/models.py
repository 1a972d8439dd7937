"""Data models for reverie."""

from dataclasses import dataclass, field
from enum import Enum


class MessageType(Enum):
    """Structural role of a conversation record."""

    USER = "user"
    AGENT = "agent"
    REASONING = "reasoning"
    TOOL = "tool"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class BlockType(Enum):
    """Kind of block used when composing a query from the current conversation."""

    USER_REQUEST = "user_request"
    AGENT_RESPONSE = "agent_response"
    IMPLEMENTATION = "implementation"


@dataclass(frozen=True)
class Conversation:
    """A past conversation as supplied by the host.

    The head/tail records are compact textual summaries of the first and last
    records of the conversation, in order.
    """

    id: str
    path: str | None = None
    created_at: str | None = None  # ISO-8601
    updated_at: str | None = None  # ISO-8601
    head_records: list[str] = field(default_factory=list)
    tail_records: list[str] = field(default_factory=list)


@dataclass
class SemanticCandidate:
    """A conversation prepared for ranking against one query."""

    conversation: Conversation
    insights: list[str] = field(default_factory=list)
    message_chunks: list[str] = field(default_factory=list)  # chronological


@dataclass(frozen=True)
class MessageMatch:
    """Scores of one message chunk of a candidate."""

    message_idx: int
    semantic_score: float  # cosine similarity, nominally in [-1, 1]
    keyword_score: int


@dataclass
class SearchResult:
    """A ranked conversation with excerpts."""

    conversation: Conversation
    relevance_score: float
    matching_excerpts: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    reranker_score: float | None = None


@dataclass
class RankedMatch:
    """Ranking output for one candidate: the best matching text plus its result."""

    doc_text: str
    result: SearchResult


@dataclass(frozen=True)
class ConversationBlock:
    """A weighted piece of the current conversation used to compose a query."""

    text: str
    weight: float
    block_type: BlockType


@dataclass
class QualityFilterStats:
    """Counts observed at each stage of the excerpt quality pipeline."""

    initial: int = 0
    after_validity_filter: int = 0
    after_deduplication: int = 0
    final: int = 0
