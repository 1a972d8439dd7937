"""Build a search query from the current conversation when none is given."""

from collections.abc import Sequence

from reverie.config import ReverieSettings, get_settings
from reverie.messages import (
    classify_message_type,
    extract_text_content,
    is_json_value,
    parse_record,
)
from reverie.models import BlockType, ConversationBlock, MessageType
from reverie.scoring import has_code_marker

MIN_BLOCK_CHARS = 20
MAX_BLOCKS = 10
IMPLEMENTATION_MIN_CHARS = 300

# (block type, base weight) per message type
_BLOCK_WEIGHTS = {
    MessageType.USER: (BlockType.USER_REQUEST, 1.3),
    MessageType.AGENT: (BlockType.AGENT_RESPONSE, 1.0),
    MessageType.REASONING: (BlockType.AGENT_RESPONSE, 0.9),
}
# Unclassifiable records; tool and system records are dropped before lookup
_DEFAULT_BLOCK_WEIGHT = (BlockType.AGENT_RESPONSE, 0.5)


def _recency_weight(idx: int, total: int) -> float:
    return 0.5 + (idx / total) * 0.5


def extract_conversation_blocks(messages: Sequence[str]) -> list[ConversationBlock]:
    """Weighted blocks of the current conversation, heaviest first (at most 10).

    JSON messages are weighted by structural role and position, with tool and
    system records left out; plain text messages count as user requests
    weighted by position only.
    """
    blocks: list[ConversationBlock] = []
    total = len(messages)

    for idx, message in enumerate(messages):
        recency = _recency_weight(idx, total)
        record = parse_record(message)

        if record is None:
            # Bare JSON strings, numbers and arrays carry no extractable text
            if is_json_value(message):
                continue
            trimmed = message.strip()
            if len(trimmed) >= MIN_BLOCK_CHARS:
                blocks.append(ConversationBlock(trimmed, recency, BlockType.USER_REQUEST))
            continue

        text = extract_text_content(record)
        if text is None:
            continue
        trimmed = text.strip()
        if len(trimmed) < MIN_BLOCK_CHARS:
            continue

        msg_type = classify_message_type(record)
        if msg_type in (MessageType.SYSTEM, MessageType.TOOL):
            continue
        if (
            msg_type is MessageType.AGENT
            and has_code_marker(trimmed)
            and len(trimmed) > IMPLEMENTATION_MIN_CHARS
        ):
            block_type, base_weight = BlockType.IMPLEMENTATION, 1.2
        else:
            block_type, base_weight = _BLOCK_WEIGHTS.get(msg_type, _DEFAULT_BLOCK_WEIGHT)

        blocks.append(ConversationBlock(trimmed, base_weight * recency, block_type))

    blocks.sort(key=lambda b: b.weight, reverse=True)
    return blocks[:MAX_BLOCKS]


def compose_query_from_blocks(
    blocks: Sequence[ConversationBlock], max_chars: int | None = None
) -> str:
    """Join the most telling blocks into one query string.

    Requests and implementations are preferred; agent responses fill in when
    fewer than three of those exist.
    """
    if not blocks:
        return ""
    if max_chars is None:
        max_chars = get_settings().composite_query_max_chars

    parts = [b.text for b in blocks if b.block_type is not BlockType.AGENT_RESPONSE][:3]
    if len(parts) < 3:
        parts = [b.text for b in blocks[:5]]

    return " ".join(parts)[:max_chars]


def build_composite_query(
    messages: Sequence[str], settings: ReverieSettings | None = None
) -> str:
    """Derive a search query from the current conversation's messages."""
    settings = settings or get_settings()
    blocks = extract_conversation_blocks(messages)
    return compose_query_from_blocks(blocks, settings.composite_query_max_chars)
