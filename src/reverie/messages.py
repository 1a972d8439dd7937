"""Structural classification and text extraction for conversation records.

Understands Codex rollout lines (``response_item`` / ``event_msg`` records
with a ``payload``), Claude Code session lines (``user`` / ``assistant``
records with a ``message``) and bare ``{"role", "content"}`` messages.
Classification looks at record structure only, never at what the text says,
apart from the instruction markers that identify injected system prompts.
"""

import json
from typing import Any

from reverie.models import MessageType

INSTRUCTION_MARKERS = (
    "<user_instructions>",
    "<environment_context>",
    "<instructions>",
    "# agents.md instructions",
    "agents.md instructions for",
    "<system>",
    "<claude_background_info>",
    "<system-reminder>",
    "<command-name>",
    "<local-command-stdout>",
)

_TEXT_PART_TYPES = {"text", "input_text", "output_text"}
_TOOL_PAYLOAD_TYPES = {
    "function_call",
    "function_call_output",
    "custom_tool_call",
    "custom_tool_call_output",
    "local_shell_call",
    "web_search_call",
}
_SYSTEM_RECORD_TYPES = {
    "session_meta",
    "turn_context",
    "compacted",
    "summary",
    "system",
    "file-history-snapshot",
}


def parse_record(raw: str | dict[str, Any]) -> dict[str, Any] | None:
    """Decode a JSON record line; None for plain text or non-object JSON."""
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def is_json_value(raw: str) -> bool:
    """True if the line decodes as JSON of any kind, object or not."""
    try:
        json.loads(raw)
    except json.JSONDecodeError:
        return False
    return True


def contains_instruction_marker(text: str) -> bool:
    """True if the text carries an injected system prompt or harness marker."""
    lowered = text.lower()
    return any(marker in lowered for marker in INSTRUCTION_MARKERS)


def _content_text(content: Any) -> str | None:
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") in _TEXT_PART_TYPES:
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "\n".join(parts) if parts else None


def _part_texts(parts: Any) -> str | None:
    if not isinstance(parts, list):
        return None
    texts = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    return "\n".join(texts) if texts else None


def _block_types(content: Any) -> set[str]:
    if not isinstance(content, list):
        return set()
    return {block.get("type") for block in content if isinstance(block, dict)}


def _role_type(role: Any) -> MessageType:
    if role == "user":
        return MessageType.USER
    if role == "assistant":
        return MessageType.AGENT
    if role in ("system", "developer"):
        return MessageType.SYSTEM
    if role == "tool":
        return MessageType.TOOL
    return MessageType.UNKNOWN


def _classify_payload(payload: dict[str, Any]) -> MessageType:
    payload_type = payload.get("type")
    if payload_type == "message":
        return _role_type(payload.get("role"))
    if payload_type == "reasoning":
        return MessageType.REASONING
    if payload_type in _TOOL_PAYLOAD_TYPES:
        return MessageType.TOOL
    if payload_type == "user_message":
        return MessageType.USER
    if payload_type == "agent_message":
        return MessageType.AGENT
    if payload_type in ("agent_reasoning", "agent_reasoning_raw_content"):
        return MessageType.REASONING
    return MessageType.SYSTEM


def _classify_structure(record: dict[str, Any]) -> MessageType:
    record_type = record.get("type")

    payload = record.get("payload")
    if isinstance(payload, dict) and record_type in ("response_item", "event_msg"):
        return _classify_payload(payload)

    if record_type in _SYSTEM_RECORD_TYPES:
        return MessageType.SYSTEM

    message = record.get("message")
    if isinstance(message, dict) and record_type in ("user", "assistant"):
        content = message.get("content")
        block_types = _block_types(content)
        if record_type == "user":
            if "tool_result" in block_types:
                return MessageType.TOOL
            return MessageType.USER
        if "text" in block_types or isinstance(content, str):
            return MessageType.AGENT
        if "thinking" in block_types:
            return MessageType.REASONING
        if "tool_use" in block_types:
            return MessageType.TOOL
        return MessageType.UNKNOWN

    if "role" in record:
        return _role_type(record.get("role"))

    return MessageType.UNKNOWN


def classify_message_type(record: dict[str, Any]) -> MessageType:
    """Classify a record by its structure.

    User messages that are really injected instructions count as SYSTEM.
    """
    message_type = _classify_structure(record)
    if message_type is MessageType.USER:
        text = extract_text_content(record)
        if text and contains_instruction_marker(text):
            return MessageType.SYSTEM
    return message_type


def extract_text_content(record: dict[str, Any]) -> str | None:
    """Human-readable text of a record, or None if it has none."""
    text: str | None = None

    payload = record.get("payload")
    message = record.get("message")
    if isinstance(payload, dict):
        payload_type = payload.get("type")
        if payload_type == "message":
            text = _content_text(payload.get("content"))
        elif payload_type == "reasoning":
            # Prefer the summary; raw reasoning content is often absent or encrypted
            text = _part_texts(payload.get("summary")) or _part_texts(payload.get("content"))
        elif payload_type in ("user_message", "agent_message"):
            text = payload.get("message") if isinstance(payload.get("message"), str) else None
        elif payload_type in ("agent_reasoning", "agent_reasoning_raw_content"):
            text = payload.get("text") if isinstance(payload.get("text"), str) else None
    elif isinstance(message, dict):
        content = message.get("content")
        text = _content_text(content)
        if text is None and isinstance(content, list):
            thinking = [
                block["thinking"]
                for block in content
                if isinstance(block, dict) and isinstance(block.get("thinking"), str)
            ]
            text = "\n".join(thinking) if thinking else None
    elif "content" in record:
        text = _content_text(record.get("content"))

    if text is None or not text.strip():
        return None
    return text
