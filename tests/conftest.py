"""Pytest fixtures for reverie tests."""

import json
from datetime import datetime, timezone

import pytest

from reverie.models import Conversation

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """A fixed 'current time' for recency calculations."""
    return NOW


@pytest.fixture
def long_record():
    """A record that passes every insight quality check."""
    return (
        "We traced the slow search requests to the embedding cache being rebuilt on "
        "every call, so the fix keeps one warm instance per worker and reuses it."
    )


@pytest.fixture
def sample_conversation(long_record):
    """A conversation updated one day before NOW."""
    return Conversation(
        id="conv-001",
        path="/tmp/rollout-conv-001.jsonl",
        created_at="2025-02-27T09:00:00Z",
        updated_at="2025-02-28T12:00:00Z",
        head_records=[long_record, "short"],
        tail_records=[
            "Finally we added a regression benchmark for query latency so the cache "
            "behaviour cannot silently break again when the worker pool is resized."
        ],
    )


def response_item(role, text):
    """A Codex rollout message line."""
    content_type = "input_text" if role == "user" else "output_text"
    return json.dumps({
        "timestamp": "2025-02-28T10:00:00Z",
        "type": "response_item",
        "payload": {
            "type": "message",
            "role": role,
            "content": [{"type": content_type, "text": text}],
        },
    })


@pytest.fixture
def rollout_segments():
    """Structured records of a conversation, as loaded by the host."""
    return [
        json.dumps({"type": "session_meta", "payload": {"id": "conv-001", "cwd": "/repo"}}),
        response_item("user", "<environment_context>\n<cwd>/repo</cwd>\n</environment_context>"),
        response_item("user", "Why is the semantic search so slow after the upgrade?"),
        json.dumps({
            "type": "response_item",
            "payload": {"type": "function_call", "name": "shell", "arguments": "{}"},
        }),
        json.dumps({
            "type": "response_item",
            "payload": {"type": "reasoning", "summary": [
                {"type": "summary_text", "text": "Checking how the embedding cache is built."},
            ]},
        }),
        response_item("assistant", "The embedding cache is rebuilt per request; caching the "
                                   "model per worker removes the slowdown."),
    ]


@pytest.fixture
def make_message():
    """Factory for Codex rollout message lines."""
    return response_item
