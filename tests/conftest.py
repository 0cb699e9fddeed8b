"""Shared test fixtures for chatbridge tests."""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, Optional, Union

import pytest

from chatbridge.adapters.schema import ChatRequest, Message
from chatbridge.config import Settings
from chatbridge.transport import TransportResponse


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_OLLAMA_SERVER = "http://ollama.test:11434"
MOCK_OPENAI_SERVER = "https://openai.test/v1"
MOCK_API_KEY = "sk-test-123"

MOCK_TAGS_RESPONSE = {
    "models": [
        {
            "name": "llama3.2:3b",
            "model": "llama3.2:3b",
            "modified_at": "2024-10-01T12:00:00Z",
            "size": 2019393189,
            "digest": "a80c4f17acd5",
            "details": {"family": "llama", "parameter_size": "3.2B"},
        },
        {
            "name": "Qwen2.5:7b",
            "model": "Qwen2.5:7b",
            "modified_at": "2024-09-20T08:30:00Z",
            "size": 4683087332,
            "digest": "845dbda0ea48",
            "details": {"family": "qwen2", "parameter_size": "7.6B"},
        },
    ]
}

MOCK_OPENAI_MODELS_RESPONSE = {
    "object": "list",
    "data": [
        {"id": "gpt-4o-mini", "object": "model", "created": 1721172741, "owned_by": "system"},
        {"id": "gpt-4o", "object": "model", "created": 1715367049, "owned_by": "system"},
    ],
}


def ndjson(*records: dict) -> str:
    """Newline-delimited JSON body."""
    return "".join(json.dumps(r) + "\n" for r in records)


def chat_record(content: str, done: bool = False, **extra) -> dict:
    record = {
        "model": "llama3.2:3b",
        "created_at": "2024-10-01T12:00:00Z",
        "message": {"role": "assistant", "content": content},
        "done": done,
    }
    record.update(extra)
    return record


def sse_chunk(content: Optional[str] = None, finish_reason: Optional[str] = None) -> str:
    delta = {} if content is None else {"content": content}
    payload = {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(payload)}\n\n"


def sse_stream(*contents: str) -> str:
    """SSE body with one chunk per content piece, a stop chunk and [DONE]."""
    return "".join(sse_chunk(c) for c in contents) + sse_chunk(finish_reason="stop") + "data: [DONE]\n\n"


# ─────────────────────────────────────────────────────────────────────
# FAKE TRANSPORT
# ─────────────────────────────────────────────────────────────────────

HANG = object()  # body marker: block until cancelled


class FakeTransport:
    """
    In-memory Transport delivering hand-cut chunks.

    Chunks may be str (encoded as UTF-8) or bytes. HANG blocks the read
    forever, which is how a stalled server looks from the client.
    """

    def __init__(
        self,
        chunks: list[Union[str, bytes, object]],
        status_code: int = 200,
        has_body: bool = True,
    ):
        self.chunks = list(chunks)
        self.status_code = status_code
        self.has_body = has_body
        self.requests: list[dict[str, Any]] = []
        self.opened = 0
        self.closed = 0
        self.chunks_read = 0

    @asynccontextmanager
    async def stream(self, method, url, *, headers=None, json=None, cancel_token=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "json": json})
        self.opened += 1
        try:
            yield TransportResponse(
                ok=200 <= self.status_code < 300,
                status_code=self.status_code,
                body=self._body() if self.has_body else None,
            )
        finally:
            self.closed += 1

    async def _body(self):
        for chunk in self.chunks:
            if chunk is HANG:
                await asyncio.Event().wait()
            self.chunks_read += 1
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
            await asyncio.sleep(0)


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def settings():
    """Settings with both backends configured and connected."""
    return Settings(
        ollama_server=MOCK_OLLAMA_SERVER,
        ollama_server_status="connected",
        openai_server=MOCK_OPENAI_SERVER,
        openai_api_key=MOCK_API_KEY,
        openai_server_status="connected",
    )


@pytest.fixture
def settings_source(settings):
    return lambda: settings


@pytest.fixture
def chat_request():
    return ChatRequest(
        model="llama3.2:3b",
        messages=[
            Message(role="system", content="You are a helpful assistant."),
            Message(role="user", content="Say hello."),
        ],
    )
