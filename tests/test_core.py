"""Tests for chatbridge.core: dispatch, callback delivery, connectivity."""

import asyncio

import httpx
import pytest
import respx

from chatbridge.adapters.ollama import OllamaAdapter
from chatbridge.adapters.openai import OpenAIAdapter
from chatbridge.adapters.schema import BackendKind, Model, PullRequest
from chatbridge.cancellation import CancellationToken
from chatbridge.core import (
    build_catalog,
    chat,
    get_chat_strategy,
    is_server_connected,
    pull_model,
)
from chatbridge.errors import BackendReportedError, UnsupportedBackendError
from chatbridge.transport import HttpxTransport
from tests.conftest import (
    HANG,
    MOCK_OLLAMA_SERVER,
    MOCK_OPENAI_MODELS_RESPONSE,
    MOCK_OPENAI_SERVER,
    MOCK_TAGS_RESPONSE,
    FakeTransport,
    chat_record,
    ndjson,
    sse_stream,
)


OLLAMA_MODEL = Model(name="llama3.2:3b", backend=BackendKind.OLLAMA)
OPENAI_MODEL = Model(name="gpt-4o-mini", backend=BackendKind.OPENAI)


# ─────────────────────────────────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────────────────────────────────

class TestGetChatStrategy:
    def test_ollama_model(self, settings_source):
        assert isinstance(get_chat_strategy(OLLAMA_MODEL, settings_source), OllamaAdapter)

    def test_openai_model(self, settings_source):
        assert isinstance(get_chat_strategy(OPENAI_MODEL, settings_source), OpenAIAdapter)

    def test_unknown_backend_fails_loudly(self, settings_source):
        rogue = Model.model_construct(name="mystery", backend="llamafile")

        with pytest.raises(UnsupportedBackendError, match="Invalid model specified"):
            get_chat_strategy(rogue, settings_source)

    def test_new_adapter_per_call(self, settings_source):
        first = get_chat_strategy(OLLAMA_MODEL, settings_source)
        second = get_chat_strategy(OLLAMA_MODEL, settings_source)
        assert first is not second


# ─────────────────────────────────────────────────────────────────────
# chat()
# ─────────────────────────────────────────────────────────────────────

class TestChat:
    @pytest.mark.asyncio
    async def test_sync_callback_receives_events_in_order(self, settings_source, chat_request):
        transport = FakeTransport([
            ndjson(chat_record("a"), chat_record("b")),
            ndjson(chat_record("c", done=True)),
        ])
        received = []

        await chat(OLLAMA_MODEL, chat_request, settings_source, received.append, transport=transport)

        assert [e.content for e in received if e.type == "content"] == ["a", "b", "c"]
        assert received[-1].type == "done"

    @pytest.mark.asyncio
    async def test_async_callback(self, settings_source, chat_request):
        transport = FakeTransport([ndjson(chat_record("x"))])
        received = []

        async def on_event(event):
            await asyncio.sleep(0)
            received.append(event.content)

        await chat(OLLAMA_MODEL, chat_request, settings_source, on_event, transport=transport)

        assert received == ["x"]

    @pytest.mark.asyncio
    async def test_routes_to_hosted_backend(self, settings_source, chat_request):
        transport = FakeTransport([sse_stream("hi")])
        received = []

        await chat(OPENAI_MODEL, chat_request, settings_source, received.append, transport=transport)

        assert transport.requests[0]["url"] == f"{MOCK_OPENAI_SERVER}/chat/completions"
        assert [e.content for e in received if e.type == "content"] == ["hi"]

    @pytest.mark.asyncio
    async def test_error_status_rejects_without_events(self, settings_source, chat_request):
        transport = FakeTransport(['{"error":"model not found"}'], status_code=404)
        received = []

        with pytest.raises(BackendReportedError) as exc_info:
            await chat(OLLAMA_MODEL, chat_request, settings_source, received.append, transport=transport)

        assert str(exc_info.value) == "model not found"
        assert received == []

    @pytest.mark.asyncio
    async def test_cancel_from_callback_settles_quietly(self, settings_source, chat_request):
        transport = FakeTransport([ndjson(chat_record("one"), chat_record("two")), HANG])
        token = CancellationToken()
        received = []

        def on_event(event):
            received.append(event.content)
            token.cancel()

        await asyncio.wait_for(
            chat(OLLAMA_MODEL, chat_request, settings_source, on_event,
                 cancel_token=token, transport=transport),
            timeout=1.0,
        )

        assert received == ["one"]
        assert transport.closed == 1

    @pytest.mark.asyncio
    async def test_callback_error_closes_stream(self, settings_source, chat_request):
        transport = FakeTransport([ndjson(chat_record("a"), chat_record("b")), HANG])

        def on_event(event):
            raise RuntimeError("display failed")

        with pytest.raises(RuntimeError, match="display failed"):
            await chat(OLLAMA_MODEL, chat_request, settings_source, on_event, transport=transport)

        assert transport.closed == 1

    @pytest.mark.asyncio
    async def test_unknown_backend_rejected_before_request(self, settings_source, chat_request):
        transport = FakeTransport([])
        rogue = Model.model_construct(name="mystery", backend="llamafile")

        with pytest.raises(UnsupportedBackendError):
            await chat(rogue, chat_request, settings_source, print, transport=transport)
        assert transport.requests == []


# ─────────────────────────────────────────────────────────────────────
# pull_model()
# ─────────────────────────────────────────────────────────────────────

class TestPullModel:
    @pytest.mark.asyncio
    async def test_progress_delivered(self, settings_source):
        transport = FakeTransport([ndjson({"status": "pulling manifest"}, {"status": "success"})])
        progress = []

        await pull_model(PullRequest(name="llama3.2:3b"), settings_source, progress.append, transport=transport)

        assert [p.status for p in progress] == ["pulling manifest", "success"]

    @pytest.mark.asyncio
    async def test_cancel_from_callback_settles_quietly(self, settings_source):
        transport = FakeTransport([
            ndjson({"status": "pulling manifest"}, {"status": "pulling a80c"}),
            HANG,
            ndjson({"status": "success"}),
        ])
        token = CancellationToken()
        progress = []

        def on_progress(record):
            progress.append(record.status)
            token.cancel()

        await asyncio.wait_for(
            pull_model(PullRequest(name="llama3.2:3b"), settings_source, on_progress,
                       cancel_token=token, transport=transport),
            timeout=1.0,
        )

        assert progress == ["pulling manifest"]
        assert transport.closed == 1

    @pytest.mark.asyncio
    async def test_callback_error_closes_stream(self, settings_source):
        transport = FakeTransport([ndjson({"status": "pulling manifest"}), HANG])

        def on_progress(record):
            raise RuntimeError("progress bar failed")

        with pytest.raises(RuntimeError, match="progress bar failed"):
            await pull_model(PullRequest(name="llama3.2:3b"), settings_source, on_progress, transport=transport)

        assert transport.closed == 1

    @pytest.mark.asyncio
    async def test_hosted_backend_cannot_pull(self, settings_source):
        with pytest.raises(UnsupportedBackendError, match="does not support pulling"):
            await pull_model(
                PullRequest(name="gpt-4o"), settings_source, print,
                transport=FakeTransport([]), backend=BackendKind.OPENAI,
            )


# ─────────────────────────────────────────────────────────────────────
# is_server_connected()
# ─────────────────────────────────────────────────────────────────────

class TestIsServerConnected:
    def test_known_model_uses_backend_status(self, settings, settings_source):
        catalog = [OLLAMA_MODEL, OPENAI_MODEL]
        settings.openai_server_status = "disconnected"

        assert is_server_connected("llama3.2:3b", catalog, settings_source) is True
        assert is_server_connected("gpt-4o-mini", catalog, settings_source) is False

    def test_unknown_model_is_false(self, settings_source):
        assert is_server_connected("nope", [OLLAMA_MODEL], settings_source) is False

    def test_no_catalog_is_false(self, settings_source):
        assert is_server_connected("llama3.2:3b", None, settings_source) is False

    def test_unsupported_backend_is_false(self, settings_source):
        rogue = Model.model_construct(name="mystery", backend="llamafile")
        assert is_server_connected("mystery", [rogue], settings_source) is False


# ─────────────────────────────────────────────────────────────────────
# build_catalog()
# ─────────────────────────────────────────────────────────────────────

class TestBuildCatalog:
    @pytest.mark.asyncio
    @respx.mock
    async def test_lists_both_backends(self, settings_source):
        respx.get(f"{MOCK_OLLAMA_SERVER}/api/tags").mock(
            return_value=httpx.Response(200, json=MOCK_TAGS_RESPONSE)
        )
        respx.get(f"{MOCK_OPENAI_SERVER}/models").mock(
            return_value=httpx.Response(200, json=MOCK_OPENAI_MODELS_RESPONSE)
        )

        catalog = build_catalog(settings_source, HttpxTransport(timeout_seconds=5))
        models = await catalog.list_all_models()

        assert [(m.backend, m.name) for m in models] == [
            (BackendKind.OLLAMA, "llama3.2:3b"),
            (BackendKind.OLLAMA, "Qwen2.5:7b"),
            (BackendKind.OPENAI, "gpt-4o"),
            (BackendKind.OPENAI, "gpt-4o-mini"),
        ]

    def test_restricted_backends(self, settings_source):
        catalog = build_catalog(settings_source, backends=[BackendKind.OLLAMA])
        assert catalog.backends == [BackendKind.OLLAMA]
