"""
OllamaAdapter - local model server implementation of ChatStrategy.

Wire format: newline-delimited JSON on /api/chat and /api/pull,
plain JSON on /api/tags. The server URL comes from settings at call time.
"""

import logging
from typing import Any, AsyncIterator, Optional

from pydantic import ValidationError

from chatbridge.adapters.schema import (
    BackendKind,
    ChatRequest,
    Model,
    PullProgress,
    PullRequest,
    StreamEvent,
)
from chatbridge.cancellation import CancellationToken, OperationCancelled
from chatbridge.config import Settings, SettingsSource
from chatbridge.errors import BackendReportedError, MalformedRecordError, MissingConfigurationError
from chatbridge.stream import (
    ERROR_TEXT_LIMIT,
    iter_json_records,
    raise_for_error,
    read_json,
    require_body,
)
from chatbridge.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

BACKEND_NAME = "Ollama"


class OllamaAdapter:
    """
    Ollama implementation of ChatStrategy (plus the pull capability).

    Usage:
        adapter = OllamaAdapter(lambda: settings)
        async for event in adapter.chat(request):
            ...
    """

    backend = BackendKind.OLLAMA

    def __init__(self, settings: SettingsSource, transport: Optional[Transport] = None):
        self._settings = settings
        self._transport = transport or HttpxTransport()

    def _current_settings(self) -> Settings:
        settings = self._settings()
        if settings is None:
            raise MissingConfigurationError("No Ollama server specified")
        return settings

    def _server(self) -> str:
        server = self._current_settings().ollama_server
        if not server:
            raise MissingConfigurationError("No Ollama server specified")
        return server.rstrip("/")

    async def chat(
        self,
        request: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream /api/chat records as StreamEvents."""
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.wire_messages(),
            "stream": True,
        }
        if request.options:
            payload["options"] = dict(request.options)

        url = f"{self._server()}/api/chat"
        try:
            async with self._transport.stream(
                "POST", url, json=payload, cancel_token=cancel_token
            ) as response:
                await raise_for_error(response, BACKEND_NAME, cancel_token)
                body = require_body(response, BACKEND_NAME)

                async for record in iter_json_records(body, cancel_token):
                    for event in _chat_events(record):
                        if cancel_token is not None:
                            cancel_token.raise_if_cancelled()
                        yield event
        except OperationCancelled:
            logger.info(f"Chat with {request.model} cancelled")
            return

        logger.debug(f"Chat stream from {request.model} finished")

    async def list_models(self) -> list[Model]:
        """Fetch /api/tags and tag each model as an Ollama model."""
        url = f"{self._server()}/api/tags"
        async with self._transport.stream("GET", url) as response:
            data = await read_json(response, BACKEND_NAME)

        if not isinstance(data, dict) or not isinstance(data.get("models"), list):
            raise MalformedRecordError("Failed to parse Ollama tags")

        models = []
        for entry in data["models"]:
            if not isinstance(entry, dict) or not entry.get("name"):
                raise MalformedRecordError("Failed to parse Ollama tags", record=str(entry)[:ERROR_TEXT_LIMIT])
            try:
                models.append(Model(**{**entry, "backend": self.backend}))
            except ValidationError as e:
                raise MalformedRecordError(f"Invalid model entry: {e}", record=str(entry)[:ERROR_TEXT_LIMIT]) from e
        return models

    def is_connected(self) -> bool:
        settings = self._settings()
        return settings is not None and settings.ollama_server_status == "connected"

    async def pull(
        self,
        request: PullRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[PullProgress]:
        """
        Stream /api/pull progress.

        An error record is yielded as a PullProgress with `error` set, then
        raised as BackendReportedError.
        """
        payload = {"name": request.name, "stream": True}
        if request.insecure:
            payload["insecure"] = True

        url = f"{self._server()}/api/pull"
        try:
            async with self._transport.stream(
                "POST", url, json=payload, cancel_token=cancel_token
            ) as response:
                await raise_for_error(response, BACKEND_NAME, cancel_token)
                body = require_body(response, BACKEND_NAME)

                async for record in iter_json_records(body, cancel_token):
                    progress = _pull_progress(record)
                    yield progress
                    if progress.error:
                        raise BackendReportedError(progress.error)
        except OperationCancelled:
            logger.info(f"Pull of {request.name} cancelled")
            return


def _chat_events(record: Any) -> list[StreamEvent]:
    """Map one /api/chat record to zero, one or two StreamEvents."""
    if not isinstance(record, dict):
        raise MalformedRecordError("Chat record is not a JSON object", record=str(record)[:ERROR_TEXT_LIMIT])

    error = record.get("error")
    if error:
        raise BackendReportedError(str(error))

    events = []
    message = record.get("message")
    if isinstance(message, dict):
        content = message.get("content", "")
        if not isinstance(content, str):
            raise MalformedRecordError("Chat message content is not a string", record=str(record)[:ERROR_TEXT_LIMIT])
        events.append(StreamEvent.delta(content, role=message.get("role") or "assistant"))
    elif message is not None or not record.get("done"):
        raise MalformedRecordError("Chat record has no message", record=str(record)[:ERROR_TEXT_LIMIT])

    if record.get("done"):
        events.append(StreamEvent.finished(record.get("done_reason")))
    return events


def _pull_progress(record: Any) -> PullProgress:
    if not isinstance(record, dict):
        raise MalformedRecordError("Pull record is not a JSON object", record=str(record)[:ERROR_TEXT_LIMIT])
    try:
        return PullProgress(
            status=str(record.get("status", "")),
            digest=record.get("digest"),
            total=record.get("total"),
            completed=record.get("completed"),
            error=str(record["error"]) if record.get("error") else None,
        )
    except ValidationError as e:
        raise MalformedRecordError(f"Invalid pull record: {e}", record=str(record)[:ERROR_TEXT_LIMIT]) from e
