"""
OpenAIAdapter - hosted completion API implementation of ChatStrategy.

Cloud inference adapter for any OpenAI-compatible endpoint. Streaming
uses server-sent events; each `data:` line carries one JSON chunk and the
stream ends with `data: [DONE]`. The same line tokenizer as the local
adapter does the chunk-boundary work.
"""

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from pydantic import ValidationError

from chatbridge.adapters.schema import BackendKind, ChatRequest, Model, StreamEvent
from chatbridge.cancellation import CancellationToken, OperationCancelled
from chatbridge.config import Settings, SettingsSource
from chatbridge.errors import BackendReportedError, MalformedRecordError, MissingConfigurationError
from chatbridge.stream import (
    ERROR_TEXT_LIMIT,
    iter_lines,
    parse_record,
    raise_for_error,
    read_json,
    require_body,
)
from chatbridge.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

BACKEND_NAME = "OpenAI"
SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class OpenAIAdapter:
    """
    OpenAI-compatible implementation of ChatStrategy.

    No pull capability: hosted models cannot be downloaded.
    Endpoint and API key are read from settings on every call.
    """

    backend = BackendKind.OPENAI

    def __init__(self, settings: SettingsSource, transport: Optional[Transport] = None):
        self._settings = settings
        self._transport = transport or HttpxTransport()

    def _current_settings(self) -> Settings:
        settings = self._settings()
        if settings is None:
            raise MissingConfigurationError("No OpenAI server specified")
        return settings

    def _endpoint(self) -> tuple[str, dict[str, str]]:
        """Return (base URL, auth headers) from current settings."""
        settings = self._current_settings()
        if not settings.openai_server:
            raise MissingConfigurationError("No OpenAI server specified")
        if not settings.openai_api_key:
            raise MissingConfigurationError(
                "OpenAI API key required. "
                "Set it in settings or the OPENAI_API_KEY environment variable."
            )
        headers = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        return settings.openai_server.rstrip("/"), headers

    async def chat(
        self,
        request: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream /chat/completions SSE chunks as StreamEvents."""
        base, headers = self._endpoint()

        payload: dict[str, Any] = dict(request.options or {})
        payload.update({
            "model": request.model,
            "messages": request.wire_messages(),
            "stream": True,
        })

        finish_reason = None
        try:
            async with self._transport.stream(
                "POST",
                f"{base}/chat/completions",
                headers=headers,
                json=payload,
                cancel_token=cancel_token,
            ) as response:
                await raise_for_error(response, BACKEND_NAME, cancel_token)
                body = require_body(response, BACKEND_NAME)

                async for line in iter_lines(body, cancel_token):
                    # Comments, event names and ids carry nothing we use
                    if not line.startswith(SSE_DATA_PREFIX):
                        continue
                    data = line[len(SSE_DATA_PREFIX):].strip()
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    if data == SSE_DONE:
                        yield StreamEvent.finished(finish_reason)
                        break

                    event, reason = _chunk_event(parse_record(data))
                    if reason:
                        finish_reason = reason
                    if event is not None:
                        yield event
        except OperationCancelled:
            logger.info(f"Chat with {request.model} cancelled")
            return

        logger.debug(f"Chat stream from {request.model} finished ({finish_reason})")

    async def list_models(self) -> list[Model]:
        """Fetch /models and tag each entry as an OpenAI model."""
        base, headers = self._endpoint()
        async with self._transport.stream("GET", f"{base}/models", headers=headers) as response:
            data = await read_json(response, BACKEND_NAME)

        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            raise MalformedRecordError("Failed to parse OpenAI models")

        models = []
        for entry in data["data"]:
            if not isinstance(entry, dict) or not entry.get("id"):
                raise MalformedRecordError("Failed to parse OpenAI models", record=str(entry)[:ERROR_TEXT_LIMIT])
            try:
                models.append(Model(
                    name=entry["id"],
                    backend=self.backend,
                    modified_at=_created_at(entry.get("created")),
                    details={k: v for k, v in entry.items() if k not in ("id", "object")},
                ))
            except ValidationError as e:
                raise MalformedRecordError(f"Invalid model entry: {e}", record=str(entry)[:ERROR_TEXT_LIMIT]) from e
        return models

    def is_connected(self) -> bool:
        settings = self._settings()
        return settings is not None and settings.openai_server_status == "connected"


def _created_at(created: Any) -> Optional[datetime]:
    if isinstance(created, (int, float)) and not isinstance(created, bool):
        return datetime.fromtimestamp(created, tz=timezone.utc)
    return None


def _chunk_event(chunk: Any) -> tuple[Optional[StreamEvent], Optional[str]]:
    """Map one completion chunk to (content event or None, finish_reason or None)."""
    if not isinstance(chunk, dict):
        raise MalformedRecordError("Completion chunk is not a JSON object", record=str(chunk)[:ERROR_TEXT_LIMIT])

    error = chunk.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else error
        raise BackendReportedError(str(message or error))

    choices = chunk.get("choices")
    if not isinstance(choices, list):
        raise MalformedRecordError("Completion chunk has no choices", record=str(chunk)[:ERROR_TEXT_LIMIT])
    if not choices:
        # Usage-only trailer chunks have an empty choices list
        return None, None

    choice = choices[0] if isinstance(choices[0], dict) else {}
    delta = choice.get("delta") or {}
    content = delta.get("content")
    event = None
    if content:
        event = StreamEvent.delta(str(content), role=delta.get("role") or "assistant")
    return event, choice.get("finish_reason")
