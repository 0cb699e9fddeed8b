"""
Stream tokenizer: raw response body -> newline-delimited records.

Backends flush whenever they like, so a chunk boundary can fall anywhere:
inside a multi-byte UTF-8 sequence, inside a JSON object, or between two
records. LineSplitter keeps both kinds of leftovers (undecoded bytes and
an unterminated line) and only ever hands out complete lines.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, Optional, Union

from chatbridge.cancellation import CancellationToken, race
from chatbridge.errors import BackendReportedError, MalformedRecordError, NoBodyError
from chatbridge.transport import TransportResponse

logger = logging.getLogger(__name__)

ERROR_TEXT_LIMIT = 200


class LineSplitter:
    """Incremental bytes -> complete, non-empty text lines."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._pending = ""

    def _decode(self, data: bytes, final: bool = False) -> str:
        try:
            return self._decoder.decode(data, final=final)
        except UnicodeDecodeError as e:
            raise MalformedRecordError(f"Response is not valid UTF-8: {e}") from e

    def feed(self, chunk: Union[bytes, str]) -> list[str]:
        """Add a chunk; return the lines it completed, in order."""
        text = chunk if isinstance(chunk, str) else self._decode(chunk)
        segments = (self._pending + text).split("\n")
        # Last segment has no newline yet; keep it for the next chunk
        self._pending = segments.pop()
        return [s.rstrip("\r") for s in segments if s.strip()]

    def flush(self) -> list[str]:
        """End of stream: return the unterminated tail, if any."""
        tail = self._pending + self._decode(b"", final=True)
        self._pending = ""
        return [tail.rstrip("\r")] if tail.strip() else []

    @property
    def pending(self) -> str:
        return self._pending


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def iter_lines(
    body: AsyncIterator[bytes],
    cancel_token: Optional[CancellationToken] = None,
) -> AsyncIterator[str]:
    """
    Yield complete lines from a streamed body.

    Each read is raced against cancel_token; OperationCancelled propagates
    to the caller, which decides how to end its own stream.
    """
    splitter = LineSplitter()
    chunks = body.__aiter__()

    while True:
        chunk = await race(_next_chunk(chunks), cancel_token)
        if chunk is None:
            break
        for line in splitter.feed(chunk):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            yield line

    for line in splitter.flush():
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        yield line


def parse_record(line: str) -> Any:
    """Parse one line as JSON. Failure is fatal for the stream."""
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(f"Invalid JSON record: {e}", record=line[:ERROR_TEXT_LIMIT]) from e


async def iter_json_records(
    body: AsyncIterator[bytes],
    cancel_token: Optional[CancellationToken] = None,
) -> AsyncIterator[Any]:
    """Yield one parsed JSON value per newline-delimited record."""
    async for line in iter_lines(body, cancel_token):
        yield parse_record(line)


async def read_text(
    body: AsyncIterator[bytes],
    cancel_token: Optional[CancellationToken] = None,
) -> str:
    """Read a whole body into a string."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    chunks = body.__aiter__()
    parts = []
    while True:
        chunk = await race(_next_chunk(chunks), cancel_token)
        if chunk is None:
            break
        parts.append(decoder.decode(chunk))
    parts.append(decoder.decode(b"", final=True))
    return "".join(parts)


def extract_error_message(text: str) -> str:
    """
    Pull the human-readable message out of an error body.

    Handles the local server shape {"error": "..."} and the hosted shape
    {"error": {"message": "..."}}. Anything else is returned as raw text.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text.strip()[:ERROR_TEXT_LIMIT]

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict):
            message = error.get("message")
            if message:
                return str(message)
    return text.strip()[:ERROR_TEXT_LIMIT]


def require_body(response: TransportResponse, backend: str) -> AsyncIterator[bytes]:
    if response.body is None:
        raise NoBodyError(f"{backend} response is missing body")
    return response.body


async def raise_for_error(
    response: TransportResponse,
    backend: str,
    cancel_token: Optional[CancellationToken] = None,
) -> None:
    """
    Raise BackendReportedError if the response status is a failure.

    The error body is read whole and parsed as a single JSON object; it is
    never split into records.
    """
    if response.ok:
        return
    text = await read_text(require_body(response, backend), cancel_token)
    message = extract_error_message(text) or f"HTTP {response.status_code}"
    logger.debug(f"{backend} returned {response.status_code}: {message}")
    raise BackendReportedError(message, status_code=response.status_code)


async def read_json(
    response: TransportResponse,
    backend: str,
    cancel_token: Optional[CancellationToken] = None,
) -> Any:
    """Read a non-streamed JSON response, raising on error status."""
    await raise_for_error(response, backend, cancel_token)
    text = await read_text(require_body(response, backend), cancel_token)
    return parse_record(text)
