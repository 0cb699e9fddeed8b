"""
Core entry points: strategy dispatch, chat, pull, connectivity.

The host application calls these with its own settings source and
(optionally) its own transport. Adapters are cheap, so a new one is
built for every call.
"""

import inspect
import logging
from contextlib import aclosing
from typing import Awaitable, Callable, Optional, Sequence, Union

from chatbridge.adapters.base import ChatStrategy, SupportsPull
from chatbridge.adapters.ollama import OllamaAdapter
from chatbridge.adapters.openai import OpenAIAdapter
from chatbridge.adapters.schema import (
    BackendKind,
    ChatRequest,
    Model,
    PullProgress,
    PullRequest,
    StreamEvent,
)
from chatbridge.cancellation import CancellationToken
from chatbridge.catalog import ModelCatalog, find_model
from chatbridge.config import SettingsSource
from chatbridge.errors import UnsupportedBackendError
from chatbridge.transport import Transport

logger = logging.getLogger(__name__)


# Closed table of backends. A tag missing here is an error, never a default.
STRATEGIES: dict[BackendKind, type] = {
    BackendKind.OLLAMA: OllamaAdapter,
    BackendKind.OPENAI: OpenAIAdapter,
}

EventCallback = Callable[[StreamEvent], Union[None, Awaitable[None]]]
ProgressCallback = Callable[[PullProgress], Union[None, Awaitable[None]]]


def get_chat_strategy(
    model: Model,
    settings: SettingsSource,
    transport: Optional[Transport] = None,
) -> ChatStrategy:
    """Build the adapter that owns `model`. Raises UnsupportedBackendError."""
    strategy_cls = STRATEGIES.get(model.backend)
    if strategy_cls is None:
        raise UnsupportedBackendError(
            f"Invalid model specified: '{model.name}' has unknown backend '{model.backend}'"
        )
    return strategy_cls(settings, transport)


def build_catalog(
    settings: SettingsSource,
    transport: Optional[Transport] = None,
    backends: Optional[Sequence[BackendKind]] = None,
) -> ModelCatalog:
    """ModelCatalog over the given backends (all known backends by default)."""
    kinds = list(backends) if backends is not None else list(STRATEGIES)
    adapters = {}
    for kind in kinds:
        strategy_cls = STRATEGIES.get(kind)
        if strategy_cls is None:
            raise UnsupportedBackendError(f"Unknown backend '{kind}'")
        adapters[kind] = strategy_cls(settings, transport)
    return ModelCatalog(adapters)


async def _deliver(callback: Callable, item) -> None:
    result = callback(item)
    if inspect.isawaitable(result):
        await result


async def chat(
    model: Model,
    request: ChatRequest,
    settings: SettingsSource,
    on_event: EventCallback,
    cancel_token: Optional[CancellationToken] = None,
    transport: Optional[Transport] = None,
) -> None:
    """
    Stream a chat reply, calling on_event once per StreamEvent.

    Returns when the stream ends or is cancelled. Errors propagate; events
    delivered before an error are not retracted.
    """
    strategy = get_chat_strategy(model, settings, transport)
    logger.debug(f"Dispatching chat for {model.name} to {model.backend.value}")

    # Close the stream even when the callback raises
    async with aclosing(strategy.chat(request, cancel_token)) as events:
        async for event in events:
            await _deliver(on_event, event)


async def pull_model(
    request: PullRequest,
    settings: SettingsSource,
    on_progress: ProgressCallback,
    cancel_token: Optional[CancellationToken] = None,
    transport: Optional[Transport] = None,
    backend: BackendKind = BackendKind.OLLAMA,
) -> None:
    """Download a model, calling on_progress once per PullProgress record."""
    strategy_cls = STRATEGIES.get(backend)
    if strategy_cls is None:
        raise UnsupportedBackendError(f"Unknown backend '{backend}'")
    strategy = strategy_cls(settings, transport)
    if not isinstance(strategy, SupportsPull):
        raise UnsupportedBackendError(f"Backend '{backend.value}' does not support pulling models")

    async with aclosing(strategy.pull(request, cancel_token)) as records:
        async for progress in records:
            await _deliver(on_progress, progress)


def is_server_connected(
    model_name: str,
    catalog: Optional[Sequence[Model]],
    settings: SettingsSource,
) -> bool:
    """
    Last-known connectivity of the backend serving `model_name`.

    False when the model is not in the catalog. Never raises.
    """
    model = find_model(catalog or [], model_name)
    if model is None:
        return False
    try:
        return get_chat_strategy(model, settings).is_connected()
    except UnsupportedBackendError as e:
        logger.warning(f"Connectivity check for {model_name}: {e}")
        return False
