"""
ChatStrategy Protocol - defines the contract for chat backends.

This is the WHAT (interface), not the HOW (implementation).
See ollama.py and openai.py for concrete implementations.
"""

from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from chatbridge.adapters.schema import (
    ChatRequest,
    Model,
    PullProgress,
    PullRequest,
    StreamEvent,
)
from chatbridge.cancellation import CancellationToken


class ChatStrategy(Protocol):
    """
    Contract for chat backends.

    Implementations must provide:
    - Streaming chat (chat)
    - Model discovery (list_models)
    - Last-known connectivity (is_connected)

    Adapters hold no state between calls. Endpoints and credentials are
    read from the settings source every time a request is built.
    """

    def chat(
        self,
        request: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream chat output for `request`.

        Yields:
            StreamEvent items in arrival order

        Raises:
            ChatBridgeError subclasses on transport failure, malformed
            records or errors reported by the backend. Cancellation ends
            the stream without raising.
        """
        ...

    async def list_models(self) -> list[Model]:
        """Return this backend's models, each tagged with its BackendKind."""
        ...

    def is_connected(self) -> bool:
        """Last-known connectivity from settings. Never touches the network."""
        ...


@runtime_checkable
class SupportsPull(Protocol):
    """Optional capability: download a model onto the backend."""

    def pull(
        self,
        request: PullRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[PullProgress]:
        ...

