"""
chatbridge - one streaming chat interface over a local model server and a
hosted completion API.
"""

from chatbridge.adapters import (
    BackendKind,
    ChatRequest,
    ChatStrategy,
    Message,
    Model,
    OllamaAdapter,
    OpenAIAdapter,
    PullProgress,
    PullRequest,
    StreamEvent,
)
from chatbridge.cancellation import CancellationToken
from chatbridge.catalog import ModelCatalog, recent_models, sort_models
from chatbridge.config import SessionRecord, Settings, load_settings_from_env
from chatbridge.core import (
    build_catalog,
    chat,
    get_chat_strategy,
    is_server_connected,
    pull_model,
)
from chatbridge.errors import (
    BackendReportedError,
    ChatBridgeError,
    MalformedRecordError,
    MissingConfigurationError,
    NoBodyError,
    TransportError,
    UnsupportedBackendError,
)
from chatbridge.transport import HttpxTransport, Transport, TransportResponse

__all__ = [
    "BackendKind",
    "BackendReportedError",
    "CancellationToken",
    "ChatBridgeError",
    "ChatRequest",
    "ChatStrategy",
    "HttpxTransport",
    "MalformedRecordError",
    "Message",
    "MissingConfigurationError",
    "Model",
    "ModelCatalog",
    "NoBodyError",
    "OllamaAdapter",
    "OpenAIAdapter",
    "PullProgress",
    "PullRequest",
    "SessionRecord",
    "Settings",
    "StreamEvent",
    "Transport",
    "TransportError",
    "TransportResponse",
    "UnsupportedBackendError",
    "build_catalog",
    "chat",
    "get_chat_strategy",
    "is_server_connected",
    "load_settings_from_env",
    "pull_model",
    "recent_models",
    "sort_models",
]
