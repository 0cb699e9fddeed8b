"""
Adapters for chat backends.

Provider-agnostic architecture: Protocol defines WHAT, implementations define HOW.
"""

from .base import ChatStrategy, SupportsPull
from .ollama import OllamaAdapter
from .openai import OpenAIAdapter
from .schema import (
    BackendKind,
    ChatRequest,
    Message,
    Model,
    PullProgress,
    PullRequest,
    StreamEvent,
)

__all__ = [
    "BackendKind",
    "ChatRequest",
    "ChatStrategy",
    "Message",
    "Model",
    "OllamaAdapter",
    "OpenAIAdapter",
    "PullProgress",
    "PullRequest",
    "StreamEvent",
    "SupportsPull",
]
