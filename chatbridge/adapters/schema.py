"""
Backend-independent request/response shapes.

Adapters translate between these and their own wire formats, so the rest
of chatbridge never sees an Ollama record or an OpenAI chunk.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class BackendKind(str, Enum):
    """Closed set of backends chatbridge can talk to."""
    OLLAMA = "ollama"
    OPENAI = "openai"


class Model(BaseModel):
    """
    A model as listed by one backend.

    name is unique within a backend only. The same name served by two
    backends gives two distinct Model entries. Everything besides name and
    backend is opaque metadata and extra fields are kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    name: str
    backend: BackendKind
    size: Optional[int] = None
    modified_at: Optional[Union[datetime, str]] = None
    digest: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """A single chat message."""
    role: str  # "system", "user" or "assistant"
    content: str


class ChatRequest(BaseModel):
    """
    Standardized chat request for every adapter.

    options are generation parameters passed through untouched
    (temperature, seed, num_ctx...). Immutable once built.
    """
    model_config = ConfigDict(frozen=True)

    model: str
    messages: List[Message]
    options: Optional[Dict[str, Any]] = None

    def wire_messages(self) -> List[Dict[str, Any]]:
        return [m.model_dump() for m in self.messages]


class StreamEvent(BaseModel):
    """One unit of incremental chat output."""
    type: Literal["content", "done"] = "content"
    role: str = "assistant"
    content: str = ""
    done_reason: Optional[str] = None

    @classmethod
    def delta(cls, content: str, role: str = "assistant") -> "StreamEvent":
        return cls(type="content", role=role, content=content)

    @classmethod
    def finished(cls, done_reason: Optional[str] = None) -> "StreamEvent":
        return cls(type="done", done_reason=done_reason)


class PullRequest(BaseModel):
    """Request to download a model onto the local server."""
    name: str
    insecure: bool = False


class PullProgress(BaseModel):
    """Status/progress record emitted while a model downloads."""
    status: str = ""
    digest: Optional[str] = None
    total: Optional[int] = None
    completed: Optional[int] = None
    error: Optional[str] = None

    @property
    def percent(self) -> Optional[float]:
        """Completion as 0-100, or None when the phase carries no byte counts."""
        if not self.total or self.completed is None:
            return None
        return min(100.0, self.completed * 100.0 / self.total)
