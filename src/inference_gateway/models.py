import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Quantization = Literal["float32", "float64"]
ProviderKind = Literal["local", "ollama"]


# --- Client requests ---


class Message(BaseModel):
    role: str
    content: str


class EmbedRequest(BaseModel):
    model: str = Field(min_length=1)
    text: str = Field(min_length=1)


class ChatRequest(BaseModel):
    model: str = Field(min_length=1)
    messages: list[Message] = Field(min_length=1)
    stream: bool = False
    think: bool = False
    format: str | None = None
    images: list[str] | None = None


class GenerateRequest(BaseModel):
    model: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    stream: bool = False


class PullRequest(BaseModel):
    name: str = Field(min_length=1)


# --- Backend stream events (NDJSON objects) ---


class StreamEvent(BaseModel):
    """One decoded chat or generate object. ``message.content`` and
    ``response`` carry deltas, never the cumulative text."""

    model: str = ""
    message: Message = Field(default_factory=lambda: Message(role="assistant", content=""))
    response: str = ""
    created_at: str | None = None
    done: bool = False
    total: int | None = None
    completed: int | None = None
    error: str | None = None


class PullProgress(BaseModel):
    status: str = ""
    digest: str | None = None
    total: int | None = None
    completed: int | None = None
    error: str | None = None


# --- Embeddings ---


class ProviderRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    alias: str
    provider: ProviderKind
    backend_model: str
    quantization: Quantization


class EmbeddingVector(BaseModel):
    model_config = ConfigDict(frozen=True)

    vector: tuple[float, ...]
    dimensions: int
    quantization: Quantization


# --- Envelope ---


class GatewayResponse(BaseModel):
    success: bool = False
    serial: str = Field(default_factory=lambda: str(uuid.uuid4()))
    message: str = ""
    error: str = ""
    data: dict[str, Any] | None = None
    time_taken: float = 0.0
