import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from inference_gateway.accumulator import ChatAccumulator
from inference_gateway.backends.base import EmbeddingBackend, make_vector
from inference_gateway.decoder import NDJSONDecoder, chat_done, pull_succeeded
from inference_gateway.errors import UpstreamError
from inference_gateway.models import (
    ChatRequest,
    EmbeddingVector,
    GenerateRequest,
    Message,
    ProviderRoute,
    PullProgress,
    StreamEvent,
)

logger = logging.getLogger(__name__)


def _status_error(e: httpx.HTTPStatusError, body: str) -> UpstreamError:
    return UpstreamError(
        f"error from Ollama (status {e.response.status_code}): {body[:500]}"
    )


class OllamaBackend(EmbeddingBackend):
    """Ollama client. Chat, generate and pull are NDJSON streams; embed and
    tags are plain JSON calls. The ``httpx.AsyncClient`` is the only state
    shared between requests."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        health_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.health_timeout = health_timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    @asynccontextmanager
    async def _stream(self, path: str, payload: dict) -> AsyncIterator[AsyncIterator[str]]:
        """Open a streaming POST and yield its body as NDJSON lines.

        Closing the context (or cancelling the task using it) closes the
        connection, which aborts the backend request.
        """
        try:
            async with self.client.stream("POST", path, json=payload) as response:
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    body = (await response.aread()).decode(errors="replace")
                    raise _status_error(e, body) from e
                yield response.aiter_lines()
        except httpx.HTTPError as e:
            msg = str(e) or type(e).__name__
            raise UpstreamError(f"error making request to Ollama {path}: {msg}") from e

    def _chat_payload(self, request: ChatRequest) -> dict:
        messages = [m.model_dump() for m in request.messages]
        if request.images:
            # Ollama takes images on the message they belong to
            for m in reversed(messages):
                if m["role"] == "user":
                    m["images"] = list(request.images)
                    break
        payload = {
            "model": request.model,
            "messages": messages,
            "stream": True,
            "think": request.think,
        }
        if request.format:
            payload["format"] = request.format
        return payload

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        async with self._stream("/api/chat", self._chat_payload(request)) as lines:
            async for event in NDJSONDecoder(lines, StreamEvent, chat_done):
                yield event

    async def chat(self, request: ChatRequest) -> StreamEvent:
        """Run a chat to completion and return the accumulated reply."""
        acc = ChatAccumulator()
        final = StreamEvent(model=request.model)
        role = "assistant"
        async with self._stream("/api/chat", self._chat_payload(request)) as lines:
            decoder = NDJSONDecoder(lines, StreamEvent, chat_done)
            async for event in decoder:
                acc.append(event.message.content)
                role = event.message.role or role
                final = event
        if not decoder.terminated:
            logger.warning(f"Chat stream for {request.model} ended without done=true")
        return final.model_copy(
            update={"message": Message(role=role, content=acc.content)}
        )

    def _generate_payload(self, request: GenerateRequest) -> dict:
        return {"model": request.model, "prompt": request.prompt, "stream": True}

    async def generate_stream(self, request: GenerateRequest) -> AsyncIterator[StreamEvent]:
        async with self._stream("/api/generate", self._generate_payload(request)) as lines:
            async for event in NDJSONDecoder(lines, StreamEvent, chat_done):
                yield event

    async def generate(self, request: GenerateRequest) -> StreamEvent:
        acc = ChatAccumulator()
        final = StreamEvent(model=request.model)
        async with self._stream("/api/generate", self._generate_payload(request)) as lines:
            decoder = NDJSONDecoder(lines, StreamEvent, chat_done)
            async for event in decoder:
                acc.append(event.response)
                final = event
        if not decoder.terminated:
            logger.warning(f"Generate stream for {request.model} ended without done=true")
        return final.model_copy(update={"response": acc.content})

    async def pull_model(self, name: str) -> AsyncIterator[PullProgress]:
        async with self._stream("/api/pull", {"name": name, "stream": True}) as lines:
            async for progress in NDJSONDecoder(lines, PullProgress, pull_succeeded):
                yield progress

    async def embed(self, text: str, route: ProviderRoute) -> EmbeddingVector:
        try:
            response = await self.client.post(
                "/api/embed",
                json={"model": route.backend_model, "input": [text]},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise _status_error(e, e.response.text) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"error making request to Ollama /api/embed: {e}") from e

        embeddings = response.json().get("embeddings") or []
        if not embeddings:
            raise UpstreamError(f"Ollama returned no embedding for {route.backend_model}")
        return make_vector(embeddings[0], route.quantization)

    async def health_check(self) -> dict:
        try:
            r = await self.client.get("/", timeout=self.health_timeout)
            return {"status": "healthy" if r.status_code == 200 else "unhealthy"}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}

    async def list_models(self) -> list[str]:
        try:
            r = await self.client.get("/api/tags")
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise _status_error(e, e.response.text) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"error making request to Ollama /api/tags: {e}") from e
        return [m["name"] for m in r.json().get("models", [])]

    async def close(self) -> None:
        await self.client.aclose()
