import asyncio
import json
import time

import httpx
import numpy as np
import pytest
from httpx import ASGITransport, AsyncClient

from fastapi import FastAPI
from inference_gateway.backends.local import LocalBackend
from inference_gateway.backends.ollama import OllamaBackend
from inference_gateway.config import Settings
from inference_gateway.dispatcher import RequestDispatcher
from inference_gateway.health import health_router
from inference_gateway.registry import ProviderRegistry
from inference_gateway.router import Services, install_error_handlers, router
from inference_gateway import router as router_module


def ndjson(*objs) -> bytes:
    return b"".join(json.dumps(o).encode() + b"\n" for o in objs)


def parse_sse(text: str) -> list[dict]:
    frames = []
    for block in text.split("\n\n"):
        if block.startswith("data: "):
            frames.append(json.loads(block[len("data: "):]))
    return frames


def chat_chunk(content: str, done: bool, model: str = "llama3.1:8b") -> dict:
    return {
        "model": model,
        "created_at": "2025-01-01T00:00:00.123456789Z",
        "message": {"role": "assistant", "content": content},
        "done": done,
    }


class FakeOllama:
    """Scripted Ollama backend served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.chat_body = ndjson(chat_chunk("Hel", False), chat_chunk("lo", True))
        self.generate_body = ndjson(
            {"model": "llama3.1:8b", "response": "Hi ", "done": False},
            {"model": "llama3.1:8b", "response": "there", "done": True},
        )
        self.pull_body = ndjson(
            {"status": "pulling manifest"},
            {"status": "downloading", "digest": "sha256:abc", "total": 100, "completed": 50},
            {"status": "downloading", "digest": "sha256:abc", "total": 100, "completed": 100},
            {"status": "success"},
        )
        self.models = ["llama3.1:8b", "nomic-embed-text:latest"]
        self.status_code = 200
        self.delay = 0.0
        self.line_delay = 0.0
        self.cancelled = False
        self.requests: list[tuple[str, dict]] = []

    async def _slow_lines(self, body: bytes):
        for i, line in enumerate(body.splitlines(keepends=True)):
            if i:
                await asyncio.sleep(self.line_delay)
            yield line

    def _ndjson_response(self, body: bytes) -> httpx.Response:
        if self.line_delay:
            return httpx.Response(200, content=self._slow_lines(body))
        return httpx.Response(200, content=body)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content) if request.content else {}
        self.requests.append((request.url.path, payload))
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="model not found")

        path = request.url.path
        if path == "/":
            return httpx.Response(200, text="Ollama is running")
        if path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})
        if path == "/api/embed":
            text = payload["input"][0]
            return httpx.Response(200, json={"embeddings": [[float(len(text)), 0.1, 0.2]]})
        if path == "/api/chat":
            return self._ndjson_response(self.chat_body)
        if path == "/api/generate":
            return self._ndjson_response(self.generate_body)
        if path == "/api/pull":
            return self._ndjson_response(self.pull_body)
        return httpx.Response(404)


class FakeEmbedder:
    """Deterministic in-process embedder; vector depends on the text."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: list[str] = []

    def embed(self, text: str):
        self.calls.append(text)
        if self.delay:
            time.sleep(self.delay)
        seed = sum(text.encode())
        return np.array([seed, seed / 2, seed / 4, 1 / 3], dtype=np.float32)


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        request_timeout=5.0,
        stream_timeout=5.0,
        service_author="Dsouza10082",
    )


@pytest.fixture
async def ollama(fake_ollama):
    backend = OllamaBackend(
        base_url="http://ollama.test",
        timeout=5.0,
        transport=httpx.MockTransport(fake_ollama.handler),
    )
    yield backend
    await backend.close()


@pytest.fixture
async def client(settings, ollama, fake_embedder):
    # Wire services directly (ASGITransport doesn't trigger lifespan)
    registry = ProviderRegistry(
        {"local": LocalBackend(fake_embedder), "ollama": ollama},
        ollama_models={"mxbai-embed-large": "mxbai-embed-large:latest"},
    )
    router_module.services = Services(
        settings=settings,
        registry=registry,
        ollama=ollama,
        dispatcher=RequestDispatcher(timeout=settings.request_timeout),
    )

    app = FastAPI()
    app.include_router(router)
    app.include_router(health_router)
    install_error_handlers(app)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    router_module.services = None
