import asyncio
import logging
import threading
from collections.abc import Sequence
from typing import Protocol

from inference_gateway.backends.base import EmbeddingBackend, make_vector
from inference_gateway.models import EmbeddingVector, ProviderRoute

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """In-process embedding model: ``embed(text) -> vector``, raising on error."""

    def embed(self, text: str) -> Sequence[float]: ...


class SentenceTransformerEmbedder:
    """sentence-transformers model loaded on first use."""

    def __init__(self, model_name: str, device: str = ""):
        self.model_name = model_name
        self.device = device or None
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def _load(self):
        with self._load_lock:
            if self._model is None:
                # Lazy import: torch is only needed once the local route is used
                from sentence_transformers import SentenceTransformer

                logger.info(f"Loading local embedding model: {self.model_name}")
                self._model = SentenceTransformer(self.model_name, device=self.device)
                logger.info(
                    f"Local model loaded, dimension: "
                    f"{self._model.get_sentence_embedding_dimension()}"
                )
        return self._model

    def embed(self, text: str) -> Sequence[float]:
        return self._load().encode(text, normalize_embeddings=True)


class LocalBackend(EmbeddingBackend):
    """Runs an in-process ``Embedder`` on a worker thread."""

    def __init__(self, embedder: Embedder, model_name: str = "bge-m3"):
        self.embedder = embedder
        self.model_name = model_name

    async def embed(self, text: str, route: ProviderRoute) -> EmbeddingVector:
        values = await asyncio.to_thread(self.embedder.embed, text)
        return make_vector(values, route.quantization)

    async def health_check(self) -> dict:
        return {
            "status": "healthy",
            "model": self.model_name,
            "loaded": getattr(self.embedder, "loaded", True),
        }

    async def list_models(self) -> list[str]:
        return [self.model_name]

    async def close(self) -> None:
        pass
