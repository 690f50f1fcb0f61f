from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np

from inference_gateway.errors import UpstreamError
from inference_gateway.models import EmbeddingVector, ProviderRoute, Quantization

_DTYPES = {"float32": np.float32, "float64": np.float64}


def make_vector(values: Sequence[float], quantization: Quantization) -> EmbeddingVector:
    """Copy ``values`` into a fresh vector at the requested precision."""
    arr = np.array(values, dtype=_DTYPES[quantization])
    if arr.ndim != 1 or arr.size == 0:
        raise UpstreamError(f"Expected a non-empty 1-d embedding, got shape {arr.shape}")
    return EmbeddingVector(
        vector=tuple(arr.tolist()),
        dimensions=int(arr.shape[0]),
        quantization=quantization,
    )


class EmbeddingBackend(ABC):
    @abstractmethod
    async def embed(self, text: str, route: ProviderRoute) -> EmbeddingVector: ...

    @abstractmethod
    async def health_check(self) -> dict: ...

    @abstractmethod
    async def list_models(self) -> list[str]: ...

    @abstractmethod
    async def close(self) -> None: ...
