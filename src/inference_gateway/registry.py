from types import MappingProxyType

from inference_gateway.backends.base import EmbeddingBackend
from inference_gateway.errors import InvalidModelError
from inference_gateway.models import ProviderKind, ProviderRoute

DEFAULT_ROUTES: tuple[ProviderRoute, ...] = (
    ProviderRoute(alias="bge-m3", provider="local", backend_model="bge-m3", quantization="float32"),
    ProviderRoute(
        alias="ollama-bge-m3", provider="ollama", backend_model="bge-m3:latest", quantization="float64"
    ),
    ProviderRoute(
        alias="nomic-embed-text",
        provider="ollama",
        backend_model="nomic-embed-text:latest",
        quantization="float64",
    ),
    ProviderRoute(
        alias="nomic-embed-text:latest",
        provider="ollama",
        backend_model="nomic-embed-text:latest",
        quantization="float64",
    ),
)


class ProviderRegistry:
    """Maps client-facing embedding model ids to provider routes.

    The route table is fixed at construction; lookups are exact matches.
    """

    def __init__(
        self,
        backends: dict[ProviderKind, EmbeddingBackend],
        routes: tuple[ProviderRoute, ...] = DEFAULT_ROUTES,
        ollama_models: dict[str, str] | None = None,
    ) -> None:
        table = {r.alias: r for r in routes}
        for alias, backend_model in (ollama_models or {}).items():
            table[alias] = ProviderRoute(
                alias=alias, provider="ollama", backend_model=backend_model, quantization="float64"
            )
        missing = {r.provider for r in table.values()} - set(backends)
        if missing:
            raise ValueError(f"No backend registered for provider(s): {', '.join(sorted(missing))}")
        self._routes = MappingProxyType(table)
        self.backends = dict(backends)

    def resolve(self, model_name: str) -> ProviderRoute:
        route = self._routes.get(model_name)
        if route is None:
            raise InvalidModelError(model_name, self.all_model_names())
        return route

    def backend_for(self, route: ProviderRoute) -> EmbeddingBackend:
        return self.backends[route.provider]

    def all_model_names(self) -> list[str]:
        return list(self._routes.keys())
