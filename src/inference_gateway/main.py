import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from inference_gateway import router as router_module
from inference_gateway.backends.local import LocalBackend, SentenceTransformerEmbedder
from inference_gateway.backends.ollama import OllamaBackend
from inference_gateway.config import Settings, settings
from inference_gateway.dispatcher import RequestDispatcher
from inference_gateway.health import health_router
from inference_gateway.registry import ProviderRegistry
from inference_gateway.router import Services, install_error_handlers, router

logger = logging.getLogger(__name__)


def build_services(cfg: Settings) -> Services:
    ollama = OllamaBackend(
        base_url=cfg.ollama_base_url,
        timeout=cfg.backend_timeout,
        health_timeout=cfg.health_check_timeout,
    )
    local = LocalBackend(
        SentenceTransformerEmbedder(cfg.local_embedding_model, cfg.local_embedding_device),
        model_name=cfg.local_embedding_model,
    )
    registry = ProviderRegistry(
        {"local": local, "ollama": ollama},
        ollama_models=cfg.get_ollama_embedding_routes(),
    )
    return Services(
        settings=cfg,
        registry=registry,
        ollama=ollama,
        dispatcher=RequestDispatcher(timeout=cfg.request_timeout),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(settings)
    logger.info(f"Ollama backend: {settings.ollama_base_url}")
    logger.info(f"Embedding models: {', '.join(services.registry.all_model_names())}")

    # Wire services into routers
    router_module.services = services

    yield

    # Cleanup
    router_module.services = None
    for backend in services.registry.backends.values():
        await backend.close()


app = FastAPI(
    title="Inference Gateway",
    description="Chat, generation and embedding gateway for Ollama with SSE streaming",
    version=settings.service_version,
    lifespan=lifespan,
)

app.include_router(router)
app.include_router(health_router)
install_error_handlers(app)


def main():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "inference_gateway.main:app",
        host=settings.gateway_host,
        port=settings.gateway_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
