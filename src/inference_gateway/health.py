from fastapi import APIRouter

from inference_gateway import router as router_module

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health() -> dict:
    """Per-provider health, plus how many embedding routes each one serves."""
    services = router_module.services
    if services is None:
        return {"status": "unhealthy", "detail": "Not initialized"}

    route_counts: dict[str, int] = {}
    for name in services.registry.all_model_names():
        provider = services.registry.resolve(name).provider
        route_counts[provider] = route_counts.get(provider, 0) + 1

    backends = {}
    for provider, backend in services.registry.backends.items():
        backends[provider] = {
            **await backend.health_check(),
            "embedding_routes": route_counts.get(provider, 0),
        }

    degraded = any(b["status"] != "healthy" for b in backends.values())
    return {"status": "degraded" if degraded else "healthy", "backends": backends}


@health_router.get("/health/ready")
async def readiness() -> dict:
    """Ready once Ollama answers; chat, generate and pull all depend on it."""
    services = router_module.services
    if services is None:
        return {"ready": False}

    check = await services.ollama.health_check()
    return {"ready": check.get("status") == "healthy"}
