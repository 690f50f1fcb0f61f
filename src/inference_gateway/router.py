import logging
import time
from dataclasses import dataclass
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from inference_gateway.backends.ollama import OllamaBackend
from inference_gateway.config import Settings
from inference_gateway.decoder import chat_done, pull_succeeded
from inference_gateway.dispatcher import RequestDispatcher
from inference_gateway.errors import GatewayError, InvalidRequestError, NotInitializedError
from inference_gateway.models import (
    ChatRequest,
    EmbedRequest,
    GatewayResponse,
    GenerateRequest,
    PullRequest,
)
from inference_gateway.registry import ProviderRegistry
from inference_gateway.relay import SSE_HEADERS, StreamRelay, ensure_streaming_supported

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    registry: ProviderRegistry
    ollama: OllamaBackend
    dispatcher: RequestDispatcher


# Set during app startup via lifespan
services: Services | None = None


def _mark_start(request: Request) -> None:
    request.state.started = time.perf_counter()


def _elapsed(request: Request) -> float:
    started = getattr(request.state, "started", None)
    return 0.0 if started is None else time.perf_counter() - started


def _services() -> Services:
    if services is None:
        raise NotInitializedError()
    return services


router = APIRouter(prefix="/v1", dependencies=[Depends(_mark_start)])

ClientTimeout = Annotated[float | None, Header(alias="X-Request-Timeout")]


@router.get("/system-info", response_model=GatewayResponse)
async def system_info(request: Request) -> GatewayResponse:
    cfg = _services().settings
    return GatewayResponse(
        success=True,
        message="System info retrieved successfully",
        data={
            "name": cfg.service_name,
            "version": cfg.service_version,
            "description": cfg.service_description,
            "author": cfg.service_author,
            "author_url": cfg.service_author_url,
        },
        time_taken=_elapsed(request),
    )


@router.post("/embed-text", response_model=GatewayResponse)
async def embed_text(
    body: EmbedRequest,
    request: Request,
    client_timeout: ClientTimeout = None,
) -> GatewayResponse:
    svc = _services()
    route = svc.registry.resolve(body.model)
    backend = svc.registry.backend_for(route)

    result = await svc.dispatcher.dispatch(
        lambda: backend.embed(body.text, route), client_timeout
    )
    vector = result.unwrap()
    return GatewayResponse(
        success=True,
        message="Embed request received successfully",
        data={
            "vector": list(vector.vector),
            "dimensions": vector.dimensions,
            "quantization": vector.quantization,
            "model": route.alias,
            "text": body.text,
        },
        time_taken=_elapsed(request),
    )


@router.get("/model-list", response_model=GatewayResponse)
async def model_list(
    request: Request,
    client_timeout: ClientTimeout = None,
) -> GatewayResponse:
    svc = _services()
    result = await svc.dispatcher.dispatch(svc.ollama.list_models, client_timeout)
    return GatewayResponse(
        success=True,
        message="Ollama model list retrieved successfully",
        data={"models": result.unwrap()},
        time_taken=_elapsed(request),
    )


@router.post("/pull-model")
async def pull_model(
    body: PullRequest,
    request: Request,
    client_timeout: ClientTimeout = None,
) -> StreamingResponse:
    svc = _services()
    timeout = svc.settings.stream_timeout
    if client_timeout is not None and 0 < client_timeout < timeout:
        timeout = client_timeout
    ensure_streaming_supported(request)
    logger.info(f"Pulling model {body.name}")
    relay = StreamRelay(
        svc.ollama.pull_model(body.name),
        is_terminal=pull_succeeded,
        require_terminal=True,
        summary_message=f"Model {body.name} downloaded successfully",
        timeout=timeout,
    )
    return StreamingResponse(relay, media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/call-llm", response_model=GatewayResponse)
async def call_llm(
    body: ChatRequest,
    request: Request,
    client_timeout: ClientTimeout = None,
):
    svc = _services()
    if body.stream:
        ensure_streaming_supported(request)
        relay = StreamRelay(
            svc.ollama.chat_stream(body),
            delta=lambda e: e.message.content,
            is_terminal=chat_done,
            summary_message="LLM request received successfully",
            timeout=svc.dispatcher.effective_timeout(client_timeout),
        )
        return StreamingResponse(relay, media_type="text/event-stream", headers=SSE_HEADERS)

    result = await svc.dispatcher.dispatch(lambda: svc.ollama.chat(body), client_timeout)
    reply = result.unwrap()
    return GatewayResponse(
        success=True,
        message="LLM request received successfully",
        data={
            "response": reply.message.content,
            "model": body.model,
            "messages": [m.model_dump() for m in body.messages],
            "stream": body.stream,
        },
        time_taken=_elapsed(request),
    )


@router.post("/generate", response_model=GatewayResponse)
async def generate(
    body: GenerateRequest,
    request: Request,
    client_timeout: ClientTimeout = None,
):
    svc = _services()
    if body.stream:
        ensure_streaming_supported(request)
        relay = StreamRelay(
            svc.ollama.generate_stream(body),
            delta=lambda e: e.response,
            is_terminal=chat_done,
            summary_message="Generate request received successfully",
            timeout=svc.dispatcher.effective_timeout(client_timeout),
        )
        return StreamingResponse(relay, media_type="text/event-stream", headers=SSE_HEADERS)

    result = await svc.dispatcher.dispatch(lambda: svc.ollama.generate(body), client_timeout)
    reply = result.unwrap()
    return GatewayResponse(
        success=True,
        message="Generate request received successfully",
        data={
            "response": reply.response,
            "model": body.model,
            "prompt": body.prompt,
            "stream": body.stream,
        },
        time_taken=_elapsed(request),
    )


# --- Error envelopes ---


def _validation_code(errors: list[dict]) -> str:
    kinds = {e.get("type", "") for e in errors}
    if "missing" in kinds:
        return "missing_field"
    if any(k.endswith(("_type", "_parsing")) for k in kinds):
        return "invalid_type"
    return "invalid_request"


def _describe(error: dict) -> str:
    loc = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
    return f"{loc}: {error.get('msg', '')}" if loc else error.get("msg", "")


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed ({exc.code}): {exc.detail}")
    envelope = GatewayResponse(
        success=False,
        message=exc.message,
        error=exc.detail,
        data={"code": exc.code},
        time_taken=_elapsed(request),
    )
    return JSONResponse(status_code=exc.status_code, content=envelope.model_dump())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    error = InvalidRequestError(
        "; ".join(_describe(e) for e in errors) or "Invalid request body",
        code=_validation_code(errors),
    )
    return await gateway_error_handler(request, error)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
