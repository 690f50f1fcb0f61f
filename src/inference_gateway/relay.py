"""Server-Sent-Events relay for backend streams.

``StreamRelay`` turns an async iterator of backend events into ``data:``
frames for ``StreamingResponse``. Each event is written as soon as it arrives.
A normal end of stream is followed by one summary frame carrying the
accumulated content; an upstream error or an elapsed deadline produces one
error frame instead. Headers are already sent at that point, so failures never
change the HTTP status.
"""

import asyncio
import enum
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

from fastapi import Request
from pydantic import BaseModel

from inference_gateway.accumulator import ChatAccumulator
from inference_gateway.errors import (
    DispatchTimeoutError,
    GatewayError,
    IncompleteStreamError,
    StreamingUnsupportedError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class RelayState(str, enum.Enum):
    IDLE = "idle"
    OPEN = "open"
    CLOSED_NORMAL = "closed-normal"
    CLOSED_ERROR = "closed-error"
    CLOSED_TIMEOUT = "closed-timeout"


def sse_frame(payload: Any) -> str:
    if isinstance(payload, BaseModel):
        body = payload.model_dump_json(exclude_unset=True)
    else:
        body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {body}\n\n"


def ensure_streaming_supported(request: Request) -> None:
    """Fail before any byte is written if the connection can't stream.

    HTTP/1.0 has no chunked transfer encoding, so frames could not be flushed
    one by one.
    """
    if request.scope.get("http_version") == "1.0":
        raise StreamingUnsupportedError("HTTP/1.0 connections cannot receive event streams")


class StreamRelay:
    def __init__(
        self,
        events: AsyncIterator[Any],
        delta: Callable[[Any], str] | None = None,
        is_terminal: Callable[[Any], bool] | None = None,
        require_terminal: bool = False,
        summary_message: str = "Request completed successfully",
        timeout: float | None = None,
    ):
        self._events = events
        self._delta = delta
        self._is_terminal = is_terminal
        self._require_terminal = require_terminal
        self.summary_message = summary_message
        self.timeout = timeout
        self.accumulator = ChatAccumulator()
        self.state = RelayState.IDLE
        self.frames_sent = 0
        self._started = time.perf_counter()

    def _closing(self, status: str, **fields: Any) -> dict:
        return {
            "status": status,
            **fields,
            "serial": str(uuid.uuid4()),
            "time_taken": time.perf_counter() - self._started,
        }

    def _error_frame(self, error: GatewayError) -> str:
        status = "timeout" if isinstance(error, DispatchTimeoutError) else "error"
        self.state = (
            RelayState.CLOSED_TIMEOUT if status == "timeout" else RelayState.CLOSED_ERROR
        )
        return sse_frame(
            self._closing(status, error=error.detail, code=error.code, content=self.accumulator.content)
        )

    async def _next(self, deadline: float | None) -> Any:
        if deadline is None:
            return await anext(self._events)
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise asyncio.TimeoutError
        return await asyncio.wait_for(anext(self._events), remaining)

    async def __aiter__(self) -> AsyncIterator[str]:
        if self.state is not RelayState.IDLE:
            raise RuntimeError("StreamRelay can only be consumed once")
        self.state = RelayState.OPEN
        self._started = time.perf_counter()
        deadline = None
        if self.timeout is not None:
            deadline = asyncio.get_running_loop().time() + self.timeout

        terminated = False
        try:
            while True:
                try:
                    event = await self._next(deadline)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    logger.warning(f"Stream relay timed out after {self.timeout:g}s")
                    yield self._error_frame(DispatchTimeoutError(self.timeout))
                    return
                except GatewayError as e:
                    logger.warning(f"Stream aborted after {self.frames_sent} frames: {e.detail}")
                    yield self._error_frame(e)
                    return
                except Exception as e:
                    logger.exception("Unexpected error while relaying stream")
                    yield self._error_frame(UpstreamError(str(e) or type(e).__name__))
                    return

                if self._delta is not None:
                    self.accumulator.append(self._delta(event))
                if self._is_terminal is not None and self._is_terminal(event):
                    terminated = True
                yield sse_frame(event)
                self.frames_sent += 1

            if self._require_terminal and not terminated:
                logger.warning(f"Stream ended after {self.frames_sent} frames without completing")
                yield self._error_frame(IncompleteStreamError())
                return

            self.state = RelayState.CLOSED_NORMAL
            yield sse_frame(
                self._closing(
                    "success",
                    message=self.summary_message,
                    content=self.accumulator.content,
                )
            )
        finally:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()
