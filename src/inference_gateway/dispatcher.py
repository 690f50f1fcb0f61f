import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from inference_gateway.errors import DispatchTimeoutError, GatewayError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatched operation; exactly one of ok/error/timeout."""

    status: Literal["ok", "error", "timeout"]
    value: Any = None
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class RequestDispatcher:
    """Runs one unit of backend work under a deadline.

    The operation runs as its own task. If the deadline expires first the task
    is cancelled, which closes any in-flight httpx request it owns; work that
    was handed to a thread finishes there and its result is dropped.
    """

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    def effective_timeout(self, client_timeout: float | None = None) -> float:
        if client_timeout is not None and 0 < client_timeout < self.timeout:
            return client_timeout
        return self.timeout

    async def dispatch(
        self,
        operation: Callable[[], Awaitable[Any]],
        timeout: float | None = None,
    ) -> DispatchResult:
        deadline = self.effective_timeout(timeout)
        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=deadline)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            logger.warning(f"Dispatch timed out after {deadline:g}s, backend call cancelled")
            return DispatchResult("timeout", error=DispatchTimeoutError(deadline))

        exc = task.exception()
        if exc is None:
            return DispatchResult("ok", value=task.result())
        if isinstance(exc, GatewayError):
            return DispatchResult("error", error=exc)
        msg = str(exc) or f"{type(exc).__name__} (no message)"
        return DispatchResult("error", error=UpstreamError(f"Backend error: {msg}"))
