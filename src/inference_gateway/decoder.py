import logging
from collections.abc import AsyncIterator, Callable
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from inference_gateway.errors import StreamDecodeError, UpstreamError

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=BaseModel)


class NDJSONDecoder(Generic[EventT]):
    """Decode a stream of NDJSON lines into validated events.

    Yields one event per non-blank line, in arrival order, holding at most one
    event at a time. Iteration stops after the first event for which
    ``is_terminal`` is true (``terminated`` is then set), or when the line
    source is exhausted. A line that is not a valid object raises
    ``StreamDecodeError`` and ends the stream; nothing is skipped.
    """

    def __init__(
        self,
        lines: AsyncIterator[str],
        model_cls: type[EventT],
        is_terminal: Callable[[EventT], bool],
    ):
        self._lines = lines
        self._model_cls = model_cls
        self._is_terminal = is_terminal
        self.terminated = False
        self.count = 0
        self._finished = False

    def __aiter__(self) -> "NDJSONDecoder[EventT]":
        return self

    async def __anext__(self) -> EventT:
        if self._finished:
            raise StopAsyncIteration

        while True:
            try:
                line = await anext(self._lines)
            except StopAsyncIteration:
                self._finished = True
                if self.count and not self.terminated:
                    logger.debug(
                        f"NDJSON stream ended after {self.count} events without a terminal event"
                    )
                raise
            if line.strip():
                break

        try:
            event = self._model_cls.model_validate_json(line)
        except ValidationError as e:
            self._finished = True
            raise StreamDecodeError(
                f"error decoding response line {self.count + 1}: {e.errors()[0]['msg']}"
            ) from e

        # Ollama reports failures mid-stream as {"error": "..."} with HTTP 200
        error = getattr(event, "error", None)
        if error:
            self._finished = True
            raise UpstreamError(f"error from Ollama: {error}")

        self.count += 1
        if self._is_terminal(event):
            self.terminated = True
            self._finished = True
        return event


def chat_done(event) -> bool:
    return event.done


def pull_succeeded(progress) -> bool:
    return progress.status == "success"
