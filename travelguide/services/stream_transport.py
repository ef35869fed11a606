"""Server-Sent Events transport for pipeline progress.

Producer side: ``ProgressStream`` is the single listener attached to a
``ProgressTracker``. It queues every snapshot as a ``progress`` event and
closes after exactly one terminal ``complete`` or ``error`` event.

Consumer side: ``parse_sse_line`` and ``GuideStreamClient`` read the frames
back, skipping anything unparsable and stopping after the terminal event.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from travelguide.models.progress_models import (
    TERMINAL_EVENT_TYPES,
    CompleteEvent,
    CompletePayload,
    ErrorEvent,
    ErrorPayload,
    PipelineState,
    ProgressEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "

_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def encode_sse(event: StreamEvent) -> str:
    """One ``data: {json}\\n\\n`` frame."""
    return f"{SSE_DATA_PREFIX}{event.model_dump_json()}\n\n"


def parse_sse_line(line: str) -> Optional[StreamEvent]:
    """Decode a single ``data:`` line, or ``None`` when it is not a valid event."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if not payload:
        return None
    try:
        return _event_adapter.validate_json(payload)
    except ValidationError as e:
        logger.debug(f"[stream] Skipping unparsable frame: {e.error_count()} errors")
        return None


class ProgressStream:
    """Single-writer, single-reader event channel backed by an ``asyncio.Queue``."""

    def __init__(self):
        self._queue: "asyncio.Queue[Optional[StreamEvent]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, event: StreamEvent) -> bool:
        if self._closed:
            logger.debug(f"[stream] Dropping {event.type} event after terminal event")
            return False
        self._queue.put_nowait(event)
        if event.type in TERMINAL_EVENT_TYPES:
            self._closed = True
            self._queue.put_nowait(None)
        return True

    def publish_progress(self, state: PipelineState) -> bool:
        # usable directly as a ProgressTracker listener
        return self._put(ProgressEvent(data=state))

    __call__ = publish_progress

    def publish_complete(self, state: PipelineState, result: Any = None) -> bool:
        return self._put(CompleteEvent(data=CompletePayload(progress=state, result=result)))

    def publish_error(self, state: PipelineState, error: str) -> bool:
        return self._put(ErrorEvent(data=ErrorPayload(progress=state, error=error)))

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield queued events in order until the terminal event has been yielded."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def sse_frames(self) -> AsyncIterator[str]:
        async for event in self.events():
            yield encode_sse(event)


class GuideStreamClient:
    """Reads a guide-generation stream from a running API."""

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 300.0):
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = logging.getLogger(__name__)

    async def close(self) -> None:
        await self._client.aclose()

    async def stream_guide(self, prompt: str) -> AsyncIterator[StreamEvent]:
        url = f"{self.base_url}/api/v1/generate/stream"
        async with self._client.stream("POST", url, json={"prompt": prompt}) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is None:
                    continue
                yield event
                if event.type in TERMINAL_EVENT_TYPES:
                    self.logger.info(f"[stream] Received terminal '{event.type}' event")
                    return

    async def generate(self, prompt: str) -> StreamEvent:
        """Consume the whole stream and return its terminal event."""
        last: Optional[StreamEvent] = None
        async for event in self.stream_guide(prompt):
            last = event
        if last is None or last.type not in TERMINAL_EVENT_TYPES:
            raise ConnectionError("stream ended without a terminal event")
        return last
