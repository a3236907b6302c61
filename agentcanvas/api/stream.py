"""
Server-sent event stream of workspace progress.

ProgressStream wraps one GET on /api/orchestration/progress/stream and
yields StreamEvent objects as frames arrive. A stream is single-use: once
it has been iterated to the end or closed, iterating it again raises
StreamClosedError. Reconnecting means opening a new ProgressStream (see
StreamSupervisor).

Usage:
    async with client.open_progress_stream(workspace_id) as stream:
        async for event in stream:
            ...
"""

import json
import logging
from typing import Any, AsyncIterator, List, Optional

import httpx

from agentcanvas.core.events import StreamEvent

logger = logging.getLogger(__name__)


PROGRESS_STREAM_PATH = "/api/orchestration/progress/stream"


class StreamClosedError(RuntimeError):
    """Raised when a consumed or closed ProgressStream is iterated."""


class ProgressStream:
    """
    One-shot async iterator over a workspace's progress events.

    Transport errors (connect failures, non-2xx status, dropped
    connections) propagate to the caller. Frames whose data is not valid
    JSON are logged and skipped.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        workspace_id: str,
        path: str = PROGRESS_STREAM_PATH,
    ):
        self._client = client
        self._workspace_id = workspace_id
        self._path = path
        self._response: Optional[httpx.Response] = None
        self._stream_cm = None
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "ProgressStream":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        """Send the request and check the response status."""
        if self._closed:
            raise StreamClosedError("Progress stream is closed")
        if self._response is not None:
            return

        self._stream_cm = self._client.stream(
            "GET",
            self._path,
            params={"workspace_id": self._workspace_id},
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=httpx.Timeout(10.0, read=None),
        )
        response = await self._stream_cm.__aenter__()
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            await self._stream_cm.__aexit__(None, None, None)
            self._stream_cm = None
            self._closed = True
            raise
        self._response = response
        logger.info(f"Progress stream opened for workspace {self._workspace_id}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._stream_cm is not None:
            cm = self._stream_cm
            self._stream_cm = None
            await cm.__aexit__(None, None, None)
        self._response = None
        logger.debug(f"Progress stream closed for workspace {self._workspace_id}")

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._closed or self._started:
            raise StreamClosedError("Progress stream cannot be restarted")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        await self.open()
        event_name: Optional[str] = None
        data_lines: List[str] = []

        try:
            async for line in self._response.aiter_lines():
                if line == "":
                    event = self._build_event(event_name, data_lines)
                    event_name, data_lines = None, []
                    if event is not None:
                        yield event
                    continue

                if line.startswith(":"):
                    continue  # comment / keep-alive

                field, _, value = line.partition(":")
                if value.startswith(" "):
                    value = value[1:]

                if field == "event":
                    event_name = value
                elif field == "data":
                    data_lines.append(value)

            # Dispatch a trailing frame without blank-line terminator
            event = self._build_event(event_name, data_lines)
            if event is not None:
                yield event
        finally:
            await self.close()

    def _build_event(self, name: Optional[str], data_lines: List[str]) -> Optional[StreamEvent]:
        if not data_lines:
            return None
        raw = "\n".join(data_lines)
        try:
            payload: Any = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed {name or 'message'} frame: {e}")
            return None
        return StreamEvent.from_frame(name, payload)

