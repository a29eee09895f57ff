"""UI message stream: frame builders, SSE encoding and the turn writer.

Frames are JSON objects in the UI-message-stream format understood by the
web and mobile clients. Several producers (the model relay, the title relay
and tools) write into one ``UIMessageStreamWriter``; the SSE response drains
it in the order frames were written.
"""

import asyncio
import json
import re
import uuid
from collections.abc import AsyncIterator
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()

Frame = dict[str, Any]

DONE_MARKER = "[DONE]"
ERROR_TEXT = "Oops, an error occurred!"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "x-vercel-ai-ui-message-stream": "v1",
}


def encode_sse(frame: Frame | str) -> str:
    """Encode one frame (or the done marker) as an SSE ``data:`` event."""
    if isinstance(frame, str):
        return f"data: {frame}\n\n"
    return f"data: {json.dumps(frame, ensure_ascii=False, default=str)}\n\n"


def new_part_id() -> str:
    return uuid.uuid4().hex


# --- Frame builders ---


def start_frame(message_id: str) -> Frame:
    return {"type": "start", "messageId": message_id}


def start_step_frame() -> Frame:
    return {"type": "start-step"}


def finish_step_frame() -> Frame:
    return {"type": "finish-step"}


def finish_frame() -> Frame:
    return {"type": "finish"}


def text_frame(kind: str, part_id: str, delta: str | None = None) -> Frame:
    """``text-*`` or ``reasoning-*`` frame; ``kind`` is start, delta or end."""
    frame: Frame = {"type": kind, "id": part_id}
    if delta is not None:
        frame["delta"] = delta
    return frame


def tool_input_frame(tool_call_id: str, tool_name: str, tool_input: Any) -> Frame:
    return {
        "type": "tool-input-available",
        "toolCallId": tool_call_id,
        "toolName": tool_name,
        "input": tool_input,
    }


def tool_output_frame(tool_call_id: str, output: Any) -> Frame:
    return {"type": "tool-output-available", "toolCallId": tool_call_id, "output": output}


def tool_error_frame(tool_call_id: str, error_text: str) -> Frame:
    return {"type": "tool-output-error", "toolCallId": tool_call_id, "errorText": error_text}


def data_frame(
    name: str,
    data: Any,
    transient: bool = True,
    part_id: str | None = None,
) -> Frame:
    """Custom ``data-<name>`` frame. Transient frames never reach the transcript."""
    frame: Frame = {"type": f"data-{name}", "data": data}
    if part_id is not None:
        frame["id"] = part_id
    if transient:
        frame["transient"] = True
    return frame


def error_frame(error_text: str = ERROR_TEXT) -> Frame:
    return {"type": "error", "errorText": error_text}


# --- Writer ---


class FrameSink(Protocol):
    """Secondary consumer of frames (e.g. the resumable-stream buffer)."""

    async def append(self, frame: Frame) -> None: ...

    async def complete(self) -> None: ...


class UIMessageStreamWriter:
    """Frame queue shared by all producers of one turn.

    The client reads ``frames()``. When a sink is attached, ``mirror()``
    forwards every frame to it as well, whether or not the client is still
    reading, and completes the sink once the writer is closed.
    """

    def __init__(self, sink: FrameSink | None = None) -> None:
        self._queue: asyncio.Queue[Frame | None] = asyncio.Queue()
        self._sink_queue: asyncio.Queue[Frame | None] = asyncio.Queue()
        self._sink = sink
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def mirrored(self) -> bool:
        return self._sink is not None

    def write(self, frame: Frame) -> None:
        """Enqueue a frame. Writes after close are ignored."""
        if self._closed:
            logger.debug("Frame written after close", frame_type=frame.get("type"))
            return
        self._queue.put_nowait(frame)
        if self._sink is not None:
            self._sink_queue.put_nowait(frame)

    def write_data(self, name: str, data: Any, transient: bool = True) -> None:
        self.write(data_frame(name, data, transient=transient))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)
            self._sink_queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield frames until the writer is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                break
            yield frame

    async def mirror(self) -> None:
        """Forward frames to the sink until the writer is closed.

        The sink is always completed, even after an append failed, so that
        followers of the buffer see the end of the stream.
        """
        sink = self._sink
        if sink is None:
            return
        try:
            while (frame := await self._sink_queue.get()) is not None:
                await sink.append(frame)
        except Exception:
            logger.warning("Frame mirroring failed, disabling sink", exc_info=True)
            self._sink = None
        finally:
            try:
                await sink.complete()
            except Exception:
                logger.warning("Completing frame sink failed", exc_info=True)


# --- Word smoothing ---


class WordSmoother:
    """Re-chunk text deltas into whole words.

    ``push`` returns the complete words buffered so far (each with its
    trailing whitespace); ``flush`` returns whatever is left at the end.
    """

    WORD_PATTERN = re.compile(r"\S+\s+")

    def __init__(self, delay_ms: int = 10) -> None:
        self.delay_seconds = delay_ms / 1000
        self._buffer = ""

    def push(self, delta: str) -> list[str]:
        self._buffer += delta
        chunks: list[str] = []
        while match := self.WORD_PATTERN.search(self._buffer):
            chunks.append(self._buffer[: match.end()])
            self._buffer = self._buffer[match.end() :]
        return chunks

    def flush(self) -> str:
        remainder, self._buffer = self._buffer, ""
        return remainder
