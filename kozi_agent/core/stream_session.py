# kozi_agent/core/stream_session.py
from __future__ import annotations
import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi.responses import StreamingResponse

from kozi_agent.core.errors import AssistantError
from kozi_agent.core.models import StreamEvent, StreamEventKind
from kozi_agent.core.redact import redact

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
DONE_FRAME = "data: [DONE]\n\n"
KEEPALIVE_FRAME = ": keepalive\n\n"
TIMEOUT_MESSAGE = "The request took too long and was stopped. Please try again with a simpler question."
GENERIC_APOLOGY = "Sorry, something went wrong while handling your request."


class SessionState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CLOSED = "closed"


TERMINAL_STATES = {SessionState.COMPLETED, SessionState.FAILED, SessionState.CLOSED}


class StreamSession:
    """
    One streamed reply: start, then messages in order, then exactly one of
    done / error. Emits after a terminal event (or after close) are dropped
    and reported as False.

    Only touched from the event loop; worker threads hand chunks back through
    the pipeline, never through this object.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.state = SessionState.IDLE
        self._queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        self._seq = 0

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _put(self, kind: StreamEventKind, data: Dict[str, Any]) -> None:
        self._seq += 1
        self._queue.put_nowait(StreamEvent(kind=kind, data=data, id=str(self._seq)))

    def start(self) -> bool:
        if self.state is not SessionState.IDLE:
            return False
        self.state = SessionState.STARTED
        self._put(StreamEventKind.START, {"session_id": self.id})
        return True

    def message(self, content: str) -> bool:
        if self.state not in (SessionState.STARTED, SessionState.STREAMING):
            logger.debug("Dropped message on %s session %s", self.state.value, self.id)
            return False
        self.state = SessionState.STREAMING
        self._put(StreamEventKind.MESSAGE, {"content": content})
        return True

    def complete(self) -> bool:
        if self.state not in (SessionState.STARTED, SessionState.STREAMING):
            return False
        self.state = SessionState.COMPLETED
        self._put(StreamEventKind.DONE, {})
        return True

    def fail(self, message: str) -> bool:
        if self.terminal:
            return False
        self.state = SessionState.FAILED
        self._put(StreamEventKind.ERROR, {"message": redact(message or GENERIC_APOLOGY)})
        return True

    def close(self) -> None:
        """Client went away: nothing more is emitted."""
        if not self.terminal:
            self.state = SessionState.CLOSED

    async def next_event(self, timeout: float) -> Optional[StreamEvent]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def drain(self) -> List[StreamEvent]:
        out: List[StreamEvent] = []
        while not self._queue.empty():
            out.append(self._queue.get_nowait())
        return out


def sse_frame(event: StreamEvent) -> str:
    lines = []
    if event.id is not None:
        lines.append(f"id: {event.id}")
    lines.append(f"event: {event.kind.value}")
    payload = json.dumps(event.data, default=str, ensure_ascii=False)
    lines.append(f"data: {payload}")
    return "\n".join(lines) + "\n\n"


Runner = Callable[[StreamSession], Awaitable[None]]


async def drive(session: StreamSession, run: Runner) -> None:
    """Run the pipeline and turn whatever escapes it into one terminal event."""
    try:
        await run(session)
    except asyncio.CancelledError:
        raise
    except AssistantError as ex:
        logger.info("Stream %s failed: %s: %s", session.id, type(ex).__name__, redact(str(ex)))
        session.fail(ex.public_message)
    except Exception:
        logger.exception("Assistant pipeline crashed (stream %s)", session.id)
        session.fail(GENERIC_APOLOGY)
    else:
        session.complete()


async def sse_events(session: StreamSession, run: Runner, *, timeout: float = 30.0, keepalive: float = 15.0):
    """
    Frames for one session. The pipeline runs as its own task; the wall clock
    bound fails the session even when the task is still busy.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    task = asyncio.create_task(drive(session, run))
    try:
        while True:
            wait = min(keepalive, deadline - loop.time())
            if wait <= 0:
                if session.fail(TIMEOUT_MESSAGE):
                    logger.warning("Stream %s timed out after %.1fs", session.id, timeout)
                task.cancel()
                wait = keepalive
            ev = await session.next_event(wait)
            if ev is None:
                yield KEEPALIVE_FRAME
                continue
            yield sse_frame(ev)
            if ev.terminal:
                yield DONE_FRAME
                break
    except GeneratorExit:
        logger.info("Client disconnected from stream %s", session.id)
        raise
    finally:
        session.close()
        if not task.done():
            task.cancel()


def stream_response(run: Runner, *, timeout: float = 30.0, keepalive: float = 15.0) -> StreamingResponse:
    session = StreamSession()
    # start goes out before any classification or generation work
    session.start()
    return StreamingResponse(
        sse_events(session, run, timeout=timeout, keepalive=keepalive),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
