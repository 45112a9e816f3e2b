"""Server-Sent Events framing for orchestrator stream events.

Each event becomes one SSE message::

    id: 3
    event: fragment
    data: {"kind": "fragment", "payload": {"text": "Hel"}}

and every stream ends with the ``data: [DONE]`` sentinel, written even when
the event source fails.
"""

import contextlib
import json
import logging
from typing import AsyncIterator

from heysme_agent.models.events import StreamEvent

logger = logging.getLogger(__name__)

DONE_SENTINEL = "data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering so fragments reach the client immediately
    "X-Accel-Buffering": "no",
}


def format_event(event: StreamEvent, event_id: int | None = None) -> str:
    """Encode one event as an SSE message."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event.kind}")
    data = json.dumps(event.model_dump(mode="json"), ensure_ascii=False)
    lines.append(f"data: {data}")
    return "\n".join(lines) + "\n\n"


async def encode_stream(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    """Frame every event, then the terminal sentinel.

    Closing this generator (client disconnect) closes ``events``.
    """
    try:
        async with contextlib.aclosing(events) as source:
            event_id = 0
            async for event in source:
                event_id += 1
                yield format_event(event, event_id)
    except Exception:
        logger.exception("Event source failed; closing stream")
    yield DONE_SENTINEL
