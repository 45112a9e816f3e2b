"""Streaming endpoint — runs the current stage as Server-Sent Events.

Failures after the response has started are delivered in-band as an
``error`` event; the stream always ends with ``data: [DONE]``.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from heysme_agent.orchestrator import Orchestrator

from heysme_server.dependencies import get_orchestrator
from heysme_server.sse import SSE_HEADERS, encode_stream

router = APIRouter(tags=["stream"])


class StreamRequest(BaseModel):
    """Body for POST /sessions/{session_id}/stream.

    An empty message auto-starts the stage without adding a history turn.
    """
    message: str = ""


@router.post("/sessions/{session_id}/stream")
async def stream_stage(
    session_id: str,
    body: StreamRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    events = orchestrator.stream_stage(session_id, body.message)
    return StreamingResponse(
        encode_stream(events),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
