"""
Analysis event stream.

GET /v1/stream/analysis  Server-sent events: connected, live-update,
                         scanning-insight, prediction-update.
GET /v1/stream/health    Subscriber count.
"""
from __future__ import annotations

from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse

from api.dependencies import get_broadcaster
from api.stream.broadcaster import EventBroadcaster, QueueSink
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/stream", tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/analysis")
async def analysis_stream(
    last_event_id: Optional[str] = Header(None),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    sink = QueueSink(maxsize=settings.stream_queue_size)
    subscriber_id = await broadcaster.register(sink, last_event_id=last_event_id)
    if subscriber_id is None:
        raise HTTPException(status_code=503, detail="Could not open stream")

    async def body() -> AsyncIterator[str]:
        try:
            async for event in sink.events(settings.stream_timeout_s):
                yield event.encode()
        finally:
            sink.close()
            broadcaster.unregister(subscriber_id)

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/health")
async def stream_health(broadcaster: EventBroadcaster = Depends(get_broadcaster)) -> dict[str, object]:
    return {"status": "UP", "subscribers": broadcaster.subscriber_count}
