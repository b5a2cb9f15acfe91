"""Live log stream over Server-Sent Events."""

import asyncio
import json

from fastapi import APIRouter, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from mockpay.providers.base import get_services

router = APIRouter()

KEEP_ALIVE_S = 15.0


@router.get("/__logs")
async def stream_logs(request: Request, history: int = Query(0, ge=0, le=1000)):
    services = get_services(request)
    queue = services.log_broadcaster.subscribe()
    backlog = (await run_in_threadpool(services.store.logs.find))[-history:] if history else []

    async def events():
        try:
            for entry in backlog:
                yield f"data: {json.dumps(entry)}\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    entry = await asyncio.wait_for(queue.get(), timeout=KEEP_ALIVE_S)
                except asyncio.TimeoutError:
                    yield ":keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(entry)}\n\n"
        finally:
            services.log_broadcaster.unsubscribe(queue)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
