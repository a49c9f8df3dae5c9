"""
WebSocket log stream: subscribe to one project's log events.

Clients receive JSON messages shaped like
``{"type": "log", "projectId", "logType", "message", "timestamp"}``.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from shipyard.api.deps import get_log_broadcaster
from shipyard.core.log_channel import LogBroadcaster, LogSubscription

logger = logging.getLogger(__name__)

router = APIRouter()


async def _forward(websocket: WebSocket, subscription: LogSubscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.to_dict())


@router.websocket("/ws/logs/{project_id}")
async def stream_project_logs(
    websocket: WebSocket,
    project_id: int,
    broadcaster: LogBroadcaster = Depends(get_log_broadcaster),
):
    await websocket.accept()
    subscription = broadcaster.subscribe(project_id)
    sender = asyncio.create_task(_forward(websocket, subscription))
    logger.info(f"Log stream opened for project {project_id}")
    try:
        while True:
            # Client messages are ignored; reading detects the disconnect.
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Log stream closed for project {project_id}")
    finally:
        subscription.close()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        if subscription.dropped:
            logger.warning(f"Log stream for project {project_id} dropped {subscription.dropped} events")
