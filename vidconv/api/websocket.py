"""
WebSocket handling for vidconv

Clients receive every job's events until they send
``{"type": "subscribe", "job_ids": [...]}``; after that only the listed jobs.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Set

from fastapi import WebSocket, WebSocketDisconnect

from ..conversion import ConversionProgress, ConversionResult
from ..models import JobStatus, WebSocketMessage

logger = logging.getLogger(__name__)

# Global WebSocket connections and their job filters (empty = all jobs)
websocket_connections: List[WebSocket] = []
subscriptions: Dict[int, Set[str]] = {}  # keyed by id(websocket)

KEEPALIVE_INTERVAL = 30.0  # seconds


def _wants(ws: WebSocket, job_id: str) -> bool:
    job_ids = subscriptions.get(id(ws))
    return not job_ids or job_id in job_ids


def _publish(message_type: str, job_id: str, data: Dict[str, Any]) -> None:
    message = WebSocketMessage(type=message_type, job_id=job_id, data=data).model_dump()
    asyncio.create_task(_broadcast_message(message))


def broadcast_progress(job_id: str, progress: ConversionProgress) -> None:
    _publish("conversion_progress", job_id, progress.to_dict())


def broadcast_status(job_id: str, status: JobStatus) -> None:
    _publish("status_change", job_id, {"status": status.value})


def broadcast_result(job_id: str, result: ConversionResult) -> None:
    """Final outcome of a job, sent once."""
    _publish("conversion_result", job_id, result.to_dict())


async def _broadcast_message(message: dict) -> None:
    """Send message to every connected client subscribed to the job."""
    disconnected = []
    for ws in websocket_connections[:]:
        if not _wants(ws, message["job_id"]):
            continue
        try:
            await ws.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"[WebSocket] Dropping client after send failure: {e}")
            disconnected.append(ws)

    for ws in disconnected:
        _disconnect(ws)


def _disconnect(ws: WebSocket) -> None:
    if ws in websocket_connections:
        websocket_connections.remove(ws)
    subscriptions.pop(id(ws), None)


async def _handle_client_message(websocket: WebSocket, message: Dict[str, Any]) -> None:
    msg_type = message.get("type")
    job_ids = message.get("job_ids") or []
    if not isinstance(job_ids, list):
        job_ids = [job_ids]

    if msg_type == "ping":
        await websocket.send_json({"type": "pong"})
    elif msg_type == "subscribe":
        subscriptions.setdefault(id(websocket), set()).update(str(j) for j in job_ids)
        await websocket.send_json({"type": "subscribed", "job_ids": sorted(subscriptions[id(websocket)])})
    elif msg_type == "unsubscribe":
        remaining = subscriptions.get(id(websocket), set())
        remaining.difference_update(str(j) for j in job_ids)
        if not job_ids:
            remaining.clear()
        await websocket.send_json({"type": "subscribed", "job_ids": sorted(remaining)})


async def websocket_progress_handler(websocket: WebSocket) -> None:
    """WebSocket endpoint handler for real-time progress updates."""
    await websocket.accept()
    websocket_connections.append(websocket)
    subscriptions[id(websocket)] = set()

    logger.info(f"[WebSocket] Client connected. Total connections: {len(websocket_connections)}")

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_INTERVAL)
            except asyncio.TimeoutError:
                try:
                    await websocket.send_json({"type": "ping"})
                except (WebSocketDisconnect, RuntimeError):
                    break
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.debug(f"[WebSocket] Ignoring non-JSON message: {data[:100]}")
                continue
            if isinstance(message, dict):
                await _handle_client_message(websocket, message)

    except WebSocketDisconnect:
        pass
    finally:
        _disconnect(websocket)
        logger.info(f"[WebSocket] Client disconnected. Total connections: {len(websocket_connections)}")
