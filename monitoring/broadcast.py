"""
============================================================================
STATUS MONITOR - LIVE BROADCAST
============================================================================
Fans freshly recorded check results out to connected live clients.

Each subscriber owns a bounded ``asyncio.Queue`` of pre-rendered
Server-Sent-Events frames. ``broadcast_check`` enqueues without waiting;
a subscriber whose queue is full is considered dead and is dropped, so a
slow browser can never stall the check cycle. The SSE transport that
drains the queues lives in ``api.server``.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import json
import uuid
from typing import Any, Dict, Tuple

from utils.logger import get_logger


logger = get_logger("Broadcast")

KEEPALIVE_FRAME = ": keepalive\n\n"


def sse_frame(payload: Dict[str, Any]) -> str:
    """Render *payload* as one SSE ``data:`` frame."""
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


class LiveBroadcaster:
    """
    Registry of live subscribers.

    Parameters
    ----------
    queue_size : int
        Frames buffered per subscriber before it is dropped.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._clients: Dict[str, asyncio.Queue] = {}

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def add_client(self) -> Tuple[str, asyncio.Queue]:
        """
        Register a subscriber.

        The queue is pre-loaded with the ``connected`` frame carrying
        the client id.
        """
        client_id = str(uuid.uuid4())
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        queue.put_nowait(sse_frame({"type": "connected", "clientId": client_id}))
        self._clients[client_id] = queue
        logger.info(f"[SSE] Client connected: {client_id} (total: {len(self._clients)})")
        return client_id, queue

    def has_client(self, client_id: str) -> bool:
        return client_id in self._clients

    def remove_client(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            logger.info(f"[SSE] Client disconnected: {client_id} (total: {len(self._clients)})")

    def broadcast_check(self, service_id: str, result) -> None:
        """
        Deliver one check result to every subscriber. Never raises.

        Parameters
        ----------
        service_id : str
            Owning service.
        result : CheckResult
            Anything with ``to_dict()``.
        """
        try:
            frame = sse_frame({"type": "check", "serviceId": service_id, "check": result.to_dict()})
        except Exception as e:
            logger.error(f"[SSE] Could not serialize check for {service_id}: {e}")
            return

        for client_id, queue in list(self._clients.items()):
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning(f"[SSE] Client {client_id} is not keeping up, dropping it")
                self._clients.pop(client_id, None)

    def close_all(self) -> None:
        """Forget every subscriber (used at shutdown)."""
        self._clients.clear()
