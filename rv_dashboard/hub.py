"""WebSocket fan-out for dashboard clients."""

import json
import logging
from typing import Any, Set

from starlette.websockets import WebSocket, WebSocketState

from .utils import iso_timestamp


class BroadcastHub:
    """Tracks live WebSocket connections and multicasts envelopes to them.

    Delivery is fire-and-forget: there is no per-client queue and a client
    that is not open when a broadcast happens simply misses it.
    """

    def __init__(self):
        self.connections: Set[WebSocket] = set()
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self.connections)

    @property
    def has_clients(self) -> bool:
        return bool(self.connections)

    def register(self, connection: WebSocket) -> None:
        self.connections.add(connection)
        self.logger.info(f"WebSocket client connected ({len(self.connections)} total)")

    def unregister(self, connection: WebSocket) -> None:
        if connection in self.connections:
            self.connections.discard(connection)
            self.logger.info(f"WebSocket client disconnected ({len(self.connections)} total)")

    @staticmethod
    def encode(message_type: str, data: Any) -> str:
        """Serialize a broadcast envelope."""
        return json.dumps(
            {"type": message_type, "data": data, "timestamp": iso_timestamp()},
            default=str,
            allow_nan=False,
        )

    async def broadcast(self, message_type: str, data: Any) -> None:
        """Send one envelope to every open connection.

        Args:
            message_type: Channel name consumed by the frontend
            data: JSON-serializable payload

        Raises:
            ValueError: If data holds NaN or Infinity
        """
        if not self.connections:
            return

        message = self.encode(message_type, data)
        for connection in list(self.connections):
            if connection.application_state != WebSocketState.CONNECTED:
                continue
            try:
                await connection.send_text(message)
            except Exception as e:
                self.logger.warning(f"Dropping WebSocket client after send failure: {e}")
                self.unregister(connection)
