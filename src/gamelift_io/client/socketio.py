"""
Socket.IO channel to the GameLift proxy.

The proxy that runs next to every GameLift server process speaks Socket.IO over
a websocket. Its acknowledgments carry ``(success, response)`` where response
is an optional JSON string.
"""

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import socketio

from gamelift_io.shared.channel import AckFnT, DisconnectHandlerFnT, EventHandlerFnT

logger = logging.getLogger(__name__)


class SocketIOChannel:
    """A channel over a ``socketio.AsyncClient``."""

    def __init__(self, reconnection_attempts: int = 3, client: socketio.AsyncClient | None = None) -> None:
        self._client = client or socketio.AsyncClient(reconnection_attempts=reconnection_attempts)
        self._handlers: dict[str, EventHandlerFnT] = {}
        self._disconnect_handlers: list[DisconnectHandlerFnT] = []
        self._registered: set[str] = set()
        self._client.on("disconnect", self._on_disconnect)

    @property
    def connected(self) -> bool:
        return self._client.connected

    async def connect(self, url: str, query: Mapping[str, str]) -> None:
        connect_url = f"{url}?{urlencode(query)}" if query else url
        logger.debug("Connecting to %s", connect_url)
        await self._client.connect(connect_url, transports=["websocket"])
        logger.debug("Socket '%s' connected to GameLift proxy", self._client.sid)

    async def emit(self, event: str, data: str, callback: AckFnT) -> None:
        await self._client.emit(event, data, callback=callback)

    def on(self, event: str, handler: EventHandlerFnT) -> None:
        self._handlers[event] = handler
        if event not in self._registered:
            self._registered.add(event)
            self._client.on(event, self._dispatcher(event))

    def on_disconnect(self, handler: DisconnectHandlerFnT) -> None:
        self._disconnect_handlers.append(handler)

    def off(self) -> None:
        self._handlers.clear()

    async def disconnect(self) -> None:
        await self._client.disconnect()

    def _dispatcher(self, event: str):
        def dispatch(data: Any = None) -> Any:
            handler = self._handlers.get(event)
            if handler is None:
                logger.debug("No handler for '%s' event", event)
                return None

            # Socket.IO sends the handler's return value as the acknowledgment.
            acks: list[bool] = []
            handler(data, acks.append)
            return acks[0] if acks else None

        return dispatch

    def _on_disconnect(self, *args: Any) -> None:
        logger.debug("Socket disconnected from GameLift proxy")
        for handler in list(self._disconnect_handlers):
            handler()
