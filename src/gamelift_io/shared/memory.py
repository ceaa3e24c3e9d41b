"""
In-memory channel and scripted proxy, for testing game servers without a
GameLift proxy.
"""

from collections import defaultdict, deque
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio.lowlevel

from gamelift_io.shared.channel import AckFnT, DisconnectHandlerFnT, EventHandlerFnT
from gamelift_io.types import GameLiftModel

if TYPE_CHECKING:
    from gamelift_io.server.settings import GameLiftSettings
    from gamelift_io.server.state import ServerState

AckResult = tuple[bool, str | None]
ResponderFnT = Callable[[str], AckResult | None]


@dataclass
class ReceivedEvent:
    """An event the proxy received from the process."""

    event: str
    data: str


@dataclass
class _HeldCall:
    event: str
    data: str
    callback: AckFnT


@dataclass
class LocalProxy:
    """Stands in for the GameLift proxy at the far end of a ``MemoryChannel``.

    Every emitted event is recorded in ``received`` and acknowledged with
    ``(True, None)`` unless a different reply was configured with ``respond()``
    or the event was put on hold with ``hold()``.
    """

    received: list[ReceivedEvent] = field(default_factory=list)
    query: dict[str, str] | None = None
    url: str | None = None
    refuse_connections: bool = False
    _responders: dict[str, ResponderFnT] = field(default_factory=dict)
    _held_events: set[str] = field(default_factory=set)
    _held_calls: dict[str, deque[_HeldCall]] = field(default_factory=lambda: defaultdict(deque))
    _channel: "MemoryChannel | None" = None

    def channel(self) -> "MemoryChannel":
        return MemoryChannel(self)

    def respond(self, event: str, success: bool = True, response: GameLiftModel | str | None = None) -> None:
        """Acknowledge every future ``event`` with ``(success, response)``."""
        if isinstance(response, GameLiftModel):
            response = response.to_json()
        reply: AckResult = (success, response)
        self._responders[event] = lambda _data: reply

    def respond_with(self, event: str, responder: ResponderFnT) -> None:
        """Compute the acknowledgment for ``event`` from its payload. Returning None withholds it."""
        self._responders[event] = responder

    def hold(self, event: str) -> None:
        """Withhold acknowledgments for ``event`` until ``acknowledge()`` is called."""
        self._held_events.add(event)

    def acknowledge(self, event: str, success: bool = True, response: str | None = None) -> None:
        """Acknowledge the oldest held call of ``event``."""
        call = self._held_calls[event].popleft()
        call.callback(success, response)

    def held(self, event: str) -> int:
        return len(self._held_calls[event])

    def events(self, event: str) -> list[str]:
        """Payloads of every received ``event``, in order."""
        return [received.data for received in self.received if received.event == event]

    def push(self, event: str, data: GameLiftModel | str | Mapping[str, Any]) -> list[bool]:
        """Send a server-initiated event to the process and return the acknowledgments it gave."""
        if self._channel is None or not self._channel.connected:
            raise RuntimeError("No process is connected to the proxy")
        if isinstance(data, GameLiftModel):
            data = data.to_json()

        acks: list[bool] = []
        self._channel.deliver(event, data, acks.append)
        return acks

    def drop(self) -> None:
        """Close the connection from the proxy side."""
        if self._channel is not None:
            self._channel.close()

    def _attach(self, channel: "MemoryChannel", url: str, query: Mapping[str, str]) -> None:
        self._channel = channel
        self.url = url
        self.query = dict(query)

    def _receive(self, event: str, data: str, callback: AckFnT) -> None:
        self.received.append(ReceivedEvent(event=event, data=data))

        if event in self._held_events:
            self._held_calls[event].append(_HeldCall(event=event, data=data, callback=callback))
            return

        responder = self._responders.get(event)
        reply = responder(data) if responder is not None else (True, None)
        if reply is not None:
            callback(*reply)


class MemoryChannel:
    """A channel connected directly to a ``LocalProxy``."""

    def __init__(self, proxy: LocalProxy) -> None:
        self._proxy = proxy
        self._connected = False
        self._handlers: dict[str, EventHandlerFnT] = {}
        self._disconnect_handlers: list[DisconnectHandlerFnT] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, url: str, query: Mapping[str, str]) -> None:
        await anyio.lowlevel.checkpoint()
        if self._proxy.refuse_connections:
            raise ConnectionRefusedError(f"Connection to {url} refused")
        self._connected = True
        self._proxy._attach(self, url, query)  # type: ignore[reportPrivateUsage]

    async def emit(self, event: str, data: str, callback: AckFnT) -> None:
        await anyio.lowlevel.checkpoint()
        if not self._connected:
            raise ConnectionError("Channel is not connected")
        self._proxy._receive(event, data, callback)  # type: ignore[reportPrivateUsage]

    def on(self, event: str, handler: EventHandlerFnT) -> None:
        self._handlers[event] = handler

    def on_disconnect(self, handler: DisconnectHandlerFnT) -> None:
        self._disconnect_handlers.append(handler)

    def off(self) -> None:
        self._handlers.clear()

    async def disconnect(self) -> None:
        await anyio.lowlevel.checkpoint()
        self.close()

    def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        for handler in list(self._disconnect_handlers):
            handler()

    def deliver(self, event: str, data: Any, ack: Callable[[bool], None]) -> None:
        handler = self._handlers.get(event)
        if handler is not None:
            handler(data, ack)


@asynccontextmanager
async def create_connected_server_state(
    settings: "GameLiftSettings | None" = None,
    proxy: LocalProxy | None = None,
) -> AsyncGenerator[tuple["ServerState", LocalProxy], None]:
    """Yield a server state whose networking is connected to an in-memory proxy."""
    from gamelift_io.server.state import ServerState

    proxy = proxy or LocalProxy()
    async with ServerState(settings) as state:
        await state.initialize_networking(proxy.channel())
        yield state, proxy
