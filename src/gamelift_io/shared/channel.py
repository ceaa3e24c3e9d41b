"""
Channel contract used by the network layer.

A channel is a duplex, event-named connection to the GameLift proxy. Outbound
events carry a one-shot acknowledgment callback which the channel invokes with
``(success, response)`` once the proxy answers; inbound events are delivered to
named handlers together with an acknowledgment function of their own.
"""

from collections.abc import Callable, Mapping
from typing import Any, Protocol


class AckFnT(Protocol):
    """Acknowledgment for an outbound event, invoked once by the channel."""

    def __call__(self, success: bool, response: str | None = None) -> None: ...


class InboundAckFnT(Protocol):
    """Acknowledgment handed to inbound event handlers."""

    def __call__(self, success: bool) -> None: ...


EventHandlerFnT = Callable[[Any, InboundAckFnT | None], None]
DisconnectHandlerFnT = Callable[[], None]


class Channel(Protocol):
    """A duplex connection to the GameLift proxy."""

    @property
    def connected(self) -> bool: ...

    async def connect(self, url: str, query: Mapping[str, str]) -> None:
        """Open the connection, returning once the proxy has accepted it.

        Raises:
            Exception: whatever the underlying implementation raises on a connect error
        """
        ...

    async def emit(self, event: str, data: str, callback: AckFnT) -> None: ...

    def on(self, event: str, handler: EventHandlerFnT) -> None:
        """Register ``handler`` for a named inbound event."""
        ...

    def on_disconnect(self, handler: DisconnectHandlerFnT) -> None: ...

    def off(self) -> None:
        """Remove every event handler registered with ``on()``. Disconnect handlers stay registered."""
        ...

    async def disconnect(self) -> None: ...
