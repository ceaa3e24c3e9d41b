"""
Parameters and callback types used when declaring a process ready.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from gamelift_io.types import GameSession, UpdateGameSession

OnStartGameSessionFnT = Callable[[GameSession], Awaitable[Any] | None]
OnUpdateGameSessionFnT = Callable[[UpdateGameSession], Awaitable[Any] | None]
OnProcessTerminateFnT = Callable[[], Awaitable[Any] | None]


class OnHealthCheckFnT(Protocol):
    async def __call__(self) -> bool: ...


async def default_health_check() -> bool:
    return True


@dataclass
class LogParameters:
    """Files generated during a game session that GameLift should keep once the session ends."""

    log_paths: list[str] = field(default_factory=list)


@dataclass
class ProcessParameters:
    """Parameters sent to the GameLift service with ``process_ready()``.

    Session callbacks may be plain functions or coroutine functions. A plain
    function runs to completion before the event is acknowledged; a returned
    awaitable is scheduled on the server state's task group.
    """

    port: int
    """Port the server listens on for new player connections."""

    on_start_game_session: OnStartGameSessionFnT
    """Called when GameLift assigns a game session to this process."""

    log_parameters: LogParameters | None = None

    on_update_game_session: OnUpdateGameSessionFnT | None = None
    """Called when a match backfill request updates the game session."""

    on_process_terminate: OnProcessTerminateFnT | None = None
    """
    Called when GameLift forces the process to shut down. The process should
    call ``process_ending()`` within the grace period.
    """

    on_health_check: OnHealthCheckFnT | None = None
    """
    Called every health check interval. A result that does not arrive within
    the interval is reported as unhealthy. Defaults to always healthy.
    """
