"""
GameLift server state.

``ServerState`` tracks the lifecycle of a game server process as seen by
GameLift:

- unready: ``process_ready()`` has not completed, or ``process_ending()`` was called
- ready and idle: GameLift may assign a game session to the process
- ready with a game session: a ``StartGameSession`` event has been handled

It validates the preconditions of every call the process makes, routes the
events GameLift pushes to the callbacks registered with ``process_ready()``,
and owns the health monitor. All of its state is touched from the event loop
only.

Usage:
    async with ServerState() as state:
        await state.initialize_networking()
        await state.process_ready(ProcessParameters(port=7777, on_start_game_session=...))
"""

import inspect
import os
from collections.abc import Awaitable, Callable
from datetime import datetime
from types import TracebackType
from typing import Any

import anyio
from anyio.abc import TaskGroup
from typing_extensions import Self

import gamelift_io.types as types
from gamelift_io.client.socketio import SocketIOChannel
from gamelift_io.server.health import HealthMonitor
from gamelift_io.server.models import (
    OnHealthCheckFnT,
    OnProcessTerminateFnT,
    OnStartGameSessionFnT,
    OnUpdateGameSessionFnT,
    ProcessParameters,
    default_health_check,
)
from gamelift_io.server.settings import GameLiftSettings
from gamelift_io.shared.channel import Channel, InboundAckFnT
from gamelift_io.shared.exceptions import (
    InvalidRequestError,
    NoGameSessionError,
    ProcessNotReadyError,
    TransportNotInitializedError,
)
from gamelift_io.shared.network import Network
from gamelift_io.utilities.logging import get_logger

logger = get_logger(__name__)

MAX_PLAYER_SESSIONS_LIMIT = 1024


class ServerState:
    """Session lifecycle of one game server process."""

    _task_group: TaskGroup | None
    _networking: Network | None

    def __init__(self, settings: GameLiftSettings | None = None) -> None:
        self.settings = settings or GameLiftSettings()
        self._task_group = None
        self._networking = None

        self._ready = False
        self._game_session_id: str | None = None
        self._termination_time: datetime | None = None

        self._on_start_game_session: OnStartGameSessionFnT | None = None
        self._on_update_game_session: OnUpdateGameSessionFnT | None = None
        self._on_process_terminate: OnProcessTerminateFnT | None = None
        self._on_health_check: OnHealthCheckFnT = default_health_check

        self._health_monitor: HealthMonitor | None = None
        self._health_scope: anyio.CancelScope | None = None

    async def __aenter__(self) -> Self:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        assert self._task_group is not None
        if self._networking is not None:
            with anyio.CancelScope(shield=True):
                await self._networking.close()

        # Exiting should not wait for the health monitor's next tick.
        self._task_group.cancel_scope.cancel()
        task_group, self._task_group = self._task_group, None
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def networking(self) -> Network | None:
        return self._networking

    @property
    def health_monitor(self) -> HealthMonitor | None:
        return self._health_monitor

    async def initialize_networking(self, channel: Channel | None = None) -> None:
        """Connect to the GameLift proxy.

        Args:
            channel: channel to connect over. Defaults to a Socket.IO connection
                to ``settings.proxy_url``.
        """
        logger.debug("Initializing networking")
        if channel is None:
            channel = SocketIOChannel(reconnection_attempts=self.settings.reconnect_attempts)

        self._networking = Network(
            channel,
            self,
            request_timeout=self.settings.request_timeout,
            termination_grace_period=self.settings.termination_grace_period,
        )
        await self._networking.perform_connect(self.settings.proxy_url, self._handshake_query())

    def _handshake_query(self) -> dict[str, str]:
        return {
            "pID": str(os.getpid()),
            "sdkVersion": self.settings.sdk_version,
            "sdkLanguage": self.settings.sdk_language,
        }

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def process_ready(self, process_parameters: ProcessParameters) -> None:
        """Register the process callbacks and tell GameLift the process can host a game session."""
        networking = self._assert_network_initialized()
        if self._task_group is None:
            raise RuntimeError("ServerState must be entered with 'async with' before process_ready()")

        logger.info("Declaring process ready on port %d", process_parameters.port)
        self._on_start_game_session = process_parameters.on_start_game_session
        self._on_update_game_session = process_parameters.on_update_game_session
        self._on_process_terminate = process_parameters.on_process_terminate
        self._on_health_check = process_parameters.on_health_check or default_health_check

        log_paths = process_parameters.log_parameters.log_paths if process_parameters.log_parameters else []

        # The proxy may push StartGameSession as soon as it has acknowledged,
        # before this task resumes.
        self._ready = True
        try:
            await networking.process_ready(process_parameters.port, log_paths)
        except BaseException:
            self._ready = False
            raise

        self._start_health_check(networking)

    async def process_ending(self) -> None:
        """Tell GameLift the process is shutting down. Stops health reporting."""
        networking = self._assert_network_initialized()

        logger.info("Notifying GameLift that the process is ending")
        self._ready = False
        self._game_session_id = None
        await networking.process_ending()

    def _start_health_check(self, networking: Network) -> None:
        assert self._task_group is not None
        if self._health_scope is not None:
            self._health_scope.cancel()

        monitor = HealthMonitor(
            networking,
            self._on_health_check,
            is_ready=lambda: self._ready,
            interval=self.settings.healthcheck_interval,
        )
        scope = anyio.CancelScope()
        self._health_monitor = monitor
        self._health_scope = scope
        self._task_group.start_soon(self._run_health_monitor, monitor, scope)

    async def _run_health_monitor(self, monitor: HealthMonitor, scope: anyio.CancelScope) -> None:
        with scope:
            await monitor.run()

        if self._health_scope is scope:
            self._health_scope = None
            self._health_monitor = None

    # ------------------------------------------------------------------
    # Game session calls
    # ------------------------------------------------------------------

    async def activate_game_session(self) -> None:
        """Tell GameLift the assigned game session is ready to accept players."""
        game_session_id = self._assert_game_session()
        logger.info("Activating game session '%s'", game_session_id)
        await self._assert_network_initialized().activate_game_session(game_session_id)

    async def terminate_game_session(self) -> None:
        """Tell GameLift the current game session has ended.

        The game session id is kept: the process is expected to call
        ``process_ending()``, or ``process_ready()`` again before hosting
        another session.
        """
        game_session_id = self._assert_game_session()
        logger.info("Terminating game session '%s'", game_session_id)
        await self._assert_network_initialized().terminate_game_session(game_session_id)

    async def accept_player_session(self, player_session_id: str) -> None:
        game_session_id = self._assert_game_session()
        logger.debug("Accepting player session '%s'", player_session_id)
        await self._assert_network_initialized().accept_player_session(game_session_id, player_session_id)

    async def remove_player_session(self, player_session_id: str) -> None:
        game_session_id = self._assert_game_session()
        logger.debug("Removing player session '%s'", player_session_id)
        await self._assert_network_initialized().remove_player_session(game_session_id, player_session_id)

    async def describe_player_sessions(
        self, request: types.DescribePlayerSessionsRequest
    ) -> types.DescribePlayerSessionsResponse:
        networking = self._assert_network_initialized()
        if request.limit is not None and not 1 <= request.limit <= MAX_PLAYER_SESSIONS_LIMIT:
            raise InvalidRequestError(f"limit must be between 1 and {MAX_PLAYER_SESSIONS_LIMIT}, got {request.limit}")
        return await networking.describe_player_sessions(request)

    async def update_player_session_creation_policy(self, policy: types.PlayerSessionCreationPolicy) -> None:
        game_session_id = self._assert_game_session()
        logger.debug("Updating player session creation policy to %s", policy)
        await self._assert_network_initialized().update_player_session_creation_policy(game_session_id, policy)

    async def start_match_backfill(
        self, request: types.BackfillMatchmakingRequest
    ) -> types.BackfillMatchmakingResponse:
        """Request new players for the current game session.

        ``game_session_arn`` defaults to the current game session.
        """
        networking = self._assert_network_initialized()
        if not request.matchmaking_configuration_arn:
            raise InvalidRequestError("matchmaking_configuration_arn is required")
        if not request.players:
            raise InvalidRequestError("at least one player is required")
        if request.game_session_arn is None:
            request = request.model_copy(update={"game_session_arn": self.get_game_session_id()})
        return await networking.start_match_backfill(request)

    async def stop_match_backfill(self, request: types.StopMatchmakingRequest) -> None:
        """Cancel a match backfill request. ``game_session_arn`` defaults to the current game session."""
        networking = self._assert_network_initialized()
        if request.game_session_arn is None:
            request = request.model_copy(update={"game_session_arn": self.get_game_session_id()})
        await networking.stop_match_backfill(request)

    async def get_instance_certificate(self) -> types.GetInstanceCertificateResponse:
        return await self._assert_network_initialized().get_instance_certificate()

    def get_game_session_id(self) -> str:
        if self._game_session_id is None:
            raise NoGameSessionError()
        return self._game_session_id

    def get_termination_time(self) -> datetime | None:
        return self._termination_time

    # ------------------------------------------------------------------
    # Events from GameLift
    # ------------------------------------------------------------------

    def on_start_game_session(self, game_session: types.GameSession, ack: InboundAckFnT) -> None:
        if not self._ready:
            logger.warning("Received game session '%s' while not ready", game_session.game_session_id)
            ack(False)
        else:
            self._game_session_id = game_session.game_session_id

        logger.info("Starting game session '%s'", game_session.game_session_id)
        if self._on_start_game_session is not None:
            self._invoke(self._on_start_game_session, game_session)
        ack(True)

    def on_update_game_session(self, update_game_session: types.UpdateGameSession, ack: InboundAckFnT) -> None:
        if not self._ready:
            logger.warning("Received a game session update while not ready")
            ack(False)

        logger.debug("Game session updated (%s)", update_game_session.update_reason)
        if self._on_update_game_session is not None:
            self._invoke(self._on_update_game_session, update_game_session)
        ack(True)

    def on_terminate_process(self, termination_time: datetime) -> None:
        if not self._ready:
            logger.debug("Ignoring process termination, the process never declared itself ready")
            return

        logger.info("GameLift will terminate the process at %s", termination_time.isoformat())
        self._termination_time = termination_time
        if self._on_process_terminate is not None:
            self._invoke(self._on_process_terminate)

    def _invoke(self, callback: Callable[..., Awaitable[Any] | None], *args: Any) -> None:
        result = callback(*args)
        if inspect.isawaitable(result):
            if self._task_group is None:
                raise RuntimeError("ServerState is not running, cannot schedule callback")
            self._task_group.start_soon(self._await_callback, result)

    async def _await_callback(self, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("Game session callback failed")

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _assert_network_initialized(self) -> Network:
        if self._networking is None or not self._networking.connected():
            raise TransportNotInitializedError()
        return self._networking

    def _assert_game_session(self) -> str:
        """Check a session bound call can be made and return the current game session id."""
        if not self._ready:
            raise ProcessNotReadyError()
        self._assert_network_initialized()
        if self._game_session_id is None:
            raise NoGameSessionError()
        return self._game_session_id
