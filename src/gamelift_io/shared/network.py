"""
Network layer between the server state and the GameLift proxy.

Outbound calls are emitted as named events, each with its own acknowledgment
callback. The callback feeds a private single-slot memory stream that the
caller awaits, so every call owns its response channel and no request ids are
needed. Inbound events are decoded and forwarded to a ``HandlerFunctions``
implementation (the server state).
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, TypeVar, overload

import anyio
from anyio.streams.memory import MemoryObjectSendStream
from pydantic import BaseModel, ValidationError

import gamelift_io.types as types
from gamelift_io.shared.channel import Channel, InboundAckFnT
from gamelift_io.shared.exceptions import ConnectionFailedError, ServiceCallFailedError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

AckResult = tuple[bool, Any]


class HandlerFunctions(Protocol):
    """Handlers for the events the GameLift service pushes to the process."""

    def on_start_game_session(self, game_session: types.GameSession, ack: InboundAckFnT) -> None: ...

    def on_update_game_session(self, update_game_session: types.UpdateGameSession, ack: InboundAckFnT) -> None: ...

    def on_terminate_process(self, termination_time: datetime) -> None: ...


def decode(model: type[ModelT], data: Any) -> ModelT:
    """Decode raw channel data (JSON text or an already parsed object) into ``model``."""
    if isinstance(data, str | bytes | bytearray):
        return model.model_validate_json(data)
    return model.model_validate(data)


def _noop_ack(success: bool) -> None:
    pass


class _OneShotAck:
    """Forwards only the first acknowledgment of an inbound event to the channel."""

    def __init__(self, ack: InboundAckFnT | None) -> None:
        self._ack = ack or _noop_ack
        self.sent = False

    def __call__(self, success: bool) -> None:
        if self.sent:
            logger.debug("Ignoring repeated acknowledgment (%s)", success)
            return
        self.sent = True
        self._ack(success)


class Network:
    """Typed calls on top of a duplex, acknowledgment based channel."""

    def __init__(
        self,
        channel: Channel,
        handler: HandlerFunctions,
        *,
        request_timeout: float | None = None,
        termination_grace_period: float = 300.0,
    ) -> None:
        self._channel = channel
        self._handler = handler
        self._request_timeout = request_timeout
        self._termination_grace_period = timedelta(seconds=termination_grace_period)
        self._pending: set[MemoryObjectSendStream[AckResult]] = set()
        self._connect_lock = anyio.Lock()
        self._channel.on_disconnect(self._on_close)

    @property
    def channel(self) -> Channel:
        return self._channel

    def connected(self) -> bool:
        return self._channel.connected

    async def perform_connect(self, url: str, query: Mapping[str, str]) -> None:
        """Connect to the GameLift proxy.

        Subscribes to the GameLift events before opening the channel so nothing
        sent right after the handshake is missed.

        Raises:
            ConnectionFailedError: if the channel reports a connection error
        """
        async with self._connect_lock:
            if self.connected():
                return

            self._configure_client()
            try:
                await self._channel.connect(url, query)
            except Exception as e:
                self._channel.off()
                raise ConnectionFailedError(f"Could not connect to the GameLift proxy at {url}: {e}") from e

        logger.info("Connected to the GameLift proxy at %s", url)

    async def close(self) -> None:
        if self.connected():
            await self._channel.disconnect()
        self._on_close()

    def _configure_client(self) -> None:
        self._channel.on(types.START_GAME_SESSION, self._on_start_game_session)
        self._channel.on(types.UPDATE_GAME_SESSION, self._on_update_game_session)
        self._channel.on(types.TERMINATE_PROCESS, self._on_terminate_process)

    def _on_close(self) -> None:
        logger.debug("Channel disconnected, removing event handlers")
        self._channel.off()

        pending, self._pending = self._pending, set()
        for send_stream in pending:
            send_stream.close()

    # ------------------------------------------------------------------
    # Outbound calls
    # ------------------------------------------------------------------

    @overload
    async def emit(self, type_name: str, payload: str, response_type: None = None) -> None: ...

    @overload
    async def emit(self, type_name: str, payload: str, response_type: type[ModelT]) -> ModelT: ...

    async def emit(self, type_name: str, payload: str, response_type: type[ModelT] | None = None) -> ModelT | None:
        """Emit ``payload`` under ``type_name`` and wait for the proxy's acknowledgment.

        Raises:
            ServiceCallFailedError: if the proxy reports failure, the response
                cannot be decoded into ``response_type``, no response arrives
                when one is expected, the channel cannot send, or the connection
                closes first
        """
        logger.debug("Sending '%s' to GameLift", type_name)

        send_stream, receive_stream = anyio.create_memory_object_stream[AckResult](1)

        def ack(success: bool, response: Any = None) -> None:
            logger.debug("Response received for '%s': (%s, %s)", type_name, success, response)
            try:
                send_stream.send_nowait((success, response))
            except (anyio.WouldBlock, anyio.BrokenResourceError, anyio.ClosedResourceError):
                logger.debug("Dropping late acknowledgment for '%s'", type_name)

        self._pending.add(send_stream)
        try:
            with receive_stream:
                try:
                    await self._channel.emit(type_name, payload, ack)
                except Exception as e:
                    raise ServiceCallFailedError(f"Could not send '{type_name}' to the GameLift proxy: {e}") from e
                with anyio.fail_after(self._request_timeout):
                    success, response = await receive_stream.receive()
        except anyio.EndOfStream:
            raise ServiceCallFailedError(f"Connection closed before '{type_name}' was acknowledged")
        except TimeoutError:
            raise ServiceCallFailedError(
                f"Timed out waiting for '{type_name}' to be acknowledged. Waited {self._request_timeout} seconds."
            )
        finally:
            self._pending.discard(send_stream)
            send_stream.close()

        if not success:
            raise self._parse_error(type_name, response)

        if response_type is None:
            return None

        if not response:
            raise ServiceCallFailedError(f"No response received for '{type_name}'")

        try:
            return decode(response_type, response)
        except ValidationError as e:
            raise ServiceCallFailedError(
                f"Response to '{type_name}' could not be parsed as {response_type.__name__}: {e}"
            ) from e

    @overload
    async def send(self, message: types.Message, response_type: None = None) -> None: ...

    @overload
    async def send(self, message: types.Message, response_type: type[ModelT]) -> ModelT: ...

    async def send(self, message: types.Message, response_type: type[ModelT] | None = None) -> ModelT | None:
        """Encode ``message`` and emit it under its type name."""
        return await self.emit(message.TYPE_NAME, message.to_json(), response_type)

    def _parse_error(self, type_name: str, response: Any) -> ServiceCallFailedError:
        if response:
            try:
                envelope = decode(types.GameLiftResponse, response)
            except ValidationError:
                logger.debug("Could not parse error response for '%s': %r", type_name, response)
            else:
                return ServiceCallFailedError.from_response(envelope)
        return ServiceCallFailedError()

    async def process_ready(self, port: int, log_paths: list[str] | None = None) -> None:
        await self.send(types.ProcessReady(port=port, log_paths_to_upload=log_paths or []))

    async def process_ending(self) -> None:
        await self.send(types.ProcessEnding())

    async def report_health(self, healthy: bool) -> None:
        await self.send(types.ReportHealth(health_status=healthy))

    async def activate_game_session(self, game_session_id: str) -> None:
        await self.send(types.GameSessionActivate(game_session_id=game_session_id))

    async def terminate_game_session(self, game_session_id: str) -> None:
        await self.send(types.GameSessionTerminate(game_session_id=game_session_id))

    async def accept_player_session(self, game_session_id: str, player_session_id: str) -> None:
        await self.send(
            types.AcceptPlayerSession(game_session_id=game_session_id, player_session_id=player_session_id)
        )

    async def remove_player_session(self, game_session_id: str, player_session_id: str) -> None:
        await self.send(
            types.RemovePlayerSession(game_session_id=game_session_id, player_session_id=player_session_id)
        )

    async def describe_player_sessions(
        self, request: types.DescribePlayerSessionsRequest
    ) -> types.DescribePlayerSessionsResponse:
        return await self.send(request, types.DescribePlayerSessionsResponse)

    async def update_player_session_creation_policy(
        self, game_session_id: str, policy: types.PlayerSessionCreationPolicy
    ) -> None:
        await self.send(
            types.UpdatePlayerSessionCreationPolicyRequest(
                game_session_id=game_session_id,
                new_player_session_creation_policy=policy,
            )
        )

    async def start_match_backfill(
        self, request: types.BackfillMatchmakingRequest
    ) -> types.BackfillMatchmakingResponse:
        return await self.send(request, types.BackfillMatchmakingResponse)

    async def stop_match_backfill(self, request: types.StopMatchmakingRequest) -> None:
        await self.send(request)

    async def get_instance_certificate(self) -> types.GetInstanceCertificateResponse:
        return await self.send(types.GetInstanceCertificate(), types.GetInstanceCertificateResponse)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def _on_start_game_session(self, data: Any, ack: InboundAckFnT | None = None) -> None:
        logger.debug("Received '%s' event", types.START_GAME_SESSION)
        once = _OneShotAck(ack)
        try:
            message = decode(types.ActivateGameSession, data)
        except ValidationError:
            logger.warning("Failed to parse '%s' event data", types.START_GAME_SESSION)
            once(False)
            return

        try:
            self._handler.on_start_game_session(message.game_session, once)
        except Exception:
            logger.exception("Error while handling '%s' event", types.START_GAME_SESSION)
            once(False)

    def _on_update_game_session(self, data: Any, ack: InboundAckFnT | None = None) -> None:
        logger.debug("Received '%s' event", types.UPDATE_GAME_SESSION)
        once = _OneShotAck(ack)
        try:
            message = decode(types.UpdateGameSession, data)
        except ValidationError:
            logger.warning("Failed to parse '%s' event data", types.UPDATE_GAME_SESSION)
            once(False)
            return

        try:
            self._handler.on_update_game_session(message, once)
        except Exception:
            logger.exception("Error while handling '%s' event", types.UPDATE_GAME_SESSION)
            once(False)

    def _on_terminate_process(self, data: Any, ack: InboundAckFnT | None = None) -> None:
        logger.debug("Received '%s' event", types.TERMINATE_PROCESS)
        try:
            message = decode(types.TerminateProcess, data)
            termination_time = datetime.fromtimestamp(message.termination_time / 1000, tz=timezone.utc)
        except (ValidationError, ValueError, OverflowError, OSError):
            termination_time = datetime.now(timezone.utc) + self._termination_grace_period
            logger.warning(
                "Failed to parse '%s' event data, assuming termination at %s",
                types.TERMINATE_PROCESS,
                termination_time.isoformat(),
            )

        try:
            self._handler.on_terminate_process(termination_time)
        except Exception:
            logger.exception("Error while handling '%s' event", types.TERMINATE_PROCESS)
