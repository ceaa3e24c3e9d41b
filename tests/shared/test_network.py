from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import anyio
import pytest

import gamelift_io.types as types
from gamelift_io.shared.channel import InboundAckFnT
from gamelift_io.shared.exceptions import ConnectionFailedError, ServiceCallFailedError
from gamelift_io.shared.memory import LocalProxy
from gamelift_io.shared.network import Network

PROXY_URL = "http://127.0.0.1:5757"
GRACE_PERIOD = 300.0


class RecordingHandler:
    def __init__(self) -> None:
        self.started: list[types.GameSession] = []
        self.updated: list[types.UpdateGameSession] = []
        self.terminations: list[datetime] = []
        self.error: Exception | None = None

    def on_start_game_session(self, game_session: types.GameSession, ack: InboundAckFnT) -> None:
        if self.error is not None:
            raise self.error
        self.started.append(game_session)
        ack(True)

    def on_update_game_session(self, update_game_session: types.UpdateGameSession, ack: InboundAckFnT) -> None:
        if self.error is not None:
            raise self.error
        self.updated.append(update_game_session)
        ack(True)

    def on_terminate_process(self, termination_time: datetime) -> None:
        self.terminations.append(termination_time)
        if self.error is not None:
            raise self.error


@pytest.fixture
def proxy() -> LocalProxy:
    return LocalProxy()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
async def network(proxy: LocalProxy, handler: RecordingHandler) -> AsyncGenerator[Network, None]:
    network = Network(proxy.channel(), handler, termination_grace_period=GRACE_PERIOD)
    await network.perform_connect(PROXY_URL, {"pID": "1"})
    yield network
    await network.close()


@pytest.mark.anyio
async def test_perform_connect(proxy: LocalProxy, network: Network):
    assert network.connected()
    assert proxy.url == PROXY_URL
    assert proxy.query == {"pID": "1"}


@pytest.mark.anyio
async def test_perform_connect_when_connected_is_a_noop(proxy: LocalProxy, network: Network):
    await network.perform_connect("http://elsewhere:1", {})

    assert proxy.url == PROXY_URL


@pytest.mark.anyio
async def test_perform_connect_refused(handler: RecordingHandler):
    proxy = LocalProxy(refuse_connections=True)
    network = Network(proxy.channel(), handler)

    with pytest.raises(ConnectionFailedError):
        await network.perform_connect(PROXY_URL, {})

    assert not network.connected()


@pytest.mark.anyio
async def test_send_encodes_message_under_type_name(proxy: LocalProxy, network: Network):
    await network.process_ready(7777, ["/local/game/logs"])

    assert proxy.received[0].event == "com.amazon.whitewater.auxproxy.pbuffer.ProcessReady"
    payload = types.ProcessReady.model_validate_json(proxy.received[0].data)
    assert payload.port == 7777
    assert payload.log_paths_to_upload == ["/local/game/logs"]


@pytest.mark.anyio
async def test_emit_without_response_type_ignores_payload(proxy: LocalProxy, network: Network):
    proxy.respond("Foo", success=True, response="anything")

    assert await network.emit("Foo", "{}") is None


@pytest.mark.anyio
async def test_emit_decodes_response(proxy: LocalProxy, network: Network):
    proxy.respond(
        types.DescribePlayerSessionsRequest.TYPE_NAME,
        response=types.DescribePlayerSessionsResponse(
            player_sessions=[types.PlayerSession(player_session_id="psess-1", status="ACTIVE")],
            next_token="next",
        ),
    )

    response = await network.describe_player_sessions(types.DescribePlayerSessionsRequest(game_session_id="sess-1"))

    assert response.next_token == "next"
    assert response.player_sessions[0].player_session_id == "psess-1"
    assert response.player_sessions[0].status == "ACTIVE"


@pytest.mark.anyio
async def test_emit_failure_carries_envelope_message(proxy: LocalProxy, network: Network):
    proxy.respond("Foo", success=False, response='{"status":"ERROR_400","errorMessage":"bad id"}')

    with pytest.raises(ServiceCallFailedError) as exc_info:
        await network.emit("Foo", "{}", types.DescribePlayerSessionsResponse)

    assert str(exc_info.value) == "bad id"
    assert exc_info.value.status == "ERROR_400"


@pytest.mark.anyio
@pytest.mark.parametrize("response", [None, "", "not json", '{"status": 5}'])
async def test_emit_failure_without_usable_envelope(proxy: LocalProxy, network: Network, response: str | None):
    proxy.respond("Foo", success=False, response=response)

    with pytest.raises(ServiceCallFailedError, match="GameLift service call failed"):
        await network.emit("Foo", "{}")


@pytest.mark.anyio
async def test_emit_success_without_payload_when_response_expected(proxy: LocalProxy, network: Network):
    proxy.respond("Foo", success=True, response=None)

    with pytest.raises(ServiceCallFailedError, match="No response received for 'Foo'"):
        await network.emit("Foo", "{}", types.BackfillMatchmakingResponse)


@pytest.mark.anyio
@pytest.mark.parametrize("response", ["{not json", '{"playerSessions": "nope"}'])
async def test_emit_undecodable_response(proxy: LocalProxy, network: Network, response: str):
    proxy.respond("Foo", success=True, response=response)

    with pytest.raises(ServiceCallFailedError, match="could not be parsed"):
        await network.emit("Foo", "{}", types.DescribePlayerSessionsResponse)


@pytest.mark.anyio
async def test_concurrent_calls_receive_their_own_responses(proxy: LocalProxy, network: Network):
    def echo_ticket(data: str) -> tuple[bool, str]:
        request = types.StopMatchmakingRequest.model_validate_json(data)
        return True, types.BackfillMatchmakingResponse(ticket_id=request.ticket_id).to_json()

    proxy.respond_with("Echo", echo_ticket)
    results: dict[str, str | None] = {}

    async def call(ticket_id: str) -> None:
        request = types.StopMatchmakingRequest(ticket_id=ticket_id, matchmaking_configuration_arn="arn")
        response = await network.emit("Echo", request.to_json(), types.BackfillMatchmakingResponse)
        results[ticket_id] = response.ticket_id

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            for ticket_id in ("a", "b", "c"):
                tg.start_soon(call, ticket_id)

    assert results == {"a": "a", "b": "b", "c": "c"}


@pytest.mark.anyio
async def test_held_call_resolves_when_acknowledged(proxy: LocalProxy, network: Network):
    proxy.hold(types.ProcessEnding.TYPE_NAME)
    finished = anyio.Event()

    async def call() -> None:
        await network.process_ending()
        finished.set()

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            while proxy.held(types.ProcessEnding.TYPE_NAME) == 0:
                await anyio.sleep(0)

            assert not finished.is_set()
            proxy.acknowledge(types.ProcessEnding.TYPE_NAME, True)

    assert finished.is_set()


@pytest.mark.anyio
async def test_disconnect_fails_pending_calls(proxy: LocalProxy, network: Network):
    proxy.hold(types.ProcessEnding.TYPE_NAME)
    errors: list[ServiceCallFailedError] = []

    async def call() -> None:
        try:
            await network.process_ending()
        except ServiceCallFailedError as e:
            errors.append(e)

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            tg.start_soon(call)
            while proxy.held(types.ProcessEnding.TYPE_NAME) < 2:
                await anyio.sleep(0)
            proxy.drop()

    assert len(errors) == 2
    assert all("Connection closed" in str(e) for e in errors)
    assert not network.connected()

    # The proxy answering after the connection is gone must not raise.
    proxy.acknowledge(types.ProcessEnding.TYPE_NAME, True)


@pytest.mark.anyio
async def test_emit_times_out(proxy: LocalProxy, handler: RecordingHandler):
    network = Network(proxy.channel(), handler, request_timeout=0.05)
    await network.perform_connect(PROXY_URL, {})
    proxy.hold(types.ProcessEnding.TYPE_NAME)

    with anyio.fail_after(5):
        with pytest.raises(ServiceCallFailedError, match="Timed out"):
            await network.process_ending()

    await network.close()


@pytest.mark.anyio
async def test_start_game_session_event(proxy: LocalProxy, network: Network, handler: RecordingHandler):
    acks = proxy.push(
        types.START_GAME_SESSION,
        types.ActivateGameSession(game_session=types.GameSession(game_session_id="sess-1", max_players=8)),
    )

    assert acks == [True]
    assert handler.started[0].game_session_id == "sess-1"
    assert handler.started[0].max_players == 8


@pytest.mark.anyio
async def test_start_game_session_event_from_parsed_payload(
    proxy: LocalProxy, network: Network, handler: RecordingHandler
):
    acks = proxy.push(types.START_GAME_SESSION, {"gameSession": {"gameSessionId": "sess-2", "fleetId": "fleet-1"}})

    assert acks == [True]
    assert handler.started[0].game_session_id == "sess-2"
    assert handler.started[0].fleet_id == "fleet-1"


@pytest.mark.anyio
async def test_malformed_start_game_session_event(proxy: LocalProxy, network: Network, handler: RecordingHandler):
    acks = proxy.push(types.START_GAME_SESSION, "{not json")

    assert acks == [False]
    assert handler.started == []


@pytest.mark.anyio
async def test_start_game_session_handler_error(proxy: LocalProxy, network: Network, handler: RecordingHandler):
    handler.error = RuntimeError("boom")

    acks = proxy.push(types.START_GAME_SESSION, {"gameSession": {"gameSessionId": "sess-1"}})

    assert acks == [False]


@pytest.mark.anyio
async def test_update_game_session_event(proxy: LocalProxy, network: Network, handler: RecordingHandler):
    acks = proxy.push(
        types.UPDATE_GAME_SESSION,
        {
            "gameSession": {"gameSessionId": "sess-1"},
            "updateReason": "MATCHMAKING_DATA_UPDATED",
            "backfillTicketId": "ticket-1",
        },
    )

    assert acks == [True]
    assert handler.updated[0].update_reason == "MATCHMAKING_DATA_UPDATED"
    assert handler.updated[0].backfill_ticket_id == "ticket-1"


@pytest.mark.anyio
async def test_terminate_process_event(proxy: LocalProxy, network: Network, handler: RecordingHandler):
    acks = proxy.push(types.TERMINATE_PROCESS, types.TerminateProcess(termination_time=1_700_000_000_000))

    assert acks == []
    assert handler.terminations == [datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)]


@pytest.mark.anyio
@pytest.mark.parametrize("data", ["{not json", '{"terminationTime": "soon"}', {}, {"terminationTime": 10**20}])
async def test_malformed_terminate_process_event(
    proxy: LocalProxy, network: Network, handler: RecordingHandler, data: str | dict[str, object]
):
    before = datetime.now(timezone.utc)

    proxy.push(types.TERMINATE_PROCESS, data)

    after = datetime.now(timezone.utc)
    grace = timedelta(seconds=GRACE_PERIOD)
    assert len(handler.terminations) == 1
    assert before + grace <= handler.terminations[0] <= after + grace


@pytest.mark.anyio
async def test_terminate_process_handler_error_does_not_propagate(
    proxy: LocalProxy, network: Network, handler: RecordingHandler
):
    handler.error = RuntimeError("boom")

    proxy.push(types.TERMINATE_PROCESS, {"terminationTime": 1_700_000_000_000})

    assert len(handler.terminations) == 1


@pytest.mark.anyio
async def test_events_ignored_after_disconnect(proxy: LocalProxy, network: Network, handler: RecordingHandler):
    channel = network.channel
    proxy.drop()

    acks: list[bool] = []
    channel.deliver(types.START_GAME_SESSION, {"gameSession": {"gameSessionId": "sess-1"}}, acks.append)  # type: ignore[attr-defined]

    assert acks == []
    assert handler.started == []


@pytest.mark.anyio
async def test_emit_on_closed_channel(proxy: LocalProxy, network: Network):
    proxy.drop()

    with pytest.raises(ServiceCallFailedError, match="Could not send"):
        await network.process_ending()


@pytest.mark.anyio
async def test_disconnect_after_reconnect_fails_pending_calls(proxy: LocalProxy, network: Network):
    proxy.drop()
    await network.channel.connect(PROXY_URL, {})
    assert network.connected()

    proxy.hold(types.ProcessEnding.TYPE_NAME)
    errors: list[ServiceCallFailedError] = []

    async def call() -> None:
        try:
            await network.process_ending()
        except ServiceCallFailedError as e:
            errors.append(e)

    with anyio.fail_after(5):
        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            while proxy.held(types.ProcessEnding.TYPE_NAME) == 0:
                await anyio.sleep(0)
            proxy.drop()

    assert len(errors) == 1
    assert "Connection closed" in str(errors[0])
