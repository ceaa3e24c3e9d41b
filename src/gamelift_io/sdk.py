"""
Process-wide GameLift server API.

A game server process has exactly one live ``ServerState``. ``init_sdk()``
creates it, connects it to the GameLift proxy and tears it down on exit; the
module-level functions below act on it and raise ``NotInitializedError`` when
there is none.

Example:
    async with gamelift_io.init_sdk():
        await gamelift_io.process_ready(
            ProcessParameters(port=7777, on_start_game_session=on_start_game_session)
        )
        ...
        await gamelift_io.process_ending()
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import gamelift_io.types as types
from gamelift_io.server.models import ProcessParameters
from gamelift_io.server.settings import DEFAULT_SDK_VERSION, GameLiftSettings
from gamelift_io.server.state import ServerState
from gamelift_io.shared.channel import Channel
from gamelift_io.shared.exceptions import AlreadyInitializedError, NotInitializedError, ProcessNotReadyError
from gamelift_io.utilities.logging import configure_logging, get_logger

logger = get_logger(__name__)

_instance: ServerState | None = None


def create_instance(settings: GameLiftSettings | None = None) -> ServerState:
    """Create the process-wide server state.

    Raises:
        AlreadyInitializedError: if a server state already exists
    """
    global _instance
    if _instance is not None:
        raise AlreadyInitializedError()

    logger.debug("Creating server state")
    _instance = ServerState(settings)
    return _instance


def get_instance() -> ServerState:
    """Return the process-wide server state.

    Raises:
        NotInitializedError: if no server state has been created
    """
    if _instance is None:
        raise NotInitializedError()
    return _instance


def destroy_instance() -> None:
    """Forget the process-wide server state so a new one can be created."""
    global _instance
    _instance = None


@asynccontextmanager
async def init_sdk(
    settings: GameLiftSettings | None = None,
    channel: Channel | None = None,
) -> AsyncIterator[ServerState]:
    """Initialize the SDK and connect to the GameLift proxy.

    Should be entered on launch, before any other GameLift related logic runs.
    """
    state = create_instance(settings)
    configure_logging(state.settings.log_level)
    logger.debug("Initializing SDK")
    try:
        async with state:
            await state.initialize_networking(channel)
            yield state
    finally:
        if _instance is state:
            destroy_instance()


def _ready_instance() -> ServerState:
    state = get_instance()
    if not state.ready:
        raise ProcessNotReadyError()
    return state


async def process_ready(process_parameters: ProcessParameters) -> None:
    """Tell GameLift the process is ready to host game sessions."""
    await get_instance().process_ready(process_parameters)


async def process_ending() -> None:
    """Tell GameLift the process is shutting down."""
    await get_instance().process_ending()


async def activate_game_session() -> None:
    """Tell GameLift the game session has started and can accept player connections.

    Call this from the ``on_start_game_session`` callback once the game session
    is set up.
    """
    await get_instance().activate_game_session()


async def terminate_game_session() -> None:
    await get_instance().terminate_game_session()


async def accept_player_session(player_session_id: str) -> None:
    """Validate a connecting player with GameLift.

    GameLift checks the player reserved a slot in the game session and moves the
    player session from RESERVED to ACTIVE.
    """
    await get_instance().accept_player_session(player_session_id)


async def remove_player_session(player_session_id: str) -> None:
    """Tell GameLift a player has disconnected, freeing their slot."""
    await get_instance().remove_player_session(player_session_id)


async def describe_player_sessions(
    request: types.DescribePlayerSessionsRequest,
) -> types.DescribePlayerSessionsResponse:
    """Retrieve player sessions by player session id, player id or game session id."""
    return await _ready_instance().describe_player_sessions(request)


async def update_player_session_creation_policy(policy: types.PlayerSessionCreationPolicy) -> None:
    await get_instance().update_player_session_creation_policy(policy)


async def start_match_backfill(request: types.BackfillMatchmakingRequest) -> types.BackfillMatchmakingResponse:
    return await _ready_instance().start_match_backfill(request)


async def stop_match_backfill(request: types.StopMatchmakingRequest) -> None:
    await _ready_instance().stop_match_backfill(request)


async def get_instance_certificate() -> types.GetInstanceCertificateResponse:
    """Locations of the TLS certificate files for the fleet's instance."""
    return await get_instance().get_instance_certificate()


def get_game_session_id() -> str:
    return get_instance().get_game_session_id()


def get_termination_time() -> datetime | None:
    """When GameLift will terminate the process, if it has announced it."""
    return get_instance().get_termination_time()


def get_sdk_version() -> str:
    if _instance is None:
        return DEFAULT_SDK_VERSION
    return _instance.settings.sdk_version
