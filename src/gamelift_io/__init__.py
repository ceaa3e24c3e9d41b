from .sdk import (
    accept_player_session,
    activate_game_session,
    describe_player_sessions,
    get_game_session_id,
    get_instance_certificate,
    get_sdk_version,
    get_termination_time,
    init_sdk,
    process_ending,
    process_ready,
    remove_player_session,
    start_match_backfill,
    stop_match_backfill,
    terminate_game_session,
    update_player_session_creation_policy,
)
from .server.models import LogParameters, ProcessParameters
from .server.settings import GameLiftSettings
from .server.state import ServerState
from .shared.exceptions import (
    AlreadyInitializedError,
    ConnectionFailedError,
    GameLiftError,
    GameLiftServerNotInitializedError,
    InvalidRequestError,
    NoGameSessionError,
    NotInitializedError,
    ProcessNotReadyError,
    ServiceCallFailedError,
    TransportNotInitializedError,
)
from .types import (
    AttributeValue,
    BackfillMatchmakingRequest,
    BackfillMatchmakingResponse,
    DescribePlayerSessionsRequest,
    DescribePlayerSessionsResponse,
    GameProperty,
    GameSession,
    GetInstanceCertificateResponse,
    Player,
    PlayerSession,
    StopMatchmakingRequest,
    UpdateGameSession,
)

__all__ = [
    "AlreadyInitializedError",
    "AttributeValue",
    "BackfillMatchmakingRequest",
    "BackfillMatchmakingResponse",
    "ConnectionFailedError",
    "DescribePlayerSessionsRequest",
    "DescribePlayerSessionsResponse",
    "GameLiftError",
    "GameLiftServerNotInitializedError",
    "GameLiftSettings",
    "GameProperty",
    "GameSession",
    "GetInstanceCertificateResponse",
    "InvalidRequestError",
    "LogParameters",
    "NoGameSessionError",
    "NotInitializedError",
    "Player",
    "PlayerSession",
    "ProcessNotReadyError",
    "ProcessParameters",
    "ServerState",
    "ServiceCallFailedError",
    "StopMatchmakingRequest",
    "TransportNotInitializedError",
    "UpdateGameSession",
    "accept_player_session",
    "activate_game_session",
    "describe_player_sessions",
    "get_game_session_id",
    "get_instance_certificate",
    "get_sdk_version",
    "get_termination_time",
    "init_sdk",
    "process_ending",
    "process_ready",
    "remove_player_session",
    "start_match_backfill",
    "stop_match_backfill",
    "terminate_game_session",
    "update_player_session_creation_policy",
]
