"""GameLift auxproxy message types.

Every payload exchanged with the local GameLift proxy is modelled here. Outbound
messages carry a ``TYPE_NAME`` which doubles as the event name they are emitted
under; inbound events are decoded from the JSON the proxy sends with them.
"""

from typing import Annotated, ClassVar, Final, Literal

from pydantic import BaseModel, ConfigDict, Field

PBUFFER_PACKAGE: Final[str] = "com.amazon.whitewater.auxproxy.pbuffer"

# Inbound event names
START_GAME_SESSION: Final[str] = "StartGameSession"
UPDATE_GAME_SESSION: Final[str] = "UpdateGameSession"
TERMINATE_PROCESS: Final[str] = "TerminateProcess"

PlayerSessionStatus = Literal["RESERVED", "ACTIVE", "COMPLETED", "TIMEDOUT"]
PlayerSessionCreationPolicy = Literal["ACCEPT_ALL", "DENY_ALL"]
UpdateReason = Literal[
    "MATCHMAKING_DATA_UPDATED",
    "BACKFILL_FAILED",
    "BACKFILL_TIMED_OUT",
    "BACKFILL_CANCELLED",
]
GameSessionStatus = Literal["ACTIVE", "ACTIVATING", "TERMINATED", "TERMINATING"]
ResponseStatus = Literal["OK", "ERROR_400", "ERROR_500"]


class GameLiftModel(BaseModel):
    """Base class for all GameLift wire types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class Message(GameLiftModel):
    """A message that can be emitted to the proxy."""

    TYPE_NAME: ClassVar[str]


def _type_name(name: str) -> str:
    return f"{PBUFFER_PACKAGE}.{name}"


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


class GameProperty(GameLiftModel):
    """A key/value pair describing a game session."""

    key: str
    value: str


class GameSession(GameLiftModel):
    """A game session assigned to this process."""

    game_session_id: Annotated[str | None, Field(alias="gameSessionId")] = None
    name: str | None = None
    fleet_id: Annotated[str | None, Field(alias="fleetId")] = None
    max_players: Annotated[int | None, Field(alias="maxPlayers")] = None
    joinable: bool | None = None
    game_properties: Annotated[list[GameProperty], Field(alias="gameProperties", default_factory=list)]
    game_session_data: Annotated[str | None, Field(alias="gameSessionData")] = None
    matchmaker_data: Annotated[str | None, Field(alias="matchmakerData")] = None
    ip_address: Annotated[str | None, Field(alias="ipAddress")] = None
    dns_name: Annotated[str | None, Field(alias="dnsName")] = None
    port: int | None = None
    status: GameSessionStatus | None = None


class PlayerSession(GameLiftModel):
    """A single player's slot within a game session."""

    player_session_id: Annotated[str | None, Field(alias="playerSessionId")] = None
    player_id: Annotated[str | None, Field(alias="playerId")] = None
    game_session_id: Annotated[str | None, Field(alias="gameSessionId")] = None
    fleet_id: Annotated[str | None, Field(alias="fleetId")] = None
    ip_address: Annotated[str | None, Field(alias="ipAddress")] = None
    dns_name: Annotated[str | None, Field(alias="dnsName")] = None
    port: int | None = None
    status: PlayerSessionStatus | None = None
    creation_time: Annotated[int | None, Field(alias="creationTime")] = None
    termination_time: Annotated[int | None, Field(alias="terminationTime")] = None
    player_data: Annotated[str | None, Field(alias="playerData")] = None


class AttributeValue(GameLiftModel):
    """A matchmaking player attribute. Exactly one of the value fields is expected to be set."""

    s: Annotated[str | None, Field(alias="S")] = None
    n: Annotated[float | None, Field(alias="N")] = None
    sl: Annotated[list[str] | None, Field(alias="SL")] = None
    sdm: Annotated[dict[str, float] | None, Field(alias="SDM")] = None


class Player(GameLiftModel):
    """A player taking part in a match backfill request."""

    player_id: Annotated[str, Field(alias="playerId")]
    team: str | None = None
    player_attributes: Annotated[dict[str, AttributeValue], Field(alias="playerAttributes", default_factory=dict)]
    latency_in_ms: Annotated[dict[str, int], Field(alias="latencyInMs", default_factory=dict)]


# ---------------------------------------------------------------------------
# Outbound messages
# ---------------------------------------------------------------------------


class ProcessReady(Message):
    TYPE_NAME: ClassVar[str] = _type_name("ProcessReady")

    port: int
    log_paths_to_upload: Annotated[list[str], Field(alias="logPathsToUpload", default_factory=list)]


class ProcessEnding(Message):
    TYPE_NAME: ClassVar[str] = _type_name("ProcessEnding")


class ReportHealth(Message):
    TYPE_NAME: ClassVar[str] = _type_name("ReportHealth")

    health_status: Annotated[bool, Field(alias="healthStatus")]


class GameSessionActivate(Message):
    TYPE_NAME: ClassVar[str] = _type_name("GameSessionActivate")

    game_session_id: Annotated[str, Field(alias="gameSessionId")]


class GameSessionTerminate(Message):
    TYPE_NAME: ClassVar[str] = _type_name("GameSessionTerminate")

    game_session_id: Annotated[str, Field(alias="gameSessionId")]


class AcceptPlayerSession(Message):
    TYPE_NAME: ClassVar[str] = _type_name("AcceptPlayerSession")

    game_session_id: Annotated[str, Field(alias="gameSessionId")]
    player_session_id: Annotated[str, Field(alias="playerSessionId")]


class RemovePlayerSession(Message):
    TYPE_NAME: ClassVar[str] = _type_name("RemovePlayerSession")

    game_session_id: Annotated[str, Field(alias="gameSessionId")]
    player_session_id: Annotated[str, Field(alias="playerSessionId")]


class DescribePlayerSessionsRequest(Message):
    """Selects player sessions by session id, player id or player session id.

    For large collections use ``next_token`` and ``limit`` to page through the
    results.
    """

    TYPE_NAME: ClassVar[str] = _type_name("DescribePlayerSessionsRequest")

    game_session_id: Annotated[str | None, Field(alias="gameSessionId")] = None
    player_id: Annotated[str | None, Field(alias="playerId")] = None
    player_session_id: Annotated[str | None, Field(alias="playerSessionId")] = None
    player_session_status_filter: Annotated[
        PlayerSessionStatus | None, Field(alias="playerSessionStatusFilter")
    ] = None
    next_token: Annotated[str | None, Field(alias="nextToken")] = None
    limit: int | None = None


class UpdatePlayerSessionCreationPolicyRequest(Message):
    TYPE_NAME: ClassVar[str] = _type_name("UpdatePlayerSessionCreationPolicyRequest")

    game_session_id: Annotated[str, Field(alias="gameSessionId")]
    new_player_session_creation_policy: Annotated[
        PlayerSessionCreationPolicy, Field(alias="newPlayerSessionCreationPolicy")
    ]


class BackfillMatchmakingRequest(Message):
    """Requests new players for open slots in the current game session."""

    TYPE_NAME: ClassVar[str] = _type_name("BackfillMatchmakingRequest")

    ticket_id: Annotated[str | None, Field(alias="ticketId")] = None
    game_session_arn: Annotated[str | None, Field(alias="gameSessionArn")] = None
    matchmaking_configuration_arn: Annotated[str, Field(alias="matchmakingConfigurationArn")]
    players: list[Player] = Field(default_factory=list)


class StopMatchmakingRequest(Message):
    TYPE_NAME: ClassVar[str] = _type_name("StopMatchmakingRequest")

    ticket_id: Annotated[str, Field(alias="ticketId")]
    game_session_arn: Annotated[str | None, Field(alias="gameSessionArn")] = None
    matchmaking_configuration_arn: Annotated[str, Field(alias="matchmakingConfigurationArn")]


class GetInstanceCertificate(Message):
    TYPE_NAME: ClassVar[str] = _type_name("GetInstanceCertificate")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class GameLiftResponse(Message):
    """Error envelope sent back with a failed acknowledgment."""

    TYPE_NAME: ClassVar[str] = _type_name("GameLiftResponse")

    status: ResponseStatus | str | None = None
    response_data: Annotated[str | None, Field(alias="responseData")] = None
    error_message: Annotated[str | None, Field(alias="errorMessage")] = None


class DescribePlayerSessionsResponse(Message):
    TYPE_NAME: ClassVar[str] = _type_name("DescribePlayerSessionsResponse")

    player_sessions: Annotated[list[PlayerSession], Field(alias="playerSessions", default_factory=list)]
    next_token: Annotated[str | None, Field(alias="nextToken")] = None


class BackfillMatchmakingResponse(Message):
    TYPE_NAME: ClassVar[str] = _type_name("BackfillMatchmakingResponse")

    ticket_id: Annotated[str | None, Field(alias="ticketId")] = None


class GetInstanceCertificateResponse(Message):
    TYPE_NAME: ClassVar[str] = _type_name("GetInstanceCertificateResponse")

    certificate_path: Annotated[str | None, Field(alias="certificatePath")] = None
    certificate_chain_path: Annotated[str | None, Field(alias="certificateChainPath")] = None
    private_key_path: Annotated[str | None, Field(alias="privateKeyPath")] = None
    host_name: Annotated[str | None, Field(alias="hostName")] = None
    root_certificate_path: Annotated[str | None, Field(alias="rootCertificatePath")] = None


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------


class ActivateGameSession(Message):
    """Payload of the ``StartGameSession`` event."""

    TYPE_NAME: ClassVar[str] = _type_name("ActivateGameSession")

    game_session: Annotated[GameSession, Field(alias="gameSession")]


class UpdateGameSession(Message):
    """Payload of the ``UpdateGameSession`` event."""

    TYPE_NAME: ClassVar[str] = _type_name("UpdateGameSession")

    game_session: Annotated[GameSession, Field(alias="gameSession")]
    update_reason: Annotated[UpdateReason | None, Field(alias="updateReason")] = None
    backfill_ticket_id: Annotated[str | None, Field(alias="backfillTicketId")] = None


class TerminateProcess(Message):
    """Payload of the ``TerminateProcess`` event. ``termination_time`` is in Unix milliseconds."""

    TYPE_NAME: ClassVar[str] = _type_name("TerminateProcess")

    termination_time: Annotated[int, Field(alias="terminationTime")]

