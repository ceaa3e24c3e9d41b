"""Exceptions raised by the GameLift server SDK."""

from gamelift_io.types import GameLiftResponse


class GameLiftError(Exception):
    """Base error for the GameLift server SDK."""


class NotInitializedError(GameLiftError):
    """Raised when the SDK is used before a server state has been created."""

    def __init__(self) -> None:
        super().__init__("GameLift API has not been initialized")


class AlreadyInitializedError(GameLiftError):
    """Raised when a second server state is created while one is still live."""

    def __init__(self) -> None:
        super().__init__("GameLift API has already been initialized")


class TransportNotInitializedError(GameLiftError):
    """Raised when an operation needs a live connection to the GameLift proxy and there is none."""

    def __init__(self) -> None:
        super().__init__("GameLift server has not been initialized")


GameLiftServerNotInitializedError = TransportNotInitializedError


class ProcessNotReadyError(GameLiftError):
    """Raised when an operation requires the process to have called ``process_ready()``."""

    def __init__(self) -> None:
        super().__init__("Process is not ready yet")


class NoGameSessionError(GameLiftError):
    """Raised when an operation requires a game session and none has been assigned.

    Usually seen when ``activate_game_session()`` is called outside of the
    ``on_start_game_session`` callback.
    """

    def __init__(self) -> None:
        super().__init__("No game session is currently activating")


class InvalidRequestError(GameLiftError):
    """A request was rejected locally before being sent."""


class ConnectionFailedError(GameLiftError):
    """The channel to the GameLift proxy could not be established."""


class ServiceCallFailedError(GameLiftError):
    """Raised when the GameLift service rejects a call or its response cannot be used.

    Attributes:
        status: status code from the service's error envelope, when one was decoded
    """

    DEFAULT_MESSAGE = "GameLift service call failed"

    status: str | None

    def __init__(self, message: str | None = None, *, status: str | None = None):
        super().__init__(message or self.DEFAULT_MESSAGE)
        self.status = status

    @classmethod
    def from_response(cls, response: GameLiftResponse) -> "ServiceCallFailedError":
        """Build the error from a decoded error envelope."""
        return cls(response.error_message, status=response.status)
