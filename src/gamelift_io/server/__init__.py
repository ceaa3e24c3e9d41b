from .models import LogParameters, ProcessParameters
from .settings import GameLiftSettings
from .state import ServerState

__all__ = ["GameLiftSettings", "LogParameters", "ProcessParameters", "ServerState"]
