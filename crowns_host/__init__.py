"""Crown tables host package: wraps the rules with timers and networking."""

from .actor import GameActor, GameRegistry
from .broadcast import StateBroadcaster
from .server import HostServer
from .service import TableService

__all__ = ["GameActor", "GameRegistry", "StateBroadcaster", "TableService", "HostServer"]
