"""Lobby orchestration on top of the cache, store and pipelines."""

from .events import HostEvents
from .service import ChatListing, LobbyService
from .state import LobbyState

__all__ = ["HostEvents", "ChatListing", "LobbyService", "LobbyState"]
