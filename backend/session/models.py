"""Pydantic models for the local game session."""

from enum import Enum

from pydantic import BaseModel

from discovery.models import RemoteAdvertisement


class SessionState(str, Enum):
    """Which kind of game this launcher is currently running."""
    SINGLE_PLAYER = "single_player"
    CONNECTING_TO_HOST = "connecting_to_host"
    HOSTING = "hosting"


class ElectionAction(str, Enum):
    SOLO = "solo"
    HOST = "host"
    WAIT = "wait"


class ElectionDecision(BaseModel):
    """Outcome of evaluating the peer registry once churn has settled."""
    action: ElectionAction
    reason: str
    player_count: int = 0
    candidate: RemoteAdvertisement | None = None
