"""Events dispatched to the coordinator, one at a time, on the event loop."""

from typing import Any

from pydantic import BaseModel

from discovery.models import AdvertisementKey, RemoteAdvertisement, ServiceKind


class Event(BaseModel):
    pass


class PeerResolved(Event):
    """A browsed advertisement was resolved (client appeared or host announced)."""
    record: RemoteAdvertisement


class ResolveFailed(Event):
    name: str
    service_kind: ServiceKind
    reason: str


class PeerRemoved(Event):
    """A client advertisement disappeared from the network."""
    key: AdvertisementKey


class HostLost(Event):
    """A host advertisement disappeared from the network."""
    key: AdvertisementKey


class PublishEstablished(Event):
    service_kind: ServiceKind
    handle: Any


class PublishCollision(Event):
    service_kind: ServiceKind
    handle: Any


class PublishFailed(Event):
    service_kind: ServiceKind
    handle: Any
    reason: str


class ConnectivityLost(Event):
    reason: str


class ShutdownRequested(Event):
    reason: str = "signal"


class TimerFired(Event):
    pass


class ProcessExited(Event):
    pid: int
    returncode: int | None
