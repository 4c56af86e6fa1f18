"""Pydantic models for peer discovery."""

from enum import Enum
from typing import Any

from pydantic import BaseModel

from config import CLIENT_SERVICE_TYPE, HOST_SERVICE_TYPE


class ServiceKind(str, Enum):
    """The two capabilities every launcher can advertise."""
    CLIENT = "client"
    HOST = "host"

    @property
    def service_type(self) -> str:
        return CLIENT_SERVICE_TYPE if self is ServiceKind.CLIENT else HOST_SERVICE_TYPE

    @classmethod
    def from_service_type(cls, service_type: str) -> "ServiceKind | None":
        if service_type == CLIENT_SERVICE_TYPE:
            return cls.CLIENT
        if service_type == HOST_SERVICE_TYPE:
            return cls.HOST
        return None


class NetworkScope(BaseModel):
    """Interface and protocol family a record was seen on."""
    interface: str = "any"
    protocol: str = "inet"

    model_config = {"frozen": True}


class RecordFlags(BaseModel):
    is_self: bool = False
    is_cached: bool = False

    model_config = {"frozen": True}


class AdvertisementKey(BaseModel):
    """Identity of a remote advertisement, used for dedup and removal."""
    name: str
    service_kind: ServiceKind
    scope: NetworkScope = NetworkScope()

    model_config = {"frozen": True}


class RemoteAdvertisement(BaseModel):
    """A resolved capability announced by some launcher on the LAN."""
    name: str
    service_kind: ServiceKind
    scope: NetworkScope = NetworkScope()
    hostname: str
    port: int
    flags: RecordFlags = RecordFlags()
    can_host: bool = False  # client records
    wad: str | None = None  # host records

    @property
    def key(self) -> AdvertisementKey:
        return AdvertisementKey(name=self.name, service_kind=self.service_kind, scope=self.scope)

    @property
    def is_self(self) -> bool:
        return self.flags.is_self


class PublishState(str, Enum):
    """Lifecycle of one self-advertised capability."""
    UNPUBLISHED = "unpublished"
    PUBLISHING = "publishing"
    ESTABLISHED = "established"
    RENAMING = "renaming"


class LocalService(BaseModel):
    """One capability this launcher advertises about itself."""
    service_kind: ServiceKind
    name: str
    port: int
    txt: dict[str, str] = {}
    state: PublishState = PublishState.UNPUBLISHED
    handle: Any = None  # owned exclusively; None while unpublished
    rejected_names: list[str] = []
