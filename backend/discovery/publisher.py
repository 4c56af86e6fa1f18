"""
Local advertisement publisher.

Owns the client and host capabilities this launcher announces and drives
each through its publish state machine:

    UNPUBLISHED -> PUBLISHING -> ESTABLISHED
    PUBLISHING | ESTABLISHED -> RENAMING -> PUBLISHING   (name collision)

The discovery backend only ever sees one outstanding publish per service.
"""

import logging
import re
from typing import Any, Protocol

from config import CAN_HOST_KEY, WAD_KEY
from discovery.models import LocalService, PublishState, ServiceKind
from errors import NameCollisionError

logger = logging.getLogger(__name__)

# DNS-SD instance names are a single DNS label
MAX_SERVICE_NAME = 63

_ALTERNATIVE_RE = re.compile(r"^(?P<base>.*) #(?P<n>\d+)$", re.DOTALL)


class DiscoveryBackend(Protocol):
    """What the publisher needs from the discovery layer."""

    def advertise(self, kind: ServiceKind, name: str, port: int, txt: dict[str, str]) -> Any:
        """Start publishing; raise NameCollisionError if the name is taken."""

    def withdraw(self, handle: Any) -> None:
        """Stop publishing the advertisement behind handle."""


def alternative_service_name(name: str) -> str:
    """
    Derive the next candidate name after a collision.

    "kiosk" -> "kiosk #2" -> "kiosk #3" ... The result always fits in one
    DNS label, trimming the base name if needed.
    """
    match = _ALTERNATIVE_RE.match(name)
    if match:
        base = match.group("base")
        n = int(match.group("n")) + 1
    else:
        base = name
        n = 2

    suffix = f" #{n}"
    while len((base + suffix).encode("utf-8")) > MAX_SERVICE_NAME:
        base = base[:-1]
    return base + suffix


def client_txt(can_host: bool) -> dict[str, str]:
    return {CAN_HOST_KEY: "1" if can_host else "0"}


def host_txt(wad: str) -> dict[str, str]:
    return {WAD_KEY: wad}


class AdvertisementPublisher:
    """Publishes, renames and withdraws the launcher's own advertisements."""

    def __init__(
        self,
        backend: DiscoveryBackend,
        name: str,
        port: int,
        can_host: bool,
        wad: str,
    ) -> None:
        self._backend = backend
        self.client = LocalService(
            service_kind=ServiceKind.CLIENT,
            name=name,
            port=port,
            txt=client_txt(can_host),
        )
        self.host = LocalService(
            service_kind=ServiceKind.HOST,
            name=name,
            port=port,
            txt=host_txt(wad),
        )

    def service_for(self, kind: ServiceKind) -> LocalService:
        return self.client if kind is ServiceKind.CLIENT else self.host

    def owns_name(self, kind: ServiceKind, name: str) -> bool:
        """True if name is what this launcher currently advertises for kind."""
        service = self.service_for(kind)
        return service.handle is not None and service.name == name

    def publish(self, service: LocalService) -> None:
        """Advertise service unless a publish is already outstanding."""
        if service.handle is not None:
            return

        while True:
            try:
                handle = self._backend.advertise(
                    service.service_kind, service.name, service.port, service.txt
                )
            except NameCollisionError:
                self._rename(service)
                continue
            break

        service.handle = handle
        service.state = PublishState.PUBLISHING
        logger.info(f"Adding service '{service.name}' ({service.service_kind.value})")

    def unpublish(self, service: LocalService) -> None:
        """Withdraw service. Safe to call when nothing is published."""
        if service.handle is None:
            service.state = PublishState.UNPUBLISHED
            return

        logger.info(f"Stopping service '{service.name}' ({service.service_kind.value})")
        handle = service.handle
        service.handle = None
        service.state = PublishState.UNPUBLISHED
        self._backend.withdraw(handle)

    def on_established(self, kind: ServiceKind, handle: Any) -> None:
        service = self.service_for(kind)
        if handle is not service.handle:
            logger.debug(f"Ignoring stale established notification for {kind.value}")
            return
        service.state = PublishState.ESTABLISHED
        logger.info(f"Service '{service.name}' successfully established.")

    def on_collision(self, kind: ServiceKind, handle: Any) -> None:
        """A remote launcher claimed our name: rename and publish again."""
        service = self.service_for(kind)
        if handle is not service.handle:
            logger.debug(f"Ignoring stale collision notification for {kind.value}")
            return

        service.handle = None
        self._backend.withdraw(handle)
        self._rename(service)
        self.publish(service)

    def on_failure(self, kind: ServiceKind, handle: Any, reason: str) -> None:
        service = self.service_for(kind)
        if handle is not service.handle:
            return
        logger.error(f"Failed to publish '{service.name}' ({kind.value}): {reason}")
        service.handle = None
        service.state = PublishState.UNPUBLISHED
        self._backend.withdraw(handle)

    def _rename(self, service: LocalService) -> None:
        service.state = PublishState.RENAMING
        service.rejected_names.append(service.name)
        service.name = alternative_service_name(service.name)
        logger.warning(f"Service name collision, renaming service to '{service.name}'")
