"""
mDNS / DNS-SD discovery backend built on python-zeroconf.

Browses both launcher service types, resolves every advertisement it sees
and publishes the launcher's own records. Everything it learns is handed to
the coordinator as events; it keeps no coordination state of its own.
"""

import asyncio
import logging
import socket
from typing import Callable

from zeroconf import IPVersion, NonUniqueNameException, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from config import (
    CAN_HOST_KEY,
    CLIENT_SERVICE_TYPE,
    CONNECTIVITY_CHECK_INTERVAL,
    HOST_SERVICE_TYPE,
    RESOLVE_TIMEOUT,
    WAD_KEY,
)
from discovery.models import (
    AdvertisementKey,
    NetworkScope,
    RecordFlags,
    RemoteAdvertisement,
    ServiceKind,
)
from session.events import (
    ConnectivityLost,
    Event,
    HostLost,
    PeerRemoved,
    PeerResolved,
    PublishCollision,
    PublishEstablished,
    PublishFailed,
    ResolveFailed,
)

logger = logging.getLogger(__name__)

SCOPE = NetworkScope(interface="any", protocol="inet")


class Publication:
    """Handle for one advertisement registered through zeroconf."""

    def __init__(self, kind: ServiceKind, info: AsyncServiceInfo) -> None:
        self.kind = kind
        self.info = info
        self.registered = False
        self.task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"<Publication {self.info.name}>"


def _local_addresses() -> list[bytes]:
    """Best-effort list of this machine's IPv4 addresses."""
    addresses: set[str] = set()
    try:
        _, _, ips = socket.gethostbyname_ex(socket.gethostname())
        addresses.update(ip for ip in ips if not ip.startswith("127."))
    except OSError as e:
        logger.debug(f"Error resolving local IPs: {e}")

    if not addresses:
        # Ask the routing table which address would reach the mDNS group
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.connect(("224.0.0.251", 5353))
            addresses.add(sock.getsockname()[0])
        except OSError as e:
            logger.debug(f"Error probing outbound address: {e}")
        finally:
            sock.close()

    return [socket.inet_aton(ip) for ip in sorted(addresses)]


def _decode_properties(properties: dict) -> dict[str, str]:
    decoded = {}
    for key, value in properties.items():
        if isinstance(key, bytes):
            key = key.decode("utf-8", errors="replace")
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        decoded[key] = value or ""
    return decoded


def instance_name(name: str, service_type: str) -> str:
    """Strip the service type from a fully qualified service name."""
    suffix = "." + service_type
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


class ZeroconfDiscovery:
    """Discovery backend for the coordinator, running on the asyncio loop."""

    def __init__(self) -> None:
        self._post_event: Callable[[Event], None] | None = None
        self._is_own: Callable[[ServiceKind, str], bool] = lambda kind, name: False
        self._aiozc: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._watch_task: asyncio.Task | None = None
        self._resolving: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._stopping = False
        self._hostname = socket.gethostname().split(".")[0]

    def attach(
        self,
        post: Callable[[Event], None],
        is_own: Callable[[ServiceKind, str], bool],
    ) -> None:
        """Route discovery events to post; is_own tells our records apart."""
        self._post_event = post
        self._is_own = is_own

    async def start(self) -> None:
        """Start the zeroconf engine and browse for launchers."""
        logger.info("Starting zeroconf discovery")
        self._loop = asyncio.get_running_loop()
        self._aiozc = AsyncZeroconf(ip_version=IPVersion.V4Only)
        self._browser = AsyncServiceBrowser(
            self._aiozc.zeroconf,
            [CLIENT_SERVICE_TYPE, HOST_SERVICE_TYPE],
            handlers=[self._on_service_state_change],
        )
        self._watch_task = asyncio.create_task(self._connectivity_loop())
        logger.info("Discovery service started")

    async def stop(self) -> None:
        """Stop browsing, withdraw everything and close zeroconf."""
        self._stopping = True
        if self._watch_task:
            self._watch_task.cancel()
        for task in list(self._resolving.values()):
            task.cancel()
        self._resolving.clear()

        if self._browser:
            await self._browser.async_cancel()
        if self._aiozc:
            await self._aiozc.async_unregister_all_services()
            await self._aiozc.async_close()
        logger.info("Discovery service stopped")

    # --- Publishing ---

    def advertise(self, kind: ServiceKind, name: str, port: int, txt: dict[str, str]) -> Publication:
        info = AsyncServiceInfo(
            kind.service_type,
            f"{name}.{kind.service_type}",
            addresses=_local_addresses(),
            port=port,
            properties=txt,
            server=f"{self._hostname}.local.",
        )
        publication = Publication(kind, info)
        publication.task = self._spawn(self._register(publication))
        return publication

    def withdraw(self, handle: Publication) -> None:
        if handle.task and not handle.task.done():
            handle.task.cancel()
        if handle.registered:
            handle.registered = False
            self._spawn(self._unregister(handle))

    async def _register(self, publication: Publication) -> None:
        try:
            broadcast = await self._aiozc.async_register_service(publication.info)
            publication.registered = True
            await broadcast
        except NonUniqueNameException:
            self._post(PublishCollision(service_kind=publication.kind, handle=publication))
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(PublishFailed(service_kind=publication.kind, handle=publication, reason=str(e)))
            return

        self._post(PublishEstablished(service_kind=publication.kind, handle=publication))

    async def _unregister(self, publication: Publication) -> None:
        if self._stopping or self._aiozc is None:
            return
        try:
            broadcast = await self._aiozc.async_unregister_service(publication.info)
            await broadcast
        except Exception as e:
            logger.warning(f"Failed to withdraw {publication.info.name}: {e}")

    # --- Browsing ---

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        kind = ServiceKind.from_service_type(service_type)
        if kind is None:
            return

        logger.debug(f"(Browser) {state_change.name}: service '{name}' of type '{service_type}'")

        if state_change is ServiceStateChange.Removed:
            task = self._resolving.pop(name, None)
            if task:
                task.cancel()
            key = AdvertisementKey(
                name=instance_name(name, service_type),
                service_kind=kind,
                scope=SCOPE,
            )
            if kind is ServiceKind.CLIENT:
                self._post(PeerRemoved(key=key))
            else:
                self._post(HostLost(key=key))
            return

        # Added or Updated: (re-)resolve to pick up the current TXT payload
        previous = self._resolving.pop(name, None)
        if previous:
            previous.cancel()
        self._resolving[name] = self._spawn(self._resolve(kind, service_type, name))

    async def _resolve(self, kind: ServiceKind, service_type: str, name: str) -> None:
        instance = instance_name(name, service_type)
        info = AsyncServiceInfo(service_type, name)
        try:
            found = await info.async_request(self._aiozc.zeroconf, int(RESOLVE_TIMEOUT * 1000))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(ResolveFailed(name=instance, service_kind=kind, reason=str(e)))
            return
        finally:
            if self._resolving.get(name) is asyncio.current_task():
                del self._resolving[name]

        if not found or info.port is None:
            self._post(ResolveFailed(name=instance, service_kind=kind, reason="timed out"))
            return

        txt = _decode_properties(info.properties)
        record = RemoteAdvertisement(
            name=instance,
            service_kind=kind,
            scope=SCOPE,
            hostname=(info.server or "").rstrip("."),
            port=info.port,
            flags=RecordFlags(is_self=self._is_own(kind, instance)),
            can_host=txt.get(CAN_HOST_KEY) == "1",
            wad=txt.get(WAD_KEY),
        )
        logger.debug(f"Service '{instance}' of type '{service_type}': {record.hostname}:{record.port} TXT={txt}")
        self._post(PeerResolved(record=record))

    async def _connectivity_loop(self) -> None:
        """Report the zeroconf engine going away underneath us."""
        while True:
            await asyncio.sleep(CONNECTIVITY_CHECK_INTERVAL)
            if self._aiozc.zeroconf.done and not self._stopping:
                self._post(ConnectivityLost(reason="zeroconf engine stopped"))
                return

    # --- Helpers ---

    def _post(self, event: Event) -> None:
        if self._stopping or self._post_event is None:
            return
        self._loop.call_soon_threadsafe(self._post_event, event)

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
