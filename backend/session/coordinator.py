"""
Coordinator: the launcher's single coordination context.

Holds the peer registry, election timer, publisher and session, and applies
every discovery, timer and process event to them strictly one at a time.
"""

import asyncio
import logging

from config import LauncherConfig
from discovery.models import AdvertisementKey, RecordFlags, RemoteAdvertisement, ServiceKind
from discovery.publisher import AdvertisementPublisher, DiscoveryBackend
from discovery.registry import PeerRegistry
from session.controller import SessionController
from session.election import ElectionController
from session.events import (
    ConnectivityLost,
    Event,
    HostLost,
    PeerRemoved,
    PeerResolved,
    ProcessExited,
    PublishCollision,
    PublishEstablished,
    PublishFailed,
    ResolveFailed,
    ShutdownRequested,
    TimerFired,
)
from session.models import ElectionAction, SessionState
from session.supervisor import ProcessSupervisor, Spawner

logger = logging.getLogger(__name__)


class Coordinator:
    """Serializes all launcher events and owns every piece of shared state."""

    def __init__(
        self,
        config: LauncherConfig,
        backend: DiscoveryBackend,
        name: str,
        spawner: Spawner = asyncio.create_subprocess_exec,
    ) -> None:
        self.config = config
        self.registry = PeerRegistry()
        self.publisher = AdvertisementPublisher(
            backend,
            name=name,
            port=config.port,
            can_host=config.can_host,
            wad=config.mp_wad,
        )
        self.election = ElectionController(
            self.registry, config.source_wait, lambda: self.post(TimerFired())
        )
        self.supervisor = ProcessSupervisor(self.post, spawner)
        self.session = SessionController(config, self.supervisor, self.publisher)
        self.stop_event: Event | None = None
        self._queue: asyncio.Queue[Event] = asyncio.Queue()

    # --- Wiring ---

    def post(self, event: Event) -> None:
        """Queue an event for dispatch on the event loop."""
        self._queue.put_nowait(event)

    def owns_name(self, kind: ServiceKind, name: str) -> bool:
        return self.publisher.owns_name(kind, name)

    async def start(self) -> None:
        """Announce this launcher and fall back to solo play until elected."""
        self.publisher.publish(self.publisher.client)
        await self.session.start_single_player()

    async def run(self) -> Event:
        """Start, then dispatch events until a stop event arrives."""
        await self.start()
        while self.stop_event is None:
            event = await self._queue.get()
            await self.dispatch(event)
        return self.stop_event

    async def shutdown(self) -> None:
        """Release timer, advertisements and the game process."""
        logger.info("Shutting down launcher...")
        self.election.cancel()
        self.publisher.unpublish(self.publisher.client)
        await self.session.stop()

    # --- Dispatch ---

    async def dispatch(self, event: Event) -> None:
        if isinstance(event, PeerResolved):
            if event.record.service_kind is ServiceKind.CLIENT:
                self._on_client_appeared(event.record)
            else:
                await self._on_host_announced(event.record)
        elif isinstance(event, PeerRemoved):
            self._on_client_removed(event.key)
        elif isinstance(event, HostLost):
            await self._on_host_lost(event.key)
        elif isinstance(event, TimerFired):
            await self._on_timer()
        elif isinstance(event, ProcessExited):
            await self.session.on_process_exited(event)
        elif isinstance(event, PublishEstablished):
            self.publisher.on_established(event.service_kind, event.handle)
        elif isinstance(event, PublishCollision):
            self.publisher.on_collision(event.service_kind, event.handle)
            self._disown_rejected_names(event.service_kind)
        elif isinstance(event, PublishFailed):
            self.publisher.on_failure(event.service_kind, event.handle, event.reason)
        elif isinstance(event, ResolveFailed):
            logger.warning(
                f"(Resolver) Failed to resolve {event.service_kind.value} service "
                f"'{event.name}': {event.reason}"
            )
        elif isinstance(event, ConnectivityLost):
            logger.error(f"Disconnected from the discovery service: {event.reason}")
            self.stop_event = event
        elif isinstance(event, ShutdownRequested):
            logger.info(f"Shutdown requested ({event.reason})")
            self.stop_event = event
        else:
            logger.warning(f"Unhandled event {type(event).__name__}")

    def _checked_ownership(self, record: RemoteAdvertisement) -> RemoteAdvertisement:
        """Drop is_self from records under a name we gave up after a collision."""
        rejected = self.publisher.service_for(record.service_kind).rejected_names
        if record.is_self and record.name in rejected:
            return record.model_copy(
                update={"flags": RecordFlags(is_self=False, is_cached=record.flags.is_cached)}
            )
        return record

    def _disown_rejected_names(self, kind: ServiceKind) -> None:
        """After a rename, records under our old names belong to someone else."""
        if kind is not ServiceKind.CLIENT:
            return
        rejected = self.publisher.service_for(kind).rejected_names
        if self.registry.mark_foreign(rejected):
            logger.info(f"Clients named {rejected} belong to another launcher")
            self.election.rearm()

    def _on_client_appeared(self, record: RemoteAdvertisement) -> None:
        record = self._checked_ownership(record)
        result = self.registry.upsert(record)
        logger.info(
            f"{'New' if result.is_new else 'Updated'} client {record.name} ({record.hostname}) "
            f"can-host: {record.can_host}, is-own: {record.is_self}"
        )
        if not record.is_self or result.replaced_foreign:
            self.election.rearm()

    def _on_client_removed(self, key: AdvertisementKey) -> None:
        result = self.registry.remove(key)
        if not result.existed:
            return
        logger.info(f"Removing client {key.name}")
        if result.was_foreign:
            self.election.rearm()

    async def _on_host_announced(self, record: RemoteAdvertisement) -> None:
        record = self._checked_ownership(record)
        if record.is_self:
            return
        if (
            self.session.state is SessionState.CONNECTING_TO_HOST
            and self.session.current_host == record
        ):
            logger.debug(f"Already connected to host {record.name}")
            return

        logger.info(f"Connecting to new host {record.name} ({record.hostname})")
        self.election.cancel()
        await self.session.start_join(record)

    async def _on_host_lost(self, key: AdvertisementKey) -> None:
        host = self.session.current_host
        if host is None or host.key != key:
            logger.debug(f"Ignoring removal of host {key.name}")
            return

        logger.info(f"Host {host.name} ({host.hostname}) went away")
        await self.session.start_single_player()
        self.election.rearm()

    async def _on_timer(self) -> None:
        logger.info("Election timer fired")
        if self.session.state is SessionState.CONNECTING_TO_HOST:
            logger.info(f"Already joined {self.session.current_host.name}, keeping session")
            return

        decision = self.election.decide()
        logger.info(decision.reason)

        if decision.action is ElectionAction.HOST:
            if (
                self.session.state is SessionState.HOSTING
                and self.session.player_count == decision.player_count
                and self.supervisor.running
            ):
                return
            await self.session.start_host(decision.player_count)
        elif decision.action is ElectionAction.SOLO:
            await self.session.start_single_player()
        # WAIT: the winner announces itself with a host advertisement

    # --- Introspection ---

    def status(self) -> dict:
        """Snapshot of the coordination state."""
        host = self.session.current_host
        return {
            "state": self.session.state.value,
            "current_host": host.model_dump(mode="json") if host else None,
            "player_count": self.session.player_count,
            "child_pid": self.supervisor.pid,
            "election_armed": self.election.armed,
            "services": [
                {
                    "kind": service.service_kind.value,
                    "name": service.name,
                    "state": service.state.value,
                }
                for service in (self.publisher.client, self.publisher.host)
            ],
        }
