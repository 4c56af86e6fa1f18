"""
Session controller: turns election outcomes into game processes.

The session is always in exactly one of three states, each with its own
command line. Only the single player session restarts itself when the game
exits.
"""

import logging

from config import LauncherConfig
from discovery.models import RemoteAdvertisement
from discovery.publisher import AdvertisementPublisher
from session.events import ProcessExited
from session.models import SessionState
from session.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the session state, the joined host and the game process."""

    def __init__(
        self,
        config: LauncherConfig,
        supervisor: ProcessSupervisor,
        publisher: AdvertisementPublisher,
    ) -> None:
        self._config = config
        self._supervisor = supervisor
        self._publisher = publisher
        self.state = SessionState.SINGLE_PLAYER
        self.current_host: RemoteAdvertisement | None = None
        self.player_count: int | None = None

    # --- Command lines ---

    def single_player_argv(self) -> list[str]:
        argv = [self._config.zdoom, "-iwad", self._config.sp_wad]
        if self._config.sp_config:
            argv += ["-config", self._config.sp_config]
        return argv

    def join_argv(self, host: RemoteAdvertisement) -> list[str]:
        argv = [
            self._config.zdoom,
            "-iwad", host.wad or self._config.mp_wad,
            "-join", host.hostname,
            "-port", str(host.port),
        ]
        if self._config.mp_config:
            argv += ["-config", self._config.mp_config]
        return argv

    def host_argv(self, player_count: int) -> list[str]:
        argv = [
            self._config.zdoom,
            "-iwad", self._config.mp_wad,
            "-deathmatch",
            "+map", self._config.mp_map,
            "-host", str(player_count),
            "-port", str(self._config.port),
        ]
        if self._config.mp_config:
            argv += ["-config", self._config.mp_config]
        return argv

    # --- Transitions ---

    async def start_single_player(self) -> None:
        """Fall back to solo play. No-op if a solo game is already running."""
        self._publisher.unpublish(self._publisher.host)
        if self.state is SessionState.SINGLE_PLAYER and self._supervisor.running:
            return

        logger.info("Launching single player game")
        self.current_host = None
        self.player_count = None
        self.state = SessionState.SINGLE_PLAYER
        await self._supervisor.spawn(self.single_player_argv())

    async def start_join(self, host: RemoteAdvertisement) -> None:
        self._publisher.unpublish(self._publisher.host)
        logger.info(f"Connecting to host {host.hostname}:{host.port}")
        self.current_host = host
        self.player_count = None
        self.state = SessionState.CONNECTING_TO_HOST
        await self._supervisor.spawn(self.join_argv(host))

    async def start_host(self, player_count: int) -> None:
        self._publisher.unpublish(self._publisher.host)
        logger.info(f"Hosting game for {player_count} players")
        self.current_host = None
        self.player_count = player_count
        self.state = SessionState.HOSTING
        await self._supervisor.spawn(self.host_argv(player_count))
        self._publisher.publish(self._publisher.host)

    async def on_process_exited(self, event: ProcessExited) -> None:
        if not self._supervisor.release(event.pid):
            logger.debug(f"Ignoring exit of untracked child {event.pid}")
            return

        if self.state is SessionState.SINGLE_PLAYER:
            await self.start_single_player()
        else:
            logger.info(f"Game exited while {self.state.value}; waiting for the next election event")

    async def stop(self) -> None:
        self._publisher.unpublish(self._publisher.host)
        await self._supervisor.stop()
