"""Shared fixtures: a fake discovery backend and a fake game process spawner."""

import asyncio
import signal

import pytest
import pytest_asyncio

from config import LauncherConfig
from discovery.models import NetworkScope, RecordFlags, RemoteAdvertisement, ServiceKind
from errors import NameCollisionError
from session.coordinator import Coordinator


class FakeHandle:
    def __init__(self, kind: ServiceKind, name: str) -> None:
        self.kind = kind
        self.name = name

    def __repr__(self) -> str:
        return f"<FakeHandle {self.kind.value} {self.name}>"


class FakeBackend:
    """Records advertise/withdraw calls; names in `taken` collide synchronously."""

    def __init__(self) -> None:
        self.taken: set[str] = set()
        self.advertised: list[FakeHandle] = []
        self.withdrawn: list[FakeHandle] = []
        self.attempts: list[str] = []

    def advertise(self, kind, name, port, txt):
        self.attempts.append(name)
        if name in self.taken:
            raise NameCollisionError(name)
        handle = FakeHandle(kind, name)
        self.advertised.append(handle)
        return handle

    def withdraw(self, handle):
        self.withdrawn.append(handle)

    def live(self, kind: ServiceKind) -> list[FakeHandle]:
        return [h for h in self.advertised if h.kind is kind and h not in self.withdrawn]


class FakeProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(self, pid: int, argv: tuple[str, ...], ignore_sigint: bool = False) -> None:
        self.pid = pid
        self.argv = list(argv)
        self.returncode: int | None = None
        self.signals: list[int] = []
        self.ignore_sigint = ignore_sigint
        self._exited = asyncio.Event()

    def exit(self, code: int = 0) -> None:
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)
        if not (sig == signal.SIGINT and self.ignore_sigint):
            self.exit(-sig)

    def kill(self) -> None:
        self.signals.append(signal.SIGKILL)
        self.exit(-signal.SIGKILL)


class FakeSpawner:
    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.fail = False
        self.ignore_sigint = False
        self._next_pid = 1000

    async def __call__(self, *argv: str) -> FakeProcess:
        if self.fail:
            raise FileNotFoundError(2, "No such file or directory", argv[0])
        self._next_pid += 1
        process = FakeProcess(self._next_pid, argv, self.ignore_sigint)
        self.processes.append(process)
        return process

    @property
    def current(self) -> FakeProcess:
        return self.processes[-1]


def make_record(
    name: str,
    kind: ServiceKind = ServiceKind.CLIENT,
    can_host: bool = True,
    is_self: bool = False,
    hostname: str | None = None,
    port: int = 5029,
    wad: str | None = None,
) -> RemoteAdvertisement:
    return RemoteAdvertisement(
        name=name,
        service_kind=kind,
        scope=NetworkScope(),
        hostname=hostname or f"{name.lower()}.local",
        port=port,
        flags=RecordFlags(is_self=is_self),
        can_host=can_host,
        wad=wad,
    )


async def settle(coordinator: Coordinator | None = None) -> None:
    """Let pending tasks run, then dispatch whatever they queued."""
    for _ in range(5):
        await asyncio.sleep(0)
    if coordinator is None:
        return
    while not coordinator._queue.empty():
        await coordinator.dispatch(coordinator._queue.get_nowait())
        for _ in range(5):
            await asyncio.sleep(0)


@pytest.fixture
def launcher_config() -> LauncherConfig:
    return LauncherConfig(
        zdoom="zdoom",
        mp_wad="freedm.wad",
        mp_map="MAP01",
        sp_wad="freedoom1.wad",
        source_wait=30,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest_asyncio.fixture
async def coordinator(launcher_config, backend, spawner):
    """A started coordinator named "A", running single player."""
    coord = Coordinator(launcher_config, backend, name="A", spawner=spawner)
    await coord.start()
    yield coord
    coord.election.cancel()
    await coord.supervisor.stop()
