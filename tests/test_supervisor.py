"""Tests for the single-child process supervisor."""

import signal

import pytest

from conftest import settle
from errors import SpawnError
from session.supervisor import ProcessSupervisor


@pytest.fixture
def exits():
    return []


@pytest.fixture
def supervisor(spawner, exits):
    return ProcessSupervisor(exits.append, spawner, kill_timeout=0.05)


class TestProcessSupervisor:
    @pytest.mark.asyncio
    async def test_spawn_tracks_process(self, supervisor, spawner):
        pid = await supervisor.spawn(["zdoom", "-iwad", "freedoom1.wad"])

        assert supervisor.running
        assert supervisor.pid == pid
        assert spawner.current.argv == ["zdoom", "-iwad", "freedoom1.wad"]

        await supervisor.stop()

    @pytest.mark.asyncio
    async def test_replacing_signals_and_reaps_previous(self, supervisor, spawner, exits):
        await supervisor.spawn(["zdoom", "one"])
        first = spawner.current

        await supervisor.spawn(["zdoom", "two"])
        await settle()

        assert first.signals == [signal.SIGINT]
        assert first.returncode is not None
        assert supervisor.pid == spawner.current.pid
        # Replaced children are not reported as exits
        assert exits == []

        await supervisor.stop()

    @pytest.mark.asyncio
    async def test_sigkill_after_grace_period(self, supervisor, spawner):
        spawner.ignore_sigint = True
        await supervisor.spawn(["zdoom"])
        process = spawner.current

        await supervisor.stop()

        assert process.signals == [signal.SIGINT, signal.SIGKILL]
        assert not supervisor.running

    @pytest.mark.asyncio
    async def test_exit_is_reported(self, supervisor, spawner, exits):
        pid = await supervisor.spawn(["zdoom"])

        spawner.current.exit(3)
        await settle()

        assert len(exits) == 1
        assert exits[0].pid == pid
        assert exits[0].returncode == 3

    @pytest.mark.asyncio
    async def test_release_only_matches_tracked_pid(self, supervisor):
        pid = await supervisor.spawn(["zdoom"])

        assert supervisor.release(pid + 1) is False
        assert supervisor.running
        assert supervisor.release(pid) is True
        assert not supervisor.running

    @pytest.mark.asyncio
    async def test_spawn_failure_is_fatal(self, supervisor, spawner):
        spawner.fail = True

        with pytest.raises(SpawnError):
            await supervisor.spawn(["no-such-zdoom"])

        assert not supervisor.running

    @pytest.mark.asyncio
    async def test_stop_without_process(self, supervisor):
        await supervisor.stop()

        assert supervisor.pid is None
