"""Tests for the psutil-backed process backend, using real child processes."""

import asyncio
import os
import sys
from pathlib import Path

import psutil
import pytest

from gamewatch.config import GameWatchConfig
from gamewatch.errors import OSQueryFailedError, SpawnFailedError
from gamewatch.processes import KillLevel, PsutilProcessBackend
from gamewatch.registry import TrackedProcessRegistry

SLEEPER = "import time\nwhile True:\n    time.sleep(0.1)\n"
STUBBORN = (
    "import signal, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "while True:\n"
    "    time.sleep(0.1)\n"
)


def write_script(tmp_path: Path, name: str, body: str) -> Path:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    return path


class TestPsutilProcessBackend:
    """Tests for PsutilProcessBackend."""

    @pytest.mark.asyncio
    async def test_spawn_wait_and_kill(self, tmp_path: Path):
        """Test a spawned process can be waited on and stopped gracefully."""
        backend = PsutilProcessBackend()
        script = write_script(tmp_path, "sleeper.py", SLEEPER)

        handle = await backend.spawn([sys.executable, str(script)], cwd=str(tmp_path))
        try:
            assert handle.pid > 0
            assert await handle.wait(timeout=0.2) is None
            assert await backend.exists(handle.pid)

            handle.kill(KillLevel.GRACEFUL)
            code = await handle.wait(timeout=5)

            assert code is not None
            assert handle.returncode == code
        finally:
            handle.kill(KillLevel.FORCE)
            await handle.wait(timeout=5)

    @pytest.mark.asyncio
    async def test_spawn_missing_binary(self, tmp_path: Path):
        """Test a binary that cannot be started raises SpawnFailedError."""
        backend = PsutilProcessBackend()

        with pytest.raises(SpawnFailedError):
            await backend.spawn([str(tmp_path / "no-such-binary")])

    @pytest.mark.asyncio
    async def test_parent_process_id(self):
        """Test the parent of the test runner is reported."""
        backend = PsutilProcessBackend()

        assert await backend.parent_process_id(os.getpid()) == os.getppid()

    @pytest.mark.asyncio
    async def test_parent_of_missing_process(self):
        """Test querying a PID that does not exist raises OSQueryFailedError."""
        backend = PsutilProcessBackend()
        missing = max(psutil.pids()) + 100000

        with pytest.raises(OSQueryFailedError):
            await backend.parent_process_id(missing)
        assert not await backend.exists(missing)

    @pytest.mark.asyncio
    async def test_kill_tree(self, tmp_path: Path):
        """Test a process and its child are both killed."""
        backend = PsutilProcessBackend()
        child = write_script(tmp_path, "child.py", SLEEPER)
        parent = write_script(
            tmp_path,
            "parent.py",
            "import subprocess, sys, time\n"
            f"subprocess.Popen([sys.executable, {str(child)!r}])\n"
            "while True:\n"
            "    time.sleep(0.1)\n",
        )
        handle = await backend.spawn([sys.executable, str(parent)])
        try:
            root = psutil.Process(handle.pid)
            for _ in range(50):
                if root.children():
                    break
                await asyncio.sleep(0.1)
            children = root.children(recursive=True)
            assert children

            killed = await backend.kill_tree(handle.pid)

            assert killed == len(children) + 1
            assert await handle.wait(timeout=5) is not None
            gone, alive = psutil.wait_procs(children, timeout=5)
            assert alive == []
        finally:
            handle.kill(KillLevel.FORCE)
            await handle.wait(timeout=5)

    @pytest.mark.asyncio
    async def test_kill_tree_missing_process(self):
        """Test killing a vanished process tree kills nothing."""
        backend = PsutilProcessBackend()

        assert await backend.kill_tree(max(psutil.pids()) + 100000) == 0


@pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM cannot be ignored on Windows")
class TestRealTermination:
    """End-to-end termination through the registry."""

    @pytest.mark.asyncio
    async def test_terminate_ignores_sigterm(self, tmp_path: Path):
        """Test a game ignoring SIGTERM is force-killed within the grace period."""
        script = write_script(tmp_path, "stubborn.py", STUBBORN)
        config = GameWatchConfig(terminate_grace=1.0, launchers={".py": sys.executable})
        registry = TrackedProcessRegistry(PsutilProcessBackend(), config=config)
        process = await registry.launch(script, "Stubborn", game_id="g1")
        await asyncio.sleep(0.3)  # Let the child install its signal handler

        loop = asyncio.get_running_loop()
        started = loop.time()
        play_time = await registry.terminate("g1")

        assert loop.time() - started < 3.5
        assert play_time >= 0
        assert not await registry.backend.exists(process.process_id)
