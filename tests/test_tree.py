"""Tests for the ProcessTreeResolver."""

from pathlib import Path

import pytest

from fakes import FakeBackend
from gamewatch.config import GameWatchConfig, TreeWalk
from gamewatch.registry import TrackedProcessRegistry
from gamewatch.tree import ProcessTreeResolver


async def registry_with_game(tmp_path: Path, backend: FakeBackend, pid: int = 4321):
    path = tmp_path / "game.exe"
    path.write_bytes(b"")
    backend.pids = [pid]
    registry = TrackedProcessRegistry(backend, config=GameWatchConfig())
    process = await registry.launch(path, "Game", game_id="g1")
    return registry, process


def chain(start: int, length: int, root: int) -> dict[int, int]:
    """Parent map for start -> start+1 -> ... -> root, ``length`` hops long."""
    parents = {}
    pid = start
    for _ in range(length - 1):
        parents[pid] = pid + 1
        pid += 1
    parents[pid] = root
    return parents


class TestResolveOwner:
    """Tests for resolve_owner."""

    @pytest.mark.asyncio
    async def test_direct_hit(self, tmp_path: Path):
        """Test a registered PID resolves without any OS query."""
        backend = FakeBackend()
        registry, process = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(4321, registry) is process
        assert backend.parent_queries == []
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_child_of_tracked_process(self, tmp_path: Path):
        """Test a launcher child resolves to the tracked parent."""
        backend = FakeBackend(parents={5000: 4321})
        registry, process = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(5000, registry) is process
        await registry.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hops", [1, 2, 5, 10])
    async def test_descendants_within_hop_limit(self, tmp_path: Path, hops: int):
        """Test descendants up to ten hops away resolve to the ancestor."""
        backend = FakeBackend(parents=chain(6000, hops, 4321))
        registry, process = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(6000, registry) is process
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_beyond_hop_limit(self, tmp_path: Path):
        """Test an ancestor eleven hops away is not found."""
        backend = FakeBackend(parents=chain(6000, 11, 4321))
        registry, _ = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(6000, registry) is None
        assert len(backend.parent_queries) == 10
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_custom_hop_limit(self, tmp_path: Path):
        """Test the hop limit is configurable."""
        backend = FakeBackend(parents=chain(6000, 3, 4321))
        registry, _ = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend, TreeWalk(max_hops=2))

        assert await resolver.resolve_owner(6000, registry) is None
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_stops_at_system_processes(self, tmp_path: Path):
        """Test the walk stops once it reaches a low system PID."""
        backend = FakeBackend(parents={7000: 4, 4: 4321})
        registry, _ = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(7000, registry) is None
        assert backend.parent_queries == [7000]
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_unrelated_process(self, tmp_path: Path):
        """Test a PID whose ancestry never reaches a tracked PID."""
        backend = FakeBackend(parents={8000: 8001, 8001: 1})
        registry, _ = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(8000, registry) is None
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_os_failure_returns_none(self, tmp_path: Path):
        """Test a failed parent query ends the walk with None."""
        backend = FakeBackend(parents={9000: 9001, 9001: 4321})
        backend.failing.add(9001)
        registry, _ = await registry_with_game(tmp_path, backend)
        resolver = ProcessTreeResolver(backend)

        assert await resolver.resolve_owner(9000, registry) is None
        await registry.shutdown()
