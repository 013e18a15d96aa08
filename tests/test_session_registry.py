"""
Tests for services/isolation/SessionRegistry.py
Session tracking, 24h expiry and on-disk persistence.
"""

import json
import os

import pytest

from services.isolation.SessionRegistry import SESSION_FILE_NAME, SessionRegistry

HOUR = 60 * 60
KEY_A = "a" * 32
KEY_B = "b" * 32


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(helper_config, clock):
    return SessionRegistry(helper_config=helper_config, clock=clock)


class TestTrack:
    async def test_new_session_has_equal_timestamps(self, registry, clock):
        session = await registry.track(KEY_A)

        assert session.id == KEY_A
        assert session.created_at == session.last_accessed_at == clock.now

    async def test_track_is_idempotent_and_refreshes_access_time(self, registry, clock):
        first = await registry.track(KEY_A)
        created_at = first.created_at
        clock.now += 600

        second = await registry.track(KEY_A)

        assert len(registry) == 1
        assert second.created_at == created_at
        assert second.last_accessed_at == clock.now


class TestSweep:
    async def test_25h_old_session_is_removed_23h_old_is_kept(self, registry, clock):
        start = clock.now
        clock.now = start - 25 * HOUR
        await registry.track(KEY_A)
        clock.now = start - 23 * HOUR
        await registry.track(KEY_B)

        removed = await registry.sweep(now=start)

        assert removed == [KEY_A]
        assert registry.get(KEY_A) is None
        assert registry.get(KEY_B) is not None

    async def test_session_tracked_after_snapshot_survives(self, registry, clock):
        snapshot = clock.now
        clock.now = snapshot - 25 * HOUR
        await registry.track(KEY_A)
        # the request arrives after the sweep took its snapshot
        clock.now = snapshot + 5
        await registry.track(KEY_A)

        assert await registry.sweep(now=snapshot) == []
        assert KEY_A in registry

    async def test_sweep_defaults_to_clock(self, registry, clock):
        await registry.track(KEY_A)
        clock.now += 24 * HOUR + 1

        assert await registry.sweep() == [KEY_A]

    async def test_custom_expiry(self, helper_config, clock):
        registry = SessionRegistry(helper_config=helper_config, expiry_seconds=60, clock=clock)
        await registry.track(KEY_A)

        assert await registry.sweep(now=clock.now + 59) == []
        assert await registry.sweep(now=clock.now + 61) == [KEY_A]


class TestPersistence:
    async def test_track_writes_session_file(self, helper_config, clock, tmp_path):
        registry = SessionRegistry(helper_config=helper_config, sessions_dir=str(tmp_path), clock=clock)

        await registry.track(KEY_A)

        with open(tmp_path / KEY_A / SESSION_FILE_NAME, encoding="utf-8") as f:
            data = json.load(f)
        assert data["id"] == KEY_A
        assert data["last_accessed_at"] == clock.now

    async def test_load_restores_sessions(self, helper_config, clock, tmp_path):
        first = SessionRegistry(helper_config=helper_config, sessions_dir=str(tmp_path), clock=clock)
        await first.track(KEY_A)
        await first.track(KEY_B)

        second = SessionRegistry(helper_config=helper_config, sessions_dir=str(tmp_path), clock=clock)
        loaded = await second.load()

        assert loaded == 2
        assert second.get(KEY_A).created_at == clock.now

    async def test_load_skips_broken_files(self, helper_config, clock, tmp_path):
        os.makedirs(tmp_path / KEY_A)
        (tmp_path / KEY_A / SESSION_FILE_NAME).write_text("{not json", encoding="utf-8")
        os.makedirs(tmp_path / KEY_B)
        (tmp_path / KEY_B / SESSION_FILE_NAME).write_text(json.dumps({"id": KEY_A, "created_at": 1, "last_accessed_at": 1}), encoding="utf-8")

        registry = SessionRegistry(helper_config=helper_config, sessions_dir=str(tmp_path), clock=clock)

        assert await registry.load() == 0
        assert len(registry) == 0

    async def test_load_without_directory(self, helper_config, tmp_path):
        registry = SessionRegistry(helper_config=helper_config, sessions_dir=str(tmp_path / "missing"))
        assert await registry.load() == 0

    async def test_sweep_removes_session_directory(self, helper_config, clock, tmp_path):
        registry = SessionRegistry(helper_config=helper_config, sessions_dir=str(tmp_path), clock=clock)
        await registry.track(KEY_A)

        await registry.sweep(now=clock.now + 25 * HOUR)

        assert not os.path.exists(tmp_path / KEY_A)
