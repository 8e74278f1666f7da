from __future__ import annotations

import dataclasses
import itertools
from datetime import datetime, timedelta, timezone
from threading import Event, Lock

import pytest

from dea import db
from dea.clock import FixedClock
from dea.docker_ops import CREATED_BY_LABEL_KEY, PLUGIN_ID, EngineContainer
from dea.reconciler import DockerContainers
from dea.settings import Settings


NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeEngine:
    """In-memory stand-in for Docker that records every call it receives."""

    def __init__(self, clock: FixedClock):
        self.clock = clock
        self.containers: dict[str, EngineContainer] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.fail_on: dict[tuple[str, str | None], Exception] = {}
        self._lock = Lock()
        self._seq = itertools.count(1)
        self.reachable = True
        # When set, list_owned signals list_started and blocks until list_gate is set.
        self.list_gate: Event | None = None
        self.list_started = Event()

    def _call(self, op: str, name: str | None = None) -> None:
        with self._lock:
            self.calls.append((op, name))
        err = self.fail_on.get((op, name))
        if err is not None:
            raise err

    def count(self, op: str) -> int:
        return sum(1 for c, _ in self.calls if c == op)

    def add(self, name: str, age: timedelta, owned: bool = True) -> EngineContainer:
        labels = {CREATED_BY_LABEL_KEY: PLUGIN_ID} if owned else {}
        c = EngineContainer(name=name, created_at=self.clock.now() - age, image="alpine:3", labels=labels)
        self.containers[name] = c
        return c

    def create(self, request, settings) -> EngineContainer:
        self._call("create", None)
        with self._lock:
            name = f"dea-{next(self._seq):04d}"
        return self.add(name, timedelta(0))

    def inspect(self, name: str) -> EngineContainer | None:
        self._call("inspect", name)
        return self.containers.get(name)

    def list_owned(self) -> list[str]:
        self._call("list", None)
        self.list_started.set()
        if self.list_gate is not None:
            self.list_gate.wait(timeout=5)
        return [n for n, c in self.containers.items() if c.labels.get(CREATED_BY_LABEL_KEY) == PLUGIN_ID]

    def remove(self, name: str) -> bool:
        self._call("remove", name)
        return self.containers.pop(name, None) is not None

    def ping(self) -> bool:
        self._call("ping", None)
        return self.reachable


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "settings", dataclasses.replace(db.settings, db_path=str(tmp_path / "events.db")))
    db.init_db()
    return db


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def engine(clock):
    return FakeEngine(clock)


@pytest.fixture
def cfg():
    return Settings(auto_register_timeout_minutes=10, verify_unregistered_created_at=True)


@pytest.fixture
def instances(engine, clock):
    return DockerContainers(engine_factory=lambda s: engine, clock=clock)


