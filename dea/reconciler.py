from __future__ import annotations

from datetime import datetime
from threading import Condition
from typing import Callable, Protocol

from . import db
from .agents import Agents
from .api_models import CreateAgentRequest
from .clock import Clock, SystemClock
from .docker_ops import ContainerEngine, EngineError, engine_for, validate_image
from .registry import ContainerRecord, FleetRegistry
from .settings import Settings


class AgentInstances(Protocol):
    def create(self, request: CreateAgentRequest, settings: Settings) -> ContainerRecord: ...

    def refresh(self, identity: str, settings: Settings) -> None: ...

    def refresh_all(self, settings: Settings) -> None: ...

    def terminate(self, identity: str, settings: Settings) -> None: ...

    def terminate_unregistered_instances(self, settings: Settings, known_agents: Agents) -> list[str]: ...

    def instances_created_after_timeout(self, settings: Settings, agents: Agents) -> Agents: ...

    def find(self, identity: str) -> ContainerRecord | None: ...


class Hydration:
    """One-shot guard for the startup scan: pending -> running -> done.

    Callers arriving while a scan runs wait for it. A failed scan goes back to
    pending, so one of the waiters retries it.
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"

    def __init__(self) -> None:
        self._cond = Condition()
        self._state = self.PENDING

    @property
    def state(self) -> str:
        with self._cond:
            return self._state

    def begin(self) -> bool:
        """Return True if the caller should run the scan, False once it is done."""
        with self._cond:
            while self._state == self.RUNNING:
                self._cond.wait()
            if self._state == self.DONE:
                return False
            self._state = self.RUNNING
            return True

    def finish(self, ok: bool) -> None:
        with self._cond:
            self._state = self.DONE if ok else self.PENDING
            self._cond.notify_all()


class DockerContainers:
    """Keeps the registry of agent containers in line with Docker and the server."""

    def __init__(
        self,
        engine_factory: Callable[[Settings], ContainerEngine] = engine_for,
        clock: Clock | None = None,
        registry: FleetRegistry | None = None,
    ):
        self.engine_factory = engine_factory
        self.clock = clock or SystemClock()
        self.registry = registry if registry is not None else FleetRegistry()
        self.hydration = Hydration()

    def create(self, request: CreateAgentRequest, settings: Settings) -> ContainerRecord:
        validate_image(request.image)
        container = self.engine_factory(settings).create(request, settings)
        record = ContainerRecord.from_engine(container)
        self.registry.put(record)
        db.log_event("INFO", f"Started agent container from image {request.image}", container=record.identity)
        return record

    def refresh(self, identity: str, settings: Settings) -> None:
        if identity in self.registry:
            return
        container = self.engine_factory(settings).inspect(identity)
        if container is None:
            return
        self.registry.put(ContainerRecord.from_engine(container))
        db.log_event("INFO", "Discovered unregistered container", container=identity)

    def refresh_all(self, settings: Settings) -> None:
        """Load every container this plugin owns into the registry, once per process.

        After a restart the registry is empty while Docker may still run agents
        started by the previous process; the ownership label finds them.
        """
        if not self.hydration.begin():
            return
        ok = False
        try:
            engine = self.engine_factory(settings)
            names = engine.list_owned()
            for name in names:
                container = engine.inspect(name)
                if container is None:
                    # removed between list and inspect
                    continue
                self.registry.put(ContainerRecord.from_engine(container))
            ok = True
        finally:
            self.hydration.finish(ok)
        db.log_event("INFO", f"Loaded {len(names)} existing agent container(s) from Docker")

    def terminate(self, identity: str, settings: Settings) -> None:
        if self.registry.contains(identity):
            removed = self.engine_factory(settings).remove(identity)
            db.log_event("INFO", "Terminated container" if removed else "Container was already gone", container=identity)
        else:
            db.log_event("WARN", f"Requested to terminate an instance that does not exist {identity}", container=identity)
        self.registry.remove(identity)

    def terminate_unregistered_instances(self, settings: Settings, known_agents: Agents) -> list[str]:
        """Terminate containers whose agent never showed up on the server in time.

        Every identity is handled on its own: a Docker failure for one container
        is logged and the sweep moves on. Returns the names terminated.
        """
        candidates = [r for r in self.registry.snapshot() if not known_agents.contains_agent_with_id(r.identity)]
        if not candidates:
            return []

        period = settings.auto_register_period
        now = self.clock.now()
        expired: list[str] = []
        for record in candidates:
            try:
                created_at = self._created_at(record, settings)
            except EngineError as e:
                db.log_event("ERROR", f"Could not check creation time: {e}", container=record.identity)
                continue
            # None: Docker no longer has it, so only the registry entry is left to drop.
            if created_at is None or created_at + period < now:
                expired.append(record.identity)

        if not expired:
            return []

        db.log_event("WARN", f"Terminating instances that did not register {sorted(expired)}")

        terminated: list[str] = []
        for identity in expired:
            try:
                self.terminate(identity, settings)
            except EngineError as e:
                db.log_event("ERROR", f"Could not terminate unregistered container: {e}", container=identity)
                continue
            terminated.append(identity)
        return terminated

    def instances_created_after_timeout(self, settings: Settings, agents: Agents) -> Agents:
        """Agents whose container is still inside the auto-register window.

        The name is historical: the test is `created_at + period` after now, i.e.
        the container is young, not past its timeout. Agents without a container
        are skipped.
        """
        period = settings.auto_register_period
        now = self.clock.now()
        recent = []
        for agent in agents.agents():
            record = self.registry.get(agent.elastic_agent_id)
            if record is None:
                continue
            if record.created_at + period > now:
                recent.append(agent)
        return Agents(recent)

    def find(self, identity: str) -> ContainerRecord | None:
        return self.registry.get(identity)

    def engine_available(self, settings: Settings) -> bool:
        try:
            return self.engine_factory(settings).ping()
        except EngineError:
            return False

    def has_container(self, identity: str) -> bool:
        return self.registry.contains(identity)

    def all(self) -> list[ContainerRecord]:
        return sorted(self.registry.snapshot(), key=lambda r: r.created_at)

    def _created_at(self, record: ContainerRecord, settings: Settings) -> datetime | None:
        if not settings.verify_unregistered_created_at:
            return record.created_at
        container = self.engine_factory(settings).inspect(record.identity)
        return container.created_at if container is not None else None
