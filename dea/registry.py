from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Lock

from .docker_ops import ENVIRONMENT_LABEL_KEY, EngineContainer


@dataclass(frozen=True)
class ContainerRecord:
    identity: str
    created_at: datetime
    image: str | None = None
    environment: str | None = None

    @classmethod
    def from_engine(cls, c: EngineContainer) -> "ContainerRecord":
        return cls(
            identity=c.name,
            created_at=c.created_at,
            image=c.image,
            environment=c.labels.get(ENVIRONMENT_LABEL_KEY),
        )


class FleetRegistry:
    """In-memory map of container name -> record.

    A cache of what Docker holds, not the source of truth: entries may be stale
    or never confirmed against the engine. Safe for concurrent use.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[str, ContainerRecord] = {}

    def put(self, record: ContainerRecord) -> None:
        with self._lock:
            self._records[record.identity] = record

    def get(self, identity: str) -> ContainerRecord | None:
        with self._lock:
            return self._records.get(identity)

    def contains(self, identity: str) -> bool:
        with self._lock:
            return identity in self._records

    def remove(self, identity: str) -> None:
        with self._lock:
            self._records.pop(identity, None)

    def snapshot(self) -> list[ContainerRecord]:
        with self._lock:
            return list(self._records.values())

    def identities(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and self.contains(identity)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
