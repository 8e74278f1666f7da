from __future__ import annotations

from typing import Iterable, Iterator

from .api_models import Agent


class Agents:
    """Read-only view of the agents the server knows about."""

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: list[Agent] = list(agents)
        self._ids = {a.elastic_agent_id for a in self._agents}

    def agents(self) -> list[Agent]:
        return list(self._agents)

    def contains_agent_with_id(self, elastic_agent_id: str) -> bool:
        return elastic_agent_id in self._ids

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)
