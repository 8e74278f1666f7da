from __future__ import annotations

from dataclasses import dataclass, field

from . import db
from .agents import Agents
from .docker_ops import EngineError
from .reconciler import AgentInstances
from .settings import Settings


@dataclass
class PingResult:
    disable: list[str] = field(default_factory=list)
    delete: list[str] = field(default_factory=list)
    terminated: list[str] = field(default_factory=list)


def server_ping(instances: AgentInstances, settings: Settings, agents: Agents) -> PingResult:
    """Periodic housekeeping, driven by the server's ping.

    The server sends the agents it knows about and acts on the result:
      - disable: idle agents past their register window, or whose container is missing
      - delete: agents already disabled and idle; their containers are gone now
      - terminated: containers whose agent never registered
    """
    instances.refresh_all(settings)
    result = PingResult()

    missing = []
    for agent in agents:
        if instances.find(agent.elastic_agent_id) is None:
            db.log_event(
                "WARN",
                f"Was expecting a container with name {agent.elastic_agent_id} but it was missing",
                container=agent.elastic_agent_id,
            )
            missing.append(agent)

    recent = instances.instances_created_after_timeout(settings, agents)
    for agent in agents:
        if not agent.is_idle or agent.is_disabled:
            continue
        if agent in missing or not recent.contains_agent_with_id(agent.elastic_agent_id):
            result.disable.append(agent.agent_id)

    for agent in agents:
        if not (agent.is_disabled and agent.is_idle):
            continue
        try:
            instances.terminate(agent.elastic_agent_id, settings)
        except EngineError as e:
            db.log_event("ERROR", f"Could not terminate disabled agent: {e}", container=agent.elastic_agent_id)
            continue
        result.delete.append(agent.agent_id)

    result.terminated = instances.terminate_unregistered_instances(settings, agents)
    return result
