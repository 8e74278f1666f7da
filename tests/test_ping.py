from __future__ import annotations

import threading
from datetime import timedelta

from dea import db
from dea.agents import Agents
from dea.api_models import Agent, AgentState, ConfigState
from dea.docker_ops import EngineError
from dea.ping import server_ping


def _agent(name: str, state=AgentState.idle, config=ConfigState.enabled) -> Agent:
    return Agent(agent_id=f"uuid-{name}", elastic_agent_id=name, agent_state=state, config_state=config)


def test_ping_hydrates_registry_once(instances, engine, cfg):
    engine.add("c1", timedelta(minutes=1))

    server_ping(instances, cfg, Agents([_agent("c1")]))
    server_ping(instances, cfg, Agents([_agent("c1")]))

    assert engine.count("list") == 1
    assert instances.has_container("c1")


def test_ping_disables_idle_agents_past_register_window(instances, engine, cfg):
    engine.add("old", timedelta(minutes=30))
    engine.add("young", timedelta(minutes=2))
    engine.add("busy", timedelta(minutes=30))
    agents = Agents([_agent("old"), _agent("young"), _agent("busy", state=AgentState.building)])

    result = server_ping(instances, cfg, agents)

    assert result.disable == ["uuid-old"]
    assert result.delete == []


def test_ping_disables_idle_agents_with_missing_container(instances, engine, cfg):
    result = server_ping(instances, cfg, Agents([_agent("lost")]))

    assert result.disable == ["uuid-lost"]
    warnings = [e["container"] for e in db.latest_events(level="WARN")]
    assert "lost" in warnings


def test_ping_deletes_disabled_idle_agents_and_their_containers(instances, engine, cfg):
    engine.add("done", timedelta(minutes=30))
    agents = Agents([_agent("done", config=ConfigState.disabled)])

    result = server_ping(instances, cfg, agents)

    assert result.delete == ["uuid-done"]
    assert result.disable == []
    assert "done" not in engine.containers
    assert not instances.has_container("done")


def test_ping_terminates_containers_that_never_registered(instances, engine, cfg):
    engine.add("orphan", timedelta(minutes=30))
    engine.add("fresh", timedelta(minutes=1))

    result = server_ping(instances, cfg, Agents())

    assert result.terminated == ["orphan"]
    assert instances.has_container("fresh")


def test_ping_keeps_going_when_one_delete_fails(instances, engine, cfg):
    engine.add("a", timedelta(minutes=30))
    engine.add("b", timedelta(minutes=30))
    engine.fail_on[("remove", "a")] = EngineError("busy")
    agents = Agents([_agent("a", config=ConfigState.disabled), _agent("b", config=ConfigState.disabled)])

    result = server_ping(instances, cfg, agents)

    assert result.delete == ["uuid-b"]
    assert instances.has_container("a")


def test_ping_during_startup_scan_sees_loaded_containers(instances, engine, cfg):
    engine.add("young", timedelta(minutes=1))
    engine.list_gate = threading.Event()
    loader = threading.Thread(target=instances.refresh_all, args=(cfg,))
    loader.start()
    assert engine.list_started.wait(timeout=5)

    results = []
    pinger = threading.Thread(target=lambda: results.append(server_ping(instances, cfg, Agents([_agent("young")]))))
    pinger.start()
    pinger.join(timeout=0.2)
    engine.list_gate.set()
    loader.join(timeout=5)
    pinger.join(timeout=5)

    assert results[0].disable == []
    assert [e for e in db.latest_events(level="WARN") if e["container"] == "young"] == []
