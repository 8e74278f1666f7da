from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AgentState(str, Enum):
    idle = "Idle"
    building = "Building"
    lost_contact = "LostContact"
    missing = "Missing"
    unknown = "Unknown"


class BuildState(str, Enum):
    idle = "Idle"
    building = "Building"
    cancelled = "Cancelled"
    unknown = "Unknown"


class ConfigState(str, Enum):
    pending = "Pending"
    enabled = "Enabled"
    disabled = "Disabled"


class Agent(BaseModel):
    agent_id: str = Field(..., description="Agent UUID assigned by the server")
    elastic_agent_id: str = Field(..., description="Container name the agent runs in")
    agent_state: AgentState = AgentState.unknown
    build_state: BuildState = BuildState.unknown
    config_state: ConfigState = ConfigState.enabled

    @property
    def is_idle(self) -> bool:
        return self.agent_state == AgentState.idle

    @property
    def is_disabled(self) -> bool:
        return self.config_state == ConfigState.disabled


class CreateAgentRequest(BaseModel):
    auto_register_key: str = Field(..., description="Key the agent uses to auto-register with the server")
    environment: str | None = Field(None, description="Server environment the agent belongs to")
    properties: dict[str, str] = Field(
        default_factory=dict,
        description="Elastic profile properties: Image (required), Command, Environment",
    )

    @property
    def image(self) -> str:
        return (self.properties.get("Image") or "").strip()

    def command(self) -> list[str] | None:
        raw = self.properties.get("Command") or ""
        parts = [line.strip() for line in raw.splitlines() if line.strip()]
        return parts or None

    def user_environment(self) -> dict[str, str]:
        env: dict[str, str] = {}
        for line in (self.properties.get("Environment") or "").splitlines():
            line = line.strip()
            if not line or "=" not in line:
                continue
            key, value = line.split("=", 1)
            env[key.strip()] = value
        return env


class AgentsRequest(BaseModel):
    agents: list[Agent] = Field(default_factory=list)


class ContainerOut(BaseModel):
    identity: str
    created_at: datetime
    image: str | None = None
    environment: str | None = None


class PingResponse(BaseModel):
    disable: list[str] = Field(default_factory=list, description="Agent ids the server should disable")
    delete: list[str] = Field(default_factory=list, description="Agent ids the server should delete")
    terminated: list[str] = Field(default_factory=list, description="Containers terminated for never registering")
