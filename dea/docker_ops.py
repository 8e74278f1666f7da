from __future__ import annotations

import json
import os
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Protocol

import docker
from docker.errors import DockerException, NotFound
from docker.tls import TLSConfig
from requests.exceptions import RequestException

from .api_models import CreateAgentRequest
from .settings import Settings


PLUGIN_ID = "cd.go.contrib.elastic-agent.docker"
CREATED_BY_LABEL_KEY = "Elastic-Agent-Created-By"
ENVIRONMENT_LABEL_KEY = "Elastic-Agent-Environment-Name"
CONFIGURATION_LABEL_KEY = "Elastic-Agent-Configuration"

IMAGE_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-\._/:@]{0,254}$")
_DOCKER_TIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


class EngineError(RuntimeError):
    """Docker could not be reached or rejected a request."""


def validate_image(image: str) -> None:
    if not image:
        raise ValueError("Image must not be blank.")
    if not IMAGE_RE.match(image):
        raise ValueError("Invalid image reference. Use name[:tag] or name@digest (max 255 chars).")


def new_container_name() -> str:
    return f"dea-{secrets.token_hex(8)}"


def parse_docker_time(raw: str) -> datetime:
    """Parse Docker's RFC 3339 timestamps, which carry nanoseconds, into an aware UTC datetime."""
    m = _DOCKER_TIME_RE.match((raw or "").strip())
    if not m:
        raise EngineError(f"Unrecognised container timestamp {raw!r}")
    frac = (m.group("frac") or "0")[:6].ljust(6, "0")
    tz = m.group("tz") or "Z"
    if tz == "Z":
        tz = "+00:00"
    return datetime.fromisoformat(f"{m.group('base')}.{frac}{tz}").astimezone(timezone.utc)


@dataclass(frozen=True)
class EngineContainer:
    name: str
    created_at: datetime
    image: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_container(cls, container: Any) -> "EngineContainer":
        attrs = container.attrs or {}
        created = attrs.get("Created")
        if not created:
            raise EngineError(f"Container {container.name} has no creation time")
        config = attrs.get("Config") or {}
        return cls(
            name=container.name,
            created_at=parse_docker_time(created),
            image=config.get("Image"),
            labels=dict(config.get("Labels") or {}),
        )


class ContainerEngine(Protocol):
    def create(self, request: CreateAgentRequest, settings: Settings) -> EngineContainer: ...

    def inspect(self, name: str) -> EngineContainer | None: ...

    def list_owned(self) -> list[str]: ...

    def remove(self, name: str) -> bool: ...

    def ping(self) -> bool: ...


@lru_cache(maxsize=8)
def _client(s: Settings) -> docker.DockerClient:
    if not s.docker_host:
        return docker.from_env(timeout=s.docker_timeout_s)
    tls: TLSConfig | bool = False
    if s.docker_tls_verify:
        cert_path = s.docker_cert_path or ""
        tls = TLSConfig(
            client_cert=(os.path.join(cert_path, "cert.pem"), os.path.join(cert_path, "key.pem")),
            ca_cert=os.path.join(cert_path, "ca.pem"),
            verify=True,
        )
    return docker.DockerClient(base_url=s.docker_host, tls=tls, timeout=s.docker_timeout_s)


def engine_for(s: Settings) -> "DockerEngine":
    try:
        return DockerEngine(_client(s))
    except DockerException as e:
        raise EngineError(f"Docker is not available: {e}") from e


class DockerEngine:
    """Thin wrapper over a docker-py client speaking in container names.

    The container name is the identity the server knows the agent by, so every
    call here takes and returns names rather than Docker ids.
    """

    def __init__(self, client: docker.DockerClient):
        self.client = client

    def create(self, request: CreateAgentRequest, settings: Settings) -> EngineContainer:
        """Start an agent container.

        Containers are labeled so they can be re-discovered after a plugin restart.
        """
        name = new_container_name()
        env = request.user_environment()
        env.update(
            {
                "GO_EA_SERVER_URL": settings.go_server_url,
                "GO_EA_AUTO_REGISTER_KEY": request.auto_register_key,
                "GO_EA_AUTO_REGISTER_ENVIRONMENT": request.environment or "",
                "GO_EA_AUTO_REGISTER_ELASTIC_AGENT_ID": name,
                "GO_EA_AUTO_REGISTER_ELASTIC_PLUGIN_ID": PLUGIN_ID,
            }
        )
        labels: dict[str, str] = {
            CREATED_BY_LABEL_KEY: PLUGIN_ID,
            CONFIGURATION_LABEL_KEY: json.dumps(request.properties, sort_keys=True),
        }
        if request.environment:
            labels[ENVIRONMENT_LABEL_KEY] = request.environment

        try:
            container = self.client.containers.run(
                request.image,
                command=request.command(),
                detach=True,
                name=name,
                environment=env,
                labels=labels,
                # Dead agents are replaced by the server, not restarted by Docker.
                restart_policy={"Name": "no"},
            )
        except (DockerException, RequestException) as e:
            raise EngineError(f"Could not start container from image {request.image}: {e}") from e
        return EngineContainer.from_container(container)

    def inspect(self, name: str) -> EngineContainer | None:
        try:
            return EngineContainer.from_container(self.client.containers.get(name))
        except NotFound:
            return None
        except (DockerException, RequestException) as e:
            raise EngineError(f"Could not inspect container {name}: {e}") from e

    def list_owned(self) -> list[str]:
        try:
            containers = self.client.containers.list(
                all=True, filters={"label": f"{CREATED_BY_LABEL_KEY}={PLUGIN_ID}"}
            )
        except (DockerException, RequestException) as e:
            raise EngineError(f"Could not list containers: {e}") from e
        return [c.name for c in containers]

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (DockerException, RequestException):
            return False

    def remove(self, name: str) -> bool:
        """Force-remove a container. Returns False if it was already gone."""
        try:
            self.client.containers.get(name).remove(force=True)
        except NotFound:
            return False
        except (DockerException, RequestException) as e:
            raise EngineError(f"Could not remove container {name}: {e}") from e
        return True
