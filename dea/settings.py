from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("DEA_DB_PATH", "dea.db")
    go_server_url: str = os.getenv("DEA_GO_SERVER_URL", "https://localhost:8154/go")

    # Agents that have not registered with the server within this many minutes are terminated.
    auto_register_timeout_minutes: int = _env_int("DEA_AUTO_REGISTER_TIMEOUT_MINUTES", 10)
    # When false, sweeps trust the creation time cached in the registry instead of asking Docker again.
    verify_unregistered_created_at: bool = _env_bool("DEA_VERIFY_UNREGISTERED_CREATED_AT", True)

    # Docker connection. No host means docker.from_env().
    docker_host: str | None = os.getenv("DEA_DOCKER_HOST")
    docker_tls_verify: bool = _env_bool("DEA_DOCKER_TLS_VERIFY", False)
    docker_cert_path: str | None = os.getenv("DEA_DOCKER_CERT_PATH")
    docker_timeout_s: int = _env_int("DEA_DOCKER_TIMEOUT_S", 60)

    @property
    def auto_register_period(self) -> timedelta:
        return timedelta(minutes=max(0, self.auto_register_timeout_minutes))


settings = Settings()
