"""Config loading and validation."""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

CONFIG_FILE = "session.config.yml"

CONFIG_TEMPLATE = """\
# dev-prism session config
# Each session N gets ports port_base + N*100 + offset.

port_base: 47000
sessions_dir: ../sessions

# project_name: {name}   # compose project prefix (default: directory name)

ports:
  # Offsets must be unique and within 0-99
  APP_PORT: 0
  POSTGRES_PORT: 10
  REDIS_PORT: 11

# setup:               # commands run inside each new session directory
#   - pnpm install

# app_env:             # per-app env, ${{NAME}} is replaced by the session port
#   web:
#     DATABASE_URL: postgres://localhost:${{POSTGRES_PORT}}/app
"""


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    port_base: int = 47000
    sessions_dir: str = "../sessions"
    ports: dict[str, int] = {}
    setup: list[str] = []
    app_env: dict[str, dict[str, Any]] = {}
    project_name: Optional[str] = None

    @field_validator("ports")
    @classmethod
    def validate_offsets(cls, ports: dict[str, int]) -> dict[str, int]:
        for name, offset in ports.items():
            if not 0 <= offset <= 99:
                raise ValueError(f"Port offset for {name} must be in 0-99, got {offset}")
        if len(set(ports.values())) != len(ports):
            raise ValueError("Port offsets must be unique")
        return ports

    def compose_project(self, project_root: Path) -> str:
        return self.project_name or Path(project_root).name


def get_sessions_dir(config: SessionConfig, project_root: Path) -> Path:
    """Resolve the sessions directory against the project root."""
    return Path(os.path.normpath(Path(project_root) / config.sessions_dir))


def get_session_dir(config: SessionConfig, project_root: Path, session_id: str) -> Path:
    return get_sessions_dir(config, project_root) / f"session-{session_id}"


def load_config(project_root: Path) -> SessionConfig:
    """Load session.config.yml from the project root."""
    config_path = Path(project_root) / CONFIG_FILE
    if not config_path.exists():
        raise FileNotFoundError(f"No {CONFIG_FILE} found at {config_path}")
    raw = yaml.safe_load(config_path.read_text()) or {}
    return SessionConfig(**raw)
