"""Session env file generation and ${NAME} substitution."""

import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader

ENV_FILE = ".env.session"

PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")


def _get_jinja_env() -> Environment:
    return Environment(loader=PackageLoader("devprism", "templates"), trim_blocks=True)


def generate_env_content(session_id: str, ports: dict[str, int], project_name: str) -> str:
    """Render the .env.session body.

    SESSION_ID and COMPOSE_PROJECT_NAME come first, then one line per port
    in mapping order. Always newline-terminated.
    """
    template = _get_jinja_env().get_template("env.session.j2")
    return template.render(session_id=session_id, project_name=project_name, ports=ports)


def render_app_env(template: dict[str, Any], ports: dict[str, int]) -> dict[str, Any]:
    """Substitute ${NAME} placeholders with session ports.

    Placeholders naming an unknown port are left as-is.
    """

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in ports:
            return str(ports[name])
        return match.group(0)

    rendered = {}
    for key, value in template.items():
        if isinstance(value, str):
            value = PLACEHOLDER.sub(substitute, value)
        rendered[key] = value
    return rendered


def format_env_lines(values: dict[str, Any]) -> str:
    return "".join(f"{key}={value}\n" for key, value in values.items())


def write_env_file(path: Path, content: str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def read_env_file(path: Path) -> dict[str, str]:
    """Read KEY=VALUE lines. Blank lines, comments and junk are skipped."""
    path = Path(path)
    if not path.exists():
        return {}
    values = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values
