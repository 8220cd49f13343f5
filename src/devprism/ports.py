"""Deterministic per-session port allocation."""

from devprism.config import SessionConfig

BLOCK_SIZE = 100


def session_number(session_id: str) -> int:
    """Parse a session ID like '007' into 7. Rejects anything but ASCII digits."""
    if not (session_id.isascii() and session_id.isdigit()):
        raise ValueError(f"Invalid session ID: {session_id!r} (expected digits, e.g. '001')")
    return int(session_id, 10)


def calculate_ports(config: SessionConfig, session_id: str) -> dict[str, int]:
    """Map each configured port name to port_base + id*100 + offset.

    Keys keep the order of config.ports. Offsets are trusted to be in 0-99;
    SessionConfig validation is what keeps blocks from overlapping.
    """
    block_start = config.port_base + session_number(session_id) * BLOCK_SIZE
    return {name: block_start + offset for name, offset in config.ports.items()}


def format_ports_table(ports: dict[str, int]) -> str:
    return "\n".join(f"  {name}: {port}" for name, port in ports.items())
