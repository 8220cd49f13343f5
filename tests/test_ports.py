"""Port allocation tests."""

import itertools

import pytest

from devprism.config import SessionConfig
from devprism.ports import calculate_ports, format_ports_table, session_number


@pytest.fixture
def base_config():
    return SessionConfig(
        port_base=47000,
        sessions_dir="../sessions",
        ports={"POSTGRES_PORT": 10, "REDIS_PORT": 11, "APP_PORT": 0},
    )


class TestCalculatePorts:
    def test_session_001(self, base_config):
        assert calculate_ports(base_config, "001") == {
            "POSTGRES_PORT": 47110,
            "REDIS_PORT": 47111,
            "APP_PORT": 47100,
        }

    def test_session_005(self, base_config):
        assert calculate_ports(base_config, "005") == {
            "POSTGRES_PORT": 47510,
            "REDIS_PORT": 47511,
            "APP_PORT": 47500,
        }

    def test_keeps_config_order(self, base_config):
        ports = calculate_ports(base_config, "001")
        assert list(ports) == ["POSTGRES_PORT", "REDIS_PORT", "APP_PORT"]

    def test_empty_ports(self, base_config):
        config = base_config.model_copy(update={"ports": {}})
        assert calculate_ports(config, "001") == {}

    def test_different_port_base(self, base_config):
        config = base_config.model_copy(update={"port_base": 50000})
        assert calculate_ports(config, "002")["POSTGRES_PORT"] == 50210

    def test_unpadded_id(self, base_config):
        assert calculate_ports(base_config, "12") == calculate_ports(base_config, "012")

    def test_formula_holds_for_every_name(self, base_config):
        for sid in ["000", "001", "017", "250"]:
            ports = calculate_ports(base_config, sid)
            for name, offset in base_config.ports.items():
                assert ports[name] == base_config.port_base + int(sid) * 100 + offset

    def test_distinct_sessions_never_collide(self, base_config):
        allocated = [set(calculate_ports(base_config, f"{n:03d}").values()) for n in range(1, 30)]
        for a, b in itertools.combinations(allocated, 2):
            assert not a & b

    @pytest.mark.parametrize("bad_id", ["", "abc", "-1", "1.5", " 001", "٣"])
    def test_non_numeric_id_rejected(self, base_config, bad_id):
        with pytest.raises(ValueError, match="Invalid session ID"):
            calculate_ports(base_config, bad_id)


class TestSessionNumber:
    def test_strips_padding(self):
        assert session_number("007") == 7

    def test_zero(self):
        assert session_number("000") == 0


class TestFormatPortsTable:
    def test_indented_lines(self):
        result = format_ports_table({"POSTGRES_PORT": 47110, "REDIS_PORT": 47111})
        assert result == "  POSTGRES_PORT: 47110\n  REDIS_PORT: 47111"

    def test_empty(self):
        assert format_ports_table({}) == ""

    def test_single_port(self):
        assert format_ports_table({"PORT": 3000}) == "  PORT: 3000"

    def test_one_line_per_configured_port(self, base_config):
        lines = format_ports_table(calculate_ports(base_config, "003")).split("\n")
        assert lines == ["  POSTGRES_PORT: 47310", "  REDIS_PORT: 47311", "  APP_PORT: 47300"]
