"""Tests for the robot config loader.

Validates that:
    - robot.yaml loads with the current schema
    - Defaults match the exhibit's documented operating values
    - Structural errors surface as ConfigError, never KeyError
    - Clamping helpers respect the configured ranges
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from arm_control.configs.loader import ConfigError, RobotConfig, load_config

DEFAULT_YAML = Path(__file__).resolve().parent.parent / "configs" / "robot.yaml"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def raw() -> dict[str, Any]:
    with open(DEFAULT_YAML, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _write(tmp_path: Path, data: dict[str, Any]) -> Path:
    path = tmp_path / "robot.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Shipped config
# ---------------------------------------------------------------------------


class TestShippedConfig:
    def test_loads(self) -> None:
        assert isinstance(load_config(), RobotConfig)

    def test_connection_defaults(self) -> None:
        c = load_config().connection
        assert c.host == "192.168.0.3"
        assert c.port == 3021

    def test_motion_defaults(self) -> None:
        m = load_config().motion
        assert m.joint_limit_deg == 175.0
        assert m.velocity_range == (0.1, 3.0)
        assert m.acceleration_range == (0.1, 5.0)
        assert (m.default_velocity, m.default_acceleration) == (0.5, 1.0)

    def test_gripper_defaults(self) -> None:
        g = load_config().gripper
        assert (g.default_amplitude, g.default_force) == (0.0, 50.0)
        assert g.throttle_interval_s == pytest.approx(0.1)

    def test_home_sequence_resolved(self) -> None:
        h = load_config().home
        assert h.position_deg == (0.0,) * 6
        assert [s.joint for s in h.sequence] == [5, 4, 3, 2, 2, 1, 0, 2]
        raise_stage = h.sequence[4]
        assert raise_stage.name == "forearm_raise"
        assert raise_stage.target_deg == 90.0
        assert h.sequence[-1].target_deg == 0.0

    def test_idle_wait(self) -> None:
        w = load_config().idle_wait
        assert (w.max_wait_ms, w.poll_interval_ms) == (30000, 200)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_section(self, tmp_path: Path, raw: dict[str, Any]) -> None:
        del raw["motion"]
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, raw))

    def test_bad_port(self, tmp_path: Path, raw: dict[str, Any]) -> None:
        raw["connection"]["port"] = 70000
        with pytest.raises(ConfigError, match="port"):
            load_config(_write(tmp_path, raw))

    def test_default_velocity_outside_range(
        self, tmp_path: Path, raw: dict[str, Any],
    ) -> None:
        raw["motion"]["default_velocity"] = 4.0
        with pytest.raises(ConfigError, match="velocity_range"):
            load_config(_write(tmp_path, raw))

    def test_unknown_strategy(self, tmp_path: Path, raw: dict[str, Any]) -> None:
        raw["home"]["strategy"] = "teleport"
        with pytest.raises(ConfigError, match="strategy"):
            load_config(_write(tmp_path, raw))

    def test_home_beyond_limit(self, tmp_path: Path, raw: dict[str, Any]) -> None:
        raw["home"]["position_deg"] = [0, 0, 180, 0, 0, 0]
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, raw))

    def test_stage_joint_out_of_range(
        self, tmp_path: Path, raw: dict[str, Any],
    ) -> None:
        raw["home"]["sequence"][0]["joint"] = 7
        with pytest.raises(ConfigError, match="joint"):
            load_config(_write(tmp_path, raw))

    def test_range_shape(self, tmp_path: Path, raw: dict[str, Any]) -> None:
        raw["motion"]["velocity_range"] = [0.1]
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, raw))


class TestClampHelpers:
    def test_clamp_velocity(self) -> None:
        cfg = load_config()
        assert cfg.clamp_velocity(10.0) == 3.0
        assert cfg.clamp_velocity(0.0) == 0.1
        assert cfg.clamp_velocity(1.2) == 1.2

    def test_clamp_acceleration(self) -> None:
        cfg = load_config()
        assert cfg.clamp_acceleration(-1.0) == 0.1
        assert cfg.clamp_acceleration(9.0) == 5.0
