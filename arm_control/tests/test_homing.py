"""Tests for home moves and position reconciliation."""

from __future__ import annotations

import math
from dataclasses import replace

import pytest

from arm_control.hardware.events import EventBus, Topic
from arm_control.hardware.homing import (
    DirectHomeMove,
    SequentialReset,
    make_home_strategy,
    reconcile_position,
)
from arm_control.hardware.lebai_client import LebaiClient
from arm_control.hardware.state import ArmState


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def arm(config, bus) -> ArmState:
    state = ArmState(config, bus)
    state.set_connected(True)
    return state


@pytest.fixture()
def client(mock_server) -> LebaiClient:
    return LebaiClient(mock_server.endpoint, timeout=2.0)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_reads_actual_pose(self, client, arm, mock_server) -> None:
        mock_server.responses["get_kin_data"] = {
            "actual_joint_pose": [math.radians(15), 0, 0, 0, 0, 0],
        }
        assert reconcile_position(client, arm)
        assert arm.joints[0] == pytest.approx(15.0)
        assert arm.flags.position_synced

    def test_failure_keeps_local_pose(self, client, arm, mock_server) -> None:
        arm.set_joints([10.0] * 6)
        mock_server.errors["get_kin_data"] = "unavailable"
        assert not reconcile_position(client, arm)
        assert arm.joints == [10.0] * 6
        assert not arm.flags.position_synced


# ---------------------------------------------------------------------------
# Direct home move
# ---------------------------------------------------------------------------


class TestDirectHome:
    def test_sequence(self, client, config, arm, mock_server) -> None:
        arm.set_gripper(amplitude=90.0)
        strategy = DirectHomeMove(client, config, arm)
        assert strategy.run()

        assert mock_server.methods() == [
            "move_joint", "get_robot_state", "set_claw", "get_kin_data",
        ]
        param = mock_server.params("move_joint")[0]["param"]
        assert param["t"] == config.home.move_time_s
        assert mock_server.params("set_claw") == [{"amplitude": 0.0, "force": 50.0}]
        assert arm.gripper.amplitude == 0.0
        assert arm.flags.position_synced

    def test_failed_move(self, client, config, arm, mock_server, bus) -> None:
        mock_server.errors["move_joint"] = "estop"
        assert not DirectHomeMove(client, config, arm).run()
        assert bus.last(Topic.STATUS) == "Home move failed"
        assert "set_claw" not in mock_server.methods()
        assert mock_server.methods()[-1] == "get_kin_data"

    def test_idle_timeout_is_not_fatal(self, client, config, arm, mock_server) -> None:
        mock_server.responses["get_robot_state"] = "MOVING"
        strategy = DirectHomeMove(client, config, arm)
        assert strategy.run()
        assert strategy.idle_timeouts == 1
        assert "set_claw" in mock_server.methods()


# ---------------------------------------------------------------------------
# Sequential reset
# ---------------------------------------------------------------------------


class TestSequentialReset:
    @pytest.fixture()
    def seq_config(self, config):
        return replace(config, home=replace(config.home, strategy="sequential"))

    def test_moves_only_joints_out_of_place(
        self, client, seq_config, arm, mock_server, bus,
    ) -> None:
        statuses: list[str] = []
        bus.subscribe(Topic.STATUS, statuses.append)
        mock_server.responses["get_kin_data"] = {
            "actual_joint_pose": [0, 0, 0, 0, 0, math.radians(30)],
        }

        strategy = make_home_strategy(client, seq_config, arm)
        assert isinstance(strategy, SequentialReset)
        assert strategy.run()

        moves = [p["pose"]["joint"]["joint"] for p in mock_server.params("move_joint")]
        assert len(moves) == 3
        assert moves[0] == [0.0] * 6
        assert moves[1][2] == pytest.approx(math.pi / 2, abs=1e-6)
        assert moves[2] == [0.0] * 6
        assert statuses == [
            "Reset 1/8: wrist_3",
            "Reset 5/8: forearm_raise",
            "Reset 8/8: forearm_lower",
        ]

    def test_elbow_neutral_before_raise(
        self, client, seq_config, arm, mock_server, bus,
    ) -> None:
        statuses: list[str] = []
        bus.subscribe(Topic.STATUS, statuses.append)
        mock_server.responses["get_kin_data"] = {
            "actual_joint_pose": [0, 0, math.radians(45), 0, 0, 0],
        }

        assert SequentialReset(client, seq_config, arm).run()

        moves = [p["pose"]["joint"]["joint"] for p in mock_server.params("move_joint")]
        assert [m[2] for m in moves] == pytest.approx([0.0, math.pi / 2, 0.0], abs=1e-6)
        assert statuses == [
            "Reset 4/8: elbow",
            "Reset 5/8: forearm_raise",
            "Reset 8/8: forearm_lower",
        ]

    def test_aborts_on_failed_stage(
        self, client, seq_config, arm, mock_server, bus,
    ) -> None:
        mock_server.responses["get_kin_data"] = {
            "actual_joint_pose": [0, 0, 0, 0, 0, math.radians(30)],
        }
        mock_server.errors["move_joint"] = "collision"
        assert not SequentialReset(client, seq_config, arm).run()
        assert mock_server.methods().count("move_joint") == 1
        assert bus.last(Topic.STATUS) == "Reset stopped at wrist_3"


def test_default_strategy_is_direct(client, config, arm) -> None:
    assert isinstance(make_home_strategy(client, config, arm), DirectHomeMove)
