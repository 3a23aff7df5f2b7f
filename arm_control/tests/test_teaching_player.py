"""Tests for timed teaching playback.

Runs programs against the mock controller and checks:
    - Steps issue exactly their commands, in start-time order
    - Absolute start times are honoured
    - Cancellation during a scheduling wait sends nothing further
    - Gating (teaching flag / UI topic) is dropped on every exit path
    - Per-step overrides are clamped; unset fields use defaults
"""

from __future__ import annotations

import time
from typing import Any
from unittest.mock import MagicMock

import pytest

from arm_control.hardware.events import EventBus, Topic
from arm_control.hardware.lebai_client import LebaiClient, RpcResponse
from arm_control.hardware.state import ArmState
from arm_control.teaching.player import PlaybackState, TeachingPlayer
from arm_control.teaching.program import TeachingProgram, parse_program


def _program(*steps: tuple[float, float, dict[str, Any]]) -> TeachingProgram:
    return parse_program({
        "name": "test",
        "steps": [
            {"stepNumber": i + 1, "name": f"step{i + 1}", "time": t,
             "duration": d, "action": a}
            for i, (t, d, a) in enumerate(steps)
        ],
    })


MOVE = {"type": "move_joint", "joints": [10, 20, 30, 0, 0, 0]}
GRIP = {"type": "set_gripper", "gripperPosition": 40, "gripperForce": 30}


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def arm(config, bus) -> ArmState:
    state = ArmState(config, bus)
    state.set_connected(True)
    return state


@pytest.fixture()
def player(config, arm, mock_server) -> TeachingPlayer:
    client = LebaiClient(mock_server.endpoint, timeout=2.0)
    return TeachingPlayer(client, config, arm)


def _collect(bus: EventBus, topic: Topic) -> list[Any]:
    seen: list[Any] = []
    bus.subscribe(topic, seen.append)
    return seen


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class TestCompletion:
    def test_two_step_schedule(self, player, mock_server, arm, bus) -> None:
        active = _collect(bus, Topic.TEACHING_ACTIVE)
        program = _program((0.0, 1.0, MOVE), (3.0, 0.0, GRIP))

        t0 = time.monotonic()
        state = player.run(program)
        elapsed = time.monotonic() - t0

        assert state is PlaybackState.COMPLETED
        assert elapsed >= 3.0
        assert mock_server.methods() == ["move_joint", "set_claw"]
        assert active == [True, False]
        assert not arm.flags.teaching_running
        assert not player.is_running
        assert bus.last(Topic.TEACHING_STATUS).startswith("Complete!")

    def test_steps_run_in_time_order(self, player, mock_server) -> None:
        program = _program(
            (0.2, 0.0, GRIP),
            (0.0, 0.0, MOVE),
            (0.2, 0.0, {"type": "set_do", "pin": 1, "value": 1}),
        )
        player.run(program)
        assert mock_server.methods() == ["move_joint", "set_claw", "set_do"]

    def test_move_reflected_and_clamped(self, player, mock_server, arm) -> None:
        program = _program((0.0, 0.0, {
            "type": "move_joint", "joints": [200, -200, 0, 0, 0, 0],
            "velocity": 10, "acceleration": 0.01,
        }))
        player.run(program)
        assert arm.joints[:2] == [175.0, -175.0]
        param = mock_server.params("move_joint")[0]["param"]
        assert param == {"velocity": 3.0, "acc": 0.1}

    def test_move_duration_sent_as_t(self, player, mock_server) -> None:
        player.run(_program((0.0, 0.2, MOVE)))
        assert mock_server.params("move_joint")[0]["param"]["t"] == 0.2

    def test_move_uses_session_motion(self, player, mock_server, arm) -> None:
        arm.set_motion(velocity=1.2, acceleration=2.0)
        player.run(_program((0.0, 0.0, MOVE)))
        param = mock_server.params("move_joint")[0]["param"]
        assert (param["velocity"], param["acc"]) == (1.2, 2.0)

    def test_gripper_defaults(self, player, mock_server, arm) -> None:
        player.run(_program((0.0, 0.0, {"type": "set_gripper"})))
        assert mock_server.params("set_claw") == [{"amplitude": 0.0, "force": 50.0}]
        assert arm.gripper.force == 50.0

    def test_failed_command_continues(self, player, mock_server) -> None:
        mock_server.errors["move_joint"] = "not ready"
        state = player.run(_program((0.0, 0.0, MOVE), (0.0, 0.0, GRIP)))
        assert state is PlaybackState.COMPLETED
        assert mock_server.methods() == ["move_joint", "set_claw"]

    def test_progress_callback(self, player) -> None:
        updates: list[int] = []
        player.set_progress_callback(lambda p: updates.append(p.completed_steps))
        player.run(_program((0.0, 0.0, MOVE), (0.0, 0.0, GRIP)))
        assert 2 in updates
        assert player.progress.total_steps == 2


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_stop_during_wait(self, player, mock_server, arm, bus) -> None:
        active = _collect(bus, Topic.TEACHING_ACTIVE)
        program = _program((0.0, 0.0, {"type": "wait"}), (5.0, 0.0, MOVE))

        assert player.start(program)
        time.sleep(0.3)
        t0 = time.monotonic()
        player.stop()
        assert player.wait(2.0)

        assert time.monotonic() - t0 < 1.0
        assert mock_server.methods() == ["stop_move"]
        assert player.get_state() is PlaybackState.CANCELLED
        assert bus.last(Topic.TEACHING_STATUS) == "Stopped by user"
        assert active == [True, False]
        assert not arm.flags.teaching_running

    def test_stop_when_idle_is_noop(self, player, mock_server, bus) -> None:
        player.stop()
        assert mock_server.requests == []
        assert bus.last(Topic.TEACHING_ACTIVE) is None

    def test_second_stop_is_noop(self, player, mock_server) -> None:
        player.start(_program((5.0, 0.0, MOVE)))
        time.sleep(0.1)
        player.stop()
        player.stop()
        player.wait(2.0)
        assert mock_server.methods() == ["stop_move"]


# ---------------------------------------------------------------------------
# Rejection
# ---------------------------------------------------------------------------


class TestRejection:
    def test_not_connected(self, player, mock_server, arm, bus) -> None:
        arm.set_connected(False)
        assert not player.start(_program((0.0, 0.0, MOVE)))
        assert bus.last(Topic.TEACHING_STATUS) == "Robot not connected"
        assert mock_server.requests == []

    def test_already_running(self, player, bus) -> None:
        assert player.start(_program((5.0, 0.0, MOVE)))
        try:
            assert not player.start(_program((0.0, 0.0, MOVE)))
            assert bus.last(Topic.TEACHING_STATUS) == "Already running"
        finally:
            player.stop()
            player.wait(2.0)

    def test_busy(self, player, arm, mock_server, bus) -> None:
        arm.try_acquire_busy()
        assert player.run(_program((0.0, 0.0, MOVE))) is PlaybackState.IDLE
        assert bus.last(Topic.TEACHING_STATUS) == "Robot busy"
        assert mock_server.requests == []
        assert not player.is_running


# ---------------------------------------------------------------------------
# Failure
# ---------------------------------------------------------------------------


class TestFailure:
    def test_exception_drops_gating(self, config, arm, bus) -> None:
        client = MagicMock(spec=LebaiClient)
        client.move_joint.side_effect = RuntimeError("boom")
        client.stop_move.return_value = RpcResponse(1, "stop_move", result={})
        player = TeachingPlayer(client, config, arm)
        active = _collect(bus, Topic.TEACHING_ACTIVE)

        state = player.run(_program((0.0, 0.0, MOVE), (0.0, 0.0, GRIP)))

        assert state is PlaybackState.FAILED
        assert active == [True, False]
        assert not arm.flags.teaching_running
        client.set_claw.assert_not_called()
