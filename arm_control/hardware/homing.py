"""Return the arm to its safe pose.

Two choreographies, chosen by ``home.strategy``:

``direct``
    One ``move_joint`` to ``home.position_deg`` with an explicit
    duration ``t``, wait for idle, then close the gripper to its
    default.  Fast; relies on the home pose being reachable in a
    straight joint-space line from wherever the arm is.

``sequential``
    One joint at a time in ``home.sequence`` order (wrist first, then
    elbow to neutral, forearm raised clear, shoulder, base, forearm
    lowered), waiting for idle after every move and skipping joints
    already within ``home.tolerance_deg``.  Slower; avoids
    self-collision from arbitrary poses.

Both finish by re-reading the actual pose from the controller.  The
commanded target is never trusted as ground truth.

Callers own the busy / moving-home flags; these classes only move.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from arm_control.configs.loader import RobotConfig
from arm_control.hardware.lebai_client import LebaiClient, LebaiError
from arm_control.hardware.motion import GripperCommand, MotionParameters
from arm_control.hardware.state import ArmState

logger = logging.getLogger(__name__)


def reconcile_position(client: LebaiClient, state: ArmState) -> bool:
    """Read the actual pose and store it as the displayed pose.

    On failure the previous local pose is kept (never zeroed).
    Returns ``True`` on success.
    """
    try:
        pose = client.read_joint_pose(limit=state.joint_limit)
    except LebaiError as exc:
        logger.warning("Position read failed, keeping local pose: %s", exc)
        return False

    state.set_joints(pose)
    state.mark_position_synced()
    logger.info(
        "Position synced: %s",
        ", ".join(f"J{i + 1}={d:.1f}" for i, d in enumerate(pose)),
    )
    return True


class HomeStrategy(ABC):
    """Base class for home-move choreographies.

    Parameters
    ----------
    client : LebaiClient
        Connected JSON-RPC client.
    config : RobotConfig
        Home pose, timings and idle-poll settings.
    state : ArmState
        Local mirror updated as the arm moves.
    """

    name = "home"

    def __init__(
        self,
        client: LebaiClient,
        config: RobotConfig,
        state: ArmState,
    ) -> None:
        self._client = client
        self._cfg = config
        self._state = state
        self.idle_timeouts = 0

    def run(self) -> bool:
        """Move to the safe pose, then reconcile.  Returns ``True`` if
        every command was accepted."""
        logger.info("Home move (%s) started", self.name)
        ok = self._move()
        reconcile_position(self._client, self._state)
        logger.info(
            "Home move (%s) %s", self.name, "complete" if ok else "aborted",
        )
        return ok

    @abstractmethod
    def _move(self) -> bool:
        ...

    def _wait_idle(self) -> None:
        w = self._cfg.idle_wait
        if not self._client.wait_until_idle(w.max_wait_ms, w.poll_interval_ms):
            self.idle_timeouts += 1


class DirectHomeMove(HomeStrategy):
    """Single timed move to the home pose, then close the gripper."""

    name = "direct"

    def _move(self) -> bool:
        home = self._cfg.home
        motion = self._state.motion
        params = MotionParameters(
            motion.velocity, motion.acceleration, t=home.move_time_s,
        )
        response = self._client.move_joint(home.position_deg, params)
        if not response.ok:
            self._state.status("Home move failed")
            return False

        self._state.set_joints(home.position_deg)
        self._wait_idle()

        grip = GripperCommand.clamped(
            self._cfg.gripper.default_amplitude,
            self._cfg.gripper.default_force,
        )
        logger.info("Closing gripper to %.0f%%", grip.amplitude)
        if self._client.set_claw(grip).ok:
            self._state.set_gripper(grip.amplitude, grip.force)
        return True


class SequentialReset(HomeStrategy):
    """Per-joint reset in collision-safe order."""

    name = "sequential"

    def _move(self) -> bool:
        home = self._cfg.home
        try:
            current = self._client.read_joint_pose(limit=self._state.joint_limit)
        except LebaiError as exc:
            logger.warning("Using displayed pose as reset start: %s", exc)
            current = self._state.joints

        motion = self._state.motion
        total = len(home.sequence)
        for idx, stage in enumerate(home.sequence, start=1):
            if abs(current[stage.joint] - stage.target_deg) <= home.tolerance_deg:
                logger.info(
                    "Reset %d/%d %s: J%d already at %.1f, skipped",
                    idx, total, stage.name, stage.joint + 1, stage.target_deg,
                )
                continue

            target = list(current)
            target[stage.joint] = stage.target_deg
            self._state.status(f"Reset {idx}/{total}: {stage.name}")
            response = self._client.move_joint(target, motion)
            if not response.ok:
                self._state.status(f"Reset stopped at {stage.name}")
                return False

            current = self._state.set_joints(target)
            self._wait_idle()
        return True


def make_home_strategy(
    client: LebaiClient,
    config: RobotConfig,
    state: ArmState,
) -> HomeStrategy:
    """Build the strategy named by ``config.home.strategy``."""
    if config.home.strategy == "sequential":
        return SequentialReset(client, config, state)
    return DirectHomeMove(client, config, state)
