"""Session flags and the local mirror of the arm.

``ArmState`` is the single owner of:

    - the session flags (connected / busy / moving-home / teaching /
      position-synced),
    - the *displayed* joint pose, gripper command and motion parameters.

Every mutation publishes on the ``EventBus`` so displays follow along.
The busy flag is test-and-set under a lock: two busy operations can
never interleave, whichever thread calls them.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Iterator, Sequence

from arm_control.configs.loader import RobotConfig
from arm_control.hardware.events import EventBus, Topic
from arm_control.hardware.motion import (
    JOINT_COUNT,
    GripperCommand,
    MotionParameters,
    clamp_joint,
    clamp_joints,
)

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Connection phase derived from the flags."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    BUSY = auto()


@dataclass
class SessionFlags:
    """Snapshot-able session flags."""

    connected: bool = False
    busy: bool = False
    moving_home: bool = False
    teaching_running: bool = False
    position_synced: bool = False


class ArmState:
    """Flags plus the local joint / gripper / motion mirror.

    Parameters
    ----------
    config : RobotConfig
        Supplies joint limit, motion ranges and gripper defaults.
    bus : EventBus
        Receives every state change.
    """

    def __init__(self, config: RobotConfig, bus: EventBus) -> None:
        self._cfg = config
        self.bus = bus
        self._lock = threading.Lock()

        self.flags = SessionFlags()
        self._joints = [0.0] * JOINT_COUNT
        self._gripper = GripperCommand(
            config.gripper.default_amplitude, config.gripper.default_force,
        )
        self._motion = MotionParameters(
            config.motion.default_velocity, config.motion.default_acceleration,
        )

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        f = self.flags
        if f.busy and not f.connected:
            return Phase.CONNECTING
        if f.busy:
            return Phase.BUSY
        if f.connected:
            return Phase.CONNECTED
        return Phase.DISCONNECTED

    def snapshot(self) -> SessionFlags:
        with self._lock:
            return replace(self.flags)

    def try_acquire_busy(self) -> bool:
        """Set ``busy`` unless busy or teaching is running.  Returns success."""
        with self._lock:
            if self.flags.busy or self.flags.teaching_running:
                return False
            self.flags.busy = True
        self.bus.publish(Topic.BUSY, True)
        return True

    def release_busy(self) -> None:
        with self._lock:
            self.flags.busy = False
        self.bus.publish(Topic.BUSY, False)

    @contextmanager
    def busy(self, operation: str) -> Iterator[bool]:
        """Hold ``busy`` for the ``with`` block.

        Yields ``False`` (and holds nothing) when another busy operation
        is in progress.  The flag is released even if the block raises.
        """
        if not self.try_acquire_busy():
            logger.info("%s ignored: another operation is in progress", operation)
            yield False
            return
        try:
            yield True
        finally:
            self.release_busy()

    def set_connected(self, connected: bool) -> None:
        with self._lock:
            self.flags.connected = connected
            if not connected:
                self.flags.position_synced = False

    def set_moving_home(self, moving: bool) -> None:
        with self._lock:
            self.flags.moving_home = moving

    def try_begin_teaching(self) -> bool:
        """Set ``teaching_running`` unless set or busy.  Returns success."""
        with self._lock:
            if self.flags.teaching_running or self.flags.busy:
                return False
            self.flags.teaching_running = True
            return True

    def end_teaching(self) -> None:
        with self._lock:
            self.flags.teaching_running = False

    def mark_position_synced(self) -> None:
        with self._lock:
            self.flags.position_synced = True

    # ------------------------------------------------------------------
    # Local mirror
    # ------------------------------------------------------------------

    @property
    def joint_limit(self) -> float:
        return self._cfg.motion.joint_limit_deg

    @property
    def joints(self) -> list[float]:
        with self._lock:
            return list(self._joints)

    @property
    def gripper(self) -> GripperCommand:
        return self._gripper

    @property
    def motion(self) -> MotionParameters:
        return self._motion

    def set_joints(self, degs: Sequence[float]) -> list[float]:
        """Store a clamped pose and publish it.  Returns the stored pose."""
        clamped = clamp_joints(degs, self.joint_limit)
        with self._lock:
            self._joints = clamped
        self.bus.publish(Topic.JOINTS, list(clamped))
        return list(clamped)

    def set_joint(self, index: int, deg: float) -> float:
        if not 0 <= index < JOINT_COUNT:
            raise IndexError(f"joint index must be 0..{JOINT_COUNT - 1}, got {index}")
        value = clamp_joint(deg, self.joint_limit)
        with self._lock:
            self._joints[index] = value
            pose = list(self._joints)
        self.bus.publish(Topic.JOINTS, pose)
        return value

    def set_gripper(
        self,
        amplitude: float | None = None,
        force: float | None = None,
    ) -> GripperCommand:
        cur = self._gripper
        self._gripper = GripperCommand.clamped(
            cur.amplitude if amplitude is None else amplitude,
            cur.force if force is None else force,
        )
        self.bus.publish(Topic.GRIPPER, self._gripper)
        return self._gripper

    def set_motion(
        self,
        velocity: float | None = None,
        acceleration: float | None = None,
    ) -> MotionParameters:
        cur = self._motion
        self._motion = MotionParameters(
            self._cfg.clamp_velocity(
                cur.velocity if velocity is None else velocity,
            ),
            self._cfg.clamp_acceleration(
                cur.acceleration if acceleration is None else acceleration,
            ),
        )
        self.bus.publish(Topic.MOTION, self._motion)
        return self._motion

    # ------------------------------------------------------------------
    # Status text
    # ------------------------------------------------------------------

    def status(self, message: str) -> None:
        logger.info("[STATUS] %s", message)
        self.bus.publish(Topic.STATUS, message)

    def teaching_status(self, message: str) -> None:
        logger.info("[TEACHING] %s", message)
        self.bus.publish(Topic.TEACHING_STATUS, message)

    def set_teaching_active(self, active: bool) -> None:
        self.bus.publish(Topic.TEACHING_ACTIVE, active)
