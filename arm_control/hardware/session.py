"""Robot session -- connection handshake, busy gating and manual control.

``RobotSession`` is the only object the exhibit UI talks to.  It
exposes plain operations (``connect``, ``jog_joint``,
``set_gripper_amplitude``, ``reset``, ``start_teaching`` ...) and
reports back exclusively through the ``EventBus``.

Gating rules:
    - ``connect`` runs only when not busy and not teaching; it holds
      ``busy`` for the whole handshake (probe -> start -> gripper init
      -> position sync -> optional home move).
    - Joint / gripper / reset / teaching-start need ``connected`` and
      not ``busy``; joint and gripper input is also ignored while
      teaching or moving home.  Rejections publish a status message
      and return ``False`` -- nothing is raised to the caller.
    - ``stop``, ``disconnect`` and ``power_off`` are always available.

Safety:
    - Gripper slider traffic is throttled (last value wins) and
      suppressed while teaching or homing drive the gripper directly.
    - Every home move ends with a position re-read from the controller.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Sequence

from arm_control.configs.loader import RobotConfig, load_config
from arm_control.hardware.events import EventBus
from arm_control.hardware.homing import make_home_strategy, reconcile_position
from arm_control.hardware.lebai_client import (
    Endpoint,
    LebaiClient,
    RpcResponse,
    StateConflictError,
)
from arm_control.hardware.motion import clamp
from arm_control.hardware.state import ArmState, Phase, SessionFlags
from arm_control.hardware.throttle import GripperThrottle, JointRateGate
from arm_control.teaching.player import TeachingPlayer
from arm_control.teaching.program import (
    TeachingFileError,
    TeachingProgram,
    load_program,
)
from arm_control.utils.fs import resolve_beside_program
from arm_control.utils.logging_config import pop_context, push_context

logger = logging.getLogger(__name__)

JOINT_STEP_RANGE = (0.01, 180.0)
MOTION_STEP_RANGE = (0.01, 5.0)
GRIPPER_STEP_RANGE = (0.1, 20.0)


class RobotSession:
    """Session with one Lebai controller.

    Parameters
    ----------
    config : RobotConfig | None
        Loaded configuration; ``None`` loads the shipped ``robot.yaml``.
    client : LebaiClient | None
        Transport; built from ``config.connection`` when omitted.
    bus : EventBus | None
        Display sink registry; a private one is created when omitted.
    clock : callable
        Monotonic time source for the throttles.

    Examples
    --------
    >>> with RobotSession() as session:
    ...     session.bus.subscribe(Topic.STATUS, print)
    ...     if session.connect("192.168.0.3", 3021):
    ...         session.start_teaching("robot_teaching.json")
    """

    def __init__(
        self,
        config: RobotConfig | None = None,
        client: LebaiClient | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or load_config()
        self.bus = bus or EventBus()
        self.client = client or LebaiClient(
            timeout=self.config.connection.timeout_s,
        )
        self.state = ArmState(self.config, self.bus)
        self.player = TeachingPlayer(self.client, self.config, self.state)
        self.endpoint: Endpoint | None = None

        self._gripper_throttle = GripperThrottle(
            send=self.client.set_claw_nowait,
            read_value=lambda: self.state.gripper,
            interval=self.config.gripper.throttle_interval_s,
            clock=clock,
        )
        self._slider_gate = JointRateGate(
            self.config.motion.slider_interval_s, clock,
        )

        jog = self.config.jog
        self.joint_step = jog.joint_step_deg
        self.motion_step = jog.motion_step
        self.gripper_step = jog.gripper_step

        logger.info("Robot session created (HTTP JSON-RPC)")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def flags(self) -> SessionFlags:
        return self.state.snapshot()

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def is_connected(self) -> bool:
        return self.state.flags.connected

    @property
    def is_busy(self) -> bool:
        return self.state.flags.busy

    @property
    def is_teaching(self) -> bool:
        return self.state.flags.teaching_running

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    def _reject(self, operation: str, reason: str) -> bool:
        conflict = StateConflictError(f"{operation}: {reason}")
        logger.info("Rejected %s", conflict)
        self.state.status(f"{operation} ignored: {reason}")
        return False

    def _require_ready(self, operation: str) -> bool:
        """``connected and not busy and not teaching / moving home``."""
        f = self.state.flags
        if not f.connected:
            self.state.status("Robot not connected")
            return False
        if f.busy:
            return self._reject(operation, "robot busy")
        if f.teaching_running:
            return self._reject(operation, "teaching in progress")
        if f.moving_home:
            return self._reject(operation, "moving home")
        return True

    def _input_locked(self) -> bool:
        """Slider / jog input is ignored while another operation drives the arm."""
        f = self.state.flags
        return f.busy or f.teaching_running or f.moving_home

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, host: str | None = None, port: int | None = None) -> bool:
        """Run the connection handshake.

        No-op (returns ``False``, no state change) while another busy
        operation or a teaching run is active.  Returns ``True`` when
        the controller answered the probe.
        """
        if self.state.flags.teaching_running:
            logger.info("Connect ignored: teaching in progress")
            return False
        if not self.state.try_acquire_busy():
            logger.info("Connect ignored: operation in progress")
            return False
        try:
            return self._handshake(
                Endpoint(
                    host or self.config.connection.host,
                    int(port or self.config.connection.port),
                ),
            )
        finally:
            self.state.release_busy()

    def _handshake(self, endpoint: Endpoint) -> bool:
        self.endpoint = endpoint
        self.client.set_endpoint(endpoint)
        logger.info("Connecting to %s", endpoint.base_url)
        self.state.status("Checking connection...")

        probe = self.client.get_robot_state()
        if not probe.ok:
            self.state.set_connected(False)
            logger.warning("Connection to %s failed: %s", endpoint, probe.error)
            self.state.status("Connection failed - no response from robot")
            return False

        self.state.set_connected(True)
        push_context(robot=str(endpoint))
        self.state.status(f"Connected: {endpoint}")

        self._log_outcome(
            "Robot start", self.client.start_sys(),
            failure="start it from the pendant",
        )
        self._log_outcome("Gripper init", self.client.init_claw())

        if not self.state.flags.position_synced:
            self._sync_position()
        else:
            logger.info("Position already synced this session, skipping")

        if self.config.home.auto_home_on_connect:
            self._home_move()
        return True

    @staticmethod
    def _log_outcome(step: str, response: RpcResponse, failure: str = "") -> None:
        if response.ok:
            logger.info("%s complete", step)
        else:
            suffix = f" ({failure})" if failure else ""
            logger.warning("%s failed%s: %s", step, suffix, response.error)

    def disconnect(self) -> None:
        """Stop any teaching run, stop the arm and drop the connection."""
        self.player.stop()
        if self.state.flags.connected:
            self._log_outcome("Robot stop", self.client.stop_sys())
        self.state.set_connected(False)
        self.state.status("Disconnected")
        pop_context(["robot"])

    def power_off(self) -> bool:
        """Power the controller down.  Returns ``False`` if not connected."""
        if not self.state.flags.connected:
            logger.info("Power off ignored: not connected")
            return False
        self.player.stop()
        logger.info("Powering off robot")
        response = self.client.powerdown()
        if response.ok:
            self.state.status("Powered off")
        else:
            logger.warning("Power off failed: %s", response.error)
        self.state.set_connected(False)
        return response.ok

    def stop(self) -> bool:
        """Emergency ``stop_move``; allowed even while busy.

        The session stays connected afterwards so the operator can jog
        or reset straight away.  Use ``disconnect()`` or ``power_off()``
        to drop the connection.
        """
        if not self.state.flags.connected:
            return False
        logger.warning("STOP requested")
        response = self.client.stop_move()
        self.state.status("Stop command sent")
        return response.ok

    def close(self, timeout: float = 5.0) -> None:
        """Teardown: cancel teaching and wait for the run thread."""
        self.player.stop()
        self.player.wait(timeout)
        logger.info("Robot session closed")

    def __enter__(self) -> RobotSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Position / home
    # ------------------------------------------------------------------

    def _sync_position(self) -> bool:
        logger.info("Reading current joint positions")
        if reconcile_position(self.client, self.state):
            self.state.status("Current position synced")
            return True
        self.state.status("Position read failed")
        return False

    def sync_position(self) -> bool:
        """Read the actual pose into the displayed joints."""
        if not self._require_ready("Position sync"):
            return False
        return self._sync_position()

    def _home_move(self) -> bool:
        """Home choreography; caller holds ``busy``."""
        self.state.set_moving_home(True)
        self._gripper_throttle.cancel()
        self.state.status("Moving to home position...")
        strategy = make_home_strategy(self.client, self.config, self.state)
        try:
            ok = strategy.run()
        finally:
            self.state.set_moving_home(False)

        if ok:
            note = " (idle wait timed out)" if strategy.idle_timeouts else ""
            self.state.status(f"Connected: {self.endpoint}{note}")
        return ok

    def reset(self) -> bool:
        """Return to the configured safe pose under ``busy``."""
        if not self._require_ready("Reset"):
            return False
        with self.state.busy("Reset") as acquired:
            if not acquired:
                return False
            return self._home_move()

    # ------------------------------------------------------------------
    # Joints
    # ------------------------------------------------------------------

    def send_joint_move(self) -> bool:
        """Move the arm to the displayed joint pose."""
        if not self._require_ready("Move"):
            return False

        joints = self.state.joints
        logger.info(
            "move_joint: %s", ", ".join(f"{d:.2f}" for d in joints),
        )
        self.state.status("Sending move command...")
        response = self.client.move_joint(joints, self.state.motion)
        if response.ok:
            self.state.status("Move command sent")
        elif response.raw is not None:
            self.state.status("Move failed")
        else:
            self.state.status("Move failed - no response")
        return response.ok

    def set_joint(self, index: int, degrees: float) -> bool:
        """Typed angle entry: store (clamped) and send."""
        if self._input_locked():
            return False
        self.state.set_joint(index, degrees)
        return self.send_joint_move()

    def set_joints(self, degrees: Sequence[float]) -> bool:
        """Store a full pose (clamped) and send."""
        if self._input_locked():
            return False
        self.state.set_joints(degrees)
        return self.send_joint_move()

    def jog_joint(self, index: int, direction: int) -> bool:
        """Left/right button: move one joint by ``joint_step``."""
        if self._input_locked():
            return False
        current = self.state.joints[index]
        value = self.state.set_joint(index, current + self.joint_step * direction)
        logger.debug(
            "Jog J%d: %.2f -> %.2f (step %.2f)",
            index + 1, current, value, self.joint_step,
        )
        return self.send_joint_move()

    def slide_joint(self, index: int, degrees: float) -> bool:
        """Slider drag: store, and send at most once per slider interval."""
        if self._input_locked():
            return False
        self.state.set_joint(index, degrees)
        if self.state.flags.connected and self._slider_gate.allow():
            return self.send_joint_move()
        return False

    # ------------------------------------------------------------------
    # Velocity / acceleration
    # ------------------------------------------------------------------

    def set_velocity(self, value: float) -> float:
        return self.state.set_motion(velocity=value).velocity

    def set_acceleration(self, value: float) -> float:
        return self.state.set_motion(acceleration=value).acceleration

    def jog_velocity(self, direction: int) -> float:
        if self.state.flags.busy:
            return self.state.motion.velocity
        return self.set_velocity(
            self.state.motion.velocity + self.motion_step * direction,
        )

    def jog_acceleration(self, direction: int) -> float:
        if self.state.flags.busy:
            return self.state.motion.acceleration
        return self.set_acceleration(
            self.state.motion.acceleration + self.motion_step * direction,
        )

    # ------------------------------------------------------------------
    # Gripper
    # ------------------------------------------------------------------

    def _submit_gripper(self) -> bool:
        if not self.state.flags.connected:
            return False
        logger.debug("Gripper change: %s", self.state.gripper)
        return self._gripper_throttle.submit()

    def set_gripper_amplitude(self, value: float) -> bool:
        """Slider / typed entry for the opening.  Returns ``True`` if sent now."""
        if self._input_locked():
            return False
        self.state.set_gripper(amplitude=value)
        return self._submit_gripper()

    def set_gripper_force(self, value: float) -> bool:
        if self._input_locked():
            return False
        self.state.set_gripper(force=value)
        return self._submit_gripper()

    def jog_gripper_amplitude(self, direction: int) -> bool:
        return self.set_gripper_amplitude(
            self.state.gripper.amplitude + self.gripper_step * direction,
        )

    def jog_gripper_force(self, direction: int) -> bool:
        return self.set_gripper_force(
            self.state.gripper.force + self.gripper_step * direction,
        )

    def tick(self) -> bool:
        """Periodic hook from the host loop: flush a throttled gripper send."""
        if self._input_locked() or not self.state.flags.connected:
            self._gripper_throttle.cancel()
            return False
        return self._gripper_throttle.tick()

    # ------------------------------------------------------------------
    # Jog increments
    # ------------------------------------------------------------------

    def set_jog_steps(
        self,
        joint: float | None = None,
        motion: float | None = None,
        gripper: float | None = None,
    ) -> tuple[float, float, float]:
        """Update jog increments (each clamped to its range)."""
        if joint is not None:
            self.joint_step = clamp(joint, *JOINT_STEP_RANGE)
        if motion is not None:
            self.motion_step = clamp(motion, *MOTION_STEP_RANGE)
        if gripper is not None:
            self.gripper_step = clamp(gripper, *GRIPPER_STEP_RANGE)
        logger.info(
            "Jog steps: joint=%.2f deg, motion=%.2f, gripper=%.2f%%",
            self.joint_step, self.motion_step, self.gripper_step,
        )
        return self.joint_step, self.motion_step, self.gripper_step

    # ------------------------------------------------------------------
    # Teaching
    # ------------------------------------------------------------------

    def start_program(self, program: TeachingProgram) -> bool:
        """Start playback of an already-loaded program (background thread)."""
        self._gripper_throttle.cancel()
        return self.player.start(program)

    def start_teaching(self, path: str | Path | None = None) -> bool:
        """Load the program file and start playback.

        A missing or invalid file publishes a teaching status and makes
        no network call.
        """
        f = self.state.flags
        if not f.connected:
            self.state.teaching_status("Robot connection required")
            return False
        if f.teaching_running or self.player.is_running:
            self.state.teaching_status("Already running")
            return False
        if f.busy:
            self.state.teaching_status("Robot busy")
            return False

        path = resolve_beside_program(path or self.config.teaching.program_file)
        try:
            program = load_program(path)
        except FileNotFoundError:
            logger.warning("Teaching file not found: %s", path)
            self.state.teaching_status(f"File not found: {path.name}")
            return False
        except TeachingFileError as exc:
            logger.warning("Teaching file invalid: %s", exc)
            self.state.teaching_status(f"Invalid teaching program: {exc}")
            return False

        return self.start_program(program)

    def stop_teaching(self) -> None:
        """Cancel the active teaching run (no-op when idle)."""
        self.player.stop()

    def wait_teaching(self, timeout: float | None = None) -> bool:
        return self.player.wait(timeout)
