"""Teaching playback -- timed execution of a ``TeachingProgram``.

Steps run strictly one after another in ascending ``start_time``.
Spacing is governed by the *absolute* start times: before each step
the player waits ``start_time - elapsed``; after sending a step it
blocks for the step's ``duration`` (the pacing wait) before checking
the clock for the next one.

Cancellation is cooperative:
    - ``stop()`` sets an event, sends ``stop_move`` and drops the
      teaching-mode gating at once.
    - The run loop sees the event at every step boundary and wakes
      immediately from a scheduling wait.
    - An in-flight request or pacing wait is *not* aborted; the loop
      exits at its next checkpoint without sending anything further.

At most one run is active; a second ``start()`` is rejected, not
queued.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable

from arm_control.configs.loader import RobotConfig
from arm_control.hardware.lebai_client import LebaiClient
from arm_control.hardware.motion import (
    GripperCommand,
    MotionParameters,
    clamp_joints,
)
from arm_control.hardware.state import ArmState
from arm_control.teaching.program import (
    MoveJoint,
    SetDigitalOutput,
    SetGripper,
    TeachingProgram,
    TeachingStep,
    Wait,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class PlaybackState(Enum):
    """Current playback state."""

    IDLE = auto()
    LOADING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    FAILED = auto()


@dataclass
class PlaybackProgress:
    """Playback progress snapshot."""

    state: PlaybackState
    program: str = ""
    total_steps: int = 0
    completed_steps: int = 0
    elapsed_s: float = 0.0
    message: str = ""


# ---------------------------------------------------------------------------
# Player
# ---------------------------------------------------------------------------


class TeachingPlayer:
    """Runs teaching programs against a connected controller.

    Parameters
    ----------
    client : LebaiClient
        Connected JSON-RPC client.
    config : RobotConfig
        Gripper defaults, joint limit and completion hold time.
    state : ArmState
        Session flags and displayed pose.
    """

    def __init__(
        self,
        client: LebaiClient,
        config: RobotConfig,
        state: ArmState,
    ) -> None:
        self._client = client
        self._cfg = config
        self._arm = state

        self._state = PlaybackState.IDLE
        self._cancel_flag = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._progress_cb: Callable[[PlaybackProgress], None] | None = None
        self._progress = PlaybackProgress(state=PlaybackState.IDLE)

    # ------------------------------------------------------------------
    # Common
    # ------------------------------------------------------------------

    def get_state(self) -> PlaybackState:
        """Return current playback state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def progress(self) -> PlaybackProgress:
        return self._progress

    def set_progress_callback(
        self, fn: Callable[[PlaybackProgress], None],
    ) -> None:
        """Register a callback invoked on progress updates."""
        self._progress_cb = fn

    def _notify(self, **kwargs: object) -> None:
        """Update internal progress and fire callback."""
        for k, v in kwargs.items():
            if hasattr(self._progress, k):
                setattr(self._progress, k, v)
        self._progress.state = self._state
        if self._progress_cb is not None:
            try:
                self._progress_cb(self._progress)
            except Exception as exc:  # noqa: BLE001
                logger.error("Progress callback error: %s", exc)

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    def _claim(self, program: TeachingProgram) -> bool:
        """Reserve the player for *program*; publish the rejection if not."""
        if not self._arm.flags.connected:
            self._arm.teaching_status("Robot not connected")
            return False
        if not program.steps:
            self._arm.teaching_status("Invalid program: no steps")
            return False
        if not self._run_lock.acquire(blocking=False):
            self._arm.teaching_status("Already running")
            return False
        if not self._arm.try_begin_teaching():
            self._run_lock.release()
            self._arm.teaching_status("Robot busy")
            return False

        self._cancel_flag.clear()
        self._state = PlaybackState.LOADING
        self._progress = PlaybackProgress(
            state=self._state,
            program=program.name,
            total_steps=len(program.steps),
        )
        self._arm.set_teaching_active(True)
        return True

    def run(self, program: TeachingProgram) -> PlaybackState:
        """Play *program* on the calling thread.

        Returns the final state (``COMPLETED`` / ``CANCELLED``), or the
        current state unchanged if the run was rejected.
        """
        if not self._claim(program):
            return self._state
        self._execute(program)
        return self._state

    def start(self, program: TeachingProgram) -> bool:
        """Play *program* on a background thread.  Returns ``False`` if
        rejected (not connected, already running, busy, empty)."""
        if not self._claim(program):
            return False
        self._thread = threading.Thread(
            target=self._execute,
            args=(program,),
            name="teaching-playback",
            daemon=True,
        )
        self._thread.start()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Join the background run.  ``True`` when it has finished."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def stop(self) -> None:
        """Cancel the active run.  Safe to call at any time."""
        if not self.is_running or self._cancel_flag.is_set():
            return

        logger.info("Teaching stop requested by user")
        self._cancel_flag.set()
        self._arm.end_teaching()

        response = self._client.stop_move()
        if not response.ok:
            logger.warning("stop_move during teaching stop failed: %s", response.error)

        self._arm.teaching_status("Stopped by user")
        self._arm.set_teaching_active(False)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def _execute(self, program: TeachingProgram) -> None:
        steps = program.sorted_steps()
        started = time.monotonic()
        self._state = PlaybackState.RUNNING
        self._arm.teaching_status(f"Started: {program.name}")
        self._notify(message=f"Started: {program.name}")

        try:
            for idx, step in enumerate(steps):
                if self._cancel_flag.is_set():
                    logger.info("Teaching cancelled before step %d", step.step_number)
                    break

                wait_s = step.start_time - (time.monotonic() - started)
                if wait_s > 0:
                    self._arm.teaching_status(
                        f"Waiting {wait_s:.1f}s for step {step.step_number}"
                    )
                    if self._cancel_flag.wait(wait_s):
                        logger.info(
                            "Teaching cancelled while waiting for step %d",
                            step.step_number,
                        )
                        break

                if self._cancel_flag.is_set():
                    break

                self._arm.teaching_status(f"Step {step.step_number}: {step.name}")
                self.execute_step(step)
                self._notify(
                    completed_steps=idx + 1,
                    elapsed_s=time.monotonic() - started,
                    message=f"Step {idx + 1}/{len(steps)}",
                )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Teaching playback error: %s", exc)
            self._state = PlaybackState.FAILED
            self._arm.teaching_status("Playback error")
            self._finish(drop_gating=True)
            return

        if self._cancel_flag.is_set():
            self._state = PlaybackState.CANCELLED
            self._notify(message="Cancelled")
            self._finish(drop_gating=False)
            return

        elapsed = time.monotonic() - started
        self._arm.teaching_status(f"Complete! ({elapsed:.1f}s total)")
        self._notify(elapsed_s=elapsed, message="Complete")
        self._cancel_flag.wait(self._cfg.teaching.completion_hold_s)
        self._state = PlaybackState.COMPLETED
        self._notify(message="Complete")
        self._finish(drop_gating=True)

    def _finish(self, drop_gating: bool) -> None:
        """Release the player.  ``stop()`` has already dropped gating
        for cancelled runs."""
        self._arm.end_teaching()
        if drop_gating:
            self._arm.set_teaching_active(False)
        self._run_lock.release()
        logger.info("Teaching run finished (%s)", self._state.name)

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    def execute_step(self, step: TeachingStep) -> None:
        """Send one step's command and block for its pacing wait."""
        action = step.action
        logger.info(
            "Step %d '%s': %s", step.step_number, step.name,
            type(action).__name__,
        )

        if isinstance(action, MoveJoint):
            self._move_joint(step, action)
        elif isinstance(action, SetGripper):
            self._set_gripper(step, action)
        elif isinstance(action, SetDigitalOutput):
            self._set_do(step, action)
        elif isinstance(action, Wait):
            self._pace(step.duration)
        else:
            logger.warning("Unknown action %r skipped", action)

    def _move_joint(self, step: TeachingStep, action: MoveJoint) -> None:
        joints = clamp_joints(action.joints, self._arm.joint_limit)
        motion = self._arm.motion
        params = MotionParameters(
            velocity=self._cfg.clamp_velocity(
                motion.velocity if action.velocity is None else action.velocity
            ),
            acceleration=self._cfg.clamp_acceleration(
                motion.acceleration if action.acceleration is None
                else action.acceleration
            ),
            t=step.duration if step.duration > 0 else None,
        )
        response = self._client.move_joint(joints, params)
        if not response.ok:
            logger.warning("Step %d move failed: %s", step.step_number, response.error)

        self._pace(step.duration)
        self._arm.set_joints(joints)

    def _set_gripper(self, step: TeachingStep, action: SetGripper) -> None:
        g = self._cfg.gripper
        command = GripperCommand.clamped(
            g.default_amplitude if action.position is None else action.position,
            g.default_force if action.force is None else action.force,
        )
        response = self._client.set_claw(command)
        if not response.ok:
            logger.warning("Step %d gripper failed: %s", step.step_number, response.error)

        self._arm.set_gripper(command.amplitude, command.force)
        self._pace(step.duration)

    def _set_do(self, step: TeachingStep, action: SetDigitalOutput) -> None:
        response = self._client.set_do(action.device.upper(), action.pin, action.value)
        if not response.ok:
            logger.warning("Step %d set_do failed: %s", step.step_number, response.error)
        self._pace(step.duration)

    @staticmethod
    def _pace(duration: float) -> None:
        """Pacing wait; not interrupted by ``stop()``."""
        if duration > 0:
            time.sleep(duration)
