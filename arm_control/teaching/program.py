"""Teaching programs -- timed robot actions replayed verbatim.

A teaching program is authored outside the exhibit as JSON and read
once per playback::

    {
      "name": "Puzzle game 180s",
      "description": "...",
      "totalDuration": 180,
      "steps": [
        {"stepNumber": 1, "name": "Pick piece", "time": 0, "duration": 2,
         "action": {"type": "move_joint", "joints": [0, -30, 90, 0, 60, 0]}},
        {"stepNumber": 2, "name": "Close", "time": 5, "duration": 1,
         "action": {"type": "set_gripper", "gripperPosition": 0}}
      ]
    }

``time`` is the step's start offset from playback start; ``duration``
is how long the step occupies the arm.  Optional numeric fields use a
negative value (the authoring tool writes ``-1``) or absence for "use
the session default".

Every action is an immutable, slotted dataclass.  The file is checked
against ``schema.TeachingFileV1`` first, which rejects
unknown action types and malformed steps up front, so a bad file never
issues a single command.
"""

from __future__ import annotations

import logging
from abc import ABC
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from arm_control.teaching.schema import (
    ActionV1,
    TeachingFileV1,
    format_validation_error,
)
from arm_control.utils.fs import load_json

logger = logging.getLogger(__name__)

JOINT_COUNT = 6


class TeachingFileError(Exception):
    """Program file missing, unreadable, or structurally invalid."""

    pass


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Action(ABC):
    """Base class for all teaching actions."""

    pass


@dataclass(frozen=True, slots=True)
class MoveJoint(Action):
    """Timed joint-space move.

    Parameters
    ----------
    joints : tuple[float, ...]
        Six target angles in degrees.
    velocity, acceleration : float | None
        Per-step overrides; ``None`` uses the session values.
    """

    joints: tuple[float, ...]
    velocity: float | None = None
    acceleration: float | None = None

    def __post_init__(self) -> None:
        if len(self.joints) != JOINT_COUNT:
            raise ValueError(
                f"move_joint needs {JOINT_COUNT} joints, got {len(self.joints)}"
            )


@dataclass(frozen=True, slots=True)
class SetGripper(Action):
    """Gripper command; ``None`` fields fall back to 0 / 50."""

    position: float | None = None
    force: float | None = None


@dataclass(frozen=True, slots=True)
class SetDigitalOutput(Action):
    """Digital output (vacuum gripper, lamps, ...)."""

    device: str = "FLANGE"
    pin: int = 0
    value: int = 0

    def __post_init__(self) -> None:
        if self.pin < 0:
            raise ValueError(f"set_do pin must be >= 0, got {self.pin}")
        if self.value not in (0, 1):
            raise ValueError(f"set_do value must be 0 or 1, got {self.value}")


@dataclass(frozen=True, slots=True)
class Wait(Action):
    """No command; the step only occupies its ``duration``."""

    pass


# ---------------------------------------------------------------------------
# Program
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TeachingStep:
    """One scheduled action."""

    step_number: int
    name: str
    start_time: float
    duration: float
    action: Action

    def __post_init__(self) -> None:
        if self.start_time < 0:
            raise ValueError(f"step time must be >= 0, got {self.start_time}")
        if self.duration < 0:
            raise ValueError(f"step duration must be >= 0, got {self.duration}")


@dataclass(frozen=True)
class TeachingProgram:
    """Name, declared length and ordered steps of one program."""

    name: str
    steps: tuple[TeachingStep, ...]
    description: str = ""
    total_duration: float = 0.0
    source: Path | None = field(default=None, compare=False)

    def sorted_steps(self) -> list[TeachingStep]:
        """Steps ascending by start time; ties keep file order."""
        return sorted(self.steps, key=lambda s: s.start_time)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _to_action(model: ActionV1) -> Action:
    if model.type == "move_joint":
        return MoveJoint(
            joints=tuple(model.joints),
            velocity=model.velocity,
            acceleration=model.acceleration,
        )
    if model.type == "set_gripper":
        return SetGripper(position=model.gripper_position, force=model.gripper_force)
    if model.type == "set_do":
        return SetDigitalOutput(device=model.device, pin=model.pin, value=model.value)
    return Wait()


def parse_action(data: Any) -> Action:
    """Build an ``Action`` from its JSON object.

    Raises
    ------
    ValueError
        On unknown type or invalid fields (pydantic ``ValidationError``).
    """
    return _to_action(ActionV1.model_validate(data))


def parse_program(data: Any, source: Path | None = None) -> TeachingProgram:
    """Validate a decoded JSON document.

    Raises
    ------
    TeachingFileError
        If ``steps`` is missing or empty, or any step is invalid.
    """
    try:
        doc = TeachingFileV1.model_validate(data)
    except ValidationError as exc:
        raise TeachingFileError(format_validation_error(exc)) from exc

    steps = tuple(
        TeachingStep(
            step_number=idx + 1 if s.step_number is None else s.step_number,
            name=s.name,
            start_time=s.start_time,
            duration=s.duration,
            action=_to_action(s.action),
        )
        for idx, s in enumerate(doc.steps)
    )
    return TeachingProgram(
        name=doc.name or (source.stem if source else "teaching"),
        description=doc.description,
        total_duration=doc.total_duration,
        steps=steps,
        source=source,
    )


def load_program(path: str | Path) -> TeachingProgram:
    """Read and validate a program file.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    TeachingFileError
        If the file is not valid JSON or not a valid program.
    """
    path = Path(path)
    logger.info("Loading teaching program from %s", path)
    try:
        data = load_json(path)
    except ValueError as exc:
        raise TeachingFileError(f"{path.name}: invalid JSON: {exc}") from exc

    program = parse_program(data, source=path)
    logger.info(
        "Loaded program '%s' (%d steps, %.1fs declared)",
        program.name, len(program.steps), program.total_duration,
    )
    return program
