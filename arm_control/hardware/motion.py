"""Joint, motion and gripper value types.

Every value that reaches the controller passes through one of the
clamping helpers here, so out-of-range input is saturated instead of
rejected:

    - joint angles to ``+/-joint_limit_deg`` (175 deg on the LM3)
    - velocity / acceleration to the configured ranges
    - gripper amplitude / force to ``0..100``

Angles are degrees in Python; ``joints_to_wire`` converts to the
radians the controller expects.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

JOINT_COUNT = 6
JOINT_LIMIT_DEG = 175.0
GRIPPER_MIN = 0.0
GRIPPER_MAX = 100.0


def clamp(val: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, val))


def clamp_joint(deg: float, limit: float = JOINT_LIMIT_DEG) -> float:
    """Saturate one joint angle to ``[-limit, limit]``."""
    return clamp(float(deg), -limit, limit)


def clamp_joints(
    degs: Iterable[float], limit: float = JOINT_LIMIT_DEG,
) -> list[float]:
    """Saturate a 6-joint pose.

    Raises
    ------
    ValueError
        If *degs* does not hold exactly six angles.
    """
    out = [clamp_joint(v, limit) for v in degs]
    if len(out) != JOINT_COUNT:
        raise ValueError(f"expected {JOINT_COUNT} joint angles, got {len(out)}")
    return out


def clamp_percent(value: float) -> float:
    """Saturate a gripper amplitude / force to ``0..100``."""
    return clamp(float(value), GRIPPER_MIN, GRIPPER_MAX)


def deg2rad_list(vals_deg: Sequence[float]) -> list[float]:
    return [math.radians(v) for v in vals_deg]


def rad2deg_list(vals_rad: Sequence[float]) -> list[float]:
    return [math.degrees(v) for v in vals_rad]


def joints_to_wire(degs: Sequence[float]) -> list[float]:
    """Degrees -> radians rounded to 6 decimals (controller precision)."""
    return [round(r, 6) for r in deg2rad_list(degs)]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MotionParameters:
    """``move_joint`` ``param`` block.

    ``t`` is an explicit move duration in seconds; when set the
    controller scales the motion to finish in ``t`` and treats
    velocity / acceleration as upper bounds.
    """

    velocity: float
    acceleration: float
    t: float | None = None

    def to_wire(self) -> dict[str, float]:
        param = {
            "velocity": round(self.velocity, 2),
            "acc": round(self.acceleration, 2),
        }
        if self.t is not None:
            param["t"] = round(self.t, 2)
        return param


@dataclass(frozen=True)
class GripperCommand:
    """Gripper opening (``amplitude``, 0 = closed) and grip ``force``."""

    amplitude: float
    force: float

    @classmethod
    def clamped(cls, amplitude: float, force: float) -> GripperCommand:
        return cls(clamp_percent(amplitude), clamp_percent(force))

    def to_wire(self) -> dict[str, float]:
        return {
            "amplitude": round(self.amplitude, 1),
            "force": round(self.force, 1),
        }
