"""Teaching file schema validation.

Validates the JSON written by the teaching authoring tool before any
step is turned into an action:
    - Step keys are camelCase (``stepNumber``, ``time``, ``gripperPosition``);
      snake_case spellings are accepted too
    - ``time`` / ``duration`` are seconds and must be >= 0
    - Optional numeric action fields use ``-1`` for "not set"
    - ``move_joint`` needs exactly six angles (degrees)
    - ``set_do`` pin >= 0, value 0 or 1

Usage:
    from arm_control.teaching import schema
    doc = schema.TeachingFileV1.model_validate(json_data)
"""

from typing import List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

JOINT_COUNT = 6
ACTION_TYPES = ("move_joint", "set_gripper", "set_do", "wait")


class ActionV1(BaseModel):
    """One step's action as authored."""
    type: str = Field(..., description="move_joint | set_gripper | set_do | wait")
    joints: Optional[List[float]] = Field(None, description="Six target angles (deg)")
    velocity: Optional[float] = Field(None, description="Override, -1 = session value")
    acceleration: Optional[float] = Field(None, description="Override, -1 = session value")
    gripper_position: Optional[float] = Field(
        None, validation_alias=AliasChoices("gripperPosition", "position"),
        description="Opening 0..100, -1 = default",
    )
    gripper_force: Optional[float] = Field(
        None, validation_alias=AliasChoices("gripperForce", "force"),
        description="Force 0..100, -1 = default",
    )
    device: Optional[str] = Field("FLANGE", description="Digital output device")
    pin: int = Field(0, ge=0, description="Digital output pin")
    value: int = Field(0, ge=0, le=1, description="Digital output level")

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        kind = v.strip().lower()
        if kind not in ACTION_TYPES:
            raise ValueError(f"unknown action type {v!r}, expected one of {ACTION_TYPES}")
        return kind

    @field_validator('velocity', 'acceleration', 'gripper_position', 'gripper_force')
    @classmethod
    def negative_means_unset(cls, v: Optional[float]) -> Optional[float]:
        return None if v is None or v < 0 else v

    @field_validator('device')
    @classmethod
    def normalize_device(cls, v: Optional[str]) -> str:
        return (v or "FLANGE").upper()

    @model_validator(mode='after')
    def validate_joints(self) -> 'ActionV1':
        if self.type == "move_joint":
            if self.joints is None or len(self.joints) != JOINT_COUNT:
                got = None if self.joints is None else len(self.joints)
                raise ValueError(f"move_joint needs {JOINT_COUNT} joints, got {got}")
        return self


class StepV1(BaseModel):
    """One scheduled step."""
    step_number: Optional[int] = Field(
        None, validation_alias=AliasChoices("stepNumber", "step_number"),
    )
    name: str = ""
    start_time: float = Field(
        0.0, ge=0.0, validation_alias=AliasChoices("time", "start_time"),
        description="Start offset from playback start (s)",
    )
    duration: float = Field(0.0, ge=0.0, description="Time the step occupies the arm (s)")
    action: ActionV1


class TeachingFileV1(BaseModel):
    """Complete teaching program file."""
    name: Optional[str] = None
    description: str = ""
    total_duration: float = Field(
        0.0, ge=0.0, validation_alias=AliasChoices("totalDuration", "total_duration"),
    )
    steps: List[StepV1] = Field(..., min_length=1, description="At least one step")


def format_validation_error(exc: ValidationError) -> str:
    """First error as ``step N: field: message`` (step numbers 1-based)."""
    err = exc.errors()[0]
    loc = list(err.get("loc", ()))
    where = ""
    if len(loc) >= 2 and loc[0] == "steps" and isinstance(loc[1], int):
        where = f"step {loc[1] + 1}: "
        loc = loc[2:]
    field = ".".join(str(p) for p in loc)
    return f"{where}{field + ': ' if field else ''}{err['msg']}"
