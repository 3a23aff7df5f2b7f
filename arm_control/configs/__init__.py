"""Robot configuration loading and validation."""

from arm_control.configs.loader import (
    ConfigError,
    ConnectionConfig,
    GripperConfig,
    HomeConfig,
    HomeStage,
    MotionConfig,
    RobotConfig,
    load_config,
)

__all__ = [
    "ConfigError",
    "ConnectionConfig",
    "GripperConfig",
    "HomeConfig",
    "HomeStage",
    "MotionConfig",
    "RobotConfig",
    "load_config",
]
