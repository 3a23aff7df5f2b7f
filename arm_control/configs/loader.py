"""Configuration loader for the exhibit arm.

Loads and validates ``robot.yaml`` into typed, frozen dataclasses.
Endpoint, motion ranges, throttle interval, idle-poll timing, home
pose and teaching defaults all come from the config -- nothing in the
hardware layer hardcodes them.

Angles are stored in **degrees** throughout Python.  Conversion to the
wire unit (radians) happens only in the JSON-RPC client.

Usage::

    from arm_control.configs.loader import load_config
    cfg = load_config()                     # default path
    cfg = load_config("/custom/robot.yaml") # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from arm_control.utils.fs import load_yaml

logger = logging.getLogger(__name__)

JOINT_COUNT = 6
HOME_STRATEGIES = ("direct", "sequential")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionConfig:
    """Default JSON-RPC endpoint and request timeout."""

    host: str
    port: int
    timeout_s: float = 10.0


@dataclass(frozen=True)
class MotionConfig:
    """Joint limit and velocity / acceleration ranges.

    ``velocity_range`` and ``acceleration_range`` are ``(lo, hi)``
    pairs; every value sent to the controller is clamped into them.
    """

    joint_limit_deg: float
    default_velocity: float
    default_acceleration: float
    velocity_range: tuple[float, float]
    acceleration_range: tuple[float, float]
    slider_interval_s: float = 0.1


@dataclass(frozen=True)
class GripperConfig:
    """Gripper defaults and throttle interval."""

    default_amplitude: float
    default_force: float
    throttle_interval_s: float


@dataclass(frozen=True)
class JogConfig:
    """Increment sizes used by the left/right jog buttons."""

    joint_step_deg: float
    motion_step: float
    gripper_step: float


@dataclass(frozen=True)
class IdleWaitConfig:
    """Idle-poll timing (milliseconds)."""

    max_wait_ms: int
    poll_interval_ms: int


@dataclass(frozen=True)
class HomeStage:
    """One stage of the sequential reset.

    Parameters
    ----------
    name : str
        Label used in logs and status text.
    joint : int
        Zero-based joint index (the YAML uses 1-based ``J1..J6``).
    target_deg : float
        Target angle for this joint.
    """

    name: str
    joint: int
    target_deg: float


@dataclass(frozen=True)
class HomeConfig:
    """Safe-pose definition and reset choreography."""

    strategy: str
    auto_home_on_connect: bool
    position_deg: tuple[float, ...]
    move_time_s: float
    tolerance_deg: float
    sequence: tuple[HomeStage, ...]


@dataclass(frozen=True)
class TeachingConfig:
    """Teaching-program file and playback defaults."""

    program_file: str
    completion_hold_s: float


@dataclass(frozen=True)
class LoggingConfig:
    """Keyword arguments for ``setup_logging``."""

    log_level: str = "INFO"
    log_file: str | None = None
    json: bool = False


@dataclass(frozen=True)
class RobotConfig:
    """Complete configuration loaded from ``robot.yaml``.

    All angles are in **degrees**, all times in **seconds** unless the
    field name says otherwise.
    """

    connection: ConnectionConfig
    motion: MotionConfig
    gripper: GripperConfig
    jog: JogConfig
    idle_wait: IdleWaitConfig
    home: HomeConfig
    teaching: TeachingConfig
    logging: LoggingConfig

    # -- Convenience helpers ------------------------------------------------

    def clamp_velocity(self, value: float) -> float:
        """Clamp *value* into ``motion.velocity_range``."""
        lo, hi = self.motion.velocity_range
        return max(lo, min(hi, value))

    def clamp_acceleration(self, value: float) -> float:
        """Clamp *value* into ``motion.acceleration_range``."""
        lo, hi = self.motion.acceleration_range
        return max(lo, min(hi, value))


# ---------------------------------------------------------------------------
# Internal parsing helpers
# ---------------------------------------------------------------------------


def _parse_range(name: str, raw: Any) -> tuple[float, float]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ConfigError(f"{name} must be a 2-element list, got {raw!r}")
    return float(raw[0]), float(raw[1])


def _parse_home(data: dict[str, Any]) -> HomeConfig:
    """Parse the ``home`` section, resolving null stage targets."""
    position = data.get("position_deg", [0.0] * JOINT_COUNT)
    if not isinstance(position, (list, tuple)) or len(position) != JOINT_COUNT:
        raise ConfigError(
            f"home.position_deg must list {JOINT_COUNT} angles, "
            f"got {position!r}"
        )
    position_deg = tuple(float(v) for v in position)

    stages = []
    for idx, raw in enumerate(data.get("sequence") or []):
        joint_no = int(raw["joint"])
        if not 1 <= joint_no <= JOINT_COUNT:
            raise ConfigError(
                f"home.sequence[{idx}] joint must be 1..{JOINT_COUNT}, "
                f"got {joint_no}"
            )
        target = raw.get("target_deg")
        stages.append(HomeStage(
            name=str(raw.get("name", f"J{joint_no}")),
            joint=joint_no - 1,
            target_deg=(
                position_deg[joint_no - 1] if target is None
                else float(target)
            ),
        ))

    return HomeConfig(
        strategy=str(data.get("strategy", "direct")).lower(),
        auto_home_on_connect=bool(data.get("auto_home_on_connect", True)),
        position_deg=position_deg,
        move_time_s=float(data.get("move_time_s", 5.0)),
        tolerance_deg=float(data.get("tolerance_deg", 0.5)),
        sequence=tuple(stages),
    )


def _validate_config(cfg: RobotConfig) -> None:
    """Cross-field checks.  Raises ``ConfigError`` on the first failure."""
    c = cfg.connection
    if not c.host:
        raise ConfigError("connection.host must not be empty")
    if not 0 < c.port < 65536:
        raise ConfigError(f"connection.port out of range: {c.port}")
    if c.timeout_s <= 0:
        raise ConfigError(f"timeout_s must be > 0, got {c.timeout_s}")

    m = cfg.motion
    if m.joint_limit_deg <= 0:
        raise ConfigError(
            f"joint_limit_deg must be > 0, got {m.joint_limit_deg}"
        )
    for name, (lo, hi), default in (
        ("velocity_range", m.velocity_range, m.default_velocity),
        ("acceleration_range", m.acceleration_range, m.default_acceleration),
    ):
        if not 0 < lo <= hi:
            raise ConfigError(f"{name} must satisfy 0 < lo <= hi, got {(lo, hi)}")
        if not lo <= default <= hi:
            raise ConfigError(
                f"default for {name} ({default}) is outside {(lo, hi)}"
            )

    g = cfg.gripper
    for name, value in (
        ("default_amplitude", g.default_amplitude),
        ("default_force", g.default_force),
    ):
        if not 0.0 <= value <= 100.0:
            raise ConfigError(f"gripper.{name} must be 0..100, got {value}")
    if g.throttle_interval_s <= 0:
        raise ConfigError(
            f"throttle_interval_s must be > 0, got {g.throttle_interval_s}"
        )

    w = cfg.idle_wait
    if w.poll_interval_ms <= 0 or w.max_wait_ms <= 0:
        raise ConfigError(
            f"idle_wait values must be > 0, got {w.max_wait_ms}/"
            f"{w.poll_interval_ms} ms"
        )

    h = cfg.home
    if h.strategy not in HOME_STRATEGIES:
        raise ConfigError(
            f"home.strategy must be one of {HOME_STRATEGIES}, "
            f"got {h.strategy!r}"
        )
    if h.strategy == "sequential" and not h.sequence:
        raise ConfigError("home.strategy 'sequential' needs home.sequence")
    if h.move_time_s <= 0:
        raise ConfigError(f"home.move_time_s must be > 0, got {h.move_time_s}")
    limit = m.joint_limit_deg
    for angle in h.position_deg:
        if abs(angle) > limit:
            raise ConfigError(
                f"home.position_deg {h.position_deg} exceeds +/-{limit}"
            )
    for stage in h.sequence:
        if abs(stage.target_deg) > limit:
            raise ConfigError(
                f"home stage '{stage.name}' target {stage.target_deg} "
                f"exceeds +/-{limit}"
            )

    if cfg.teaching.completion_hold_s < 0:
        raise ConfigError(
            f"completion_hold_s must be >= 0, "
            f"got {cfg.teaching.completion_hold_s}"
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> RobotConfig:
    """Load and validate robot configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``robot.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    RobotConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "robot.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    data: dict[str, Any] = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")

    try:
        # -- connection -----------------------------------------------------
        cd = data["connection"]
        connection = ConnectionConfig(
            host=str(cd["host"]),
            port=int(cd["port"]),
            timeout_s=float(cd.get("timeout_s", 10.0)),
        )

        # -- motion ---------------------------------------------------------
        md = data["motion"]
        motion = MotionConfig(
            joint_limit_deg=float(md.get("joint_limit_deg", 175.0)),
            default_velocity=float(md["default_velocity"]),
            default_acceleration=float(md["default_acceleration"]),
            velocity_range=_parse_range(
                "motion.velocity_range", md["velocity_range"],
            ),
            acceleration_range=_parse_range(
                "motion.acceleration_range", md["acceleration_range"],
            ),
            slider_interval_s=float(md.get("slider_interval_s", 0.1)),
        )

        # -- gripper --------------------------------------------------------
        gd = data.get("gripper", {})
        gripper = GripperConfig(
            default_amplitude=float(gd.get("default_amplitude", 0.0)),
            default_force=float(gd.get("default_force", 50.0)),
            throttle_interval_s=float(gd.get("throttle_interval_s", 0.1)),
        )

        # -- jog ------------------------------------------------------------
        jd = data.get("jog", {})
        jog = JogConfig(
            joint_step_deg=float(jd.get("joint_step_deg", 0.1)),
            motion_step=float(jd.get("motion_step", 0.1)),
            gripper_step=float(jd.get("gripper_step", 5.0)),
        )

        # -- idle wait ------------------------------------------------------
        wd = data.get("idle_wait", {})
        idle_wait = IdleWaitConfig(
            max_wait_ms=int(wd.get("max_wait_ms", 30000)),
            poll_interval_ms=int(wd.get("poll_interval_ms", 200)),
        )

        # -- home -----------------------------------------------------------
        home = _parse_home(data.get("home", {}))

        # -- teaching -------------------------------------------------------
        td = data.get("teaching", {})
        teaching = TeachingConfig(
            program_file=str(td.get("program_file", "robot_teaching.json")),
            completion_hold_s=float(td.get("completion_hold_s", 2.0)),
        )

        # -- logging (optional) ---------------------------------------------
        ld = data.get("logging") or {}
        logging_cfg = LoggingConfig(
            log_level=str(ld.get("log_level", "INFO")).upper(),
            log_file=ld.get("log_file"),
            json=bool(ld.get("json", False)),
        )

        config = RobotConfig(
            connection=connection,
            motion=motion,
            gripper=gripper,
            jog=jog,
            idle_wait=idle_wait,
            home=home,
            teaching=teaching,
            logging=logging_cfg,
        )

        _validate_config(config)
        logger.info("Configuration loaded successfully")
        return config

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc
