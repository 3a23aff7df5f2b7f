"""Filesystem helpers for config and program files.

Provides:
    - YAML load with validation (machine-side configuration)
    - JSON load (externally-authored teaching programs)
    - Resolution of files that live next to the running program

All paths use pathlib.Path for cross-platform compatibility.

Usage:
    from arm_control.utils import fs
    data = fs.load_yaml("arm_control/configs/robot.yaml")
    program = fs.load_json(fs.resolve_beside_program("robot_teaching.json"))
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Union

import yaml


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory if it doesn't exist, return Path object.

    Parameters
    ----------
    p : Union[str, Path]
        Directory path

    Returns
    -------
    Path
        Path object (guaranteed to exist)
    """
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML file safely.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed YAML content

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails

    Notes
    -----
    Uses safe_load to prevent arbitrary code execution.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e


def load_json(path: Union[str, Path]) -> Any:
    """Load a JSON document.

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    json.JSONDecodeError
        If the content is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"JSON file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def program_dir() -> Path:
    """Directory of the running entrypoint (the exhibit's install dir)."""
    main = sys.modules.get("__main__")
    main_file = getattr(main, "__file__", None)
    if main_file:
        return Path(main_file).resolve().parent
    return Path.cwd()


def resolve_beside_program(path: Union[str, Path]) -> Path:
    """Resolve a relative *path* against ``program_dir()``.

    Absolute paths are returned unchanged.
    """
    path = Path(path)
    if path.is_absolute():
        return path
    return program_dir() / path
