#!/usr/bin/env python3
"""Verify Lebai controller connectivity.

Runs a quick sequence of read-only JSON-RPC calls to confirm the
controller answers, reports a state, and returns a joint pose.  Nothing
moves.

Usage::

    python -m arm_control.scripts.test_connection
    python -m arm_control.scripts.test_connection --host 192.168.0.3 --port 3021
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Allow direct execution from the repo root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from arm_control.configs.loader import load_config
from arm_control.hardware.lebai_client import (
    Endpoint,
    LebaiClient,
    LebaiError,
    decode_robot_state,
)
from arm_control.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def test_connection(
    host: str | None = None,
    port: int | None = None,
    config_path: str | None = None,
) -> bool:
    """Run connection tests.  Returns ``True`` if all pass."""
    print("=" * 60)
    print("  LEBAI CONNECTION TEST")
    print("=" * 60)

    config = load_config(config_path)
    endpoint = Endpoint(
        host or config.connection.host,
        int(port or config.connection.port),
    )
    print(f"\n[OK] Configuration loaded")
    print(f"     Endpoint: {endpoint.base_url}")

    client = LebaiClient(endpoint, timeout=config.connection.timeout_s)
    passed = 0
    failed = 0

    # --- Test 1: state probe ---------------------------------------------
    response = client.get_robot_state()
    if not response.ok:
        print(f"[FAIL] Robot state: {response.error}")
        return False
    print(f"[PASS] Robot state: {decode_robot_state(response)}")
    passed += 1

    # --- Test 2: joint pose ----------------------------------------------
    try:
        pose = client.read_joint_pose(limit=config.motion.joint_limit_deg)
        print("[PASS] Joint pose: "
              + ", ".join(f"J{i + 1}={d:.2f}" for i, d in enumerate(pose)))
        passed += 1
    except LebaiError as exc:
        print(f"[FAIL] Joint pose: {exc}")
        failed += 1

    # --- Test 3: idle check ----------------------------------------------
    idle = client.is_idle()
    print(f"[PASS] Idle check: {idle}")
    passed += 1

    print(f"\n{'='*60}")
    print(f"  Results: {passed} passed, {failed} failed")
    print(f"{'='*60}")
    return failed == 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Test Lebai connection")
    parser.add_argument("--host", type=str, help="Controller host override")
    parser.add_argument("--port", "-p", type=int, help="Controller port override")
    parser.add_argument("--config", "-c", type=str, help="Config file path")
    parser.add_argument("--log-level", default="WARNING",
                        help="Console log level (default WARNING)")
    args = parser.parse_args()

    setup_logging(log_level=args.log_level, log_file=None)
    success = test_connection(args.host, args.port, args.config)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
