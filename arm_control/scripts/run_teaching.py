#!/usr/bin/env python3
"""
Run Teaching Script.

Connect to the arm, optionally home it, and play a teaching program
from start to finish.  Ctrl+C stops the arm (``stop_move``) and cancels
the remaining steps.

Usage:
    python -m arm_control.scripts.run_teaching
    python -m arm_control.scripts.run_teaching --file puzzle.json
    python -m arm_control.scripts.run_teaching --host 192.168.0.3 --no-home
    python -m arm_control.scripts.run_teaching --reset-only
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from arm_control.configs.loader import load_config
from arm_control.hardware.events import Topic
from arm_control.hardware.session import RobotSession
from arm_control.teaching.player import PlaybackState
from arm_control.utils.fs import resolve_beside_program
from arm_control.utils.logging_config import (
    install_excepthook,
    setup_logging,
    shutdown,
)

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Play a teaching program")
    parser.add_argument("--config", "-c", type=str, help="Config file path")
    parser.add_argument("--host", type=str, help="Controller host override")
    parser.add_argument("--port", "-p", type=int, help="Controller port override")
    parser.add_argument(
        "--file", "-f", type=str,
        help="Teaching program (default: teaching.program_file from config)",
    )
    parser.add_argument(
        "--no-home", action="store_true",
        help="Skip the home move after connecting",
    )
    parser.add_argument(
        "--reset-only", action="store_true",
        help="Connect, home, and exit without playing",
    )
    parser.add_argument("--log-level", type=str, help="Log level override")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.no_home:
        config = replace(
            config, home=replace(config.home, auto_home_on_connect=False),
        )

    log_cfg = config.logging
    log_file = log_cfg.log_file
    setup_logging(
        log_level=args.log_level or log_cfg.log_level,
        log_file=str(resolve_beside_program(log_file)) if log_file else None,
        json=log_cfg.json,
        context={"app": "run_teaching"},
    )
    install_excepthook()

    session = RobotSession(config)
    session.bus.subscribe(Topic.STATUS, lambda msg: print(f"[status] {msg}"))
    session.bus.subscribe(
        Topic.TEACHING_STATUS, lambda msg: print(f"[teaching] {msg}"),
    )

    if not session.connect(args.host, args.port):
        sys.exit(1)

    try:
        if args.reset_only:
            if config.home.auto_home_on_connect:
                return
            sys.exit(0 if session.reset() else 1)

        if not session.start_teaching(args.file):
            sys.exit(1)
        session.wait_teaching()
    except KeyboardInterrupt:
        print("\nInterrupted -- stopping arm")
        session.stop_teaching()
        session.stop()
    finally:
        session.close()
        shutdown()

    sys.exit(0 if session.player.get_state() is PlaybackState.COMPLETED else 1)


if __name__ == "__main__":
    main()
