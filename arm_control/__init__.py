"""
Arm Control Package.

Motion control and teaching playback for the Lebai 6-axis exhibit arm.
Talks to the controller over JSON-RPC 2.0 / HTTP for joint moves,
gripper and digital-output commands, home moves and timed playback of
recorded teaching programs.

Subpackages:
    hardware: JSON-RPC client, session state machine, homing, throttling
    teaching: Teaching program model and timed playback
    configs: Robot configuration loading and validation
    utils: File loading and logging setup
"""

__version__ = "0.3.0"

__all__ = ["hardware", "teaching", "configs", "utils"]
