"""
Hardware communication module.

Provides the Lebai JSON-RPC client, the session that gates connection,
manual control and home moves, and the event bus displays subscribe to.
"""

from arm_control.hardware.events import EventBus, Topic
from arm_control.hardware.lebai_client import Endpoint, LebaiClient, LebaiError
from arm_control.hardware.session import RobotSession

__all__ = ["EventBus", "Topic", "Endpoint", "LebaiClient", "LebaiError", "RobotSession"]
