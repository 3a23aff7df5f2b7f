"""
Teaching playback module.

Loads recorded teaching programs (JSON) and replays their steps on the
arm at the recorded start times.
"""

from arm_control.teaching.player import PlaybackState, TeachingPlayer
from arm_control.teaching.program import (
    TeachingFileError,
    TeachingProgram,
    load_program,
)

__all__ = [
    "PlaybackState",
    "TeachingPlayer",
    "TeachingFileError",
    "TeachingProgram",
    "load_program",
]
