"""Publish/subscribe bus between the control core and its displays.

The core never touches UI objects.  It publishes on a fixed set of
topics; the host registers sinks once at setup::

    bus = EventBus()
    bus.subscribe(Topic.STATUS, status_label.set_text)
    bus.subscribe(Topic.JOINTS, lambda degs: sliders.show(degs))

All topics are one-way outputs.  A failing subscriber is logged and
skipped -- it can never break a motion sequence.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    """Event topics and their payload types."""

    STATUS = "status"                    # str
    TEACHING_STATUS = "teaching_status"  # str
    TEACHING_ACTIVE = "teaching_active"  # bool -- teaching-mode UI gating
    BUSY = "busy"                        # bool
    JOINTS = "joints"                    # list[float], degrees
    GRIPPER = "gripper"                  # GripperCommand
    MOTION = "motion"                    # MotionParameters


class EventBus:
    """Thread-safe topic -> callbacks registry."""

    def __init__(self) -> None:
        self._subs: dict[Topic, list[Callable[[Any], None]]] = defaultdict(list)
        self._lock = threading.Lock()
        self._last: dict[Topic, Any] = {}

    def subscribe(self, topic: Topic, fn: Callable[[Any], None]) -> None:
        """Register *fn* for *topic*."""
        with self._lock:
            self._subs[Topic(topic)].append(fn)

    def unsubscribe(self, topic: Topic, fn: Callable[[Any], None]) -> None:
        with self._lock:
            try:
                self._subs[Topic(topic)].remove(fn)
            except ValueError:
                pass

    def clear(self) -> None:
        """Drop every subscriber (host teardown)."""
        with self._lock:
            self._subs.clear()

    def last(self, topic: Topic, default: Any = None) -> Any:
        """Most recent payload published on *topic*."""
        return self._last.get(Topic(topic), default)

    def publish(self, topic: Topic, payload: Any) -> None:
        topic = Topic(topic)
        with self._lock:
            self._last[topic] = payload
            callbacks = list(self._subs.get(topic, ()))
        for fn in callbacks:
            try:
                fn(payload)
            except Exception as exc:  # noqa: BLE001
                logger.error("Subscriber error on %s: %s", topic.value, exc)
