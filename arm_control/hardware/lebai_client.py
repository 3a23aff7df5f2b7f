"""Lebai controller client over JSON-RPC 2.0 / HTTP.

Handles:
    - JSON-RPC 2.0 envelopes with a per-client monotonically increasing id
    - One HTTP POST per call to ``http://{host}:{port}/`` (no pipelining)
    - Awaited calls that *return* failures instead of raising
    - Fire-and-forget calls for high-rate gripper traffic
    - Idle polling via ``get_robot_state``
    - Structured decoding of state and joint-pose responses

Every method used by the exhibit takes a one-element ``params`` array
holding an options object::

    {"jsonrpc": "2.0", "method": "set_claw",
     "params": [{"amplitude": 40.0, "force": 50.0}], "id": 17}

Joint angles are radians on the wire and degrees everywhere else.

The request timeout comes from ``RobotConfig.connection``.
"""

from __future__ import annotations

import http.client
import json
import logging
import socket
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Sequence

from arm_control.hardware.motion import (
    JOINT_COUNT,
    GripperCommand,
    MotionParameters,
    clamp_joint,
    joints_to_wire,
    rad2deg_list,
)

logger = logging.getLogger(__name__)

IDLE_STATE = "IDLE"
JOINT_POSE_KIND = 1  # Pose.kind for joint-space targets


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LebaiError(Exception):
    """Base exception for all robot-control errors."""

    pass


class TransportError(LebaiError):
    """Network failure, timeout, or non-2xx HTTP status."""

    pass


class ProtocolError(LebaiError):
    """Response decoded but lacks the expected ``result`` / field."""

    pass


class StateConflictError(LebaiError):
    """Operation attempted while busy, teaching, or disconnected.

    Never raised across the public session API; it is the reason
    object recorded when an operation is rejected.
    """

    pass


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Endpoint:
    """Controller address.  Replaced only by the next ``connect``."""

    host: str
    port: int

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class RpcResponse:
    """Outcome of one JSON-RPC call.

    ``ok`` is ``True`` only when the reply carried a ``result`` field.
    On failure ``error`` holds a ``TransportError`` or ``ProtocolError``.
    """

    request_id: int
    method: str
    result: Any = None
    error: LebaiError | None = None
    raw: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


def decode_robot_state(response: RpcResponse) -> str | None:
    """Extract the controller state name, e.g. ``"IDLE"``.

    Accepts a bare string result or an object with a ``state`` /
    ``robot_state`` member.  Returns ``None`` for failed calls or
    unrecognised shapes.
    """
    if not response.ok:
        return None
    result = response.result
    if isinstance(result, dict):
        result = result.get("state", result.get("robot_state"))
    if isinstance(result, str):
        return result.upper()
    return None


def decode_joint_pose(
    response: RpcResponse, limit: float | None = None,
) -> list[float]:
    """Extract the six actual joint angles (degrees) from ``get_kin_data``.

    Accepts ``result.actual_joint_pose`` or a bare list result.  Angles
    are clamped to ``+/-limit`` when *limit* is given.

    Raises
    ------
    TransportError
        If the call itself failed.
    ProtocolError
        If the response does not hold six numeric angles.
    """
    response.raise_for_error()
    result = response.result
    pose = result.get("actual_joint_pose") if isinstance(result, dict) else result
    if not isinstance(pose, (list, tuple)) or len(pose) < JOINT_COUNT:
        raise ProtocolError(
            f"get_kin_data: no {JOINT_COUNT}-joint pose in {result!r}"
        )
    try:
        radians = [float(v) for v in pose[:JOINT_COUNT]]
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"get_kin_data: non-numeric joint {exc}") from exc

    degrees = rad2deg_list(radians)
    if limit is not None:
        degrees = [clamp_joint(d, limit) for d in degrees]
    return degrees


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LebaiClient:
    """JSON-RPC client for one Lebai controller.

    Parameters
    ----------
    endpoint : Endpoint | None
        Controller address.  May be set later via ``set_endpoint``.
    timeout : float
        Per-request timeout in seconds.

    Examples
    --------
    >>> client = LebaiClient(Endpoint("192.168.0.3", 3021))
    >>> if client.get_robot_state().ok:
    ...     client.move_joint([0, 0, 90, 0, 90, 0], MotionParameters(0.5, 1.0))
    """

    def __init__(
        self,
        endpoint: Endpoint | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout

        self._msg_id: int = 0
        self._id_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def base_url(self) -> str | None:
        return self.endpoint.base_url if self.endpoint else None

    @property
    def last_request_id(self) -> int:
        return self._msg_id

    def set_endpoint(self, endpoint: Endpoint) -> None:
        """Point the client at *endpoint*.  The id counter is kept."""
        self.endpoint = endpoint

    # ------------------------------------------------------------------
    # Low-level transport
    # ------------------------------------------------------------------

    def _next_id(self) -> int:
        with self._id_lock:
            self._msg_id += 1
            return self._msg_id

    def _post(self, payload: bytes, timeout: float) -> bytes:
        """POST *payload* and return the raw body.  Raises ``TransportError``."""
        request = urllib.request.Request(
            self.base_url,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            exc.close()
            raise TransportError(f"HTTP {exc.code} {exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise TransportError(f"Network error: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise TransportError(f"Timed out after {timeout}s") from exc
        except http.client.HTTPException as exc:
            raise TransportError(f"Malformed HTTP reply: {exc!r}") from exc
        except OSError as exc:
            raise TransportError(f"Socket error: {exc}") from exc

    def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> RpcResponse:
        """Send one request and block until the reply or timeout.

        Never raises for network or protocol failures -- inspect
        ``RpcResponse.ok`` / ``RpcResponse.error`` instead.
        """
        if self.endpoint is None:
            logger.error("JSON-RPC %s: no endpoint configured", method)
            return RpcResponse(
                request_id=0, method=method,
                error=TransportError("No endpoint configured"),
            )

        msg_id = self._next_id()
        request = {
            "jsonrpc": "2.0",
            "method": method,
            "params": [params or {}],
            "id": msg_id,
        }
        payload = json.dumps(request).encode("utf-8")
        timeout = timeout or self.timeout
        logger.debug("JSON-RPC request: %s", payload.decode("utf-8"))

        try:
            body = self._post(payload, timeout)
        except TransportError as exc:
            logger.warning("JSON-RPC %s (id=%d) failed: %s", method, msg_id, exc)
            return RpcResponse(request_id=msg_id, method=method, error=exc)

        logger.debug("JSON-RPC response: %r", body)

        try:
            msg = json.loads(body.decode("utf-8"))
        except ValueError as exc:
            logger.warning("JSON-RPC %s: invalid JSON reply: %s", method, exc)
            return RpcResponse(
                request_id=msg_id, method=method,
                error=ProtocolError(f"Invalid JSON: {exc}"),
            )

        if not isinstance(msg, dict) or "result" not in msg:
            err = msg.get("error") if isinstance(msg, dict) else msg
            if isinstance(err, dict):
                err = err.get("message", err)
            logger.warning("JSON-RPC %s returned no result: %s", method, err)
            return RpcResponse(
                request_id=msg_id, method=method,
                error=ProtocolError(f"{method}: {err}"),
                raw=msg if isinstance(msg, dict) else None,
            )

        return RpcResponse(
            request_id=msg_id, method=method, result=msg["result"], raw=msg,
        )

    def send_nowait(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> threading.Thread:
        """Fire-and-forget: send on a daemon thread, log failures only.

        Returns the worker thread so tests can ``join()`` it.
        """
        worker = threading.Thread(
            target=self._send_logged,
            args=(method, params),
            name=f"rpc-{method}",
            daemon=True,
        )
        worker.start()
        return worker

    def _send_logged(
        self, method: str, params: dict[str, Any] | None,
    ) -> None:
        try:
            response = self.send(method, params)
            if not response.ok:
                logger.warning(
                    "Fire-and-forget %s failed: %s", method, response.error,
                )
        except Exception as exc:  # noqa: BLE001
            logger.error("Fire-and-forget %s error: %s", method, exc)

    # ------------------------------------------------------------------
    # System
    # ------------------------------------------------------------------

    def get_robot_state(self) -> RpcResponse:
        return self.send("get_robot_state")

    def start_sys(self) -> RpcResponse:
        """Start the arm (same as the pendant's *start* button)."""
        return self.send("start_sys")

    def stop_sys(self) -> RpcResponse:
        """Stop the arm (same as the pendant's *stop* button)."""
        return self.send("stop_sys")

    def powerdown(self) -> RpcResponse:
        return self.send("powerdown")

    # ------------------------------------------------------------------
    # Motion
    # ------------------------------------------------------------------

    def move_joint(
        self,
        joints_deg: Sequence[float],
        params: MotionParameters,
    ) -> RpcResponse:
        """Joint-space move to *joints_deg* (degrees)."""
        return self.send(
            "move_joint",
            {
                "pose": {
                    "kind": JOINT_POSE_KIND,
                    "joint": {"joint": joints_to_wire(joints_deg)},
                },
                "param": params.to_wire(),
            },
        )

    def stop_move(self) -> RpcResponse:
        """Abort the current motion and flush the controller queue."""
        return self.send("stop_move")

    def get_kin_data(self) -> RpcResponse:
        return self.send("get_kin_data")

    def read_joint_pose(self, limit: float | None = None) -> list[float]:
        """Return actual joint angles in degrees.

        Raises
        ------
        LebaiError
            ``TransportError`` or ``ProtocolError`` from the query.
        """
        return decode_joint_pose(self.get_kin_data(), limit)

    # ------------------------------------------------------------------
    # Gripper / IO
    # ------------------------------------------------------------------

    def init_claw(self) -> RpcResponse:
        """Calibrate the gripper stroke (one open/close cycle)."""
        return self.send("init_claw")

    def set_claw(self, command: GripperCommand) -> RpcResponse:
        return self.send("set_claw", command.to_wire())

    def set_claw_nowait(self, command: GripperCommand) -> threading.Thread:
        return self.send_nowait("set_claw", command.to_wire())

    def set_do(self, device: str, pin: int, value: int) -> RpcResponse:
        """Set digital output *pin* on *device* (``FLANGE``/``ROBOT``/``EXTRA``)."""
        return self.send(
            "set_do",
            {"device": device.upper(), "pin": int(pin), "value": int(value)},
        )

    # ------------------------------------------------------------------
    # Idle polling
    # ------------------------------------------------------------------

    def is_idle(self) -> bool:
        """``True`` when the controller reports no queued or running motion."""
        return decode_robot_state(self.get_robot_state()) == IDLE_STATE

    def wait_until_idle(
        self,
        max_wait_ms: int = 30000,
        poll_interval_ms: int = 200,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Poll until the controller is idle.

        Best-effort: on timeout a warning is logged and ``False`` is
        returned so callers can proceed.  Never raises.

        Parameters
        ----------
        cancel : threading.Event | None
            Optional event; when set the wait ends early (``False``).
        """
        logger.debug("Waiting for robot idle (max %d ms)", max_wait_ms)
        interval = poll_interval_ms / 1000.0
        deadline = time.monotonic() + max_wait_ms / 1000.0

        while True:
            if self.is_idle():
                logger.debug("Robot reports IDLE")
                return True

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            if cancel is not None:
                if cancel.wait(min(interval, remaining)):
                    logger.info("Idle wait cancelled")
                    return False
            else:
                time.sleep(min(interval, remaining))

        logger.warning(
            "Robot not idle after %d ms -- proceeding anyway", max_wait_ms,
        )
        return False
