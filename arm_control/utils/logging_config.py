"""Logging setup for the exhibit entrypoints.

One call configures the root logger for both CLI tools and the host
application:
    - Console output on stderr, coloured when attached to a terminal
    - A diagnostic file beside the program, truncated on every start so
      it only ever holds the current session
    - JSON lines instead of text in the file when ``json=True``
    - Context fields (``app``, ``robot``) stamped on every record
    - Worker threads (fire-and-forget sends, teaching run) tagged by name

Public API:
    setup_logging(**asdict(cfg.logging), context={"app": "exhibit"})
    push_context(robot="192.168.0.3:3021")
    pop_context(["robot"])
    install_excepthook()
    shutdown()

Line format:
    Text: 2025-10-28T13:45:12.345Z | INFO     | app=exhibit | [teaching] Step 3/9 ...
    JSON: {"t": "2025-10-28T13:45:12.345Z", "lvl": "INFO", "msg": "...", "app": "exhibit"}

Context lives in a ContextVar, so fields pushed on one thread do not leak
into records logged from another.  Calling setup_logging() again
replaces the handlers it installed earlier.
"""

import contextvars
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from arm_control.utils.fs import ensure_dir


_context_var = contextvars.ContextVar('arm_control_log_context', default={})

# Handlers installed by setup_logging(); removed on reconfiguration
_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[1;31m',
}
_RESET = '\033[0m'


def _utc_stamp(created: float) -> str:
    ts = datetime.fromtimestamp(created, tz=timezone.utc)
    return ts.strftime('%Y-%m-%dT%H:%M:%S.') + f"{ts.microsecond // 1000:03d}Z"


class ContextFormatter(logging.Formatter):
    """Render records as text or JSON with the current context fields.

    Parameters
    ----------
    as_json : bool
        Emit one JSON object per line.
    color : bool
        Colour the level name.  Ignored for JSON.
    """

    def __init__(self, as_json: bool = False, color: bool = False):
        super().__init__()
        self.as_json = as_json
        self.color = color and not as_json

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get({})
        if self.as_json:
            return self._json_line(record, context)
        return self._text_line(record, context)

    def _json_line(self, record: logging.LogRecord, context: dict) -> str:
        entry: Dict[str, Any] = {
            't': _utc_stamp(record.created),
            'lvl': record.levelname,
            'name': record.name,
            'thread': record.threadName,
            'msg': record.getMessage(),
        }
        entry.update(context)
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)

    def _text_line(self, record: logging.LogRecord, context: dict) -> str:
        level = f"{record.levelname:8s}"
        if self.color and record.levelname in _LEVEL_COLORS:
            level = f"{_LEVEL_COLORS[record.levelname]}{level}{_RESET}"

        fields = [_utc_stamp(record.created), level]
        if context:
            fields.append(' '.join(f"{k}={v}" for k, v in context.items()))

        message = record.getMessage()
        if record.threadName != threading.main_thread().name:
            message = f"[{record.threadName}] {message}"
        fields.append(message)

        line = ' | '.join(fields)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    fresh: bool = True,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    capture_warnings: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        Root level name ("DEBUG" shows every JSON-RPC request/response).
    log_file : str, optional
        Diagnostic file path, already resolved by the caller.  ``None``
        disables file logging.
    fresh : bool
        Truncate *log_file* instead of appending, default True.
    json : bool
        JSON lines in the file, default False.  The console stays text.
    color : bool
        Colour console level names when stderr is a terminal.
    to_stderr : bool
        Attach the console handler, default True.
    capture_warnings : bool
        Route ``warnings.warn`` through the ``py.warnings`` logger.
    context : dict, optional
        Fields pushed before the first record (e.g. ``{"app": "exhibit"}``).

    Returns
    -------
    dict
        ``{"handlers": [...], "log_file": path or None}``
    """
    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    root.setLevel(getattr(logging, log_level.upper()))

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(
            ContextFormatter(color=color and sys.stderr.isatty())
        )
        _installed.append(console)

    path = None
    if log_file:
        path = Path(log_file)
        ensure_dir(path.parent)
        file_handler = logging.FileHandler(
            path, mode="w" if fresh else "a", encoding="utf-8",
        )
        file_handler.setFormatter(ContextFormatter(as_json=json))
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)

    logging.captureWarnings(capture_warnings)

    return {'handlers': list(_installed), 'log_file': path}


def push_context(**fields: Any) -> None:
    """Stamp *fields* on every later record from this context.

    Examples
    --------
    >>> push_context(robot="192.168.0.3:3021")
    >>> logger.info("Connected")  # "... | robot=192.168.0.3:3021 | Connected"
    """
    _context_var.set({**_context_var.get({}), **fields})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Drop *keys* from the context, or all fields when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    remaining = {k: v for k, v in _context_var.get({}).items() if k not in keys}
    _context_var.set(remaining)


def install_excepthook() -> None:
    """Log uncaught exceptions (main and worker threads) at CRITICAL."""
    log = logging.getLogger(__name__)

    def _main_hook(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        log.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))

    def _thread_hook(args):
        if args.exc_type is SystemExit:
            return
        name = args.thread.name if args.thread else "?"
        log.critical(
            "Uncaught exception in thread %s", name,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    sys.excepthook = _main_hook
    threading.excepthook = _thread_hook


def shutdown() -> None:
    """Flush and close every handler; call at the end of ``main()``."""
    logging.shutdown()
