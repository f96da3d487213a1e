"""Logging setup shared by the command-line tools and the library.

Library modules only ever call ``logging.getLogger(__name__)``; the
entrypoints call ``setup_logging`` once, fed from the ``logging`` section
of ``drawbot.yaml``.

What ``setup_logging`` installs on the root logger:
    - stderr handler, optional ANSI level colors
    - optional file handler (plain, size- or time-rotated), human or JSON lines
    - optional wire trace: every line sent to / received from the plotter
      (the ``-> ...`` / ``<- ...`` debug records of the robot link) in a file
      of its own, independent of the console level

Context fields (``app``, ``host``, ``image`` ...) set with ``push_context``
are appended to every record.  They live in a ContextVar, so threads start
without them; wrap a thread target with ``context_thread_target`` to carry
the caller's fields into the delivery worker or the link reader.

Line formats:
    human  2025-10-28T13:45:12.345Z | INFO     | app=send_gcode | drawbot.hardware.robot_link: Connected to robot at 192.168.4.1:8080
    json   {"t": "2025-10-28T13:45:12.345+00:00", "lvl": "INFO", "name": "...", "thread": "MainThread", "msg": "...", "app": "send_gcode"}

Calling ``setup_logging`` again replaces the handlers it installed before;
handlers added by anyone else are left alone.
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

WIRE_LOGGER = "drawbot.hardware.robot_link"
WIRE_PREFIXES = ("-> ", "<- ")

LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
RESET = '\033[0m'

_log_context: contextvars.ContextVar = contextvars.ContextVar('drawbot_log_context', default={})

# (logger, handler) pairs installed by the last setup_logging() call
_installed: List[tuple] = []


class ContextFormatter(logging.Formatter):
    """Human or JSON line formatter that appends the current context fields."""

    def __init__(self, fmt_mode: str = "human", use_color: bool = True, tz: str = "UTC"):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown format mode: {fmt_mode}")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()
        self.tz = tz

    def _timestamp(self, record: logging.LogRecord) -> datetime:
        if self.tz == "UTC":
            return datetime.fromtimestamp(record.created, tz=timezone.utc)
        return datetime.fromtimestamp(record.created)

    def format(self, record: logging.LogRecord) -> str:
        context = current_context()
        ts = self._timestamp(record)

        if self.fmt_mode == "json":
            payload = {
                't': ts.isoformat(),
                'lvl': record.levelname,
                'name': record.name,
                'pid': os.getpid(),
                'thread': record.threadName,
                'msg': record.getMessage(),
            }
            payload.update(context)
            if record.exc_info:
                payload['exc'] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{LEVEL_COLORS.get(record.levelname, '')}{level}{RESET}"

        parts = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', level]
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
        parts.append(f"{record.name}: {record.getMessage()}")
        line = ' | '.join(parts)

        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


class WireTraceFilter(logging.Filter):
    """Pass only the robot link's raw traffic records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return isinstance(record.msg, str) and record.msg.startswith(WIRE_PREFIXES)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    wire_log: Optional[str] = None,
    tz: str = "UTC",
    capture_warnings: bool = True,
    quiet_libs: Optional[List[str]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure logging for an entrypoint.

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"; applies to the
        console and ``log_file`` handlers
    log_file : str, optional
        Log file path; parent directories are created
    json : bool
        Write ``log_file`` as JSON lines instead of human-readable text
    color : bool
        ANSI colors on the console (only when stderr is a TTY)
    to_stderr : bool
        Install the console handler
    rotate : dict, optional
        Rotation for ``log_file``:
        ``{"mode": "size", "max_bytes": 1_000_000, "backup_count": 3}`` or
        ``{"mode": "time", "when": "D", "interval": 1, "backup_count": 7}``
    wire_log : str, optional
        File receiving every protocol line sent/received by the robot
        link, at DEBUG, whatever ``log_level`` is
    tz : str
        "UTC" (default) or "local" timestamps
    capture_warnings : bool
        Route ``warnings.warn`` into the log
    quiet_libs : list[str], optional
        Logger names capped at WARNING
    context : dict, optional
        Context fields pushed before returning, e.g. ``{"app": "send_gcode"}``

    Returns
    -------
    list[logging.Handler]
        Handlers installed by this call

    Raises
    ------
    ValueError
        Unknown ``log_level`` or rotation mode
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    _remove_installed()

    root = logging.getLogger()
    root.setLevel(level)

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(ContextFormatter("human", color, tz))
        _install(root, console)

    if log_file:
        file_handler = _create_file_handler(log_file, rotate, "json" if json else "human", tz)
        file_handler.setLevel(level)
        _install(root, file_handler)

    wire_logger = logging.getLogger(WIRE_LOGGER)
    if wire_log:
        wire_handler = _create_file_handler(wire_log, None, "human", tz)
        wire_handler.setLevel(logging.DEBUG)
        wire_handler.addFilter(WireTraceFilter())
        wire_logger.setLevel(logging.DEBUG)
        _install(wire_logger, wire_handler)
    else:
        wire_logger.setLevel(logging.NOTSET)

    for lib in quiet_libs or ():
        logging.getLogger(lib).setLevel(logging.WARNING)

    if capture_warnings:
        route_warnings()

    if context:
        push_context(**context)

    return [handler for _, handler in _installed]


def _install(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.addHandler(handler)
    _installed.append((logger, handler))


def _remove_installed() -> None:
    while _installed:
        logger, handler = _installed.pop()
        logger.removeHandler(handler)
        handler.close()


def _create_file_handler(
    log_file: str,
    rotate: Optional[Dict[str, Any]],
    fmt_mode: str,
    tz: str
) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    mode = (rotate or {}).get('mode')
    if mode is None:
        handler: logging.Handler = logging.FileHandler(log_file, encoding='utf-8')
    elif mode == 'size':
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=rotate.get('max_bytes', 1_000_000),
            backupCount=rotate.get('backup_count', 3),
            encoding='utf-8',
        )
    elif mode == 'time':
        handler = logging.handlers.TimedRotatingFileHandler(
            log_file,
            when=rotate.get('when', 'D'),
            interval=rotate.get('interval', 1),
            backupCount=rotate.get('backup_count', 7),
            encoding='utf-8',
        )
    else:
        raise ValueError(f"Unknown rotation mode: {mode}. Use 'size' or 'time'.")

    handler.setFormatter(ContextFormatter(fmt_mode, use_color=False, tz=tz))
    return handler


def push_context(**fields: Any) -> None:
    """Add fields to every later record in this context.

    >>> push_context(app="send_gcode", host="192.168.4.1")
    """
    _log_context.set({**_log_context.get(), **fields})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Drop the named fields; ``None`` drops them all."""
    if keys is None:
        _log_context.set({})
        return
    _log_context.set({k: v for k, v in _log_context.get().items() if k not in keys})


def current_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def context_thread_target(target: Callable[..., Any]) -> Callable[..., Any]:
    """Bind ``target`` to a snapshot of the caller's context.

    Use as ``threading.Thread(target=context_thread_target(fn), ...)`` so
    records emitted on the thread keep the caller's fields.
    """
    snapshot = contextvars.copy_context()

    def run(*args: Any, **kwargs: Any) -> Any:
        return snapshot.run(target, *args, **kwargs)

    return run


def install_excepthook() -> None:
    """Log uncaught exceptions (Ctrl+C excepted) as CRITICAL before exit."""
    def log_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger(__name__).critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
        )

    sys.excepthook = log_exception


def route_warnings() -> None:
    logging.captureWarnings(True)
    logging.getLogger('py.warnings').setLevel(logging.WARNING)
