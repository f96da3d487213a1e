"""Observer interface between the link/session and the presentation layer.

The link and the session controller report everything through one
``SessionObserver``:

    on_connection_status(bool)   link up / link down
    on_progress(Progress)        per acknowledged command
    on_response(str)             every raw line from the device
    on_status(str)               human-readable batch status
    on_drawing_complete()
    on_drawing_stopped()
    on_error(str)                protocol fault / refused drawing

Callbacks run on the delivery worker or the link's reader thread.  An
exception raised by a callback is logged and dropped so that it can never
break the protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Progress:
    """Delivery progress snapshot."""

    current: int
    total: int
    percent: float

    @classmethod
    def of(cls, current: int, total: int) -> Progress:
        percent = 100.0 * current / total if total else 100.0
        return cls(current=current, total=total, percent=round(percent, 1))


class SessionObserver:
    """Base observer; every hook is a no-op.  Override what you need."""

    def on_connection_status(self, connected: bool) -> None:
        pass

    def on_progress(self, progress: Progress) -> None:
        pass

    def on_response(self, line: str) -> None:
        pass

    def on_status(self, message: str) -> None:
        pass

    def on_drawing_complete(self) -> None:
        pass

    def on_drawing_stopped(self) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class LoggingObserver(SessionObserver):
    """Observer that writes every event to the log (CLI default)."""

    def on_connection_status(self, connected: bool) -> None:
        logger.info("Connection status: %s", "connected" if connected else "disconnected")

    def on_progress(self, progress: Progress) -> None:
        logger.info(
            "Progress: %d/%d (%.1f%%)",
            progress.current, progress.total, progress.percent,
        )

    def on_response(self, line: str) -> None:
        logger.debug("Device: %s", line)

    def on_status(self, message: str) -> None:
        logger.info("%s", message)

    def on_drawing_complete(self) -> None:
        logger.info("Drawing complete")

    def on_drawing_stopped(self) -> None:
        logger.info("Drawing stopped")

    def on_error(self, message: str) -> None:
        logger.error("Drawing error: %s", message)


def notify(observer: SessionObserver | None, event: str, *args: Any) -> None:
    """Invoke ``observer.<event>(*args)``, logging callback failures."""
    if observer is None:
        return
    try:
        getattr(observer, event)(*args)
    except Exception as exc:  # noqa: BLE001
        logger.error("Observer %s callback error: %s", event, exc)
