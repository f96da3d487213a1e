"""Session controller -- drives a drawing over the robot link.

Receives a finished command sequence, picks the delivery mode and runs it
on a worker thread while the caller stays responsive:

Sequential
    ``len(commands) <= streaming.batch_threshold``: one command per ``OK``.

Batch
    Above the threshold: ``streaming.chunk_size`` commands per
    ``BATCH_START`` / ``BATCH_END`` window with completion polling.

Fault handling:
    - Protocol fault (bad token, timeout): ``on_error(message)`` then
      ``on_drawing_stopped()``; the connection stays up.
    - Transport fault: the link already emitted
      ``on_connection_status(False)``; the controller adds
      ``on_drawing_stopped()``.
    - Every path clears the drawing flag, so the next start is never
      blocked by stale state.  Nothing is retried automatically.

A stop request clears the flag and the queued sequence immediately; a
device wait already in flight runs out on its own timeout.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any

from drawbot.configs.loader import DrawbotConfig
from drawbot.hardware.events import Progress, SessionObserver, notify
from drawbot.hardware.robot_link import (
    LinkConnectionError,
    LinkState,
    RobotLink,
    RobotLinkError,
)
from linework.utils.logging_config import context_thread_target

logger = logging.getLogger(__name__)


class SessionController:
    """Connect, start, stop and monitor drawings.

    Parameters
    ----------
    config : DrawbotConfig
        Validated configuration (connection + streaming sections used).
    observer : SessionObserver | None
        Event sink; a no-op observer is used when omitted.
    link : RobotLink | None
        Pre-built link (tests); built from ``config.connection`` otherwise.
    """

    def __init__(
        self,
        config: DrawbotConfig,
        observer: SessionObserver | None = None,
        link: RobotLink | None = None,
    ) -> None:
        self._cfg = config
        self.observer = observer or SessionObserver()
        if link is None:
            link = RobotLink.from_config(config.connection, observer=self.observer)
        elif link.observer is None:
            link.observer = self.observer
        self.link = link

        self._lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._stop_requested = threading.Event()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_drawing(self) -> bool:
        return self.link.session.drawing

    def status(self) -> dict[str, Any]:
        """Snapshot for UIs and the CLI."""
        session = self.link.session
        return {
            "state": self.link.state.name.lower(),
            "connected": self.link.is_connected,
            "drawing": session.drawing,
            "current": session.current_index,
            "total": session.total,
        }

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """Connect the link; refused unless it is disconnected.

        Transport failures are reported through
        ``on_connection_status(False)`` and return ``False``.
        """
        if self.link.state is not LinkState.DISCONNECTED:
            logger.warning(
                "Connect refused: link is already %s", self.link.state.name.lower(),
            )
            return False
        try:
            self.link.connect()
        except LinkConnectionError as exc:
            logger.error("Connect failed: %s", exc)
            return False
        except RobotLinkError as exc:
            logger.warning("Connect refused: %s", exc)
            return False
        return True

    def disconnect(self) -> None:
        self.link.disconnect()

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def start_drawing(self, commands: Sequence[str]) -> bool:
        """Start delivering ``commands`` on a worker thread.

        Returns
        -------
        bool
            ``False`` when refused: not connected, a drawing already in
            progress, or an empty sequence (also reported via
            ``on_error``).
        """
        commands = list(commands)
        with self._lock:
            if not self.link.is_connected:
                logger.warning("Start refused: not connected")
                notify(self.observer, "on_error", "Robot not connected")
                return False
            if self.link.session.drawing or (
                self._worker is not None and self._worker.is_alive()
            ):
                logger.warning("Start refused: drawing already in progress")
                notify(self.observer, "on_error", "Drawing already in progress")
                return False
            if not commands:
                logger.warning("Start refused: empty command sequence")
                notify(self.observer, "on_error", "No G-code commands to send")
                return False

            streaming = self._cfg.streaming
            batch = len(commands) > streaming.batch_threshold
            logger.info(
                "Starting drawing: %d commands, %s mode",
                len(commands),
                "batch" if batch else "sequential",
            )

            self._stop_requested.clear()
            self.link.session.begin(commands)
            self._worker = threading.Thread(
                target=context_thread_target(self._deliver),
                args=(commands, batch),
                name="drawbot-delivery",
                daemon=True,
            )
            self._worker.start()
        return True

    def stop_drawing(self) -> None:
        """Clear the drawing flag and queued sequence; always emits stopped."""
        with self._lock:
            self._stop_requested.set()
            session = self.link.session
            logger.info(
                "Stopping drawing at %d/%d", session.current_index, session.total,
            )
            session.stop()
        notify(self.observer, "on_drawing_stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Join the delivery worker; ``True`` once it has finished."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _deliver(self, commands: list[str], batch: bool) -> None:
        streaming = self._cfg.streaming
        try:
            if batch:
                done = self.link.stream_batch(
                    commands,
                    chunk_size=streaming.chunk_size,
                    completion_timeout=streaming.completion_timeout_s,
                    poll_interval=streaming.poll_interval_s,
                    on_progress=self._on_progress,
                    on_status=self._on_status,
                )
            else:
                done = self.link.stream_sequential(
                    commands, on_progress=self._on_progress,
                )

            if done and not self._stop_requested.is_set():
                logger.info("Drawing complete")
                notify(self.observer, "on_drawing_complete")
        except LinkConnectionError as exc:
            if self._stop_requested.is_set():
                logger.info("Link lost after stop: %s", exc)
            else:
                logger.error("Drawing aborted, link lost: %s", exc)
                notify(self.observer, "on_drawing_stopped")
        except RobotLinkError as exc:
            if self._stop_requested.is_set():
                logger.info("In-flight request ended after stop: %s", exc)
            else:
                logger.error("Drawing aborted: %s", exc)
                notify(self.observer, "on_error", str(exc))
                notify(self.observer, "on_drawing_stopped")
        finally:
            self.link.session.finish()

    # ------------------------------------------------------------------
    # Manual commands
    # ------------------------------------------------------------------

    def send_command(self, line: str) -> bool:
        """Pass one manual command through to the device.

        Refused while a drawing is in progress.  The reply arrives as an
        ``on_response`` event.
        """
        line = line.strip()
        if not line:
            return False
        if not self.link.is_connected:
            notify(self.observer, "on_error", "Robot not connected")
            return False
        if self.link.session.drawing:
            logger.warning("Manual command refused during drawing: %s", line)
            return False
        try:
            self.link.send_line(line)
        except LinkConnectionError as exc:
            logger.error("Manual command failed: %s", exc)
            return False
        logger.info("Sent manual command: %s", line)
        return True

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _on_progress(self, progress: Progress) -> None:
        notify(self.observer, "on_progress", progress)

    def _on_status(self, message: str) -> None:
        notify(self.observer, "on_status", message)
