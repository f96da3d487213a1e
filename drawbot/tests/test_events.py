"""Tests for the session observer helpers.

Validates progress snapshots, observer dispatch and the logging observer
used by the command-line tools.
"""

from __future__ import annotations

import logging

import pytest

from drawbot.hardware.events import LoggingObserver, Progress, SessionObserver, notify


class TestProgress:
    def test_percent_rounded(self) -> None:
        p = Progress.of(1, 3)
        assert (p.current, p.total) == (1, 3)
        assert p.percent == 33.3

    def test_empty_total_is_complete(self) -> None:
        assert Progress.of(0, 0).percent == 100.0


class TestNotify:
    def test_dispatches_to_hook(self) -> None:
        seen: list[str] = []

        class Obs(SessionObserver):
            def on_status(self, message: str) -> None:
                seen.append(message)

        notify(Obs(), "on_status", "Batch 1/2")
        assert seen == ["Batch 1/2"]

    def test_none_observer_ignored(self) -> None:
        notify(None, "on_drawing_complete")

    def test_callback_error_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        class Broken(SessionObserver):
            def on_progress(self, progress: Progress) -> None:
                raise RuntimeError("display gone")

        with caplog.at_level(logging.ERROR, logger="drawbot.hardware.events"):
            notify(Broken(), "on_progress", Progress.of(1, 2))
        assert "on_progress callback error: display gone" in caplog.text


class TestLoggingObserver:
    def test_events_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        obs = LoggingObserver()
        with caplog.at_level(logging.DEBUG, logger="drawbot.hardware.events"):
            obs.on_connection_status(True)
            obs.on_progress(Progress.of(5, 10))
            obs.on_response("OK")
            obs.on_error("Command timeout")
            obs.on_drawing_stopped()
        text = caplog.text
        assert "Connection status: connected" in text
        assert "Progress: 5/10 (50.0%)" in text
        assert "Device: OK" in text
        assert "Drawing error: Command timeout" in text
        assert "Drawing stopped" in text
