#!/usr/bin/env python3
"""
Send G-code Script.

Stream a command file to the plotter, or pass a single manual command
through and print the device's replies.

Usage:
    python -m drawbot.scripts.send_gcode drawing.gcode
    python -m drawbot.scripts.send_gcode drawing.gcode --host 10.0.0.7 --port 8080
    python -m drawbot.scripts.send_gcode --command "G1 X10 Y10"
    python -m drawbot.scripts.send_gcode drawing.gcode --wire-log wire.log

Command files hold one instruction per line (``G1 Z1``, ``G1 Z0``,
``G1 X<f> Y<f>``, ``G1 X0 Y0``); blank lines and ``;`` comments are
ignored.  Every line is validated before anything is sent.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import threading
import time

from drawbot.configs.loader import ConfigError, DrawbotConfig, load_config
from drawbot.gcode.encoder import GCodeError, parse_command
from drawbot.hardware.events import LoggingObserver
from drawbot.hardware.session_controller import SessionController
from linework.utils.fs import read_command_lines
from linework.utils.logging_config import install_excepthook, push_context, setup_logging

logger = logging.getLogger(__name__)


class _RunObserver(LoggingObserver):
    """Logging observer that also records how the run ended."""

    def __init__(self) -> None:
        self.finished = threading.Event()
        self.succeeded = False

    def on_drawing_complete(self) -> None:
        super().on_drawing_complete()
        self.succeeded = True
        self.finished.set()

    def on_drawing_stopped(self) -> None:
        super().on_drawing_stopped()
        self.finished.set()


def apply_overrides(
    config: DrawbotConfig, host: str | None, port: int | None,
) -> DrawbotConfig:
    """Replace the configured device address with CLI values."""
    conn = config.connection
    if host:
        conn = dataclasses.replace(conn, host=host)
    if port:
        conn = dataclasses.replace(conn, port=port)
    return dataclasses.replace(config, connection=conn)


def stream_program(config: DrawbotConfig, lines: list[str]) -> int:
    """Connect, stream ``lines`` and wait for the outcome.

    Returns
    -------
    int
        Process exit code: 0 on ``drawing complete``, 1 otherwise.
    """
    observer = _RunObserver()
    controller = SessionController(config, observer=observer)
    if not controller.connect():
        return 1

    try:
        if not controller.start_drawing(lines):
            return 1
        while not observer.finished.wait(0.5):
            pass
        controller.wait()
    except KeyboardInterrupt:
        logger.warning("Interrupted, stopping drawing")
        controller.stop_drawing()
        controller.wait(timeout=config.connection.command_timeout_s + 1.0)
    finally:
        controller.disconnect()

    return 0 if observer.succeeded else 1


def send_manual(config: DrawbotConfig, line: str, listen_s: float) -> int:
    """Send one command and log replies for ``listen_s`` seconds."""
    controller = SessionController(config, observer=LoggingObserver())
    if not controller.connect():
        return 1
    try:
        if not controller.send_command(line):
            return 1
        time.sleep(listen_s)
    finally:
        controller.disconnect()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Stream G-code to the plotter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Configuration file path",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "file",
        nargs="?",
        help="Command file to stream",
    )
    source.add_argument(
        "--command",
        type=str,
        help="Single manual command to send",
    )
    parser.add_argument("--host", type=str, help="Override device address")
    parser.add_argument("--port", type=int, help="Override device port")
    parser.add_argument(
        "--listen",
        type=float,
        default=2.0,
        help="Seconds to print replies after a manual command",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Override configured log level",
    )
    parser.add_argument(
        "--wire-log",
        type=str,
        help="Write every line exchanged with the plotter to this file",
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error loading config: {e}")
        sys.exit(1)

    log_kwargs = config.logging.as_kwargs()
    if args.log_level:
        log_kwargs["log_level"] = args.log_level
    if args.wire_log:
        log_kwargs["wire_log"] = args.wire_log
    setup_logging(**log_kwargs, context={"app": "send_gcode"})
    install_excepthook()

    config = apply_overrides(config, args.host, args.port)
    push_context(host=f"{config.connection.host}:{config.connection.port}")

    if args.command:
        sys.exit(send_manual(config, args.command, args.listen))

    try:
        lines = read_command_lines(args.file)
        for number, line in enumerate(lines, start=1):
            parse_command(line)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except GCodeError as e:
        print(f"Error in {args.file}, command {number}: {e}")
        sys.exit(1)

    print(f"Streaming {len(lines)} commands from {args.file}")
    sys.exit(stream_program(config, lines))


if __name__ == "__main__":
    main()
