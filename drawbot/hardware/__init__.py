"""
Hardware communication module.

Provides the plotter's TCP line-protocol link (sequential and batch
delivery), the session controller that drives drawings on a worker thread,
and the observer interface used to report progress.
"""

from drawbot.hardware.events import LoggingObserver, Progress, SessionObserver
from drawbot.hardware.robot_link import (
    BatchTimeout,
    CommandTimeout,
    LinkConnectionError,
    LinkState,
    ProtocolError,
    RobotLink,
    RobotLinkError,
    Session,
)
from drawbot.hardware.session_controller import SessionController

__all__ = [
    "BatchTimeout",
    "CommandTimeout",
    "LinkConnectionError",
    "LinkState",
    "LoggingObserver",
    "Progress",
    "ProtocolError",
    "RobotLink",
    "RobotLinkError",
    "Session",
    "SessionController",
    "SessionObserver",
]
