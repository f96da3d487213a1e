"""Plotter link over a persistent TCP connection.

Handles:
    - Socket connection with newline-terminated text framing
    - Request/response correlation by expected response token
    - Background reader thread forwarding every device line
    - Sequential delivery (one command, one ``OK``)
    - Batch delivery (``BATCH_START`` / ``BATCH_COMMAND:`` / ``BATCH_END``
      windows, then ``BATCH_STATUS`` polling until ``BATCH_COMPLETE``)

Link state machine::

    DISCONNECTED -> CONNECTING -> CONNECTED <-> STREAMING
          ^______________|___________|______________|   (close / error)

Any transport error or close from any state drops straight to
``DISCONNECTED``: the session is reset, a pending request fails with
``LinkConnectionError`` and the observer gets ``on_connection_status(False)``.

Only one request is ever outstanding.  ``request()`` holds a lock for the
whole write → wait → detach cycle, so commands are delivered and
acknowledged strictly in program order.

All timeouts come from ``DrawbotConfig.connection`` and
``DrawbotConfig.streaming``.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto

from drawbot.configs.loader import ConnectionConfig
from drawbot.hardware.events import Progress, SessionObserver, notify
from linework.utils.logging_config import context_thread_target

logger = logging.getLogger(__name__)

# Device response tokens
OK = "OK"
BATCH_MODE_READY = "BATCH_MODE_READY"
CMD_ADDED = "CMD_ADDED"
BATCH_PROCESSING = "BATCH_PROCESSING"
BATCH_COMPLETE = "BATCH_COMPLETE"
STATUS_PREFIX = "STATUS:"
ERROR = "ERROR"

RESPONSE_TOKENS: tuple[str, ...] = (
    OK,
    BATCH_MODE_READY,
    CMD_ADDED,
    BATCH_PROCESSING,
    BATCH_COMPLETE,
    STATUS_PREFIX,
    ERROR,
)

# Batch framing
BATCH_START = "BATCH_START"
BATCH_COMMAND_PREFIX = "BATCH_COMMAND:"
BATCH_END = "BATCH_END"
BATCH_STATUS = "BATCH_STATUS"

_RECV_SIZE = 4096
# Longest inbound line kept; longer ones are discarded up to their newline
MAX_LINE_BYTES = 4096
_READ_POLL_S = 0.1


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RobotLinkError(Exception):
    """Base exception for all robot link errors."""

    pass


class LinkConnectionError(RobotLinkError):
    """Transport fault: connect failure, socket error or closed link."""

    pass


class ProtocolError(RobotLinkError):
    """The device answered with something other than the expected token."""

    pass


class CommandTimeout(ProtocolError):
    """No matching response arrived within the per-command timeout."""

    pass


class BatchTimeout(ProtocolError):
    """A batch did not report ``BATCH_COMPLETE`` in time."""

    pass


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class LinkState(Enum):
    """Connection lifecycle."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    STREAMING = auto()


@dataclass
class Session:
    """Per-connection state owned by a ``RobotLink``.

    ``current_index`` counts acknowledged commands; it never exceeds
    ``len(commands)``.
    """

    connection: socket.socket | None = None
    commands: list[str] = field(default_factory=list)
    current_index: int = 0
    drawing: bool = False
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False,
    )

    @property
    def total(self) -> int:
        return len(self.commands)

    def reset(self) -> None:
        """Drop everything, connection handle included."""
        with self._lock:
            self.connection = None
            self.commands = []
            self.current_index = 0
            self.drawing = False

    def begin(self, commands: Sequence[str]) -> None:
        with self._lock:
            self.commands = list(commands)
            self.current_index = 0
            self.drawing = True

    def advance(self) -> int:
        """Record one acknowledgement; returns the new index."""
        with self._lock:
            if self.current_index < len(self.commands):
                self.current_index += 1
            return self.current_index

    def stop(self) -> None:
        """Clear the drawing flag and the queued sequence."""
        with self._lock:
            self.drawing = False
            self.commands = []
            self.current_index = 0

    def finish(self) -> None:
        with self._lock:
            self.drawing = False


class PendingRequest:
    """One in-flight request waiting for a line containing a token.

    Resolves or fails exactly once; later calls are ignored.
    """

    def __init__(self, command: str, expect: Sequence[str]) -> None:
        self.command = command
        self.expect = tuple(expect)
        self.response: str | None = None
        self.error: Exception | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()

    def matches(self, line: str) -> bool:
        return any(token in line for token in self.expect)

    def resolve(self, line: str) -> None:
        with self._lock:
            if self._done.is_set():
                return
            self.response = line
            self._done.set()

    def fail(self, error: Exception) -> None:
        with self._lock:
            if self._done.is_set():
                return
            self.error = error
            self._done.set()

    def wait(self, timeout: float) -> bool:
        return self._done.wait(timeout)


# ---------------------------------------------------------------------------
# Link
# ---------------------------------------------------------------------------


class RobotLink:
    """Line-protocol TCP client for the plotter.

    Parameters
    ----------
    host : str
        Device address.
    port : int
        Device TCP port.
    connect_timeout : float
        Seconds allowed for the TCP handshake.
    command_timeout : float
        Default per-request timeout in seconds.
    connect_attempts : int
        Connection tries before ``connect()`` gives up.
    connect_interval : float
        Seconds between connection tries.
    observer : SessionObserver | None
        Receives connection, response, progress and status events.

    Examples
    --------
    >>> with RobotLink("192.168.4.1", 8080) as link:
    ...     link.request("G1 Z1", expect=(OK,))
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        connect_timeout: float = 5.0,
        command_timeout: float = 5.0,
        connect_attempts: int = 1,
        connect_interval: float = 1.0,
        observer: SessionObserver | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.connect_attempts = connect_attempts
        self.connect_interval = connect_interval
        self.observer = observer

        self.session = Session()
        self._state = LinkState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._request_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: PendingRequest | None = None

        self._reader: threading.Thread | None = None
        self._reader_stop = threading.Event()

    @classmethod
    def from_config(
        cls,
        cfg: ConnectionConfig,
        observer: SessionObserver | None = None,
    ) -> RobotLink:
        return cls(
            cfg.host,
            cfg.port,
            connect_timeout=cfg.connect_timeout_s,
            command_timeout=cfg.command_timeout_s,
            connect_attempts=cfg.connect_attempts,
            connect_interval=cfg.connect_interval_s,
            observer=observer,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """``True`` while the socket is open (connected or streaming)."""
        return self._state in (LinkState.CONNECTED, LinkState.STREAMING)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the TCP connection and start the reader thread.

        Raises
        ------
        RobotLinkError
            If the link is not ``DISCONNECTED``.
        LinkConnectionError
            If the socket cannot be opened after all attempts.
        """
        with self._state_lock:
            if self._state is not LinkState.DISCONNECTED:
                raise RobotLinkError(
                    f"Cannot connect: link is {self._state.name.lower()}"
                )
            self._state = LinkState.CONNECTING

        sock: socket.socket | None = None
        for attempt in range(1, self.connect_attempts + 1):
            try:
                logger.info(
                    "Connecting to robot at %s:%d (attempt %d/%d)",
                    self.host,
                    self.port,
                    attempt,
                    self.connect_attempts,
                )
                sock = socket.create_connection(
                    (self.host, self.port), timeout=self.connect_timeout,
                )
                break
            except OSError as exc:
                logger.warning("Connection attempt %d failed: %s", attempt, exc)
                if attempt < self.connect_attempts:
                    time.sleep(self.connect_interval)

        if sock is None:
            with self._state_lock:
                self._state = LinkState.DISCONNECTED
            notify(self.observer, "on_connection_status", False)
            raise LinkConnectionError(
                f"Failed to connect to robot at {self.host}:{self.port} "
                f"after {self.connect_attempts} attempts"
            )

        sock.settimeout(_READ_POLL_S)
        stop = threading.Event()
        with self._state_lock:
            self.session.reset()
            self.session.connection = sock
            self._state = LinkState.CONNECTED
            self._reader_stop = stop
            self._reader = threading.Thread(
                target=context_thread_target(self._reader_loop),
                args=(sock, stop),
                name="robot-link-reader",
                daemon=True,
            )
            self._reader.start()

        logger.info("Connected to robot at %s:%d", self.host, self.port)
        notify(self.observer, "on_connection_status", True)

    def disconnect(self) -> None:
        """Close the connection (no-op when already disconnected)."""
        self._reader_stop.set()
        self._link_down("Disconnected by request")
        reader = self._reader
        if (
            reader is not None
            and reader.is_alive()
            and reader is not threading.current_thread()
        ):
            reader.join(timeout=2.0)

    def _link_down(self, reason: str) -> None:
        """Force ``DISCONNECTED``; idempotent."""
        with self._state_lock:
            sock = self.session.connection
            if self._state is LinkState.DISCONNECTED and sock is None:
                return
            self.session.reset()
            self._state = LinkState.DISCONNECTED
            pending = self._pending
            self._pending = None
            self._reader_stop.set()

        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

        logger.warning("Robot link down: %s", reason)
        notify(self.observer, "on_connection_status", False)

        if pending is not None:
            pending.fail(LinkConnectionError(reason))

    # ------------------------------------------------------------------
    # Low-level transport
    # ------------------------------------------------------------------

    def _reader_loop(self, sock: socket.socket, stop: threading.Event) -> None:
        """Background thread: split inbound bytes into lines and dispatch."""
        buffer = b""
        discarding = False
        while not stop.is_set():
            try:
                chunk = sock.recv(_RECV_SIZE)
            except socket.timeout:
                continue
            except OSError as exc:
                if not stop.is_set():
                    self._link_down(f"Socket error: {exc}")
                break

            if not chunk:
                if not stop.is_set():
                    self._link_down("Connection closed by robot")
                break

            buffer += chunk
            while b"\n" in buffer:
                raw, buffer = buffer.split(b"\n", 1)
                if discarding or len(raw) > MAX_LINE_BYTES:
                    if not discarding:
                        logger.warning(
                            "Discarding inbound line longer than %d bytes",
                            MAX_LINE_BYTES,
                        )
                    discarding = False
                    continue
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    self._dispatch_line(line)
            if len(buffer) > MAX_LINE_BYTES:
                logger.warning(
                    "Discarding inbound line longer than %d bytes", MAX_LINE_BYTES,
                )
                buffer = b""
                discarding = True

    def _dispatch_line(self, line: str) -> None:
        logger.debug("<- %s", line)
        with self._state_lock:
            pending = self._pending
        if pending is not None and pending.matches(line):
            pending.resolve(line)
        notify(self.observer, "on_response", line)

    def _write(self, line: str) -> None:
        with self._state_lock:
            sock = self.session.connection
        if sock is None:
            raise LinkConnectionError("Not connected to robot")

        logger.debug("-> %s", line)
        try:
            with self._write_lock:
                sock.sendall(f"{line}\n".encode("utf-8"))
        except OSError as exc:
            self._link_down(f"Write failed: {exc}")
            raise LinkConnectionError(f"Write failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Request / response
    # ------------------------------------------------------------------

    def request(
        self,
        line: str,
        *,
        expect: Sequence[str] = RESPONSE_TOKENS,
        timeout: float | None = None,
    ) -> str:
        """Send one line and block until a line containing a token arrives.

        Parameters
        ----------
        line : str
            Command text without newline.
        expect : sequence of str
            Tokens that complete the request.  Inbound lines containing
            none of them are still forwarded to the observer but do not
            resolve the request.
        timeout : float | None
            Override of ``command_timeout``.

        Returns
        -------
        str
            The first matching device line.

        Raises
        ------
        LinkConnectionError
            If the link is down, or goes down while waiting.
        CommandTimeout
            If nothing matching arrives in time.  The pending entry is
            detached either way.
        """
        timeout = self.command_timeout if timeout is None else timeout
        with self._request_lock:
            pending = PendingRequest(line, expect)
            with self._state_lock:
                if not self.is_connected:
                    raise LinkConnectionError("Not connected to robot")
                self._pending = pending
            try:
                self._write(line)
                if not pending.wait(timeout):
                    raise CommandTimeout(
                        f"Command timeout: no response to {line!r} "
                        f"within {timeout:.1f}s"
                    )
                if pending.error is not None:
                    raise pending.error
                return pending.response  # type: ignore[return-value]
            finally:
                with self._state_lock:
                    if self._pending is pending:
                        self._pending = None

    def send_line(self, line: str) -> None:
        """Write one line without waiting (manual console commands).

        The device's answer arrives as an ``on_response`` event.
        """
        if not self.is_connected:
            raise LinkConnectionError("Not connected to robot")
        self._write(line)

    @staticmethod
    def _expect(response: str, token: str, message: str) -> None:
        if token not in response:
            raise ProtocolError(f"{message} (got {response!r})")

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def _enter_streaming(self) -> None:
        with self._state_lock:
            if self._state is LinkState.DISCONNECTED:
                raise LinkConnectionError("Not connected to robot")
            if self._state is not LinkState.CONNECTED:
                raise RobotLinkError(
                    f"Cannot stream: link is {self._state.name.lower()}"
                )
            self._state = LinkState.STREAMING

    def _keep_streaming(self) -> bool:
        """``False`` once a stop was requested; raises if the link dropped."""
        if not self.is_connected:
            raise LinkConnectionError("Robot link lost during streaming")
        return self.session.drawing

    def _leave_streaming(self) -> None:
        with self._state_lock:
            if self._state is LinkState.STREAMING:
                self._state = LinkState.CONNECTED

    def _acknowledged(
        self, total: int, on_progress: Callable[[Progress], None] | None,
    ) -> None:
        # Late acknowledgements after a stop advance nothing and report nothing
        if not self.session.drawing:
            return
        index = self.session.advance()
        if on_progress is not None:
            on_progress(Progress.of(index, total))

    def stream_sequential(
        self,
        commands: Sequence[str] | None = None,
        on_progress: Callable[[Progress], None] | None = None,
    ) -> bool:
        """Deliver ``commands`` one at a time, each awaiting ``OK``.

        ``commands`` defaults to ``session.commands``.  A stop requested
        before or during delivery returns ``False``, also when nothing
        was sent.

        Returns
        -------
        bool
            ``True`` when every command was acknowledged, ``False`` when
            the session's drawing flag was cleared first.

        Raises
        ------
        ProtocolError
            On a rejected command or a command timeout.
        LinkConnectionError
            If the link drops.
        """
        commands = list(self.session.commands if commands is None else commands)
        total = len(commands)
        self._enter_streaming()
        try:
            for command in commands:
                if not self._keep_streaming():
                    logger.info("Sequential delivery stopped at %d/%d",
                                self.session.current_index, total)
                    return False
                response = self.request(command, expect=(OK, ERROR))
                self._expect(response, OK, f"Robot rejected {command!r}")
                self._acknowledged(total, on_progress)
            return self._keep_streaming()
        finally:
            self._leave_streaming()

    def stream_batch(
        self,
        commands: Sequence[str] | None = None,
        *,
        chunk_size: int = 20,
        completion_timeout: float = 60.0,
        poll_interval: float = 1.0,
        on_progress: Callable[[Progress], None] | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> bool:
        """Deliver ``commands`` in batch windows of ``chunk_size``.

        ``commands`` defaults to ``session.commands``.

        Per chunk: ``BATCH_START`` → ``BATCH_MODE_READY``; every command
        as ``BATCH_COMMAND:<cmd>`` → ``CMD_ADDED``; ``BATCH_END`` →
        ``BATCH_PROCESSING``; then ``BATCH_STATUS`` polls until
        ``BATCH_COMPLETE``.

        Returns
        -------
        bool
            ``True`` when every chunk completed, ``False`` when the
            session's drawing flag was cleared first.

        Raises
        ------
        ProtocolError
            Unexpected response token or command timeout.
        BatchTimeout
            A chunk did not complete within ``completion_timeout``; the
            remaining chunks are not sent.
        LinkConnectionError
            If the link drops.
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

        commands = list(self.session.commands if commands is None else commands)
        total = len(commands)
        chunks = [
            commands[i:i + chunk_size] for i in range(0, total, chunk_size)
        ]

        def status(message: str) -> None:
            logger.info("%s", message)
            if on_status is not None:
                on_status(message)

        if not self._keep_streaming():
            return False
        status(f"Processing {total} commands in {len(chunks)} batches...")
        self._enter_streaming()
        try:
            for number, chunk in enumerate(chunks, start=1):
                if not self._keep_streaming():
                    return False
                status(f"Processing batch {number}/{len(chunks)}...")

                response = self.request(BATCH_START)
                self._expect(response, BATCH_MODE_READY, "Failed to start batch mode")

                for command in chunk:
                    if not self._keep_streaming():
                        return False
                    response = self.request(f"{BATCH_COMMAND_PREFIX}{command}")
                    self._expect(response, CMD_ADDED, f"Robot did not queue {command!r}")
                    self._acknowledged(total, on_progress)

                response = self.request(BATCH_END)
                self._expect(response, BATCH_PROCESSING, "Failed to start batch processing")

                if not self.wait_for_batch_completion(completion_timeout, poll_interval):
                    return False
            return self._keep_streaming()
        finally:
            self._leave_streaming()

    def wait_for_batch_completion(
        self, timeout: float = 60.0, poll_interval: float = 1.0,
    ) -> bool:
        """Poll ``BATCH_STATUS`` every ``poll_interval`` until complete.

        Returns ``False`` if the drawing flag is cleared while waiting.

        Raises
        ------
        BatchTimeout
            After ``timeout`` seconds without ``BATCH_COMPLETE``.
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise BatchTimeout("Batch completion timeout")
            time.sleep(min(poll_interval, remaining))
            if not self._keep_streaming():
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise BatchTimeout("Batch completion timeout")

            try:
                response = self.request(
                    BATCH_STATUS, timeout=min(self.command_timeout, remaining),
                )
            except CommandTimeout as exc:
                if time.monotonic() >= deadline:
                    raise BatchTimeout("Batch completion timeout") from exc
                raise
            if BATCH_COMPLETE in response:
                return True
            logger.debug("Batch still running: %s", response)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> RobotLink:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()
