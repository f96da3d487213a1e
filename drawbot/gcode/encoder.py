"""G-code encoder -- ordered polylines to Job IR and wire text.

The plotter firmware understands four line shapes::

    G1 Z1            pen up
    G1 Z0            pen down
    G1 X<f> Y<f>     absolute linear move, 3 decimals
    G1 X0 Y0         home

Envelope handling:
    Points must already be in device units.  A point outside the work
    envelope ``[0, W] x [0, H]`` is never clamped into it: the stroke is
    cut there (pen lifts) and resumes at the next in-envelope point.
    Values within ``tolerance`` of an edge are snapped onto it, which
    absorbs float noise from scaling.

Every program is bracketed by ``PenUp, Home`` at both ends, even when no
polyline survives the envelope check.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Sequence

from drawbot.configs.loader import EnvelopeConfig
from drawbot.job_ir.operations import (
    Home,
    MoveTo,
    Operation,
    PenDown,
    PenUp,
    Program,
    create_stroke,
)

logger = logging.getLogger(__name__)

PEN_UP_LINE = "G1 Z1"
PEN_DOWN_LINE = "G1 Z0"
HOME_LINE = "G1 X0 Y0"

_MOVE_RE = re.compile(
    r"^G1\s+X(?P<x>[-+]?\d+(?:\.\d*)?)\s+Y(?P<y>[-+]?\d+(?:\.\d*)?)$",
    re.IGNORECASE,
)


class GCodeError(Exception):
    """Raised when an operation or command line cannot be encoded/parsed."""

    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fmt(value: float) -> str:
    """Fixed-point with 3 decimals; never emits ``-0.000``."""
    text = f"{value:.3f}"
    if text == "-0.000":
        return "0.000"
    return text


def format_operation(op: Operation) -> str:
    """Render one IR operation as a wire line (no newline).

    Raises
    ------
    GCodeError
        For operation types the plotter does not support.
    """
    if isinstance(op, PenUp):
        return PEN_UP_LINE
    if isinstance(op, PenDown):
        return PEN_DOWN_LINE
    if isinstance(op, Home):
        return HOME_LINE
    if isinstance(op, MoveTo):
        return f"G1 X{_fmt(op.x)} Y{_fmt(op.y)}"
    raise GCodeError(f"Unsupported operation: {type(op).__name__}")


def parse_command(line: str) -> Operation:
    """Map a wire line back to its IR operation.

    Used to validate command files before they are streamed.

    Raises
    ------
    GCodeError
        If the line is not one of the four supported shapes.
    """
    text = " ".join(line.strip().split()).upper()
    if text == PEN_UP_LINE:
        return PenUp()
    if text == PEN_DOWN_LINE:
        return PenDown()
    if text == HOME_LINE:
        return Home()
    match = _MOVE_RE.match(text)
    if match is None:
        raise GCodeError(f"Unrecognised command line: {line!r}")
    return MoveTo(float(match.group("x")), float(match.group("y")))


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------


class GcodeEncoder:
    """Convert ordered device-space polylines into a bracketed program.

    Parameters
    ----------
    envelope : EnvelopeConfig
        Work envelope W x H in device units.
    tolerance : float
        Distance outside an edge that still counts as inside (snapped).
    """

    def __init__(self, envelope: EnvelopeConfig, tolerance: float = 1e-6) -> None:
        self._width = envelope.width
        self._height = envelope.height
        self._tol = tolerance

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encode(self, polylines: Iterable[Sequence[tuple[float, float]]]) -> Program:
        """Encode polylines into IR operations.

        Parameters
        ----------
        polylines : iterable of point sequences
            Ordered strokes in device units.

        Returns
        -------
        Program
            ``[PenUp, Home, <strokes...>, PenUp, Home]``; each stroke is
            ``PenUp, MoveTo(start), PenDown, MoveTo...``.
        """
        program: Program = [PenUp(), Home()]
        strokes = 0
        cuts = 0

        for polyline in polylines:
            runs = list(self._split_runs(polyline))
            cuts += max(0, len(runs) - 1)
            for run in runs:
                if len(run) < 2:
                    continue
                program.extend(create_stroke(run))
                strokes += 1

        program.extend([PenUp(), Home()])

        if cuts:
            logger.warning(
                "%d stroke(s) cut at the %.1f x %.1f envelope boundary",
                cuts, self._width, self._height,
            )
        logger.debug("Encoded %d strokes into %d commands", strokes, len(program))
        return program

    def encode_lines(
        self, polylines: Iterable[Sequence[tuple[float, float]]],
    ) -> list[str]:
        """Encode polylines straight to wire lines."""
        return [format_operation(op) for op in self.encode(polylines)]

    @staticmethod
    def to_text(lines: Iterable[str]) -> str:
        """Join wire lines into a newline-terminated program text."""
        return "".join(f"{line}\n" for line in lines)

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def _snap(self, value: float, limit: float) -> float | None:
        """Snap ``value`` into ``[0, limit]`` within tolerance, else None."""
        if value < -self._tol or value > limit + self._tol:
            return None
        return min(max(value, 0.0), limit)

    def _split_runs(
        self, polyline: Sequence[tuple[float, float]],
    ) -> Iterator[list[tuple[float, float]]]:
        """Yield maximal runs of consecutive in-envelope points."""
        run: list[tuple[float, float]] = []
        for x, y in polyline:
            sx = self._snap(x, self._width)
            sy = self._snap(y, self._height)
            if sx is None or sy is None:
                if run:
                    yield run
                    run = []
                continue
            run.append((sx, sy))
        if run:
            yield run
