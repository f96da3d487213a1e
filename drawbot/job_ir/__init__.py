"""
Job Intermediate Representation module.

Defines the plotter's motion vocabulary as immutable dataclasses. This is
the contract between ordered polylines and wire-format G-code.

All coordinates are absolute device units inside the work envelope.
"""

from drawbot.job_ir.operations import (
    Home,
    MoveTo,
    Operation,
    PenDown,
    PenUp,
    Program,
    Stroke,
    check_program,
    create_stroke,
)

__all__ = [
    "Operation",
    "PenUp",
    "PenDown",
    "Home",
    "MoveTo",
    "Stroke",
    "Program",
    "create_stroke",
    "check_program",
]
