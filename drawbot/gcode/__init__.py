"""
G-code encoding module.

Converts ordered device-space polylines into bracketed Job IR programs and
renders them as the plotter's line-based wire format.
"""

from drawbot.gcode.encoder import GCodeError, GcodeEncoder, format_operation, parse_command

__all__ = ["GCodeError", "GcodeEncoder", "format_operation", "parse_command"]
