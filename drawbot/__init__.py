"""
Drawbot Package.

Device side of the pen plotter: loads the YAML configuration, turns ordered
polylines into bracketed G-code programs, and streams them to the plotter
over a persistent TCP connection with acknowledgement tracking.

Subpackages:
    configs: Configuration loading and validation
    job_ir: Intermediate representation for plotter operations
    gcode: Polylines → Job IR → wire text
    hardware: Robot link, session controller, observer events
    scripts: Command-line entrypoints
"""

__all__ = ["configs", "job_ir", "gcode", "hardware"]
