"""Errors that end a run.

Anything a single acquisition strategy hits is not an error here: the chain
logs it and moves on. Only the failures below abort with a non-zero exit.
"""


class MachineReportError(Exception):
    """Base class for machine-report errors."""


class FatalStartupError(MachineReportError):
    """The OS identity could not be determined or the report could not be written."""
