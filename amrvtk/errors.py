# -*- coding: utf-8 -*-

"""

Exception types raised by the export pipeline.

Configuration problems (unknown fields, bad units, inconsistent requests) are
raised before any file is written. I/O problems abort the export but leave the
files written so far intact.

"""

from __future__ import annotations

from typing import Optional


class AmrVtkError(Exception):
    """Base class for every error raised by amrvtk."""


class ExportConfigError(AmrVtkError, ValueError):
    """The export request is inconsistent (missing units, no fields, bad weighting...)."""


class UnknownFieldError(AmrVtkError, KeyError):
    """A requested scalar/vector field does not exist in the data table."""

    def __init__(self, name: str, available=None):
        self.name = name
        self.available = sorted(available) if available is not None else []
        msg = f"Unknown field '{name}'"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return self.args[0]


class InvalidUnitError(AmrVtkError, ValueError):
    """A requested unit cannot be converted from the field's native unit."""

    def __init__(self, from_unit: Optional[str], to_unit: Optional[str], reason: str = ""):
        self.from_unit = from_unit
        self.to_unit = to_unit
        msg = f"Cannot convert '{from_unit}' to '{to_unit}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidValueError(AmrVtkError, ValueError):
    """log10 requested on non-positive values (only raised with log10_policy='raise')."""

    def __init__(self, field: str, count: int):
        self.field = field
        self.count = count
        super().__init__(f"log10 of field '{field}' undefined for {count} non-positive value(s)")


class ExportIOError(AmrVtkError, OSError):
    """The output directory or a file could not be created/written."""


class LevelWriteError(ExportIOError):
    """
    Writing one level failed. Levels written before it remain valid and are
    listed in `partial` (an ExportResult).
    """

    def __init__(self, level: int, path: str, cause: BaseException, partial=None):
        self.level = level
        self.path = path
        self.cause = cause
        self.partial = partial
        super().__init__(f"Failed to write level {level} to '{path}': {cause}")
