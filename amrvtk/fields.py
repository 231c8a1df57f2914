# -*- coding: utf-8 -*-

"""

Field selection and transformation.

Resolves the requested scalar and vector names against an AmrTable, converts
them to the requested units and, for scalars, optionally takes log10. Every
name and unit is checked by `validate()` before the exporter writes anything.

"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from .errors import ExportConfigError, InvalidValueError, UnknownFieldError

logger = logging.getLogger("amrvtk")

WEIGHTINGS = ("volume", "arithmetic")


def parse_weighting(weighting: str):
    """
    Split a weighting policy into (kind, field).

    "volume" and "arithmetic" have no field; "mass:<field>" weights each cell
    by field value times volume (e.g. "mass:density").
    """
    if weighting in WEIGHTINGS:
        return weighting, None
    if weighting.startswith("mass:") and weighting[len("mass:"):].strip():
        return "mass", weighting[len("mass:"):].strip()
    raise ExportConfigError(
        f"Unknown weighting '{weighting}'; use 'volume', 'arithmetic' or 'mass:<field>'."
    )


def safe_log10(values: np.ndarray):
    """log10 with NaN for non-positive entries. Returns (result, number of NaN introduced)."""
    values = np.asarray(values, dtype=float)
    bad = ~(values > 0)
    nbad = int(np.count_nonzero(bad & ~np.isnan(values)))
    out = np.full(values.shape, np.nan)
    np.log10(values, out=out, where=~bad)
    return out, nbad


class FieldSelector:
    """
    Per-cell field values for one export request.

    Args:
        table: the AmrTable to read from (never modified).
        request: an ExportRequest.
        converter: unit converter (see amrvtk.units.as_converter).
    """

    def __init__(self, table, request, converter):
        self.table = table
        self.request = request
        self.converter = converter
        self.weight_kind, self.weight_field = parse_weighting(request.weighting)
        self.invalid_counts: Dict[str, int] = {}

    @property
    def scalar_names(self) -> List[str]:
        return list(self.request.scalars or ())

    @property
    def vector_names(self) -> List[str]:
        return list(self.request.vector or ())

    def _check_unit(self, name: str, to_unit: Optional[str]) -> None:
        # a one-element probe raises InvalidUnitError for incompatible units
        self.converter.convert(np.ones(1), self.table.unit(name), to_unit)

    def validate(self) -> None:
        """Raise UnknownFieldError / InvalidUnitError for anything that cannot be exported."""
        needed = self.scalar_names + self.vector_names
        if self.weight_field is not None:
            needed.append(self.weight_field)

        for name in needed:
            if name not in self.table:
                raise UnknownFieldError(name, self.table.field_names)

        for name, unit in zip(self.scalar_names, self.request.scalars_unit or ()):
            self._check_unit(name, unit)
        for name in self.vector_names:
            self._check_unit(name, self.request.vector_unit)

        if self.request.positions_unit is not None:
            self.converter.convert(
                np.ones(1), self.table.position_unit, self.request.positions_unit
            )

    def scalars(self, mask: Optional[np.ndarray] = None) -> Dict[str, np.ndarray]:
        """
        Converted (and optionally log10'd) scalar arrays, keyed by field name.

        Non-positive values under log10 become NaN and are counted for
        `report_invalid()`, unless the request's log10_policy is "raise".
        """
        out: Dict[str, np.ndarray] = {}
        for name, unit in zip(self.scalar_names, self.request.scalars_unit):
            arr = self.converter.convert(self.table.values(name, mask), self.table.unit(name), unit)
            arr = np.asarray(arr, dtype=float)
            if self.request.scalars_log10:
                arr, nbad = safe_log10(arr)
                if nbad:
                    if self.request.log10_policy == "raise":
                        raise InvalidValueError(name, nbad)
                    self.invalid_counts[name] = self.invalid_counts.get(name, 0) + nbad
            out[name] = arr
        return out

    def vector(self, mask: Optional[np.ndarray] = None) -> Optional[np.ndarray]:
        """(N, 3) vector converted to `vector_unit`, or None when no vector is requested."""
        if not self.vector_names:
            return None
        comps = [
            np.asarray(
                self.converter.convert(
                    self.table.values(name, mask), self.table.unit(name), self.request.vector_unit
                ),
                dtype=float,
            )
            for name in self.vector_names
        ]
        return np.column_stack(comps)

    def weights(self, level: np.ndarray, mask: Optional[np.ndarray] = None) -> np.ndarray:
        """Aggregation weight of each cell, relative to a level-0 cell volume."""
        level = np.asarray(level)
        if self.weight_kind == "arithmetic":
            return np.ones(len(level))
        volume = np.power(0.125, level.astype(float))
        if self.weight_kind == "volume":
            return volume
        return volume * self.table.values(self.weight_field, mask)

    def report_invalid(self) -> None:
        """Log one aggregated warning for all NaN introduced by log10 so far, then reset."""
        if not self.invalid_counts:
            return
        details = ", ".join(f"{name}: {count}" for name, count in self.invalid_counts.items())
        logger.warning(
            "log10 of non-positive values set to NaN (%s cell(s) in total; %s)",
            sum(self.invalid_counts.values()),
            details,
        )
        self.invalid_counts = {}

    def describe(self) -> Sequence[str]:
        """Human readable list of the exported arrays, for logs."""
        items = []
        for name, unit in zip(self.scalar_names, self.request.scalars_unit or ()):
            label = f"log10({name})" if self.request.scalars_log10 else name
            items.append(f"{label} [{unit or self.table.unit(name) or '-'}]")
        if self.vector_names:
            items.append(
                f"{self.request.vector_name}=({', '.join(self.vector_names)}) "
                f"[{self.request.vector_unit or self.table.unit(self.vector_names[0]) or '-'}]"
            )
        return items
