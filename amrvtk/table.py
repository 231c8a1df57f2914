# -*- coding: utf-8 -*-

"""

In-memory AMR and particle tables consumed by the exporters.

An `AmrTable` is a column store: one entry per leaf cell with its refinement
level, its centre position and any number of named cell fields (each with its
native unit). Cell sizes and integer grid coordinates are derived from the
level and the box length, so a cell's bounding box is fully determined by
(position, level).

Tables are built either directly from numpy arrays or from a RAMSES snapshot
loaded with osyris (`AmrTable.from_osyris(data["mesh"])`). The exporters only
read tables; `crop()` returns a new table.

"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .errors import UnknownFieldError

logger = logging.getLogger("amrvtk")

Range = Tuple[Optional[float], Optional[float]]

# Keys of an osyris mesh that describe geometry rather than physics
GEOMETRY_KEYS = ("level", "position", "dx", "cpu")

COMPONENTS = ("x", "y", "z")


def _unit_string(arr) -> Optional[str]:
    """Native unit of an osyris Array/Vector as a string, None when dimensionless or unknown."""
    unit = getattr(arr, "unit", None)
    if unit is None:
        return None
    text = str(unit).strip()
    if text in ("", "dimensionless"):
        return None
    return text


def extract_vector(vec_field) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Extract vector components x,y,z from a vector-like osyris field.

    Tries vec_field.x.values, then vec_field['x'].values, then a plain (N, 3)
    array. A missing z component (2D runs) comes back as zeros.

    Returns:
        tuple of 1D numpy arrays (vx, vy, vz)
    """
    comps = []
    for name in COMPONENTS:
        comp = getattr(vec_field, name, None)
        if comp is None:
            try:
                comp = vec_field[name]
            except (KeyError, IndexError, TypeError, ValueError):
                comp = None
        comps.append(comp)

    if comps[0] is not None and comps[1] is not None:
        vx = np.asarray(getattr(comps[0], "values", comps[0]), dtype=float)
        vy = np.asarray(getattr(comps[1], "values", comps[1]), dtype=float)
        if comps[2] is not None:
            vz = np.asarray(getattr(comps[2], "values", comps[2]), dtype=float)
        else:
            vz = np.zeros_like(vx)
        return vx, vy, vz

    arr = np.asarray(getattr(vec_field, "values", vec_field), dtype=float)
    if arr.ndim == 2 and arr.shape[1] in (2, 3):
        vz = arr[:, 2] if arr.shape[1] == 3 else np.zeros(len(arr))
        return arr[:, 0].copy(), arr[:, 1].copy(), np.asarray(vz, dtype=float)

    raise TypeError("Unable to extract vector components from field; incompatible format.")


def _is_vector(field) -> bool:
    if getattr(field, "x", None) is not None and getattr(field, "y", None) is not None:
        return True
    values = getattr(field, "values", None)
    return isinstance(values, np.ndarray) and values.ndim == 2


def collect_fields(group) -> List[str]:
    """Field names of an osyris Datagroup (or any mapping), in their stored order."""
    try:
        return list(group.keys())
    except AttributeError as e:
        logger.error("Cannot extract fields from mesh: %s", e)
        return []


def _flatten_fields(
    group,
    skip: Iterable[str],
    fields: Dict[str, np.ndarray],
    units: Dict[str, Optional[str]],
) -> None:
    # vectors are stored as three scalar components: <name>_x, <name>_y, <name>_z
    for key in collect_fields(group):
        if key in skip:
            continue
        field = group[key]
        try:
            if _is_vector(field):
                comps = extract_vector(field)
                unit = _unit_string(field)
                if unit is None:
                    unit = _unit_string(getattr(field, "x", None))
                for axis, comp in zip(COMPONENTS, comps):
                    fields[f"{key}_{axis}"] = comp
                    units[f"{key}_{axis}"] = unit
            else:
                fields[key] = np.asarray(field.values, dtype=float)
                units[key] = _unit_string(field)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Skipping field '%s': %s", key, e)


class AmrTable:
    """
    Leaf cells of an AMR snapshot.

    Args:
        level: (N,) integer refinement level of each cell.
        position: (N, 3) cell centres in the native length unit.
        fields: mapping name -> (N,) values.
        units: mapping name -> native unit string (None for dimensionless).
        boxlen: domain edge length in the native length unit. Inferred from
                `dx * 2**level` when omitted and `dx` is given, else 1.
        dx: optional (N,) cell sizes, only used to infer `boxlen`.
        position_unit: native unit of `position` (and of `boxlen`).
    """

    def __init__(
        self,
        level,
        position,
        fields: Optional[Mapping[str, np.ndarray]] = None,
        units: Optional[Mapping[str, Optional[str]]] = None,
        boxlen: Optional[float] = None,
        dx=None,
        position_unit: Optional[str] = None,
    ):
        level = np.asarray(level)
        if level.ndim != 1:
            raise ValueError("level must be a 1D array")
        if level.size and not np.all(np.equal(np.mod(level, 1), 0)):
            raise ValueError("levels must be integers")
        self.level = level.astype(np.int64)
        if self.level.size and self.level.min() < 0:
            raise ValueError("levels must be non-negative")

        position = np.asarray(position, dtype=float)
        if position.shape != (len(self.level), 3):
            raise ValueError(
                f"position must have shape ({len(self.level)}, 3), got {position.shape}"
            )
        self.position = position

        if boxlen is None:
            if dx is not None and len(self.level):
                dx = np.asarray(dx, dtype=float)
                boxlen = float(dx[0] * 2.0 ** self.level[0])
            else:
                boxlen = 1.0
        self.boxlen = float(boxlen)
        self.position_unit = position_unit

        self.fields: Dict[str, np.ndarray] = {}
        for name, values in (fields or {}).items():
            values = np.asarray(values, dtype=float)
            if values.shape != (len(self.level),):
                raise ValueError(
                    f"field '{name}' has shape {values.shape}, expected ({len(self.level)},)"
                )
            self.fields[name] = values

        self.units: Dict[str, Optional[str]] = {name: None for name in self.fields}
        for name, unit in (units or {}).items():
            if name in self.fields:
                self.units[name] = unit

        self._index: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self.level)

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __repr__(self) -> str:
        return (
            f"AmrTable(ncells={len(self)}, levels={self.levels}, "
            f"fields={self.field_names}, boxlen={self.boxlen:g})"
        )

    @property
    def field_names(self) -> List[str]:
        return list(self.fields)

    @property
    def levels(self) -> List[int]:
        return [int(l) for l in np.unique(self.level)]

    @property
    def lmin(self) -> int:
        return int(self.level.min())

    @property
    def lmax(self) -> int:
        return int(self.level.max())

    def cell_size(self, level: int) -> float:
        return self.boxlen / 2.0 ** level

    @property
    def dx(self) -> np.ndarray:
        return self.boxlen / np.power(2.0, self.level)

    @property
    def index(self) -> np.ndarray:
        """(N, 3) integer grid coordinates of each cell at its own level."""
        if self._index is None:
            self._index = np.floor(self.position / self.dx[:, None]).astype(np.int64)
        return self._index

    def unit(self, name: str) -> Optional[str]:
        if name not in self.fields:
            raise UnknownFieldError(name, self.fields)
        return self.units.get(name)

    def values(self, name: str, mask: Optional[np.ndarray] = None) -> np.ndarray:
        if name not in self.fields:
            raise UnknownFieldError(name, self.fields)
        arr = self.fields[name]
        return arr if mask is None else arr[mask]

    def count(self, level: int) -> int:
        return int(np.count_nonzero(self.level == level))

    def crop(
        self,
        x_range_norm: Range = (None, None),
        y_range_norm: Range = (None, None),
        z_range_norm: Range = (None, None),
    ) -> "AmrTable":
        """
        Keep the cells whose centre lies inside normalized [0, 1] ranges of the box.

        Returns self unchanged when no range is given.
        """
        mask = build_mask(self.position, self.boxlen, x_range_norm, y_range_norm, z_range_norm)
        if mask is None:
            return self
        logger.debug("Crop keeps %d of %d cells", int(np.count_nonzero(mask)), len(self))
        return AmrTable(
            level=self.level[mask],
            position=self.position[mask],
            fields={name: arr[mask] for name, arr in self.fields.items()},
            units=self.units,
            boxlen=self.boxlen,
            position_unit=self.position_unit,
        )

    @classmethod
    def from_osyris(cls, mesh, boxlen: Optional[float] = None) -> "AmrTable":
        """
        Build a table from an osyris mesh Datagroup (`data["mesh"]`).

        Vector fields (velocity, B_field, ...) are flattened into
        `<name>_x/_y/_z` components.
        """
        level = np.asarray(mesh["level"].values)
        px, py, pz = extract_vector(mesh["position"])
        position = np.column_stack([px, py, pz])

        dx = None
        if "dx" in collect_fields(mesh):
            dx = np.asarray(mesh["dx"].values, dtype=float)

        fields: Dict[str, np.ndarray] = {}
        units: Dict[str, Optional[str]] = {}
        _flatten_fields(mesh, GEOMETRY_KEYS, fields, units)

        return cls(
            level=level,
            position=position,
            fields=fields,
            units=units,
            boxlen=boxlen,
            dx=dx,
            position_unit=_unit_string(mesh["position"]),
        )


def build_mask(
    position: np.ndarray,
    boxlen: float,
    x_range_norm: Range = (None, None),
    y_range_norm: Range = (None, None),
    z_range_norm: Range = (None, None),
) -> Optional[np.ndarray]:
    """
    Boolean mask of positions inside the normalized ranges (bounds inclusive).

    Returns None when no range is set.
    """
    ranges = (x_range_norm, y_range_norm, z_range_norm)
    if all(r in (None, (None, None)) for r in ranges):
        return None

    mask = np.ones(len(position), dtype=bool)
    for axis, r in enumerate(ranges):
        if r in (None, (None, None)):
            continue
        lo, hi = r
        lo = 0.0 if lo is None else lo
        hi = 1.0 if hi is None else hi
        logger.info("%s filter (physical): [%.6g, %.6g]", COMPONENTS[axis], lo * boxlen, hi * boxlen)
        mask &= (position[:, axis] >= lo * boxlen) & (position[:, axis] <= hi * boxlen)
    return mask


class ParticleTable:
    """
    Particles of a snapshot: positions plus per-particle fields.

    Args:
        position: (N, 3) positions in the native length unit.
        fields: mapping name -> (N,) values.
        units: mapping name -> native unit string.
        position_unit: native unit of `position`.
    """

    def __init__(
        self,
        position,
        fields: Optional[Mapping[str, np.ndarray]] = None,
        units: Optional[Mapping[str, Optional[str]]] = None,
        position_unit: Optional[str] = None,
    ):
        position = np.asarray(position, dtype=float)
        if position.ndim != 2 or position.shape[1] != 3:
            raise ValueError(f"position must have shape (N, 3), got {position.shape}")
        self.position = position
        self.position_unit = position_unit

        self.fields: Dict[str, np.ndarray] = {}
        for name, values in (fields or {}).items():
            values = np.asarray(values, dtype=float)
            if values.shape != (len(position),):
                raise ValueError(
                    f"field '{name}' has shape {values.shape}, expected ({len(position)},)"
                )
            self.fields[name] = values
        self.units = {name: (units or {}).get(name) for name in self.fields}

    def __len__(self) -> int:
        return len(self.position)

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    @property
    def field_names(self) -> List[str]:
        return list(self.fields)

    def unit(self, name: str) -> Optional[str]:
        if name not in self.fields:
            raise UnknownFieldError(name, self.fields)
        return self.units.get(name)

    def values(self, name: str, mask=None) -> np.ndarray:
        if name not in self.fields:
            raise UnknownFieldError(name, self.fields)
        arr = self.fields[name]
        return arr if mask is None else arr[mask]

    @classmethod
    def from_osyris(cls, part) -> "ParticleTable":
        """Build a particle table from an osyris particle Datagroup (`data["part"]`)."""
        px, py, pz = extract_vector(part["position"])
        fields: Dict[str, np.ndarray] = {}
        units: Dict[str, Optional[str]] = {}
        _flatten_fields(part, ("position",), fields, units)
        return cls(
            position=np.column_stack([px, py, pz]),
            fields=fields,
            units=units,
            position_unit=_unit_string(part["position"]),
        )
