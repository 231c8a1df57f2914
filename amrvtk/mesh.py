# -*- coding: utf-8 -*-

"""

Explicit unstructured meshes built from cell centres and sizes.

Each AMR cell becomes one VTK_HEXAHEDRON with its own 8 corner points (points
are not shared between cells unless `merge_points` is requested). Particles
become VTK_VERTEX cells.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

VTK_VERTEX = 1
VTK_HEXAHEDRON = 12

# Corner offsets in units of the cell size, in VTK_HEXAHEDRON order:
# the z- face counter-clockwise seen from +z, then the z+ face.
HEX_CORNERS = 0.5 * np.array(
    [
        [-1, -1, -1],
        [+1, -1, -1],
        [+1, +1, -1],
        [-1, +1, -1],
        [-1, -1, +1],
        [+1, -1, +1],
        [+1, +1, +1],
        [-1, +1, +1],
    ],
    dtype=float,
)


@dataclass
class LevelMesh:
    """Unstructured grid of one level (or of a particle set)."""

    points: np.ndarray
    connectivity: np.ndarray
    offsets: np.ndarray
    types: np.ndarray
    cell_data: Dict[str, np.ndarray] = field(default_factory=dict)
    point_data: Dict[str, np.ndarray] = field(default_factory=dict)
    level: Optional[int] = None

    @property
    def ncells(self) -> int:
        return len(self.types)

    @property
    def npoints(self) -> int:
        return len(self.points)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """(min corner, max corner) of all points."""
        return self.points.min(axis=0), self.points.max(axis=0)


def hexahedron_points(centers: np.ndarray, sizes) -> np.ndarray:
    """
    Corner points of axis-aligned cubes.

    Args:
        centers: (N, 3) cube centres.
        sizes: edge length, scalar or (N,).

    Returns:
        (8N, 3) points; rows 8i..8i+7 are the corners of cube i.
    """
    centers = np.asarray(centers, dtype=float).reshape(-1, 3)
    sizes = np.broadcast_to(np.asarray(sizes, dtype=float), (len(centers),))
    pts = centers[:, None, :] + HEX_CORNERS[None, :, :] * sizes[:, None, None]
    return pts.reshape(-1, 3)


def merge_duplicate_points(points: np.ndarray, connectivity: np.ndarray):
    """
    Collapse identical points and renumber the connectivity.

    Returns:
        (unique points, new connectivity)
    """
    uniq, inverse = np.unique(points, axis=0, return_inverse=True)
    return uniq, inverse.reshape(-1)[connectivity].astype(np.int64)


def build_level_mesh(
    centers: np.ndarray,
    sizes,
    cell_data: Optional[Dict[str, np.ndarray]] = None,
    merge_points: bool = False,
    level: Optional[int] = None,
) -> LevelMesh:
    """
    Hexahedral mesh with one cell per centre.

    The cell count always equals len(centers); cell_data arrays must have one
    entry (or one row) per cell.
    """
    centers = np.asarray(centers, dtype=float).reshape(-1, 3)
    ncells = len(centers)

    points = hexahedron_points(centers, sizes)
    connectivity = np.arange(8 * ncells, dtype=np.int64)
    if merge_points and ncells:
        points, connectivity = merge_duplicate_points(points, connectivity)

    data = {}
    for name, arr in (cell_data or {}).items():
        arr = np.asarray(arr)
        if len(arr) != ncells:
            raise ValueError(f"cell array '{name}' has {len(arr)} entries for {ncells} cells")
        data[name] = arr

    return LevelMesh(
        points=points,
        connectivity=connectivity,
        offsets=np.arange(0, 8 * ncells + 1, 8, dtype=np.int64),
        types=np.full(ncells, VTK_HEXAHEDRON, dtype=np.uint8),
        cell_data=data,
        level=level,
    )


def build_vertex_mesh(points: np.ndarray, point_data: Optional[Dict[str, np.ndarray]] = None) -> LevelMesh:
    """One VTK_VERTEX cell per point; data is attached to the points."""
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    npts = len(points)

    data = {}
    for name, arr in (point_data or {}).items():
        arr = np.asarray(arr)
        if len(arr) != npts:
            raise ValueError(f"point array '{name}' has {len(arr)} entries for {npts} points")
        data[name] = arr

    return LevelMesh(
        points=points,
        connectivity=np.arange(npts, dtype=np.int64),
        offsets=np.arange(npts + 1, dtype=np.int64),
        types=np.full(npts, VTK_VERTEX, dtype=np.uint8),
        point_data=data,
    )
