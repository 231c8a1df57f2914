# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Level coarsening
──────────────────────────────────────────────────────────────────────────────
Bounds the size of an export by folding every cell finer than the top exported
level into that level.

- A cell at level l with integer coordinates i lies inside exactly one cell of
  a coarser level L: the one with coordinates i >> (l - L).
- Levels below the top level are written natively. The top level holds its
  native cells plus the (weighted) average of all finer cells per coarse cell.
- The top level is the finest level L* <= lmax whose coarse cell count fits in
  `max_cells`. The search may go below the coarsest level of the data (level 0
  is a single cell), so the budget always holds and no cell is dropped.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .errors import ExportConfigError

logger = logging.getLogger("amrvtk")

DEFAULT_MAX_CELLS = 10_000_000

# three 20-bit coordinates fit into one signed 64-bit key
_MAX_PACKED_LEVEL = 20


@dataclass
class LevelPlan:
    """Which levels an export writes, and where finer levels are folded in."""

    levels: List[int]
    effective_lmax: int
    requested_lmax: int
    coarse_count: int
    clamped_lmax: Optional[int] = None  # requested_lmax limited to the finest level present
    upper: Optional[int] = None  # finest level folded into the top level (None: all)

    @property
    def reduced(self) -> bool:
        top = self.requested_lmax if self.clamped_lmax is None else self.clamped_lmax
        return self.effective_lmax < top


@dataclass
class LevelCells:
    """Cells of one output level, aggregated or native, in the table's length unit."""

    level: int
    centers: np.ndarray
    size: float
    scalars: Dict[str, np.ndarray] = field(default_factory=dict)
    vector: Optional[np.ndarray] = None
    nsource: int = 0
    aggregated: bool = False

    @property
    def ncells(self) -> int:
        return len(self.centers)


def coarse_indices(index: np.ndarray, level: np.ndarray, target: int) -> np.ndarray:
    """Integer coordinates of the level-`target` ancestor of each cell (level >= target)."""
    shift = (np.asarray(level, dtype=np.int64) - target)[:, None]
    if np.any(shift < 0):
        raise ValueError(f"cells coarser than target level {target} cannot be coarsened")
    return np.right_shift(np.asarray(index, dtype=np.int64), shift)


def group_cells(coarse: np.ndarray, target: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Unique coarse cells and the group number of every input cell.

    Returns:
        (rows, inverse): rows is (M, 3) sorted coarse coordinates, inverse maps
        each input cell to its row.
    """
    n = 1 << target
    if len(coarse) and target <= _MAX_PACKED_LEVEL and coarse.min() >= 0 and coarse.max() < n:
        key = (coarse[:, 0] * n + coarse[:, 1]) * n + coarse[:, 2]
        uniq, inverse = np.unique(key, return_inverse=True)
        rows = np.column_stack([uniq // (n * n), (uniq // n) % n, uniq % n])
        return rows, inverse.reshape(-1)

    rows, inverse = np.unique(coarse, axis=0, return_inverse=True)
    return rows.reshape(-1, 3), inverse.reshape(-1)


def _selection(table, target: int, upper: Optional[int]) -> np.ndarray:
    sel = table.level >= target
    if upper is not None:
        sel &= table.level <= upper
    return sel


def count_coarse_cells(table, target: int, upper: Optional[int] = None) -> int:
    """Number of distinct level-`target` cells covering the cells with target <= level <= upper."""
    sel = _selection(table, target, upper)
    if not np.any(sel):
        return 0
    coarse = coarse_indices(table.index[sel], table.level[sel], target)
    rows, _ = group_cells(coarse, target)
    return len(rows)


def plan_levels(
    table,
    lmin: Optional[int] = None,
    lmax: Optional[int] = None,
    max_cells: int = DEFAULT_MAX_CELLS,
    interpolate: bool = True,
) -> LevelPlan:
    """
    Decide the exported levels and the effective top level.

    Args:
        table: AmrTable.
        lmin: coarsest level to export (default: coarsest level in the table).
        lmax: requested top level (default: finest level in the table).
        max_cells: cell budget of the top level.
        interpolate: fold cells finer than lmax into lmax (else they are dropped).
    """
    if len(table) == 0:
        raise ExportConfigError("The AMR table has no cells.")
    if max_cells < 1:
        raise ExportConfigError(f"max_cells must be positive, got {max_cells}")

    lmin = table.lmin if lmin is None else int(lmin)
    lmax = table.lmax if lmax is None else int(lmax)
    if lmax < lmin:
        raise ExportConfigError(f"Invalid level range: lmax ({lmax}) < lmin ({lmin}).")

    available = [l for l in table.levels if lmin <= l <= lmax]
    if not available:
        raise ExportConfigError(f"No levels in [{lmin}, {lmax}] (table has {table.levels}).")

    requested = lmax
    lmax = min(lmax, table.lmax)
    # without interpolation only levels up to lmax are folded into the top level
    upper = None if interpolate else lmax

    if interpolate and table.lmax > lmax:
        logger.info(
            "Will interpolate levels %s down to %d",
            [l for l in table.levels if l > lmax],
            lmax,
        )

    target = lmax
    count = count_coarse_cells(table, target, upper)
    logger.debug("Unique coarse cells at level %d: %d (max %d)", target, count, max_cells)

    while count > max_cells and target > 0:
        target -= 1
        count = count_coarse_cells(table, target, upper)
        logger.debug("Unique coarse cells at level %d: %d (max %d)", target, count, max_cells)

    if target < lmax:
        logger.warning(
            "Level %d would need more than %d cells; exporting up to level %d instead (%d cells).",
            lmax,
            max_cells,
            target,
            count,
        )
        if target < lmin:
            logger.warning("Effective top level %d is below lmin=%d.", target, lmin)

    levels = [l for l in available if l < target]
    if count > 0:
        levels.append(target)

    return LevelPlan(
        levels=levels,
        effective_lmax=target,
        requested_lmax=requested,
        coarse_count=count,
        clamped_lmax=lmax,
        upper=upper,
    )


def weighted_mean(inverse: np.ndarray, ngroups: int, values: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """
    Per-group weighted average of the non-NaN values.

    NaN entries get no weight; a group is NaN only when all of its values are.
    Groups whose valid entries all have zero weight fall back to the plain mean.
    """
    values = np.asarray(values, dtype=float)
    valid = ~np.isnan(values)
    weights = np.where(valid, weights, 0.0)
    values = np.where(valid, values, 0.0)

    wsum = np.bincount(inverse, weights=weights, minlength=ngroups)
    nvalid = np.bincount(inverse, weights=valid.astype(float), minlength=ngroups)
    zero = (wsum == 0) & (nvalid > 0)
    if np.any(zero):
        weights = np.where(zero[inverse] & valid, 1.0, weights)
        wsum = np.bincount(inverse, weights=weights, minlength=ngroups)

    total = np.bincount(inverse, weights=weights * values, minlength=ngroups)
    out = np.full(ngroups, np.nan)
    np.divide(total, wsum, out=out, where=wsum > 0)
    return out


def aggregate(
    index: np.ndarray,
    level: np.ndarray,
    target: int,
    boxlen: float,
    scalars: Dict[str, np.ndarray],
    vector: Optional[np.ndarray],
    weights: np.ndarray,
) -> LevelCells:
    """
    Fold cells at level >= target into level-`target` cells.

    Output cells are ordered by coarse coordinates (x slowest, z fastest).
    """
    coarse = coarse_indices(index, level, target)
    rows, inverse = group_cells(coarse, target)
    ngroups = len(rows)
    weights = np.asarray(weights, dtype=float)

    cs = boxlen / 2.0 ** target
    centers = (rows.astype(float) + 0.5) * cs

    out_scalars = {
        name: weighted_mean(inverse, ngroups, values, weights) for name, values in scalars.items()
    }
    out_vector = None
    if vector is not None:
        out_vector = np.column_stack(
            [weighted_mean(inverse, ngroups, vector[:, i], weights) for i in range(vector.shape[1])]
        )

    return LevelCells(
        level=target,
        centers=centers,
        size=cs,
        scalars=out_scalars,
        vector=out_vector,
        nsource=len(level),
        aggregated=True,
    )


def native_cells(
    position: np.ndarray,
    level: int,
    boxlen: float,
    scalars: Dict[str, np.ndarray],
    vector: Optional[np.ndarray],
) -> LevelCells:
    return LevelCells(
        level=level,
        centers=np.asarray(position, dtype=float),
        size=boxlen / 2.0 ** level,
        scalars=scalars,
        vector=vector,
        nsource=len(position),
    )


def gather_level(table, selector, plan: LevelPlan, level: int) -> Optional[LevelCells]:
    """
    Collect the cells of one output level (None when the level is empty).

    The top level of the plan also receives every finer cell, averaged per
    coarse cell with the selector's weighting.
    """
    if level == plan.effective_lmax:
        sel = _selection(table, level, plan.upper)
    else:
        sel = table.level == level

    n = int(np.count_nonzero(sel))
    if n == 0:
        logger.debug("Level %d has zero cells; skipping.", level)
        return None

    scalars = selector.scalars(sel)
    vector = selector.vector(sel)
    lev = table.level[sel]

    if np.any(lev != level):
        logger.info("  Interpolating %d cells down to level %d", n, level)
        cells = aggregate(
            table.index[sel], lev, level, table.boxlen, scalars, vector, selector.weights(lev, sel)
        )
        logger.info("  → %d coarse cells after interpolation", cells.ncells)
        return cells

    return native_cells(table.position[sel], level, table.boxlen, scalars, vector)
