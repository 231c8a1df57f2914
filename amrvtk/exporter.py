# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Export of an AMR table to per-level VTKHDF unstructured grids plus one
multi-block manifest per export kind, for ParaView and other VTK-based tools.

──────────────────────────────────────────────────────────────────────────────
HOW IT WORKS
──────────────────────────────────────────────────────────────────────────────
 - Field names and units are validated before anything touches the disk.
 - The level plan decides the exported levels; every cell finer than the top
   level is averaged into it, and the top level is lowered until it fits
   `max_cells`.
 - Levels are processed one at a time: gather → mesh → write → manifest →
   release. A level's memory is freed before the next one is built.
 - Scalars go to `<prefix>_L<level>.vtkhdf` (manifest `<prefix>_scalar.vtkhdf`),
   the vector to `<prefix>_vec_L<level>.vtkhdf` (manifest
   `<prefix>_vector.vtkhdf`). A kind that is not requested gets no files.

"""

from __future__ import annotations

import dataclasses
import gc
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .coarsen import DEFAULT_MAX_CELLS, LevelCells, gather_level, plan_levels
from .errors import ExportConfigError, LevelWriteError
from .fields import FieldSelector, parse_weighting
from .mesh import LevelMesh, build_level_mesh
from .units import as_converter
from .writer import (
    EXTENSION,
    MultiBlockManifest,
    ensure_output_dir,
    file_size,
    format_size,
    write_unstructured_grid,
)

logger = logging.getLogger("amrvtk")

LOG10_POLICIES = ("nan", "raise")
FLOAT_DTYPES = ("f4", "f8")


def _as_tuple(value) -> Tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class ExportRequest:
    """
    What to export and how.

    Units left as None keep the field's native unit. `scalars_unit` may be a
    single unit (applied to every scalar) or one unit per scalar.
    """

    scalars: Tuple[str, ...] = ()
    scalars_unit: Tuple[Optional[str], ...] = ()
    scalars_log10: bool = False
    vector: Optional[Tuple[str, str, str]] = None
    vector_unit: Optional[str] = None
    vector_name: str = "vector"
    lmin: Optional[int] = None
    lmax: Optional[int] = None
    max_cells: int = DEFAULT_MAX_CELLS
    positions_unit: Optional[str] = None
    interpolate_higher_levels: bool = True
    weighting: str = "volume"
    compress: bool = True
    float_dtype: str = "f8"
    merge_points: bool = False
    log10_policy: str = "nan"
    dry_run: bool = False

    def __post_init__(self):
        scalars = _as_tuple(self.scalars)
        units = self.scalars_unit
        if units is None or isinstance(units, str):
            units = (units,) * len(scalars)
        units = tuple(units) if units else (None,) * len(scalars)
        if len(units) != len(scalars):
            raise ExportConfigError(
                f"scalars_unit has {len(units)} entries for {len(scalars)} scalar(s)."
            )
        if len(set(scalars)) != len(scalars):
            raise ExportConfigError(f"Duplicate scalar names in {list(scalars)}.")

        vector = _as_tuple(self.vector) or None
        if vector is not None and len(vector) != 3:
            raise ExportConfigError(f"vector needs exactly 3 component names, got {list(vector)}.")

        if not scalars and vector is None:
            raise ExportConfigError("Nothing to export: give scalars and/or a vector.")
        if self.max_cells < 1:
            raise ExportConfigError(f"max_cells must be positive, got {self.max_cells}.")
        if self.log10_policy not in LOG10_POLICIES:
            raise ExportConfigError(f"log10_policy must be one of {LOG10_POLICIES}.")
        if self.float_dtype not in FLOAT_DTYPES:
            raise ExportConfigError(f"float_dtype must be one of {FLOAT_DTYPES}.")
        if not self.vector_name:
            raise ExportConfigError("vector_name must not be empty.")
        parse_weighting(self.weighting)

        object.__setattr__(self, "scalars", scalars)
        object.__setattr__(self, "scalars_unit", units)
        object.__setattr__(self, "vector", vector)

    @property
    def export_scalars(self) -> bool:
        return bool(self.scalars)

    @property
    def export_vector(self) -> bool:
        return self.vector is not None


@dataclass
class ExportResult:
    """
    Files written by one export, in the order they were completed.

    `scalar_levels` / `vector_levels` list the levels written for each kind;
    `levels` only those for which every requested kind was written. They
    differ only in the `partial` result of a failed export.
    """

    scalar_files: List[str] = field(default_factory=list)
    vector_files: List[str] = field(default_factory=list)
    scalar_levels: List[int] = field(default_factory=list)
    vector_levels: List[int] = field(default_factory=list)
    scalar_manifest: Optional[str] = None
    vector_manifest: Optional[str] = None
    levels: List[int] = field(default_factory=list)
    effective_lmax: Optional[int] = None

    @property
    def files(self) -> List[str]:
        out = self.scalar_files + self.vector_files
        out += [m for m in (self.scalar_manifest, self.vector_manifest) if m]
        return out


class LevelWorkspace:
    """
    Working set of a single level (gathered cells and mesh).

    Used as a context manager; everything is dropped on exit, even when the
    level fails, before the next level starts.
    """

    def __init__(self, level: int):
        self.level = level
        self.cells: Optional[LevelCells] = None
        self.mesh: Optional[LevelMesh] = None

    def __enter__(self) -> "LevelWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def release(self) -> None:
        self.cells = None
        self.mesh = None
        gc.collect()


def level_file_name(outprefix: str, level: int, kind: str = "scalar") -> str:
    tag = "_vec" if kind == "vector" else ""
    return f"{outprefix}{tag}_L{level}{EXTENSION}"


def manifest_file_name(outprefix: str, kind: str = "scalar") -> str:
    return f"{outprefix}_{kind}{EXTENSION}"


def block_name(level: int, kind: str = "scalar") -> str:
    return f"vec_Level_{level}" if kind == "vector" else f"Level_{level}"


def _scalar_units(table, request: ExportRequest) -> Dict[str, Optional[str]]:
    units = {}
    for name, unit in zip(request.scalars, request.scalars_unit):
        unit = unit or table.unit(name)
        if request.scalars_log10:
            unit = f"log10({unit})" if unit else "log10"
        units[name] = unit
    return units


def _write_level(
    mesh: LevelMesh,
    path: str,
    block: str,
    manifest: MultiBlockManifest,
    files: List[str],
    levels: List[int],
    request: ExportRequest,
    attrs: Dict[str, object],
    units: Dict[str, Optional[str]],
    result: ExportResult,
) -> None:
    level = mesh.level
    try:
        write_unstructured_grid(
            path,
            mesh,
            float_dtype=request.float_dtype,
            compress=request.compress,
            attrs=dict(attrs, Index=len(manifest)),
            units=units,
        )
        manifest.add_block(block, path)
    except OSError as e:
        logger.error("Failed to write level %s to '%s': %s", level, path, e)
        raise LevelWriteError(level, path, e, partial=result) from e

    files.append(path)
    levels.append(level)
    logger.info("  wrote %s (Size: %s)", os.path.basename(path), format_size(file_size(path)))


def export_vtk(
    table,
    outprefix: str,
    request: Optional[ExportRequest] = None,
    converter=None,
    **options,
) -> ExportResult:
    """
    Export an AMR table to VTKHDF level files and multi-block manifests.

    Args:
        table: AmrTable to export (read only).
        outprefix: path prefix of every output file; its directory is created.
        request: an ExportRequest. Keyword `options` build one (or override
                 fields of the given one), e.g. scalars=["density"], lmax=9.
        converter: unit converter or callable convert(values, from, to);
                   defaults to the pint converter.

    Returns:
        ExportResult listing the written level files and manifests.

    Raises:
        UnknownFieldError, InvalidUnitError, ExportConfigError: before any write.
        LevelWriteError: a level could not be written; files of the earlier
            levels (and their manifest entries) are kept, see `.partial`.
    """
    if request is None:
        request = ExportRequest(**options)
    elif options:
        request = dataclasses.replace(request, **options)
    converter = as_converter(converter)

    t0 = time.time()

    selector = FieldSelector(table, request, converter)
    selector.validate()
    plan = plan_levels(
        table,
        lmin=request.lmin,
        lmax=request.lmax,
        max_cells=request.max_cells,
        interpolate=request.interpolate_higher_levels,
    )

    logger.info("Processing levels: %s", plan.levels)
    logger.info("Exported arrays: %s", "; ".join(selector.describe()))

    result = ExportResult(effective_lmax=plan.effective_lmax)

    if request.dry_run:
        logger.info(
            "[dry-run] Would write %d level file(s) per kind with prefix '%s' (top level %d, %d cells).",
            len(plan.levels),
            outprefix,
            plan.effective_lmax,
            plan.coarse_count,
        )
        return result

    ensure_output_dir(outprefix)

    manifests: Dict[str, MultiBlockManifest] = {}
    if request.export_scalars:
        manifests["scalar"] = MultiBlockManifest(manifest_file_name(outprefix, "scalar"))
    if request.export_vector:
        manifests["vector"] = MultiBlockManifest(manifest_file_name(outprefix, "vector"))
    for manifest in manifests.values():
        manifest.discard_stale()

    scalar_units = _scalar_units(table, request)
    vector_unit = None
    if request.export_vector:
        vector_unit = request.vector_unit or table.unit(request.vector[0])
    length_unit = request.positions_unit or table.position_unit

    for level in plan.levels:
        logger.info("Level %d", level)

        with LevelWorkspace(level) as ws:
            ws.cells = gather_level(table, selector, plan, level)
            if ws.cells is None:
                logger.info("  skip empty")
                continue

            n = ws.cells.ncells
            centers = converter.convert(ws.cells.centers, table.position_unit, request.positions_unit)
            size = float(
                converter.convert(np.array([ws.cells.size]), table.position_unit, request.positions_unit)[0]
            )
            amr_level = np.full(n, level, dtype=np.int32)
            attrs = {
                "AMRLevel": level,
                "CellSize": size,
                "LengthUnit": length_unit,
                "Aggregated": int(ws.cells.aggregated),
                "SourceCells": ws.cells.nsource,
            }

            if "scalar" in manifests:
                cell_data = dict(ws.cells.scalars)
                cell_data["AMR_Level"] = amr_level
                ws.mesh = build_level_mesh(centers, size, cell_data, request.merge_points, level)
                _write_level(
                    ws.mesh,
                    level_file_name(outprefix, level, "scalar"),
                    block_name(level, "scalar"),
                    manifests["scalar"],
                    result.scalar_files,
                    result.scalar_levels,
                    request,
                    attrs,
                    scalar_units,
                    result,
                )
                result.scalar_manifest = manifests["scalar"].path

            if "vector" in manifests:
                cell_data = {request.vector_name: ws.cells.vector, "AMR_Level": amr_level}
                if ws.mesh is None:
                    ws.mesh = build_level_mesh(centers, size, cell_data, request.merge_points, level)
                else:
                    # same geometry, different arrays
                    ws.mesh = dataclasses.replace(ws.mesh, cell_data=cell_data)
                _write_level(
                    ws.mesh,
                    level_file_name(outprefix, level, "vector"),
                    block_name(level, "vector"),
                    manifests["vector"],
                    result.vector_files,
                    result.vector_levels,
                    request,
                    attrs,
                    {request.vector_name: vector_unit},
                    result,
                )
                result.vector_manifest = manifests["vector"].path

            result.levels.append(level)
            logger.debug("  %d cells (%d source cells)", n, ws.cells.nsource)

        logger.info("  ✓ Level %d completed, memory cleaned", level)

    selector.report_invalid()

    logger.info("=== Export Summary ===")
    if result.scalar_manifest:
        logger.info("Level files (scalars): %d", len(result.scalar_files))
        logger.info("Scalar manifest: %s", os.path.basename(result.scalar_manifest))
        logger.info("Available scalars: %s", ", ".join(list(request.scalars) + ["AMR_Level"]))
    if result.vector_manifest:
        logger.info("Level files (vector): %d", len(result.vector_files))
        logger.info("Vector manifest: %s", os.path.basename(result.vector_manifest))
        logger.info("Available vector, named: %s", request.vector_name)
    logger.info("DONE in %.2fs", time.time() - t0)

    return result
