# -*- coding: utf-8 -*-

"""

Particle export: one VTKHDF unstructured grid of vertex cells, with every
requested quantity attached to the points. In ParaView use the "Point
Gaussian" representation.

"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional, Sequence

import numpy as np

from .errors import ExportConfigError, UnknownFieldError
from .fields import safe_log10
from .mesh import build_vertex_mesh
from .units import as_converter
from .writer import EXTENSION, ensure_output_dir, file_size, format_size, write_unstructured_grid

logger = logging.getLogger("amrvtk")

DEFAULT_MAX_PARTICLES = 10_000_000


def export_particles(
    particles,
    outprefix: str,
    scalars: Sequence[str] = ("mass",),
    scalars_unit=None,
    scalars_log10: bool = False,
    vector: Optional[Sequence[str]] = None,
    vector_unit: Optional[str] = None,
    vector_name: str = "velocity",
    positions_unit: Optional[str] = None,
    max_particles: int = DEFAULT_MAX_PARTICLES,
    compress: bool = True,
    float_dtype: str = "f8",
    converter=None,
) -> str:
    """
    Write particles to `<outprefix>.vtkhdf`.

    Args:
        particles: ParticleTable.
        outprefix: output path without extension; its directory is created.
        scalars: per-particle fields to attach.
        scalars_unit: one unit per scalar, a single unit for all, or None (native).
        scalars_log10: store log10 of the scalars (NaN where not positive).
        vector: three component names, optional.
        vector_unit, vector_name: unit and array name of the vector.
        positions_unit: unit of the written coordinates (None: native).
        max_particles: only the first `max_particles` particles are written.
        compress: gzip-compress the datasets.
        converter: unit converter (default: pint).

    Returns:
        path of the written file.
    """
    converter = as_converter(converter)
    scalars = [scalars] if isinstance(scalars, str) else list(scalars or ())
    if scalars_unit is None or isinstance(scalars_unit, str):
        scalars_unit = [scalars_unit] * len(scalars)
    if len(scalars_unit) != len(scalars):
        raise ExportConfigError(f"scalars_unit has {len(scalars_unit)} entries for {len(scalars)} scalar(s).")
    vector = list(vector) if vector is not None else None
    if vector is not None and len(vector) != 3:
        raise ExportConfigError(f"vector needs exactly 3 component names, got {vector}.")
    if max_particles < 1:
        raise ExportConfigError(f"max_particles must be positive, got {max_particles}.")

    for name in scalars + (vector or []):
        if name not in particles:
            raise UnknownFieldError(name, particles.field_names)

    t0 = time.time()
    total = len(particles)
    n = min(total, max_particles)
    logger.info("Total particles in dataset: %d", total)
    if n < total:
        logger.info("Limiting export to %d particles (from %d)", n, total)

    sel = slice(0, n)
    points = converter.convert(particles.position[sel], particles.position_unit, positions_unit)

    point_data = {}
    units = {}
    nbad = 0
    for name, unit in zip(scalars, scalars_unit):
        arr = converter.convert(particles.values(name)[sel], particles.unit(name), unit)
        unit = unit or particles.unit(name)
        if scalars_log10:
            arr, bad = safe_log10(arr)
            nbad += bad
            unit = f"log10({unit})" if unit else "log10"
        point_data[name] = arr
        units[name] = unit

    if vector is not None:
        point_data[vector_name] = np.column_stack(
            [converter.convert(particles.values(c)[sel], particles.unit(c), vector_unit) for c in vector]
        )
        units[vector_name] = vector_unit or particles.unit(vector[0])

    if nbad:
        logger.warning("log10 of non-positive values set to NaN (%d particle value(s))", nbad)

    ensure_output_dir(outprefix)
    path = f"{outprefix}{EXTENSION}"
    mesh = build_vertex_mesh(points, point_data)
    write_unstructured_grid(
        path,
        mesh,
        float_dtype=float_dtype,
        compress=compress,
        attrs={"LengthUnit": positions_unit or particles.position_unit, "NumberOfParticles": n},
        units=units,
    )
    logger.info("  wrote %s (Size: %s)", os.path.basename(path), format_size(file_size(path)))
    logger.info("Particles exported: %d in %.2fs", n, time.time() - t0)

    return path
