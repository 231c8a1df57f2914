# -*- coding: utf-8 -*-

"""

amrvtk: AMR hydro → VTKHDF exporter
===================================

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
amrvtk turns the cells of an adaptive-mesh-refinement snapshot (for instance
a RAMSES output loaded with osyris) into one VTKHDF unstructured grid per
refinement level, plus a multi-block manifest that ParaView opens as a single
dataset.

──────────────────────────────────────────────────────────────────────────────
WHY THIS EXISTS
──────────────────────────────────────────────────────────────────────────────
- Full-resolution AMR snapshots are too large to look at directly; cells
  finer than a chosen level are averaged into it, with a hard cap on the
  number of cells written.
- Each level is written and released before the next one is built, so memory
  stays bounded by a single level.

"""

__version__ = "1.0.0"

from .errors import (
    AmrVtkError,
    ExportConfigError,
    ExportIOError,
    InvalidUnitError,
    InvalidValueError,
    LevelWriteError,
    UnknownFieldError,
)

from .table import AmrTable, ParticleTable

from .units import IdentityConverter, PintConverter

from .exporter import ExportRequest, ExportResult, export_vtk

from .particles import export_particles

from .writer import read_manifest, read_unstructured_grid

from .converter import (
    SnapshotConverter,
    parse_output_numbers,
    parse_norm_range,
    parse_fields_arg,
    list_fields_for_snapshot,
)

from .parallel import (
    process_single_output,
    run_parallel_conversion,
)
