#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Snapshot-level driver: loads RAMSES outputs with osyris, turns the hydro mesh
into an AmrTable and hands it to the VTKHDF exporter.

──────────────────────────────────────────────────────────────────────────────
IT SUPPORTS:
──────────────────────────────────────────────────────────────────────────────
 - Vectorized spatial cropping with normalized ranges (--x-range/--y-range/--z-range)
 - Field discovery (--list-fields) and explicit scalar/vector selection
 - Dry-run mode (--dry-run) to print the level plan without writing files
 - Optional particle export next to the hydro files (--particles)

"""


from __future__ import annotations

import argparse
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple

import osyris

from .errors import AmrVtkError
from .exporter import ExportRequest, ExportResult, export_vtk
from .particles import export_particles
from .table import COMPONENTS, AmrTable, ParticleTable


def setup_logging(verbose: bool) -> None:
    """
    Configure global logging.

    Args:
        verbose: If True, set DEBUG level, otherwise INFO.
    """

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    # Reduce noise from libraries (adjustable)
    logging.getLogger("h5py").setLevel(logging.WARNING)


logger = logging.getLogger("amrvtk")


def parse_output_numbers(arg: str) -> List[int]:
    """
    Parse output numbers strings like '5', '1,3,5', or '2-7' into a list of ints.

    Args:
        arg: user-provided string

    Returns:
        List of ints representing snapshot/output numbers.

    Raises:
        argparse.ArgumentTypeError on invalid format.
    """

    if "-" in arg and "," in arg:
        raise argparse.ArgumentTypeError("Do not mix ranges and lists; use either 'a-b' or 'a,b,c'.")

    if "-" in arg:
        try:
            start, end = map(int, arg.split("-", 1))
        except ValueError:
            raise argparse.ArgumentTypeError("Invalid range; use 'start-end'.")
        if end < start:
            raise argparse.ArgumentTypeError("Range end must be >= start.")
        return list(range(start, end + 1))

    if "," in arg:
        nums = []
        for x in arg.split(","):
            x = x.strip()
            if x == "":
                continue
            try:
                nums.append(int(x))
            except ValueError:
                raise argparse.ArgumentTypeError(f"Invalid integer in list: '{x}'")
        return nums

    try:
        return [int(arg)]
    except ValueError:
        raise argparse.ArgumentTypeError("Output number must be an integer.")


def parse_norm_range(arg: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse normalized axis range spec: 'min:max', ':max', 'min:', or ':'.

    Returns (min_norm, max_norm) where each entry is a float in [0,1], or None when not provided.
    """

    if arg is None:
        return (None, None)

    s = arg.strip()

    if s == "":
        return (None, None)

    if ":" not in s:
        raise argparse.ArgumentTypeError("Axis range must be 'min:max' (e.g., 0.2:0.8, :0.6, 0.1:, :).")

    left, right = s.split(":", 1)
    try:
        minv = float(left) if left.strip() != "" else 0.0
        maxv = float(right) if right.strip() != "" else 1.0
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number in range '{arg}'.")

    if not (0.0 <= minv <= 1.0 and 0.0 <= maxv <= 1.0):
        raise argparse.ArgumentTypeError("Axis normalized bounds must be within [0, 1].")

    if minv > maxv:
        raise argparse.ArgumentTypeError("Axis min cannot be greater than axis max.")

    return (minv, maxv)


def parse_fields_arg(arg: Optional[str]) -> Optional[List[str]]:
    """
    Parse a comma-separated list of field names.

    Returns None if user didn't pass anything (means use defaults).
    """

    if arg is None:
        return None

    fields = [f.strip() for f in arg.split(",") if f.strip() != ""]

    return fields if fields else None


def parse_units_arg(arg: Optional[str]) -> Optional[List[Optional[str]]]:
    """
    Parse a comma-separated list of units, one per scalar.

    Empty entries (or 'native') keep the native unit: 'g/cm**3,,K' -> ['g/cm**3', None, 'K'].
    """

    if arg is None:
        return None

    units: List[Optional[str]] = []
    for u in arg.split(","):
        u = u.strip()
        units.append(None if u in ("", "native") else u)
    return units


def parse_vector_arg(arg: Optional[str]) -> Optional[Tuple[str, str, str]]:
    """
    Parse the vector selection: three component names 'vx,vy,vz', or one base
    name 'velocity' meaning 'velocity_x,velocity_y,velocity_z'.
    """

    names = parse_fields_arg(arg)
    if names is None:
        return None

    if len(names) == 1:
        return tuple(f"{names[0]}_{c}" for c in COMPONENTS)

    if len(names) != 3:
        raise argparse.ArgumentTypeError("Vector must be one base name or exactly 3 component names.")

    return tuple(names)


class SnapshotConverter:
    """
    Convert RAMSES (osyris) outputs into VTKHDF level files and manifests.

    Each snapshot `n` is written with the prefix `<output_directory>/<output_prefix>_<n:05d>`.
    """

    def __init__(
        self,
        input_folder: str,
        output_prefix: str = "amr",
        request: Optional[ExportRequest] = None,
        x_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
        y_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
        z_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
        output_directory: Optional[str] = None,
        particles: bool = False,
        particle_options: Optional[Dict[str, Any]] = None,
        converter=None,
    ):
        # Inputs & configuration
        self.input_folder = input_folder
        self.output_prefix = output_prefix
        self.output_directory = output_directory

        self.request = request if request is not None else ExportRequest(scalars=("density",))

        # normalized ranges (None/None => no crop)
        self.x_range_norm = x_range_norm
        self.y_range_norm = y_range_norm
        self.z_range_norm = z_range_norm

        self.particles = particles
        self.particle_options = dict(particle_options or {})
        self.converter = converter

    @property
    def dry_run(self) -> bool:
        return self.request.dry_run

    def output_base(self, output_num: int) -> str:
        outdir = self.output_directory or self.input_folder
        return os.path.join(outdir, f"{self.output_prefix}_{output_num:05d}")

    def read_data(self, output_num: int):
        """
        Load a RAMSES snapshot using osyris.RamsesDataset and return the loaded dataset.
        On failure, logs the error and returns None (so caller can handle).
        """
        try:
            ds = osyris.RamsesDataset(output_num, path=self.input_folder).load()
            return ds
        except Exception as e:
            logger.error("Failed to load output %s from '%s': %s", output_num, self.input_folder, e)
            logger.debug("Exception details:", exc_info=True)
            return None

    def build_table(self, data) -> AmrTable:
        """Hydro table of a loaded dataset, cropped to the requested sub-volume."""
        table = AmrTable.from_osyris(data["mesh"])
        logger.info("Loaded %d cells on levels %s (boxlen = %.6g)", len(table), table.levels, table.boxlen)
        return table.crop(self.x_range_norm, self.y_range_norm, self.z_range_norm)

    def convert_one(self, output_num: int, data) -> Optional[ExportResult]:
        """
        Export one loaded dataset (nothing is written in dry-run mode).

        Args:
            output_num: snapshot number
            data: object returned by osyris.RamsesDataset(...).load()
        """
        if data is None:
            logger.warning("No data for output %s; skipping.", output_num)
            return None

        if "mesh" not in data:
            logger.error("Dataset %s does not contain a 'mesh' key; skipping.", output_num)
            return None

        t0 = time.time()
        base = self.output_base(output_num)

        table = self.build_table(data)
        if len(table) == 0:
            logger.warning("Skipping output %s: all cells filtered out.", output_num)
            return None

        result = export_vtk(table, base, self.request, converter=self.converter)

        if self.particles:
            if "part" in data and not self.dry_run:
                ptable = ParticleTable.from_osyris(data["part"])
                export_particles(ptable, f"{base}_particles", converter=self.converter, **self.particle_options)
            elif "part" not in data:
                logger.warning("Dataset %s has no particles; particle export skipped.", output_num)

        if not self.dry_run:
            logger.info("DONE: Saved output %s as '%s_*' in %.2fs", output_num, base, time.time() - t0)
        return result

    def process_output(self, output_num: int) -> Optional[ExportResult]:
        """
        Read and convert a single output (load + convert_one).
        This wrapper isolates exceptions so callers (parallel runner) can continue on failure.
        """
        data = self.read_data(output_num)
        try:
            return self.convert_one(output_num, data)
        except AmrVtkError as e:
            logger.error("Failed to convert output %s: %s", output_num, e)
        except Exception as e:
            logger.exception("Unexpected failure converting output %s: %s", output_num, e)
        return None


def list_fields_for_snapshot(input_folder: str, output_num: int) -> List[str]:
    """
    Load one snapshot and return the field names that can be exported
    (vector fields appear as their _x/_y/_z components).
    """
    try:
        ds = osyris.RamsesDataset(output_num, path=input_folder).load()
    except Exception as e:
        logger.error("Failed to load output %s for field listing: %s", output_num, e)
        return []

    if ds is None or "mesh" not in ds:
        logger.warning("No 'mesh' found in snapshot %s; cannot list fields.", output_num)
        return []

    return AmrTable.from_osyris(ds["mesh"]).field_names
