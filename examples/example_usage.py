#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

─────────────────────────────────────────────────────────────
Example Usage of amrvtk
─────────────────────────────────────────────────────────────

This script demonstrates the two ways of driving amrvtk:

1. RAMSES snapshots on disk, through `SnapshotConverter`
   (listing fields, then a dry-run that only prints the level plan)
2. An in-memory `AmrTable`, exported with `export_vtk`
   (a small synthetic refined sphere, written for real)

Open the `*_scalar.vtkhdf` / `*_vector.vtkhdf` manifests in ParaView.

─────────────────────────────────────────────────────────────

"""

import itertools
import logging
from typing import List

import numpy as np

from amrvtk import AmrTable, ExportRequest, SnapshotConverter, export_vtk, list_fields_for_snapshot
from amrvtk.converter import setup_logging

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

RAMSES_OUTPUT_ROOT = "ramses_outputs/sedov_3d"

SNAPSHOT_NUMBERS = [1, 2]

OUTPUT_DIR = "vtk_outputs"

SYNTHETIC_LEVELS = (3, 6)  # coarsest, finest


# ──────────────────────────────────────────────────────────────
# Helper Functions
# ──────────────────────────────────────────────────────────────

def print_snapshot_info(snapshot_num: int, fields: List[str]):

    print(f"\n🔹 Snapshot {snapshot_num}")
    if fields:
        print(f"Detected fields: {', '.join(fields)}")
    else:
        print("Detected fields: None")


def synthetic_sphere(lmin: int, lmax: int) -> AmrTable:
    """Unit box refined towards a sphere of radius 0.2 at the centre."""

    def refine(level, idx):
        centre = (np.array(idx) + 0.5) / 2 ** level
        return abs(np.linalg.norm(centre - 0.5) - 0.2) < 1.5 / 2 ** level

    leaves = []
    stack = [(lmin, idx) for idx in itertools.product(range(2 ** lmin), repeat=3)]
    while stack:
        level, idx = stack.pop()
        if level < lmax and refine(level, idx):
            for d in itertools.product((0, 1), repeat=3):
                stack.append((level + 1, tuple(2 * i + di for i, di in zip(idx, d))))
        else:
            leaves.append((level, idx))

    level = np.array([l for l, _ in leaves])
    position = (np.array([i for _, i in leaves]) + 0.5) / np.power(2.0, level)[:, None]
    r = np.linalg.norm(position - 0.5, axis=1)
    density = np.where(r < 0.2, 100.0, 1.0) * 1e-24
    velocity = (position - 0.5) * 1e5

    return AmrTable(
        level=level,
        position=position,
        fields={"density": density, "vx": velocity[:, 0], "vy": velocity[:, 1], "vz": velocity[:, 2]},
        units={"density": "g/cm**3", "vx": "cm/s", "vy": "cm/s", "vz": "cm/s"},
        boxlen=1.0,
        position_unit="pc",
    )


# ──────────────────────────────────────────────────────────────
# Main Example Workflow
# ──────────────────────────────────────────────────────────────

def main():

    setup_logging(verbose=False)
    logging.getLogger("amrvtk").setLevel(logging.WARNING)

    print("=== amrvtk Example Usage ===")

    # 1. RAMSES outputs: list fields and show the level plan
    request = ExportRequest(
        scalars=("density",),
        scalars_unit=("n_H",),
        scalars_log10=True,
        vector=("velocity_x", "velocity_y", "velocity_z"),
        vector_unit="km/s",
        vector_name="velocity",
        lmax=8,
        dry_run=True,
    )
    for num in SNAPSHOT_NUMBERS:
        print_snapshot_info(num, list_fields_for_snapshot(RAMSES_OUTPUT_ROOT, num))
        converter = SnapshotConverter(RAMSES_OUTPUT_ROOT, output_prefix="example", request=request)
        if converter.process_output(num) is None:
            print(f"❌ Snapshot {num} could not be converted (see log)")
        else:
            print(f"✅ Snapshot {num} dry-run completed")

    # 2. In-memory table: write files
    table = synthetic_sphere(*SYNTHETIC_LEVELS)
    print(f"\n🔹 Synthetic table: {table}")

    result = export_vtk(
        table,
        f"{OUTPUT_DIR}/sphere",
        scalars=["density"],
        scalars_unit=["n_H"],
        scalars_log10=True,
        vector=("vx", "vy", "vz"),
        vector_unit="km/s",
        vector_name="velocity",
        lmax=5,
    )
    print(f"Levels written: {result.levels}")
    for path in result.files:
        print("  -", path)

    print("\n🎉 Example usage finished!")


# ──────────────────────────────────────────────────────────────
# Entry Point
# ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
