#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
CLI QUICK START (copy–paste, then tweak)
──────────────────────────────────────────────────────────────────────────────
Example run (density in n_H and log10, velocity in km/s, levels up to 9):

    amrvtk \
        --base-dir ./simulations \
        --folder-name output_dir \
        --numbers 1,3,5-7 \
        --output-prefix amr \
        --output-dir ./vtk \
        --scalars density,pressure --scalars-unit n_H,erg/cm**3 --log10 \
        --vector velocity --vector-unit km/s --vector-name velocity \
        --lmax 9 --max-cells 5000000 --positions-unit kpc \
        --verbose

Exploration mode :

    # Lists the fields that can be exported (no conversion happens)
    amrvtk --base-dir ./simulations --folder-name output_dir -n 5 --list-fields

    # Dry-run: show the level plan, but don’t write .vtkhdf files
    amrvtk --base-dir ./simulations --folder-name output_dir \
        -n 5 --lmax 8 --dry-run --verbose

    # Summarize a written level file or manifest
    amrvtk --inspect ./vtk/amr_00005_scalar.vtkhdf

Required args (except with --inspect):

    --base-dir         Path to your RAMSES run root directory.
    --folder-name      Subfolder inside base-dir containing outputs.
    -n / --numbers     Output numbers to process. Formats:
                       "7" or "3,5,9" or "10-15"

Optional args:

    --output-prefix / -o   Prefix for output files (default: amr)
    --output-dir           Where to write (default: the input folder)
    --scalars              Scalar fields (default: density)
    --scalars-unit         One unit per scalar; empty entry = native unit
    --log10                Store log10 of the scalars
    --vector               'velocity' or 'vx,vy,vz'
    --vector-unit / --vector-name
    --lmin / --lmax        Exported level range; finer cells are averaged into lmax
    --max-cells            Cell budget of the top level (lowers lmax if needed)
    --weighting            volume (default), arithmetic or mass:<field>
    --positions-unit       Unit of the written coordinates (default: native)
    --x-range / --y-range / --z-range   Normalized crop ranges [0,1] over box length
    --particles            Also write <prefix>_<n>_particles.vtkhdf
    --nproc                Snapshots converted in parallel
    --verbose              step-by-step narration
    --list-fields          Only list available fields and exit
    --dry-run              Run everything except the actual write step

"""


import os
import argparse
import logging
import sys

from .converter import (
    parse_fields_arg,
    parse_norm_range,
    parse_output_numbers,
    parse_units_arg,
    parse_vector_arg,
    list_fields_for_snapshot,
    setup_logging,
)
from .coarsen import DEFAULT_MAX_CELLS
from .errors import AmrVtkError
from .exporter import ExportRequest
from .parallel import run_parallel_conversion
from .writer import read_manifest, read_unstructured_grid

logger = logging.getLogger("amrvtk")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export RAMSES AMR hydro data to VTKHDF level files for ParaView")

    # Inputs
    parser.add_argument("--base-dir", type=str, default=None, help="Base directory containing simulation folders")
    parser.add_argument("--folder-name", type=str, default=None, help="Folder inside base_dir to process")
    parser.add_argument("-n", "--numbers", type=parse_output_numbers, default=None, help="Output numbers like '1', '1,3,5' or '2-7'")

    # Output
    parser.add_argument("-o", "--output-prefix", dest="output_prefix", default="amr", help="Output file prefix (default: amr)")
    parser.add_argument("--output-dir", dest="output_dir", default=None, help="Output directory (default: input folder)")

    # Fields
    parser.add_argument("--scalars", type=parse_fields_arg, default=None, help="Comma-separated scalar fields (default: density)")
    parser.add_argument("--scalars-unit", type=parse_units_arg, default=None, help="Comma-separated units, one per scalar (empty = native)")
    parser.add_argument("--log10", action="store_true", help="Apply log10 to the scalars")
    parser.add_argument("--no-scalars", action="store_true", help="Export only the vector")
    parser.add_argument("--vector", type=parse_vector_arg, default=None, help="Vector field: base name (velocity) or 3 components (vx,vy,vz)")
    parser.add_argument("--vector-unit", default=None, help="Unit of the vector components (default: native)")
    parser.add_argument("--vector-name", default="velocity", help="Array name of the vector (default: velocity)")

    # Levels and size
    parser.add_argument("--lmin", type=int, default=None, help="Coarsest level to export")
    parser.add_argument("--lmax", type=int, default=None, help="Finest level to export; finer cells are averaged into it")
    parser.add_argument("--max-cells", type=int, default=DEFAULT_MAX_CELLS, help=f"Cell budget of the top level (default: {DEFAULT_MAX_CELLS})")
    parser.add_argument("--weighting", default="volume", help="Averaging weights: volume, arithmetic or mass:<field>")
    parser.add_argument("--no-interpolate", action="store_true", help="Drop cells finer than lmax instead of averaging them")

    # Geometry and format
    parser.add_argument("--positions-unit", default=None, help="Unit of the written coordinates (default: native)")
    parser.add_argument("--x-range", type=parse_norm_range, default=None, help="Normalized x range 'min:max' (e.g., 0.2:0.8, :0.7, 0.1:, :).")
    parser.add_argument("--y-range", type=parse_norm_range, default=None, help="Normalized y range 'min:max'.")
    parser.add_argument("--z-range", type=parse_norm_range, default=None, help="Normalized z range 'min:max'.")
    parser.add_argument("--no-compress", action="store_true", help="Write uncompressed datasets")
    parser.add_argument("--single", action="store_true", help="Write data arrays in single precision (values out of float32 range stay float64)")
    parser.add_argument("--merge-points", action="store_true", help="Share corner points between neighbouring cells")

    # Particles
    parser.add_argument("--particles", action="store_true", help="Also export particles (mass, velocity)")
    parser.add_argument("--max-particles", type=int, default=10_000_000, help="Particle cap (default: 10000000)")

    # Utility flags
    parser.add_argument("--nproc", type=int, default=None, help="Number of snapshots converted in parallel")
    parser.add_argument("--list-fields", action="store_true", help="List available fields in the first requested snapshot and exit.")
    parser.add_argument("--inspect", metavar="FILE", default=None, help="Summarize a written level file or manifest and exit.")
    parser.add_argument("--dry-run", action="store_true", help="Print plan without writing files.")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging.")

    return parser


def inspect_file(path: str) -> None:
    """Print a short summary of a written .vtkhdf file."""
    try:
        blocks = read_manifest(path)
    except ValueError:
        mesh = read_unstructured_grid(path)
        lo, hi = mesh.bounds() if mesh.npoints else (None, None)
        print(f"{os.path.basename(path)}: level {mesh.level}, {mesh.ncells} cells, {mesh.npoints} points")
        print(f"  bounds: {lo} .. {hi}")
        for name, arr in {**mesh.cell_data, **mesh.point_data}.items():
            print(f"  - {name} {arr.shape}")
        return

    print(f"{os.path.basename(path)}: {len(blocks)} block(s)")
    for name, fname in blocks:
        print(f"  - {name}: {fname}")


def main() -> None:

    """
    Parse CLI args and run the export pipeline.
    """

    parser = build_parser()
    args = parser.parse_args()

    # Configure logging early
    setup_logging(args.verbose)

    if args.inspect:
        inspect_file(args.inspect)
        return

    if args.base_dir is None or args.folder_name is None or args.numbers is None:
        parser.error("--base-dir, --folder-name and -n/--numbers are required.")

    # Build absolute input folder path and validate
    input_folder = os.path.join(os.path.abspath(args.base_dir), args.folder_name)

    if not os.path.exists(input_folder):
        logger.error("Input folder not found: %s", input_folder)
        raise FileNotFoundError(f"Input folder not found: {input_folder}")

    if args.lmin is not None and args.lmax is not None and args.lmax < args.lmin:
        parser.error(f"Invalid level range: lmax ({args.lmax}) < lmin ({args.lmin}).")

    # If user requested to list fields, inspect the first snapshot in args.numbers
    if args.list_fields:
        first_num = args.numbers[0]
        logger.info("Listing fields for snapshot %s in folder '%s'...", first_num, input_folder)
        fields = list_fields_for_snapshot(input_folder, first_num)

        if fields:
            print("Available fields:")
            for f in fields:
                print(" -", f)
        else:
            print("No fields discovered (see logs for details).")
        return

    scalars = [] if args.no_scalars else (args.scalars or ["density"])

    try:
        request = ExportRequest(
            scalars=tuple(scalars),
            scalars_unit=tuple(args.scalars_unit) if args.scalars_unit else (),
            scalars_log10=args.log10,
            vector=args.vector,
            vector_unit=args.vector_unit,
            vector_name=args.vector_name,
            lmin=args.lmin,
            lmax=args.lmax,
            max_cells=args.max_cells,
            positions_unit=args.positions_unit,
            interpolate_higher_levels=not args.no_interpolate,
            weighting=args.weighting,
            compress=not args.no_compress,
            float_dtype="f4" if args.single else "f8",
            merge_points=args.merge_points,
            dry_run=args.dry_run,
        )
    except AmrVtkError as e:
        parser.error(str(e))

    particle_options = None
    if args.particles:
        particle_options = {
            "scalars": ("mass",),
            "vector": ("velocity_x", "velocity_y", "velocity_z"),
            "vector_unit": args.vector_unit,
            "positions_unit": args.positions_unit,
            "max_particles": args.max_particles,
            "compress": not args.no_compress,
        }

    def norm_default(r):
        return (None, None) if r is None else r

    try:
        failed = run_parallel_conversion(
            output_numbers=args.numbers,
            input_folder=input_folder,
            output_prefix=args.output_prefix,
            request=request,
            x_range_norm=norm_default(args.x_range),
            y_range_norm=norm_default(args.y_range),
            z_range_norm=norm_default(args.z_range),
            output_directory=args.output_dir,
            particles=args.particles,
            particle_options=particle_options,
            verbose=args.verbose,
            nproc=args.nproc,
        )
    except Exception as e:
        logger.exception("FATAL: Unexpected error: %s", e)
        raise

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
