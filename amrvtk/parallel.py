#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Parallel execution utilities for amrvtk.

Parallelism is per snapshot only: each worker process exports one output from
start to finish, levels in order.

"""

from __future__ import annotations

from functools import partial
from typing import Any, Dict, List, Optional, Tuple

import logging
import time
import concurrent.futures

from .converter import SnapshotConverter, setup_logging
from .exporter import ExportRequest

logger = logging.getLogger("amrvtk")


def process_single_output(
    output_num: int,
    input_folder: str,
    output_prefix: str,
    request: ExportRequest,
    x_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
    y_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
    z_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
    output_directory: Optional[str] = None,
    particles: bool = False,
    particle_options: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
) -> bool:
    """
    Worker function executed in each process. It configures logging and runs conversion
    for a single snapshot number.

    Args:
        output_num: Snapshot/output number being processed.
        input_folder: Root input directory containing RAMSES outputs.
        output_prefix: File prefix for output files.
        request: ExportRequest shared by all snapshots.
        x_range_norm, y_range_norm, z_range_norm: Optional normalized crop ranges.
        output_directory: Optional directory to save output files. If None, uses input_folder.
        particles: Also export particles.
        particle_options: Keyword arguments for export_particles.
        verbose: Flag for verbose logging.

    Returns:
        True when the snapshot was exported (or planned, in dry-run mode).
    """
    setup_logging(verbose)

    try:
        conv = SnapshotConverter(
            input_folder=input_folder,
            output_prefix=output_prefix,
            request=request,
            x_range_norm=x_range_norm,
            y_range_norm=y_range_norm,
            z_range_norm=z_range_norm,
            output_directory=output_directory,
            particles=particles,
            particle_options=particle_options,
        )
        return conv.process_output(output_num) is not None
    except Exception:
        # Do not re-raise because we want other workers to continue
        logger.exception("[worker %s] Unexpected worker error", output_num)
        return False


def run_parallel_conversion(
    output_numbers: List[int],
    input_folder: str,
    output_prefix: str,
    request: ExportRequest,
    x_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
    y_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
    z_range_norm: Tuple[Optional[float], Optional[float]] = (None, None),
    output_directory: Optional[str] = None,
    particles: bool = False,
    particle_options: Optional[Dict[str, Any]] = None,
    verbose: bool = False,
    nproc: Optional[int] = None,
) -> List[int]:
    """
    High-level runner that dispatches the export of multiple outputs.

    Parameters:
    - output_numbers: List of snapshot numbers to convert.
    - nproc: Number of worker processes. None or <= 0 means 1 (serial);
             otherwise up to min(nproc, number of outputs) workers.
    - The remaining parameters are forwarded to process_single_output.

    Behavior:
    - On parallel execution failure, falls back to serial processing per output,
      continuing on errors without stopping the entire process.

    Returns:
    - The output numbers that failed.
    """

    if nproc is not None and nproc > 0:
        nworkers = min(nproc, len(output_numbers))
    else:
        nworkers = 1

    logger.info("Starting on %d worker(s) for outputs %s", nworkers, output_numbers)
    t0 = time.time()

    worker = partial(
        process_single_output,
        input_folder=input_folder,
        output_prefix=output_prefix,
        request=request,
        x_range_norm=x_range_norm,
        y_range_norm=y_range_norm,
        z_range_norm=z_range_norm,
        output_directory=output_directory,
        particles=particles,
        particle_options=particle_options,
        verbose=verbose,
    )

    if nworkers == 1:
        ok = [worker(num) for num in output_numbers]
    else:
        try:
            with concurrent.futures.ProcessPoolExecutor(max_workers=nworkers) as ex:
                ok = list(ex.map(worker, output_numbers))
        except Exception as e:
            logger.error("Parallel execution failed: %s", e)
            logger.info("Falling back to serial execution...")
            ok = [worker(num) for num in output_numbers]

    failed = [num for num, good in zip(output_numbers, ok) if not good]
    if failed:
        logger.warning("Outputs not exported: %s", failed)

    logger.info("Total elapsed: %.2fs", time.time() - t0)
    return failed
