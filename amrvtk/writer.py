# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
VTKHDF emitters
──────────────────────────────────────────────────────────────────────────────
- Level files: one VTKHDF `UnstructuredGrid` per AMR level (points,
  connectivity, offsets, cell types, named CellData/PointData arrays).
- Manifests: one VTKHDF `MultiBlockDataSet` per export kind. Every block is an
  HDF5 external link to the `/VTKHDF` group of a level file (relative path),
  listed in the `Assembly` group in level order.

Both kinds of files are written to a temporary `.part` file and renamed into
place, so a file on disk is always complete. The manifest is rewritten after
each level, so it only ever references levels that were fully written.

"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import sys
import time
from typing import Dict, List, Optional, Tuple

import h5py as h5
import numpy as np

from . import __version__
from .errors import ExportIOError
from .mesh import LevelMesh

logger = logging.getLogger("amrvtk")

VTKHDF_VERSION = (2, 2)
EXTENSION = ".vtkhdf"


def _ascii_attr(group, name: str, text: str) -> None:
    data = text.encode("ascii")
    group.attrs.create(name, data, dtype=h5.string_dtype("ascii", len(data)))


def _attr_text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("ascii")
    if isinstance(value, np.ndarray):
        return _attr_text(value.item())
    return str(value)


def _write_array(group, name: str, data: np.ndarray, compress: bool) -> None:
    kwargs = {}
    if compress and data.size:
        kwargs = {"compression": "gzip", "compression_opts": 4}
    group.create_dataset(name, data=data, **kwargs)


def _cast_floats(name: str, arr: np.ndarray, float_dtype: str) -> np.ndarray:
    """Cast to `float_dtype`, keeping float64 when finite values would overflow it."""
    dtype = np.dtype(float_dtype)
    if arr.dtype.itemsize > dtype.itemsize and arr.size:
        finite = arr[np.isfinite(arr)]
        if finite.size and np.abs(finite).max() > np.finfo(dtype).max:
            logger.warning(
                "Array '%s' exceeds the %s range; writing it as float64.", name, dtype.name
            )
            return arr.astype("f8")
    return arr.astype(dtype)


def _add_generator_metadata(root) -> None:
    root.attrs["generator_command"] = shlex.join(sys.argv)
    root.attrs["generator_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    root.attrs["generator_version"] = __version__


def _discard(tmp: str) -> None:
    try:
        os.remove(tmp)
    except FileNotFoundError:
        pass


def ensure_output_dir(outprefix: str) -> Optional[str]:
    """Create the directory part of `outprefix` if needed. Returns it (None for the cwd)."""
    outdir = os.path.dirname(outprefix)
    if not outdir:
        return None
    if not os.path.isdir(outdir):
        try:
            os.makedirs(outdir, exist_ok=True)
        except OSError as e:
            raise ExportIOError(f"Cannot create output directory '{outdir}': {e}") from e
        logger.info("Created directory: %s", outdir)
    return outdir


def file_size(path: str) -> int:
    return os.path.getsize(path)


def format_size(nbytes: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if nbytes < 1024.0 or unit == "GB":
            return f"{nbytes:.0f} {unit}" if unit == "B" else f"{nbytes:.2f} {unit}"
        nbytes /= 1024.0
    return f"{nbytes:.2f} TB"


def write_unstructured_grid(
    path: str,
    mesh: LevelMesh,
    float_dtype: str = "f8",
    compress: bool = True,
    attrs: Optional[Dict[str, object]] = None,
    units: Optional[Dict[str, Optional[str]]] = None,
) -> str:
    """
    Write one mesh as a VTKHDF UnstructuredGrid.

    Args:
        path: destination file (replaced atomically).
        mesh: the LevelMesh to serialize.
        float_dtype: dtype of floating point data arrays (points stay float64).
        compress: gzip-compress the datasets.
        attrs: extra attributes stored on the /VTKHDF group.
        units: optional unit string per data array, stored as a `unit` attribute.

    Returns:
        path
    """
    units = units or {}
    tmp = path + ".part"

    try:
        with h5.File(tmp, "w") as f:
            root = f.create_group("VTKHDF", track_order=True)
            root.attrs["Version"] = VTKHDF_VERSION
            _ascii_attr(root, "Type", "UnstructuredGrid")

            root.create_dataset("NumberOfPoints", data=np.array([mesh.npoints], dtype="i8"))
            root.create_dataset("NumberOfCells", data=np.array([mesh.ncells], dtype="i8"))
            root.create_dataset(
                "NumberOfConnectivityIds", data=np.array([len(mesh.connectivity)], dtype="i8")
            )

            _write_array(root, "Points", np.asarray(mesh.points, dtype="f8"), compress)
            _write_array(root, "Connectivity", np.asarray(mesh.connectivity, dtype="i8"), compress)
            _write_array(root, "Offsets", np.asarray(mesh.offsets, dtype="i8"), compress)
            _write_array(root, "Types", np.asarray(mesh.types, dtype="u1"), compress)

            for group_name, arrays in (("CellData", mesh.cell_data), ("PointData", mesh.point_data)):
                group = root.create_group(group_name, track_order=True)
                for name, arr in arrays.items():
                    arr = np.asarray(arr)
                    if np.issubdtype(arr.dtype, np.floating):
                        arr = _cast_floats(name, arr, float_dtype)
                    _write_array(group, name, arr, compress)
                    if units.get(name):
                        group[name].attrs["unit"] = units[name]

            root.create_group("FieldData")

            _add_generator_metadata(root)
            for key, value in (attrs or {}).items():
                if value is not None:
                    root.attrs[key] = value

        os.replace(tmp, path)
    except BaseException:
        _discard(tmp)
        raise

    return path


def read_unstructured_grid(path: str) -> LevelMesh:
    """Read a file written by write_unstructured_grid back into a LevelMesh."""
    with h5.File(path, "r") as f:
        root = f["VTKHDF"]
        kind = _attr_text(root.attrs["Type"])
        if kind != "UnstructuredGrid":
            raise ValueError(f"'{path}' holds a {kind}, not an UnstructuredGrid")

        level = root.attrs.get("AMRLevel")
        return LevelMesh(
            points=root["Points"][()],
            connectivity=root["Connectivity"][()],
            offsets=root["Offsets"][()],
            types=root["Types"][()],
            cell_data={name: ds[()] for name, ds in root["CellData"].items()},
            point_data={name: ds[()] for name, ds in root["PointData"].items()},
            level=None if level is None else int(level),
        )


class MultiBlockManifest:
    """
    VTKHDF MultiBlockDataSet referencing level files.

    The file is created by the first `add_block()` and rewritten by each later
    one; until then nothing exists on disk.
    """

    def __init__(self, path: str):
        self.path = path
        self.blocks: List[Tuple[str, str]] = []

    def __len__(self) -> int:
        return len(self.blocks)

    def discard_stale(self) -> None:
        """Remove a manifest left over from an earlier run."""
        if not self.blocks and os.path.exists(self.path):
            logger.debug("Removing stale manifest %s", self.path)
            os.remove(self.path)

    def add_block(self, name: str, file_path: str) -> None:
        """Append a block referencing `file_path` (must already be fully written)."""
        base = os.path.dirname(os.path.abspath(self.path))
        rel = os.path.relpath(os.path.abspath(file_path), base)
        tmp = self.path + ".part"

        try:
            if self.blocks:
                shutil.copyfile(self.path, tmp)
                f = h5.File(tmp, "a")
            else:
                f = h5.File(tmp, "w")

            with f:
                if "VTKHDF" not in f:
                    root = f.create_group("VTKHDF", track_order=True)
                    root.attrs["Version"] = VTKHDF_VERSION
                    _ascii_attr(root, "Type", "MultiBlockDataSet")
                    root.create_group("Assembly", track_order=True)
                    _add_generator_metadata(root)
                root = f["VTKHDF"]
                root[name] = h5.ExternalLink(rel, "/VTKHDF")
                root["Assembly"][name] = h5.SoftLink(f"/VTKHDF/{name}")

            os.replace(tmp, self.path)
        except BaseException:
            _discard(tmp)
            raise

        self.blocks.append((name, rel))
        logger.debug("Added block '%s' -> %s to %s", name, rel, os.path.basename(self.path))


def read_manifest(path: str) -> List[Tuple[str, str]]:
    """(block name, referenced file) pairs of a manifest, in block order."""
    out = []
    with h5.File(path, "r") as f:
        root = f["VTKHDF"]
        kind = _attr_text(root.attrs["Type"])
        if kind != "MultiBlockDataSet":
            raise ValueError(f"'{path}' holds a {kind}, not a MultiBlockDataSet")
        for name in root["Assembly"]:
            link = root.get(name, getlink=True)
            if isinstance(link, h5.ExternalLink):
                out.append((name, link.filename))
            else:
                out.append((name, path))
    return out
