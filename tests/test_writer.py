"""
Unit tests for the amrvtk VTKHDF writer.

These tests verify that:
1. Level files follow the VTKHDF UnstructuredGrid layout and read back intact
2. Failed writes leave neither the target nor a temporary file behind
3. Manifests list their blocks in insertion order as external links

"""

import logging
import os

import h5py as h5
import numpy as np
import pytest

from amrvtk.mesh import build_level_mesh
from amrvtk.writer import (
    MultiBlockManifest,
    format_size,
    read_manifest,
    read_unstructured_grid,
    write_unstructured_grid,
)


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def two_cell_mesh(level=1):
    centers = np.array([[0.25, 0.25, 0.25], [0.75, 0.25, 0.25]])
    data = {"rho": np.array([1.5, 2.5]), "AMR_Level": np.full(2, level, dtype=np.int32)}
    return build_level_mesh(centers, 0.5, data, level=level)


# ──────────────────────────────────────────────────────────────
# Level files
# ──────────────────────────────────────────────────────────────

def test_unstructured_grid_layout(tmp_path):
    path = str(tmp_path / "grid.vtkhdf")
    write_unstructured_grid(
        path, two_cell_mesh(), float_dtype="f4", attrs={"AMRLevel": 1}, units={"rho": "g/cm**3"}
    )

    with h5.File(path, "r") as f:
        root = f["VTKHDF"]
        assert tuple(root.attrs["Version"]) == (2, 2)
        assert root.attrs["Type"] in (b"UnstructuredGrid", "UnstructuredGrid")
        assert root["NumberOfCells"][0] == 2
        assert root["NumberOfPoints"][0] == 16
        assert root["NumberOfConnectivityIds"][0] == 16
        assert root["Types"].dtype == np.uint8
        assert root["Points"].dtype == np.float64
        assert root["CellData/rho"].dtype == np.float32
        assert root["CellData/AMR_Level"].dtype == np.int32
        assert root["CellData/rho"].attrs["unit"] == "g/cm**3"
        assert "FieldData" in root
        assert "generator_version" in root.attrs


def test_unstructured_grid_round_trip(tmp_path):
    path = str(tmp_path / "grid.vtkhdf")
    mesh = two_cell_mesh(level=3)
    write_unstructured_grid(path, mesh, float_dtype="f8", compress=False, attrs={"AMRLevel": 3})

    back = read_unstructured_grid(path)
    assert back.level == 3
    np.testing.assert_array_equal(back.points, mesh.points)
    np.testing.assert_array_equal(back.connectivity, mesh.connectivity)
    np.testing.assert_array_equal(back.cell_data["rho"], [1.5, 2.5])
    assert list(back.cell_data) == ["rho", "AMR_Level"]


def test_default_precision_is_double(tmp_path):
    path = str(tmp_path / "grid.vtkhdf")
    write_unstructured_grid(path, two_cell_mesh())
    with h5.File(path, "r") as f:
        assert f["VTKHDF/CellData/rho"].dtype == np.float64


def test_single_precision_keeps_out_of_range_values(tmp_path, caplog):
    """Values beyond the float32 range are written as float64 instead of inf."""
    path = str(tmp_path / "grid.vtkhdf")
    data = {"mass": np.array([2e40, 1.0]), "rho": np.array([1.5, 2.5])}
    mesh = build_level_mesh(np.array([[0.25, 0.25, 0.25], [0.75, 0.25, 0.25]]), 0.5, data)

    with caplog.at_level(logging.WARNING, logger="amrvtk"):
        write_unstructured_grid(path, mesh, float_dtype="f4")

    with h5.File(path, "r") as f:
        mass = f["VTKHDF/CellData/mass"]
        assert mass.dtype == np.float64
        np.testing.assert_array_equal(mass[()], [2e40, 1.0])
        assert f["VTKHDF/CellData/rho"].dtype == np.float32
    assert any("mass" in r.getMessage() for r in caplog.records)


def test_failed_write_leaves_nothing(tmp_path):
    path = str(tmp_path / "broken.vtkhdf")
    mesh = build_level_mesh(np.zeros((1, 3)), 1.0, {"bad": np.array([object()], dtype=object)})

    with pytest.raises(TypeError):
        write_unstructured_grid(path, mesh)

    assert os.listdir(tmp_path) == []


# ──────────────────────────────────────────────────────────────
# Manifests
# ──────────────────────────────────────────────────────────────

def test_manifest_blocks_in_order(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for level in (2, 1):
        write_unstructured_grid(f"snap_L{level}.vtkhdf", two_cell_mesh(level))

    manifest = MultiBlockManifest("snap_scalar.vtkhdf")
    assert not os.path.exists("snap_scalar.vtkhdf")
    manifest.add_block("Level_2", "snap_L2.vtkhdf")
    manifest.add_block("Level_1", "snap_L1.vtkhdf")

    assert len(manifest) == 2
    assert read_manifest("snap_scalar.vtkhdf") == [
        ("Level_2", "snap_L2.vtkhdf"),
        ("Level_1", "snap_L1.vtkhdf"),
    ]
    assert not os.path.exists("snap_scalar.vtkhdf.part")

    with h5.File("snap_scalar.vtkhdf", "r") as f:
        assert f["VTKHDF"].attrs["Type"] in (b"MultiBlockDataSet", "MultiBlockDataSet")
        assert f["VTKHDF/Level_1/NumberOfCells"][0] == 2
        assert isinstance(f["VTKHDF/Assembly"].get("Level_2", getlink=True), h5.SoftLink)


def test_manifest_discard_stale(tmp_path):
    path = tmp_path / "old_scalar.vtkhdf"
    path.write_bytes(b"stale")
    MultiBlockManifest(str(path)).discard_stale()
    assert not path.exists()


def test_read_manifest_rejects_level_file(tmp_path):
    path = str(tmp_path / "grid.vtkhdf")
    write_unstructured_grid(path, two_cell_mesh())
    with pytest.raises(ValueError):
        read_manifest(path)


def test_format_size():
    assert format_size(512) == "512 B"
    assert format_size(2048) == "2.00 KB"
