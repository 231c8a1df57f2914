"""
Unit tests for the amrvtk snapshot converter.

These tests verify that the converter:
1. Initializes correctly and names its outputs per snapshot
2. Builds and crops the hydro table from an osyris-like dataset
3. Writes level files, manifests and particles for one snapshot
4. Skips missing or unusable snapshots without raising

"""

import os
from types import SimpleNamespace

import numpy as np

from amrvtk import ExportRequest, read_manifest
from amrvtk.converter import SnapshotConverter

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

NON_EXISTENT_FOLDER = "/non/existent/ramses_outputs"


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def arr(values, unit=None):
    return SimpleNamespace(values=np.asarray(values, dtype=float), unit=unit)


def vec(x, y, z, unit=None):
    return SimpleNamespace(x=arr(x), y=arr(y), z=arr(z), unit=unit)


def fake_dataset(table, with_particles=False):
    """osyris-like dataset (dict of groups of unit-carrying arrays) built from an AmrTable."""
    x, y, z = table.position.T
    mesh = {
        "level": arr(table.level),
        "position": vec(x, y, z, unit="cm"),
        "dx": arr(table.dx, unit="cm"),
        "density": arr(table.values("density"), unit="g / cm ** 3"),
        "velocity": vec(table.values("vx"), table.values("vy"), table.values("vz"), unit="cm / s"),
    }
    data = {"mesh": mesh}
    if with_particles:
        data["part"] = {
            "position": vec([0.1, 0.2], [0.1, 0.2], [0.1, 0.2], unit="cm"),
            "mass": arr([1.0, 2.0], unit="g"),
        }
    return data


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_converter_init():
    """Ensure converter initializes with correct input folder, prefix and default request."""
    conv = SnapshotConverter(input_folder=NON_EXISTENT_FOLDER, output_prefix="test_amr")
    assert conv.input_folder == NON_EXISTENT_FOLDER
    assert conv.output_prefix == "test_amr"
    assert conv.request.scalars == ("density",)
    assert not conv.dry_run


def test_output_base():
    conv = SnapshotConverter(input_folder="/data/run", output_prefix="amr")
    assert conv.output_base(5) == os.path.join("/data/run", "amr_00005")
    conv.output_directory = "/tmp/vtk"
    assert conv.output_base(12) == os.path.join("/tmp/vtk", "amr_00012")


def test_build_table_crops(small_table):
    conv = SnapshotConverter(input_folder=NON_EXISTENT_FOLDER, x_range_norm=(0.0, 0.5))
    table = conv.build_table(fake_dataset(small_table))
    assert table.boxlen == 1.0
    assert 0 < len(table) < len(small_table)
    assert np.all(table.position[:, 0] <= 0.5)
    assert "velocity_x" in table


def test_convert_one_writes_files(small_table, tmp_path):
    request = ExportRequest(
        scalars=["density"],
        vector=("velocity_x", "velocity_y", "velocity_z"),
        vector_name="velocity",
    )
    conv = SnapshotConverter(
        input_folder=NON_EXISTENT_FOLDER,
        output_prefix="amr",
        request=request,
        output_directory=str(tmp_path),
        particles=True,
    )
    result = conv.convert_one(3, fake_dataset(small_table, with_particles=True))

    assert result.levels == [1, 2, 3]
    assert [name for name, _ in read_manifest(str(tmp_path / "amr_00003_scalar.vtkhdf"))] == [
        "Level_1", "Level_2", "Level_3"
    ]
    assert os.path.exists(tmp_path / "amr_00003_vec_L3.vtkhdf")
    assert os.path.exists(tmp_path / "amr_00003_vector.vtkhdf")
    assert os.path.exists(tmp_path / "amr_00003_particles.vtkhdf")


def test_convert_one_dry_run(small_table, tmp_path):
    conv = SnapshotConverter(
        input_folder=NON_EXISTENT_FOLDER,
        request=ExportRequest(scalars=["density"], dry_run=True),
        output_directory=str(tmp_path / "out"),
        particles=True,
    )
    result = conv.convert_one(1, fake_dataset(small_table, with_particles=True))
    assert result.files == []
    assert not os.path.exists(tmp_path / "out")


def test_convert_one_skips_unusable_data(small_table):
    conv = SnapshotConverter(input_folder=NON_EXISTENT_FOLDER)
    assert conv.convert_one(1, None) is None
    assert conv.convert_one(1, {"part": {}}) is None

    empty = SnapshotConverter(input_folder=NON_EXISTENT_FOLDER, x_range_norm=(0.9, 1.0))
    assert empty.convert_one(1, fake_dataset(small_table)) is None


def test_process_output_missing_folder():
    """A snapshot that cannot be loaded is logged and reported as None."""
    conv = SnapshotConverter(input_folder=NON_EXISTENT_FOLDER)
    assert conv.read_data(1) is None
    assert conv.process_output(1) is None
