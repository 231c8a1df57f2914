"""
Unit tests for amrvtk parsing helper functions

Validates CLI argument parsing utilities: output numbers, normalized ranges,
fields, units and vector selection.

"""

import argparse

import pytest
from amrvtk.converter import (
    parse_output_numbers,
    parse_norm_range,
    parse_fields_arg,
    parse_units_arg,
    parse_vector_arg,
)


# ──────────────────────────────────────────────────────────────
# Output numbers parsing
# ──────────────────────────────────────────────────────────────

def test_parse_output_numbers_single():
    assert parse_output_numbers("5") == [5]


def test_parse_output_numbers_range():
    assert parse_output_numbers("2-4") == [2, 3, 4]


def test_parse_output_numbers_list():
    assert parse_output_numbers("1,3,7") == [1, 3, 7]


def test_parse_output_numbers_invalid():
    with pytest.raises(argparse.ArgumentTypeError):
        parse_output_numbers("1-3,5")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_output_numbers("7-2")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_output_numbers("abc")


# ──────────────────────────────────────────────────────────────
# Normalized range parsing
# ──────────────────────────────────────────────────────────────

def test_parse_norm_range_valid():
    assert parse_norm_range("0.2:0.8") == (0.2, 0.8)


def test_parse_norm_range_colon_variants():
    assert parse_norm_range(":0.6") == (0.0, 0.6)
    assert parse_norm_range("0.4:") == (0.4, 1.0)
    assert parse_norm_range(":") == (0.0, 1.0)


def test_parse_norm_range_rejects_bad_bounds():
    with pytest.raises(argparse.ArgumentTypeError):
        parse_norm_range("0.8:0.2")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_norm_range("0.5:1.5")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_norm_range("x:0.5")


# ──────────────────────────────────────────────────────────────
# Fields argument parsing
# ──────────────────────────────────────────────────────────────

def test_parse_fields_arg_none():
    assert parse_fields_arg(None) is None


def test_parse_fields_arg_valid():
    assert parse_fields_arg("density,velocity") == ["density", "velocity"]


# ──────────────────────────────────────────────────────────────
# Units and vector parsing
# ──────────────────────────────────────────────────────────────

def test_parse_units_arg_keeps_native_entries():
    assert parse_units_arg("g/cm**3,,K") == ["g/cm**3", None, "K"]
    assert parse_units_arg("native") == [None]
    assert parse_units_arg(None) is None


def test_parse_vector_arg_base_name():
    assert parse_vector_arg("velocity") == ("velocity_x", "velocity_y", "velocity_z")


def test_parse_vector_arg_components():
    assert parse_vector_arg("vx, vy, vz") == ("vx", "vy", "vz")


def test_parse_vector_arg_wrong_count():
    with pytest.raises(argparse.ArgumentTypeError):
        parse_vector_arg("vx,vy")
