"""
Unit tests for amrvtk field selection.

These tests verify that:
1. Requested fields and units are validated before any export work
2. Scalars are converted and log10'd, with NaN for non-positive values
3. Aggregation weights follow the weighting policy

"""

import logging

import numpy as np
import pytest

from amrvtk.errors import ExportConfigError, InvalidUnitError, InvalidValueError, UnknownFieldError
from amrvtk.exporter import ExportRequest
from amrvtk.fields import FieldSelector, parse_weighting, safe_log10
from amrvtk.units import PintConverter


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def selector(table, **options):
    return FieldSelector(table, ExportRequest(**options), PintConverter())


# ──────────────────────────────────────────────────────────────
# Policies and log10
# ──────────────────────────────────────────────────────────────

def test_parse_weighting():
    assert parse_weighting("volume") == ("volume", None)
    assert parse_weighting("arithmetic") == ("arithmetic", None)
    assert parse_weighting("mass:density") == ("mass", "density")
    with pytest.raises(ExportConfigError):
        parse_weighting("mass:")
    with pytest.raises(ExportConfigError):
        parse_weighting("median")


def test_safe_log10_counts_non_positive():
    out, nbad = safe_log10(np.array([100.0, 0.0, -1.0, np.nan]))
    assert out[0] == pytest.approx(2.0)
    assert np.isnan(out[1:]).all()
    assert nbad == 2


# ──────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────

def test_validate_unknown_field(small_table):
    with pytest.raises(UnknownFieldError):
        selector(small_table, scalars=["pressure"]).validate()


def test_validate_unknown_weight_field(small_table):
    with pytest.raises(UnknownFieldError):
        selector(small_table, scalars=["density"], weighting="mass:rho").validate()


def test_validate_incompatible_unit(small_table):
    with pytest.raises(InvalidUnitError):
        selector(small_table, scalars=["density"], scalars_unit=["km/s"]).validate()


def test_validate_positions_unit(small_table):
    with pytest.raises(InvalidUnitError):
        selector(small_table, scalars=["density"], positions_unit="K").validate()


# ──────────────────────────────────────────────────────────────
# Values
# ──────────────────────────────────────────────────────────────

def test_scalars_converted(small_table):
    sel = selector(small_table, scalars=["density"], scalars_unit=["kg/m**3"])
    out = sel.scalars()
    np.testing.assert_allclose(out["density"], 1000.0 * small_table.values("density"))


def test_scalars_log10_nan_and_single_warning(amr_table, caplog):
    """Non-positive values become NaN; one aggregated warning is logged."""
    sel = selector(amr_table, scalars=["temperature"], scalars_log10=True)
    temp = amr_table.values("temperature")
    out = sel.scalars()["temperature"]

    bad = temp <= 0
    assert bad.any() and (~bad).any()
    assert np.isnan(out[bad]).all()
    np.testing.assert_allclose(out[~bad], np.log10(temp[~bad]))

    with caplog.at_level(logging.WARNING, logger="amrvtk"):
        sel.report_invalid()
        sel.report_invalid()
    warnings = [r for r in caplog.records if "log10" in r.getMessage()]
    assert len(warnings) == 1
    assert str(int(bad.sum())) in warnings[0].getMessage()


def test_scalars_log10_raise_policy(amr_table):
    sel = selector(amr_table, scalars=["temperature"], scalars_log10=True, log10_policy="raise")
    with pytest.raises(InvalidValueError) as exc:
        sel.scalars()
    assert exc.value.field == "temperature"


def test_vector_stacked(small_table):
    sel = selector(small_table, vector=("vx", "vy", "vz"), vector_unit="m/s")
    vec = sel.vector()
    assert vec.shape == (len(small_table), 3)
    np.testing.assert_allclose(vec[:, 1], 0.01 * small_table.values("vy"))
    assert selector(small_table, scalars=["density"]).vector() is None


def test_weights(small_table):
    level = np.array([1, 2])
    np.testing.assert_allclose(selector(small_table, scalars=["density"]).weights(level), [0.125, 0.015625])
    np.testing.assert_allclose(
        selector(small_table, scalars=["density"], weighting="arithmetic").weights(level), [1.0, 1.0]
    )

    mask = np.zeros(len(small_table), dtype=bool)
    mask[:2] = True
    sel = selector(small_table, scalars=["density"], weighting="mass:density")
    rho = small_table.values("density", mask)
    np.testing.assert_allclose(sel.weights(small_table.level[mask], mask), rho * 0.125 ** small_table.level[mask])
