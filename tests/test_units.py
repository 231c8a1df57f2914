"""
Unit tests for amrvtk unit conversion.

These tests verify that:
1. The pint converter scales values and understands the RAMSES shorthands
2. Incompatible or unknown units raise InvalidUnitError
3. Identity and callable converters follow the same contract

"""

import numpy as np
import pytest

from amrvtk.errors import InvalidUnitError
from amrvtk.units import IdentityConverter, PintConverter, as_converter


# ──────────────────────────────────────────────────────────────
# pint converter
# ──────────────────────────────────────────────────────────────

def test_pint_length_and_density():
    conv = PintConverter()
    np.testing.assert_allclose(conv.convert([1.0, 2.0], "kpc", "pc"), [1000.0, 2000.0])
    np.testing.assert_allclose(conv.convert([1.0], "g/cm**3", "kg/m**3"), [1000.0])


def test_pint_osyris_style_unit_strings():
    """Unit strings as printed by osyris arrays are accepted."""
    conv = PintConverter()
    np.testing.assert_allclose(conv.convert([1.0e5], "cm / s", "km/s"), [1.0])


def test_pint_hydrogen_number_density():
    conv = PintConverter()
    rho = 1.6737236e-24
    np.testing.assert_allclose(conv.convert([rho], "g/cm**3", "n_H"), [1.0])


def test_pint_native_target_is_a_no_op():
    conv = PintConverter()
    values = np.array([1.0, 2.0])
    np.testing.assert_array_equal(conv.convert(values, "g/cm**3", None), values)


def test_pint_incompatible_units():
    conv = PintConverter()
    with pytest.raises(InvalidUnitError) as exc:
        conv.convert([1.0], "g/cm**3", "km/s")
    assert exc.value.to_unit == "km/s"


def test_pint_unknown_unit():
    with pytest.raises(InvalidUnitError):
        PintConverter().convert([1.0], "cm", "furlongzz")


# ──────────────────────────────────────────────────────────────
# Other converters
# ──────────────────────────────────────────────────────────────

def test_identity_converter():
    conv = IdentityConverter()
    np.testing.assert_array_equal(conv.convert([3.0], "K", "K"), [3.0])
    with pytest.raises(InvalidUnitError):
        conv.convert([3.0], "K", "eV")


def test_callable_is_wrapped():
    def scale(values, from_unit, to_unit):
        if (from_unit, to_unit) != ("m", "mm"):
            raise KeyError(to_unit)
        return np.asarray(values) * 1000.0

    conv = as_converter(scale)
    np.testing.assert_allclose(conv.convert([2.0], "m", "mm"), [2000.0])
    with pytest.raises(InvalidUnitError):
        conv.convert([2.0], "m", "km")


def test_as_converter_defaults_to_pint():
    assert isinstance(as_converter(None), PintConverter)
    ident = IdentityConverter()
    assert as_converter(ident) is ident
    with pytest.raises(TypeError):
        as_converter(42)
