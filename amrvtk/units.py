# -*- coding: utf-8 -*-

"""

Unit conversion used by the exporter.

The exporter never looks units up in global state: a converter object is passed
in. Anything with a `convert(values, from_unit, to_unit)` method works, and so
does a plain callable with the same signature. The default converter is backed
by pint, the unit library osyris builds its arrays on, so unit strings coming
out of an osyris snapshot ("g / cm ** 3", "cm / s", ...) are understood as-is.

A `to_unit` of None means "keep the native unit".

"""

from __future__ import annotations

from typing import Callable, Optional, Union

import numpy as np
import pint

from .errors import InvalidUnitError


# Shorthands common in RAMSES post-processing.
# n_H is a mass density expressed as hydrogen number density (rho / m_H).
# ("nH" would collide with nano-henry.)
EXTRA_DEFINITIONS = (
    "hydrogen_mass = 1.6737236e-24 * gram",
    "n_H = hydrogen_mass / centimeter ** 3",
    "km_s = kilometer / second",
)


class IdentityConverter:
    """Converter for tables that carry no units: only `to_unit=None` or the same unit is accepted."""

    def convert(self, values, from_unit: Optional[str], to_unit: Optional[str]):
        if to_unit is None or to_unit == from_unit:
            return np.asarray(values, dtype=float)
        raise InvalidUnitError(from_unit, to_unit, "no unit conversion available")


class PintConverter:
    """
    pint-backed converter.

    Args:
        registry: optional pint.UnitRegistry; a private one is created (with the
                  RAMSES shorthands above) when omitted.
    """

    def __init__(self, registry: Optional[pint.UnitRegistry] = None):
        if registry is None:
            registry = pint.UnitRegistry()
            for definition in EXTRA_DEFINITIONS:
                registry.define(definition)
        self.registry = registry

    def _parse(self, unit: Optional[str]):
        if unit is None or str(unit).strip() in ("", "1", "dimensionless"):
            return self.registry.dimensionless
        return self.registry.Unit(str(unit))

    def convert(self, values, from_unit: Optional[str], to_unit: Optional[str]):
        values = np.asarray(values, dtype=float)

        if to_unit is None or to_unit == from_unit:
            return values

        try:
            src = self._parse(from_unit)
            dst = self._parse(to_unit)
            return self.registry.Quantity(values, src).to(dst).magnitude
        except pint.errors.DimensionalityError as e:
            raise InvalidUnitError(from_unit, to_unit, "incompatible dimensions") from e
        except (pint.errors.UndefinedUnitError, AttributeError, TypeError, ValueError) as e:
            raise InvalidUnitError(from_unit, to_unit, str(e)) from e


ConverterLike = Union[PintConverter, IdentityConverter, Callable]


class _CallableConverter:
    def __init__(self, func: Callable):
        self.func = func

    def convert(self, values, from_unit, to_unit):
        if to_unit is None or to_unit == from_unit:
            return np.asarray(values, dtype=float)
        try:
            return np.asarray(self.func(values, from_unit, to_unit), dtype=float)
        except InvalidUnitError:
            raise
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidUnitError(from_unit, to_unit, str(e)) from e


def as_converter(converter: Optional[ConverterLike]):
    """
    Normalize the `converter` argument of the export functions.

    None gives the pint default, objects with a `convert` method are used as-is,
    and bare callables are wrapped.
    """
    if converter is None:
        return PintConverter()
    if hasattr(converter, "convert"):
        return converter
    if callable(converter):
        return _CallableConverter(converter)
    raise TypeError(f"Unsupported converter: {converter!r}")
