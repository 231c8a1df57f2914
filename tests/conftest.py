"""
Shared fixtures: small but valid AMR hierarchies built in memory.

A cell is refined when the sum of its integer coordinates is even, so every
level keeps some leaf cells and the number of cells grows with the level:

    level:        6    7    8    9    10
    leaf cells:   4   16   64  256  2048
"""

import itertools

import numpy as np
import pytest

from amrvtk import AmrTable


def parity_refine(level, idx):
    return sum(idx) % 2 == 0


def build_leaves(lmin, lmax, base=2, refine=parity_refine):
    """Leaf cells (level, (ix, iy, iz)) of a tree rooted at base**3 cells of level lmin."""
    leaves = []
    stack = [(lmin, idx) for idx in itertools.product(range(base), repeat=3)]
    while stack:
        level, idx = stack.pop()
        if level < lmax and refine(level, idx):
            for d in itertools.product((0, 1), repeat=3):
                stack.append((level + 1, tuple(2 * i + di for i, di in zip(idx, d))))
        else:
            leaves.append((level, idx))
    leaves.sort()
    return leaves


def make_amr_table(lmin=6, lmax=10, base=2, boxlen=1.0, refine=parity_refine):
    leaves = build_leaves(lmin, lmax, base, refine)
    level = np.array([l for l, _ in leaves])
    idx = np.array([i for _, i in leaves], dtype=float)
    dx = boxlen / 2.0 ** level
    position = (idx + 0.5) * dx[:, None]
    x, y, z = position.T

    fields = {
        "density": 1.0 + 10 * x + 20 * y + 30 * z,
        "temperature": x - 0.01 * boxlen,
        "vx": x,
        "vy": 2 * y,
        "vz": -z,
    }
    units = {
        "density": "g/cm**3",
        "temperature": "K",
        "vx": "cm/s",
        "vy": "cm/s",
        "vz": "cm/s",
    }
    return AmrTable(level, position, fields, units, boxlen=boxlen, position_unit="cm")


@pytest.fixture
def amr_table():
    """Levels 6..10, see module docstring."""
    return make_amr_table()


@pytest.fixture
def small_table():
    """Levels 1..3, a refined corner chain (7 + 7 + 8 cells)."""
    return make_amr_table(lmin=1, lmax=3, refine=lambda level, idx: idx == (0, 0, 0))
