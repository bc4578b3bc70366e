"""
Local geometry of the DoG scale-space at a sample point.

Central finite differences over (x, y, s) where x is the column, y the row
and s the interval index within an octave.
"""
from __future__ import annotations

import numpy as np

from .pyramid import Pyramid


def _check_bounds(dog_pyr: Pyramid, octave: int, interval: int, row: int, col: int) -> None:
    levels = dog_pyr[octave]
    if not (1 <= interval < len(levels) - 1):
        raise IndexError(
            f"interval {interval} has no neighbour on both sides "
            f"(octave holds {len(levels)} intervals)"
        )
    ny, nx = levels[interval].shape
    if not (1 <= row < ny - 1 and 1 <= col < nx - 1):
        raise IndexError(f"(row={row}, col={col}) too close to the edge of a {nx}x{ny} level")


def _cube(dog_pyr: Pyramid, octave: int, interval: int, row: int, col: int) -> np.ndarray:
    """3x3x3 float64 neighbourhood indexed [ds + 1, dy + 1, dx + 1]."""
    _check_bounds(dog_pyr, octave, interval, row, col)
    return np.stack([
        dog_pyr[octave][interval + di].intensity()[row - 1:row + 2, col - 1:col + 2]
        for di in (-1, 0, 1)
    ]).astype(np.float64)


def derivative_3d(dog_pyr: Pyramid, octave: int, interval: int, row: int, col: int) -> np.ndarray:
    """
    Gradient ``[dI/dx, dI/dy, dI/ds]`` at a DoG sample.

    Returns
    -------
    ndarray, shape (3,), float64
    """
    cube = _cube(dog_pyr, octave, interval, row, col)
    return _gradient(cube)


def hessian_3d(dog_pyr: Pyramid, octave: int, interval: int, row: int, col: int) -> np.ndarray:
    """
    Symmetric Hessian at a DoG sample::

        / dxx  dxy  dxs \\
        | dxy  dyy  dys |
        \\ dxs  dys  dss /

    Returns
    -------
    ndarray, shape (3, 3), float64
    """
    cube = _cube(dog_pyr, octave, interval, row, col)
    return _hessian(cube)


def _gradient(cube: np.ndarray) -> np.ndarray:
    dx = (cube[1, 1, 2] - cube[1, 1, 0]) / 2.0
    dy = (cube[1, 2, 1] - cube[1, 0, 1]) / 2.0
    ds = (cube[2, 1, 1] - cube[0, 1, 1]) / 2.0
    return np.array([dx, dy, ds])


def _hessian(cube: np.ndarray) -> np.ndarray:
    v = cube[1, 1, 1]
    dxx = cube[1, 1, 2] + cube[1, 1, 0] - 2.0 * v
    dyy = cube[1, 2, 1] + cube[1, 0, 1] - 2.0 * v
    dss = cube[2, 1, 1] + cube[0, 1, 1] - 2.0 * v
    dxy = (cube[1, 2, 2] - cube[1, 2, 0] - cube[1, 0, 2] + cube[1, 0, 0]) / 4.0
    dxs = (cube[2, 1, 2] - cube[2, 1, 0] - cube[0, 1, 2] + cube[0, 1, 0]) / 4.0
    dys = (cube[2, 2, 1] - cube[2, 0, 1] - cube[0, 2, 1] + cube[0, 0, 1]) / 4.0
    return np.array([
        [dxx, dxy, dxs],
        [dxy, dyy, dys],
        [dxs, dys, dss],
    ])
