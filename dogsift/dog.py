"""
DoG (Difference-of-Gaussians) pyramid and scale-space extremum detection.

For each octave:
  1. DoG_i = G_{i+1} - G_i  (signed, per channel, no clamping)
  2. Scan interior intervals 1..S, skipping a ``border``-pixel frame
  3. Cheap contrast gate: |D| must exceed 0.5 * contr_thr / S * 256
  4. Keep pixels strictly above (D > 0) or strictly below (D <= 0) all
     26 neighbours in the 3x3x3 scale-space cube

Ties never qualify, so flat plateaus produce no detections.

The scan is vectorised per octave with 3-D maximum/minimum filters whose
footprint excludes the centre voxel; ``is_extremum`` is the equivalent
per-pixel test.
"""
from __future__ import annotations

from typing import List

import numpy as np
from scipy.ndimage import maximum_filter, minimum_filter

from .image import ScaleSpaceImage
from .pyramid import Pyramid


# Candidate array column indices
_OCTAVE = 0
_INTERVAL = 1
_ROW = 2
_COL = 3
_POLARITY = 4

CANDIDATE_COLUMNS = ("octave", "interval", "row", "col", "polarity")

# DoG samples live on the 0–255 scale; thresholds are given on 0–1
SAMPLE_SCALE = 256.0

# 3x3x3 neighbourhood without its centre
_NEIGHBOURS = np.ones((3, 3, 3), dtype=bool)
_NEIGHBOURS[1, 1, 1] = False


def build_dog_pyramid(gauss_pyr: Pyramid) -> Pyramid:
    """
    Subtract adjacent Gaussian intervals.

    Returns
    -------
    list of list of ScaleSpaceImage
        ``n_octaves`` x ``n_intervals - 1`` levels;
        ``dog[o][i] = gauss[o][i+1] - gauss[o][i]``.
    """
    dog_pyr: Pyramid = []
    for o, octave in enumerate(gauss_pyr):
        if len(octave) < 2:
            raise ValueError(f"Octave {o} has {len(octave)} interval(s); need at least 2")
        dog_pyr.append([
            octave[i + 1].subtract(octave[i]) for i in range(len(octave) - 1)
        ])
    return dog_pyr


def prelim_threshold(contr_thr: float, intervals: int) -> float:
    """Contrast pre-filter on the 0–255 sample scale."""
    return 0.5 * contr_thr / intervals * SAMPLE_SCALE


def octave_stack(dog_octave: List[ScaleSpaceImage]) -> np.ndarray:
    """Stack the detection channel of one octave into (n_intervals, H, W)."""
    return np.stack([img.intensity() for img in dog_octave])


def scale_space_extrema(
    dog_pyr: Pyramid,
    contr_thr: float = 0.04,
    curv_thr: float = 10.0,
    border: int = 5,
) -> np.ndarray:
    """
    Find scale-space extrema in a DoG pyramid.

    Parameters
    ----------
    dog_pyr : list of list of ScaleSpaceImage
        ``n_octaves`` x ``S + 2`` DoG levels.
    contr_thr : float
        Contrast threshold on the 0–1 scale; only its coarse pre-filter is
        applied here.
    curv_thr : float
        Principal-curvature ratio threshold.  Accepted for interface
        symmetry; edge rejection happens in ``refine.refine_candidate``.
    border : int
        Pixels within ``border`` of any edge are never reported (>= 1).

    Returns
    -------
    candidates : ndarray, shape (N, 5), int64
        Columns: octave, interval, row, col, polarity (+1 max / -1 min),
        sorted by octave, interval, row, col.
    """
    if border < 1:
        raise ValueError(f"border must be >= 1 to keep neighbour reads in bounds, got {border}")
    if not dog_pyr:
        return np.empty((0, 5), dtype=np.int64)

    intervals = len(dog_pyr[0]) - 2
    if intervals < 1:
        raise ValueError("DoG pyramid needs at least 3 intervals per octave")
    prelim = prelim_threshold(contr_thr, intervals)

    found: List[np.ndarray] = []
    for o, dog_octave in enumerate(dog_pyr):
        stack = octave_stack(dog_octave)
        _, ny, nx = stack.shape
        if ny <= 2 * border or nx <= 2 * border:
            continue

        neigh_max = maximum_filter(stack, footprint=_NEIGHBOURS, mode="nearest")
        neigh_min = minimum_filter(stack, footprint=_NEIGHBOURS, mode="nearest")

        inner = (slice(1, intervals + 1), slice(border, ny - border), slice(border, nx - border))
        val = stack[inner]
        passes = np.abs(val) > prelim
        is_max = passes & (val > 0) & (val > neigh_max[inner])
        is_min = passes & (val <= 0) & (val < neigh_min[inner])

        idx_i, idx_r, idx_c = np.nonzero(is_max | is_min)
        if idx_i.size == 0:
            continue
        polarity = np.where(is_max[idx_i, idx_r, idx_c], 1, -1)
        found.append(np.column_stack([
            np.full(idx_i.size, o),
            idx_i + 1,
            idx_r + border,
            idx_c + border,
            polarity,
        ]).astype(np.int64))

    if not found:
        return np.empty((0, 5), dtype=np.int64)
    return np.vstack(found)


def is_extremum(dog_pyr: Pyramid, octave: int, interval: int, row: int, col: int) -> bool:
    """
    True if the DoG sample at (octave, interval, row, col) is strictly greater
    (positive sample) or strictly less (non-positive sample) than all 26
    neighbours.  The contrast gate is not applied.
    """
    val = dog_pyr[octave][interval].sample(row, col)
    maximum = val > 0
    for di in (-1, 0, 1):
        level = dog_pyr[octave][interval + di]
        for dr in (-1, 0, 1):
            for dc in (-1, 0, 1):
                if di == 0 and dr == 0 and dc == 0:
                    continue
                neighbour = level.sample(row + dr, col + dc)
                if maximum and not val > neighbour:
                    return False
                if not maximum and not val < neighbour:
                    return False
    return True
