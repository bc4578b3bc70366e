"""
Subpixel refinement of scale-space extrema.

For each candidate, fit a 3-D quadratic to the DoG samples around it and
solve for the offset of its extremum:

    offset = -H^-1 * g        (g, H from geometry.derivative_3d / hessian_3d)

If any component of the offset exceeds 0.5 the sample point moves to the
neighbouring pixel / interval and the fit is repeated, up to ``max_steps``
times.  Survivors must then pass two tests:

  - contrast: |D + 0.5 * g . offset| >= contr_thr / S * 256
  - edge:     tr(H2)^2 / det(H2) < (curv_thr + 1)^2 / curv_thr, where H2 is
              the 2x2 spatial part of the Hessian (and det(H2) > 0)

Uses only numpy, no OpenCV required.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .config import SiftConfig
from .dog import SAMPLE_SCALE, _COL, _INTERVAL, _OCTAVE, _ROW
from .geometry import _cube, _gradient, _hessian
from .pyramid import Pyramid


@dataclass(frozen=True)
class RefinedKeypoint:
    octave: int
    interval: int
    row: int
    col: int
    offset: Tuple[float, float, float]   # (x, y, s) subpixel offset
    contrast: float                      # interpolated DoG value (0–255 scale)
    x: float                             # column in input-image pixels
    y: float                             # row in input-image pixels
    scale: float                         # sigma in input-image pixels


def is_too_edge_like(hessian: np.ndarray, curv_thr: float = 10.0) -> bool:
    """
    True if the principal-curvature ratio of the spatial Hessian is too large
    (an edge rather than a blob / corner).
    """
    dxx, dxy, dyy = hessian[0, 0], hessian[0, 1], hessian[1, 1]
    tr = dxx + dyy
    det = dxx * dyy - dxy * dxy
    if det <= 0:
        return True
    return tr * tr / det >= (curv_thr + 1.0) ** 2 / curv_thr


def refine_candidate(
    dog_pyr: Pyramid,
    octave: int,
    interval: int,
    row: int,
    col: int,
    *,
    intervals: Optional[int] = None,
    sigma: float = 1.6,
    contr_thr: float = 0.04,
    curv_thr: float = 10.0,
    border: int = 5,
    max_steps: int = 5,
    image_doubled: bool = True,
) -> Optional[RefinedKeypoint]:
    """
    Interpolate one candidate to subpixel accuracy.

    Parameters
    ----------
    dog_pyr : list of list of ScaleSpaceImage
    octave, interval, row, col : int
        Candidate location (as reported by ``dog.scale_space_extrema``).
    intervals : int or None
        Sampled intervals per octave (S). None derives it from the octave,
        which holds S + 2 DoG levels.
    sigma : float
        Base sigma of the pyramid; used for the keypoint scale.
    contr_thr, curv_thr : float
        Contrast and curvature-ratio thresholds.
    border : int
        The re-centred sample point must stay this far from every edge.
    max_steps : int
        Maximum number of re-centring steps before giving up.
    image_doubled : bool
        Whether the pyramid base was upscaled 2x; coordinates and scale are
        halved to land in the input frame.

    Returns
    -------
    RefinedKeypoint or None
        None when the fit does not converge, leaves the valid region, or
        fails the contrast / edge tests.
    """
    n_levels = len(dog_pyr[octave])
    if intervals is None:
        intervals = n_levels - 2
    elif n_levels != intervals + 2:
        raise ValueError(
            f"Octave {octave} holds {n_levels} DoG levels; expected {intervals + 2} "
            f"for intervals={intervals}"
        )
    ny, nx = dog_pyr[octave][interval].shape

    step = 0
    while step < max_steps:
        cube = _cube(dog_pyr, octave, interval, row, col)
        grad = _gradient(cube)
        hess = _hessian(cube)
        # lstsq tolerates a singular Hessian (flat along one axis)
        offset = -np.linalg.lstsq(hess, grad, rcond=None)[0]

        if np.all(np.abs(offset) < 0.5):
            break

        col += int(round(offset[0]))
        row += int(round(offset[1]))
        interval += int(round(offset[2]))
        if (interval < 1 or interval > intervals
                or col < border or col >= nx - border
                or row < border or row >= ny - border):
            return None
        step += 1

    if step >= max_steps:
        return None

    contrast = float(cube[1, 1, 1] + 0.5 * grad.dot(offset))
    if abs(contrast) < contr_thr / intervals * SAMPLE_SCALE:
        return None

    if is_too_edge_like(hess, curv_thr):
        return None

    xc, xr, xi = (float(v) for v in offset)
    factor = 2.0 ** octave
    x = (col + xc) * factor
    y = (row + xr) * factor
    scale = sigma * 2.0 ** (octave + (interval + xi) / intervals)
    if image_doubled:
        x /= 2.0
        y /= 2.0
        scale /= 2.0

    return RefinedKeypoint(
        octave=octave, interval=interval, row=row, col=col,
        offset=(xc, xr, xi), contrast=contrast,
        x=x, y=y, scale=scale,
    )


def refine_candidates(
    dog_pyr: Pyramid,
    candidates: np.ndarray,
    cfg: SiftConfig,
) -> List[RefinedKeypoint]:
    """
    Refine every row of a candidate array; rejected candidates are dropped.

    Parameters
    ----------
    candidates : ndarray, shape (N, 5), int
        Columns: octave, interval, row, col, polarity
    cfg : SiftConfig
    """
    keypoints: List[RefinedKeypoint] = []
    for cand in candidates:
        kp = refine_candidate(
            dog_pyr,
            int(cand[_OCTAVE]), int(cand[_INTERVAL]),
            int(cand[_ROW]), int(cand[_COL]),
            intervals=cfg.intervals,
            sigma=cfg.sigma,
            contr_thr=cfg.contrast_threshold,
            curv_thr=cfg.curvature_threshold,
            border=cfg.border,
            max_steps=cfg.max_interp_steps,
            image_doubled=cfg.double_image,
        )
        if kp is not None:
            keypoints.append(kp)
    return keypoints
