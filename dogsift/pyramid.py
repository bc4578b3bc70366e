"""
Gaussian scale-space pyramid.

Layout: ``gauss_pyr[o][i]`` for octave ``o in [0, n_octaves)`` and interval
``i in [0, intervals + 3)``.

  - interval 0 of octave 0 is the pre-smoothed base image
  - interval i > 0 blurs interval i-1 by the incremental sigma[i]
  - interval 0 of octave o > 0 halves interval ``intervals`` of octave o-1

Halving the interval at index ``intervals`` (cumulative blur 2 * sigma)
carries the accumulated blur into the next octave without re-smoothing.
Every level is a freshly allocated buffer.
"""
from __future__ import annotations

import math
from typing import List, Optional

import numpy as np

from .image import ScaleSpaceImage
from .resample import Kernel, gaussian_smooth, resize, to_grayscale


Pyramid = List[List[ScaleSpaceImage]]

# Smallest short side allowed for the coarsest octave
MIN_OCTAVE_SIDE = 8


def sigma_schedule(sigma: float, intervals: int) -> np.ndarray:
    """
    Incremental blur applied to reach each interval of an octave.

    Parameters
    ----------
    sigma : float
        Blur of interval 0 relative to the octave base.
    intervals : int
        Sampled intervals per octave (S).

    Returns
    -------
    sig : ndarray, shape (intervals + 3,), float64
        ``sig[0] = sigma``; ``sig[1] = sigma * sqrt(k² - 1)``;
        ``sig[i] = sig[i-1] * k`` with ``k = 2 ** (1 / intervals)``.
        Blurring interval i-1 by ``sig[i]`` yields a cumulative blur of
        ``sigma * k**i``.
    """
    if intervals < 1:
        raise ValueError(f"intervals must be >= 1, got {intervals}")
    k = 2.0 ** (1.0 / intervals)
    sig = np.empty(intervals + 3, dtype=np.float64)
    sig[0] = sigma
    sig[1] = sigma * math.sqrt(k * k - 1.0)
    for i in range(2, intervals + 3):
        sig[i] = sig[i - 1] * k
    return sig


def cumulative_sigmas(sigma: float, intervals: int) -> np.ndarray:
    """Total blur of each interval relative to its octave base: sigma * k**i."""
    if intervals < 1:
        raise ValueError(f"intervals must be >= 1, got {intervals}")
    k = 2.0 ** (1.0 / intervals)
    return sigma * k ** np.arange(intervals + 3, dtype=np.float64)


def max_octaves(width: int, height: int) -> int:
    """
    Number of octaves an image supports: ``floor(log2(min(W, H))) - 2``.

    This keeps the coarsest octave's short side at >= MIN_OCTAVE_SIDE px.
    """
    short = min(width, height)
    if short < MIN_OCTAVE_SIDE:
        raise ValueError(
            f"Image {width}x{height} is too small for a scale-space pyramid "
            f"(short side must be >= {MIN_OCTAVE_SIDE} px)"
        )
    return int(math.floor(math.log2(short))) - 2


def octave_count(width: int, height: int, requested: Optional[int] = None) -> int:
    """
    Return the octave count for a ``width`` x ``height`` base image.

    With ``requested=None`` the maximum supported count is used; otherwise
    ``requested`` is validated against it.
    """
    limit = max_octaves(width, height)
    if requested is None:
        return limit
    if requested < 1:
        raise ValueError(f"n_octaves must be >= 1, got {requested}")
    if requested > limit:
        raise ValueError(
            f"{requested} octaves requested but a {width}x{height} image "
            f"supports at most {limit}"
        )
    return requested


def create_initial_image(
    image: np.ndarray,
    sigma: float = 1.6,
    init_sigma: float = 0.5,
    double_image: bool = True,
    truncate: float = 3.0,
) -> ScaleSpaceImage:
    """
    Build the pyramid base: grayscale, optional 2x upscale, then smoothing.

    The input is assumed to carry ``init_sigma`` of blur already (twice that
    once doubled), so only the difference up to ``sigma`` is applied.

    Parameters
    ----------
    image : ndarray, shape (H, W) or (H, W, C)
        Samples in the 0–255 range.
    """
    gray = ScaleSpaceImage.from_gray(to_grayscale(image))
    if double_image:
        gray = resize(gray, gray.width * 2, gray.height * 2, Kernel.BICUBIC)
        assumed = 2.0 * init_sigma
    else:
        assumed = init_sigma
    sig_diff = math.sqrt(max(sigma * sigma - assumed * assumed, 0.01))
    return gaussian_smooth(gray, sig_diff, truncate=truncate)


def downsample(
    image: ScaleSpaceImage,
    kernel: Kernel = Kernel.BILINEAR,
) -> ScaleSpaceImage:
    """Halve both dimensions (floor division)."""
    return resize(image, image.width // 2, image.height // 2, kernel)


def build_gauss_pyramid(
    base: ScaleSpaceImage,
    n_octaves: int,
    intervals: int = 3,
    sigma: float = 1.6,
    truncate: float = 3.0,
) -> Pyramid:
    """
    Build the Gaussian scale-space pyramid.

    Parameters
    ----------
    base : ScaleSpaceImage
        Pre-smoothed base image (see ``create_initial_image``).
    n_octaves : int
        Number of octaves; validated against the base size before any work.
    intervals : int
        Sampled intervals per octave (S).
    sigma : float
        Blur of interval 0 within each octave.
    truncate : float
        Gaussian kernel half-width in sigmas.

    Returns
    -------
    list of list of ScaleSpaceImage
        ``n_octaves`` x ``intervals + 3`` levels.
    """
    sig = sigma_schedule(sigma, intervals)
    octave_count(base.width, base.height, n_octaves)

    gauss_pyr: Pyramid = []
    for o in range(n_octaves):
        octave: List[ScaleSpaceImage] = []
        for i in range(intervals + 3):
            if o == 0 and i == 0:
                level = base
            elif i == 0:
                level = downsample(gauss_pyr[o - 1][intervals])
            else:
                level = gaussian_smooth(octave[i - 1], float(sig[i]), truncate=truncate)
            octave.append(level)
        gauss_pyr.append(octave)
    return gauss_pyr
