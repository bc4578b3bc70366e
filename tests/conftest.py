"""
Shared fixtures for dogsift tests.

Provides synthetic images with known Gaussian blobs and helpers to build DoG
pyramids directly from arrays, so the detector can be tested without going
through smoothing and resampling.
"""
from __future__ import annotations

import numpy as np
import pytest

from dogsift.image import ScaleSpaceImage


def make_blob(
    image: np.ndarray,
    cx: int,
    cy: int,
    sigma: float,
    amplitude: float = 200.0,
) -> None:
    """Add an isotropic Gaussian blob to `image` in-place."""
    ny, nx = image.shape
    ys = np.arange(ny)[:, None]
    xs = np.arange(nx)[None, :]
    image += amplitude * np.exp(-((xs - cx) ** 2 + (ys - cy) ** 2) / (2 * sigma ** 2))


def dog_from_arrays(octaves) -> list:
    """
    Wrap nested lists of 2-D arrays as a DoG pyramid.

    octaves : list (per octave) of list (per interval) of (H, W) arrays
    """
    return [[ScaleSpaceImage.from_gray(a, alpha=0) for a in octave] for octave in octaves]


def zero_octave(n_intervals: int = 5, size: int = 20) -> list:
    """One octave of all-zero DoG intervals, as mutable int arrays."""
    return [np.zeros((size, size), dtype=np.int64) for _ in range(n_intervals)]


@pytest.fixture
def blob_image():
    """
    128x128 8-bit image with bright and dark blobs on a mid-grey background.
    Returns (image, blobs) where blobs = list of (cx, cy, sigma).
    """
    image = np.full((128, 128), 100.0)
    blobs = [
        (32, 32, 3.0, 120.0),    # bright
        (96, 32, 4.0, -90.0),    # dark
        (64, 96, 5.0, 120.0),    # bright, larger
    ]
    for cx, cy, sigma, amp in blobs:
        make_blob(image, cx, cy, sigma, amplitude=amp)
    image = np.clip(image, 0, 255)
    return image, [(cx, cy, sigma) for cx, cy, sigma, _ in blobs]


@pytest.fixture
def noise_image():
    """64x64 uniform 8-bit noise."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(64, 64)).astype(np.float64)
