"""
Resampling and smoothing primitives.

The pyramid builder only chooses *which* kernel and *which* sigma; the
arithmetic is delegated to scipy.ndimage:

  - ``resize``          → ``map_coordinates`` (order 0 / 1 / 3)
  - ``gaussian_smooth`` → ``gaussian_filter`` truncated at ``truncate`` sigmas

Both return 8-bit-range ScaleSpaceImages (rounded and clamped to [0, 255]),
like the displayable images they stand in for.
"""
from __future__ import annotations

import enum

import numpy as np
from scipy.ndimage import gaussian_filter, map_coordinates

from .image import CHANNELS, ScaleSpaceImage


class Kernel(enum.Enum):
    """Interpolation kernel, chosen explicitly by each call site."""

    NEAREST = 0
    BILINEAR = 1
    BICUBIC = 3

    @property
    def order(self) -> int:
        """Spline order passed to scipy.ndimage."""
        return self.value


def resize(
    image: ScaleSpaceImage,
    new_width: int,
    new_height: int,
    kernel: Kernel = Kernel.BILINEAR,
) -> ScaleSpaceImage:
    """
    Resample ``image`` to ``new_width`` x ``new_height``.

    Output pixel (x, y) samples the source at
    (x * old_width / new_width, y * old_height / new_height), so an exact
    2x reduction reads every other source pixel.  Source reads past the edge
    repeat the edge pixel.

    Returns
    -------
    ScaleSpaceImage
        A new buffer; ``image`` is never modified.
    """
    if new_width <= 0 or new_height <= 0:
        raise ValueError(f"Invalid target size {new_width}x{new_height}")
    if image.width == 0 or image.height == 0:
        raise ValueError("Cannot resize an empty image")

    scale_x = image.width / new_width
    scale_y = image.height / new_height
    rows = np.arange(new_height, dtype=np.float64) * scale_y
    cols = np.arange(new_width, dtype=np.float64) * scale_x
    rr, cc = np.meshgrid(rows, cols, indexing="ij")

    src = image.as_array().astype(np.float64)
    out = np.empty((new_height, new_width, CHANNELS), dtype=np.float64)
    for ch in range(CHANNELS):
        out[..., ch] = map_coordinates(
            src[..., ch], [rr, cc],
            order=kernel.order,
            mode="nearest",
            prefilter=kernel.order > 1,
        )
    return _to_8bit(out)


def gaussian_smooth(
    image: ScaleSpaceImage,
    sigma: float,
    truncate: float = 3.0,
) -> ScaleSpaceImage:
    """
    Blur every channel of ``image`` with an isotropic Gaussian.

    Parameters
    ----------
    sigma : float
        Standard deviation in pixels (> 0).
    truncate : float
        Kernel half-width in units of sigma.
    """
    if sigma <= 0:
        raise ValueError(f"sigma must be > 0, got {sigma}")

    # mode='nearest' keeps constant images constant up to the border
    blurred = gaussian_filter(
        image.as_array().astype(np.float64),
        sigma=(sigma, sigma, 0),
        mode="nearest",
        truncate=truncate,
    )
    return _to_8bit(blurred)


def to_grayscale(array: np.ndarray) -> np.ndarray:
    """
    Convert an (H, W), (H, W, 3) or (H, W, 4) array to 2-D luma.

    Uses the integer Rec. 601 weights (299, 587, 114) / 1000, truncated.
    Alpha is discarded.
    """
    array = np.asarray(array)
    if array.ndim == 2:
        return array.astype(np.float64)
    if array.ndim != 3 or array.shape[2] not in (1, 3, 4):
        raise ValueError(f"Unsupported image array shape {array.shape}")
    if array.shape[2] == 1:
        return array[..., 0].astype(np.float64)

    rgb = np.rint(array[..., :3]).astype(np.int64)
    gray = (299 * rgb[..., 0] + 587 * rgb[..., 1] + 114 * rgb[..., 2]) // 1000
    return gray.astype(np.float64)


def _to_8bit(samples: np.ndarray) -> ScaleSpaceImage:
    ny, nx = samples.shape[:2]
    return ScaleSpaceImage(np.clip(np.rint(samples), 0, 255), nx, ny)
