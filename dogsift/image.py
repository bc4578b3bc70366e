"""
ScaleSpaceImage: the pixel buffer shared by every pyramid level.

Samples are stored as signed 64-bit integers in a flat RGBA buffer.  They are
NOT clamped to 8 bits: DoG levels hold differences that go negative.  A
displayable view is available through ``at()`` / ``to_uint8()``.

Each buffer is read-only once constructed, so pyramid levels never alias or
mutate one another.
"""
from __future__ import annotations

from typing import Tuple

import numpy as np


CHANNELS = 4


class ScaleSpaceImage:
    """
    Rectangular buffer of 4-channel integer samples.

    The sample for channel ``ch`` of the pixel at column ``x``, row ``y``
    lives at ``pix[y * stride + x * 4 + ch]``.

    Parameters
    ----------
    pix : array-like of int, length ``4 * width * height``
    width, height : int
    """

    __slots__ = ("pix", "stride", "width", "height")

    def __init__(self, pix, width: int, height: int):
        if width < 0 or height < 0:
            raise ValueError(f"Invalid image size {width}x{height}")
        pix = np.array(pix, dtype=np.int64).ravel()
        stride = CHANNELS * width
        if pix.size != stride * height:
            raise ValueError(
                f"Buffer holds {pix.size} samples; {width}x{height} "
                f"needs {stride * height}"
            )
        pix.flags.writeable = False
        self.pix = pix
        self.stride = stride
        self.width = width
        self.height = height

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def from_gray(cls, array: np.ndarray, alpha: int = 255) -> "ScaleSpaceImage":
        """Build from a 2-D array, replicating it into R, G and B."""
        array = np.asarray(array)
        if array.ndim != 2:
            raise ValueError(f"Expected a 2-D array, got shape {array.shape}")
        gray = np.rint(array).astype(np.int64)
        rgba = np.empty(gray.shape + (CHANNELS,), dtype=np.int64)
        rgba[..., :3] = gray[..., None]
        rgba[..., 3] = alpha
        return cls(rgba, gray.shape[1], gray.shape[0])

    @classmethod
    def from_array(cls, array: np.ndarray) -> "ScaleSpaceImage":
        """
        Build from an (H, W), (H, W, 1), (H, W, 3) or (H, W, 4) array.

        Missing alpha is filled with 255.
        """
        array = np.asarray(array)
        if array.ndim == 2:
            return cls.from_gray(array)
        if array.ndim != 3 or array.shape[2] not in (1, 3, CHANNELS):
            raise ValueError(f"Unsupported image array shape {array.shape}")
        if array.shape[2] == 1:
            return cls.from_gray(array[..., 0])

        samples = np.rint(array).astype(np.int64)
        ny, nx = samples.shape[:2]
        if samples.shape[2] == 3:
            rgba = np.empty((ny, nx, CHANNELS), dtype=np.int64)
            rgba[..., :3] = samples
            rgba[..., 3] = 255
            samples = rgba
        return cls(samples, nx, ny)

    # ------------------------------------------------------------------ #
    # Geometry
    # ------------------------------------------------------------------ #

    @property
    def bounds(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width), numpy order."""
        return self.height, self.width

    def pix_offset(self, x: int, y: int) -> int:
        """Index into ``pix`` of the first sample of pixel (x, y)."""
        return y * self.stride + x * CHANNELS

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    # ------------------------------------------------------------------ #
    # Access
    # ------------------------------------------------------------------ #

    def sample(self, row: int, col: int, channel: int = 0) -> int:
        """Raw signed sample at (row, col)."""
        if not self.contains(col, row):
            raise IndexError(
                f"Pixel (row={row}, col={col}) outside {self.width}x{self.height} image"
            )
        return int(self.pix[self.pix_offset(col, row) + channel])

    def at(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """Displayable RGBA at (x, y), clamped to [0, 255]; zeros outside."""
        if not self.contains(x, y):
            return 0, 0, 0, 0
        i = self.pix_offset(x, y)
        r, g, b, a = np.clip(self.pix[i:i + CHANNELS], 0, 255)
        return int(r), int(g), int(b), int(a)

    def as_array(self) -> np.ndarray:
        """Read-only (H, W, 4) view of the buffer."""
        return self.pix.reshape(self.height, self.width, CHANNELS)

    def intensity(self) -> np.ndarray:
        """Read-only (H, W) view of channel 0, the value used for detection."""
        return self.as_array()[..., 0]

    def to_uint8(self) -> np.ndarray:
        """Clamped (H, W, 4) uint8 copy, suitable for display."""
        return np.clip(self.as_array(), 0, 255).astype(np.uint8)

    # ------------------------------------------------------------------ #
    # Arithmetic
    # ------------------------------------------------------------------ #

    def subtract(self, other: "ScaleSpaceImage") -> "ScaleSpaceImage":
        """Return ``self - other`` per channel, signed, without clamping."""
        if self.bounds != other.bounds:
            raise ValueError(
                f"Cannot subtract {other.width}x{other.height} image "
                f"from {self.width}x{self.height} image"
            )
        return ScaleSpaceImage(self.pix - other.pix, self.width, self.height)

    def __sub__(self, other: "ScaleSpaceImage") -> "ScaleSpaceImage":
        return self.subtract(other)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ScaleSpaceImage):
            return NotImplemented
        return self.bounds == other.bounds and np.array_equal(self.pix, other.pix)

    __hash__ = None

    def __repr__(self) -> str:
        return f"ScaleSpaceImage({self.width}x{self.height})"
