"""
SiftConfig: all tunable parameters for dogsift in one dataclass.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple


_FIGURE_FORMATS = {"png", "svg", "pdf", "jpg", "tif"}


@dataclass
class SiftConfig:
    # ------------------------------------------------------------------ #
    # Scale space
    # ------------------------------------------------------------------ #
    intervals: int = 3            # sampled intervals per octave (S)
    sigma: float = 1.6            # blur of interval 0 in every octave
    init_sigma: float = 0.5       # blur assumed present in the input image
    double_image: bool = True     # 2x bicubic upscale before smoothing
    n_octaves: Optional[int] = None   # None → floor(log2(min(W, H))) - 2
    smooth_truncate: float = 3.0  # Gaussian kernel half-width (in sigmas)

    # ------------------------------------------------------------------ #
    # Detection
    # ------------------------------------------------------------------ #
    contrast_threshold: float = 0.04    # |D(x)| threshold, 0–1 scale
    curvature_threshold: float = 10.0   # ratio of principal curvatures
    border: int = 5                     # ignore extrema this close to edges

    # ------------------------------------------------------------------ #
    # Subpixel refinement (optional)
    # ------------------------------------------------------------------ #
    refine: bool = False          # interpolate + edge-reject candidates
    max_interp_steps: int = 5     # re-centring steps before giving up

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #
    write_csv: bool = True
    write_summary: bool = True
    write_overlay: bool = False
    write_pyramid_figure: bool = False
    figure_dpi: int = 300
    figure_formats: Tuple[str, ...] = ("png", "svg")

    def __post_init__(self):
        if self.intervals < 1:
            raise ValueError("intervals must be >= 1")
        if self.sigma <= 0:
            raise ValueError("sigma must be positive")
        if self.init_sigma < 0:
            raise ValueError("init_sigma must be >= 0")
        if self.n_octaves is not None and self.n_octaves < 1:
            raise ValueError("n_octaves must be >= 1 (or None for automatic)")
        if self.smooth_truncate <= 0:
            raise ValueError("smooth_truncate must be positive")
        if self.contrast_threshold <= 0:
            raise ValueError("contrast_threshold must be positive")
        if self.curvature_threshold <= 0:
            raise ValueError("curvature_threshold must be positive")
        # Neighbour reads reach one pixel past the scan region
        if self.border < 1:
            raise ValueError("border must be >= 1")
        if self.max_interp_steps < 1:
            raise ValueError("max_interp_steps must be >= 1")
        if self.figure_dpi <= 0:
            raise ValueError("figure_dpi must be positive")
        bad = [f for f in self.figure_formats if f not in _FIGURE_FORMATS]
        if bad:
            raise ValueError(f"Unsupported figure format(s): {', '.join(bad)}")
