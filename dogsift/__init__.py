"""
dogsift: Difference-of-Gaussians scale-space extremum detection (the SIFT
detection stage).

Quick start:
    from dogsift import SiftConfig, detect_extrema, process_image
    from dogsift.io import read_image

    cfg = SiftConfig(intervals=3, sigma=1.6, refine=True)
    image = read_image("photo.png")
    candidates = detect_extrema(image, cfg)       # ndarray (N, 5)
    # or: process one file end-to-end
    result = process_image("photo.png", outdir="outputs/", cfg=cfg)
"""

__version__ = "0.1.0"

from .config import SiftConfig
from .image import ScaleSpaceImage
from .pipeline import (
    build_scale_space,
    detect_extrema,
    detect_keypoints,
    process_image,
    process_batch,
)

__all__ = [
    "SiftConfig",
    "ScaleSpaceImage",
    "build_scale_space",
    "detect_extrema",
    "detect_keypoints",
    "process_image",
    "process_batch",
    "__version__",
]
