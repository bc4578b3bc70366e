"""
I/O helpers: read images (TIFF / PNG / JPEG / BMP), write extrema and
keypoints (CSV) and run summaries (JSON).
"""
from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import List

import numpy as np


IMAGE_EXTENSIONS = (".tif", ".tiff", ".png", ".jpg", ".jpeg", ".bmp")


# --------------------------------------------------------------------------- #
# Reading
# --------------------------------------------------------------------------- #

def read_image(path: str | Path) -> np.ndarray:
    """
    Load an image as a float64 array with samples on the 0–255 scale.

    Supports:
      - TIFF                 (.tif, .tiff)     via tifffile
      - PNG / JPEG / BMP     (.png, .jpg, ...) via Pillow

    Returns array with shape (H, W) or (H, W, C).
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in {".tif", ".tiff"}:
        data = _read_tiff(path)
    elif suffix in {".png", ".jpg", ".jpeg", ".bmp"}:
        data = _read_pillow(path)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix!r}. Use one of {', '.join(IMAGE_EXTENSIONS)}"
        )
    return _to_8bit_range(data)


def _read_tiff(path: Path) -> np.ndarray:
    try:
        import tifffile
    except ImportError:
        raise ImportError("tifffile is required to read TIFF files: pip install tifffile")

    data = tifffile.imread(str(path))
    if data.ndim == 3 and data.shape[0] == 1:
        data = data[0]
    if data.ndim == 3 and data.shape[2] not in {1, 3, 4}:
        # multi-page stack: take the first plane
        data = data[0]
    if data.ndim not in (2, 3):
        raise ValueError(f"Expected a 2-D image, got shape {data.shape}")
    return data


def _read_pillow(path: Path) -> np.ndarray:
    try:
        from PIL import Image
    except ImportError:
        raise ImportError("Pillow is required to read PNG/JPEG/BMP files: pip install Pillow")

    with Image.open(path) as img:
        if img.mode.startswith("I;16") or img.mode == "F":
            # high bit-depth: keep the raw samples for _to_8bit_range
            return np.asarray(img)
        if img.mode == "I":
            data = np.asarray(img)
            # 16-bit PNGs may decode as 32-bit "I"
            if data.size and data.min() >= 0 and data.max() <= 65535:
                return data.astype(np.uint16)
            return data
        if img.mode not in ("L", "RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.mode else "RGB")
        return np.asarray(img)


def _to_8bit_range(data: np.ndarray) -> np.ndarray:
    """Rescale 16-bit / float data onto 0–255; 8-bit data passes through."""
    if data.dtype == np.uint8:
        return data.astype(np.float64)
    if np.issubdtype(data.dtype, np.integer):
        scale = 255.0 / float(np.iinfo(data.dtype).max)
        return data.astype(np.float64) * scale
    data = data.astype(np.float64)
    lo, hi = float(np.min(data)), float(np.max(data))
    if hi <= lo:
        return np.zeros_like(data)
    if lo >= 0.0 and hi <= 1.0:
        return data * 255.0
    return (data - lo) * (255.0 / (hi - lo))


# --------------------------------------------------------------------------- #
# Writing: CSV
# --------------------------------------------------------------------------- #

EXTREMA_CSV_FIELDS = [
    "octave", "interval", "row", "col", "polarity", "x_px", "y_px", "scale_px",
]

KEYPOINTS_CSV_FIELDS = [
    "x_px", "y_px", "scale_px", "contrast", "octave", "interval", "row", "col",
    "offset_x", "offset_y", "offset_s",
]


def _write_csv(rows: List[dict], path: str | Path, fields: List[str]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fields)
        writer.writeheader()
        for row in rows:
            writer.writerow({k: row.get(k, "") for k in fields})


def write_extrema_csv(extrema: List[dict], path: str | Path) -> None:
    """Write extrema records. Each dict must have keys matching EXTREMA_CSV_FIELDS."""
    _write_csv(extrema, path, EXTREMA_CSV_FIELDS)


def read_extrema_csv(path: str | Path) -> List[dict]:
    """Read an extrema CSV back into a list of dicts."""
    path = Path(path)
    extrema = []
    with open(path, newline="") as fh:
        reader = csv.DictReader(fh)
        for row in reader:
            extrema.append({
                "octave": int(row["octave"]),
                "interval": int(row["interval"]),
                "row": int(row["row"]),
                "col": int(row["col"]),
                "polarity": int(row["polarity"]),
                "x_px": float(row["x_px"]),
                "y_px": float(row["y_px"]),
                "scale_px": float(row["scale_px"]),
            })
    return extrema


def write_keypoints_csv(keypoints: List[dict], path: str | Path) -> None:
    """Write refined keypoint records (keys from KEYPOINTS_CSV_FIELDS)."""
    _write_csv(keypoints, path, KEYPOINTS_CSV_FIELDS)


COMBINED_CSV_FIELDS = ["image"] + EXTREMA_CSV_FIELDS


def write_combined_csv(all_extrema: List[dict], path: str | Path) -> None:
    """
    Write a combined CSV with an ``image`` column prepended.

    Each dict in *all_extrema* must have the keys in ``EXTREMA_CSV_FIELDS``
    plus an ``"image"`` key (stem name, no extension).
    """
    _write_csv(all_extrema, path, COMBINED_CSV_FIELDS)


# --------------------------------------------------------------------------- #
# Writing: JSON summary
# --------------------------------------------------------------------------- #

def write_summary(summary: dict, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as fh:
        json.dump(summary, fh, indent=2)


# --------------------------------------------------------------------------- #
# Utility
# --------------------------------------------------------------------------- #

def list_images(directory: str | Path, extensions=IMAGE_EXTENSIONS) -> List[Path]:
    """Return sorted list of image paths in a directory."""
    directory = Path(directory)
    paths = []
    for ext in extensions:
        paths.extend(directory.glob(f"*{ext}"))
    return sorted(set(paths))
