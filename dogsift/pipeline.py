"""
Orchestrator: ties all stages together into detect_extrema() and process_batch().

Stages per image (detect_keypoints):
  1. Validate the octave count against the (possibly doubled) image size
  2. Grayscale + optional 2x upscale + smoothing to the base sigma
  3. Gaussian pyramid (octaves x S+3)
  4. DoG pyramid (octaves x S+2)
  5. Scale-space extrema with the coarse contrast gate
  6. Optional subpixel refinement + contrast / edge rejection
"""
from __future__ import annotations

import multiprocessing
import time
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from .config import SiftConfig
from .dog import _COL, _INTERVAL, _OCTAVE, _POLARITY, _ROW, build_dog_pyramid, scale_space_extrema
from .io import (
    list_images,
    read_image,
    write_combined_csv,
    write_extrema_csv,
    write_keypoints_csv,
    write_summary,
)
from .pyramid import Pyramid, build_gauss_pyramid, create_initial_image, octave_count
from .refine import RefinedKeypoint, refine_candidates
from .viz import plot_dog_pyramid, plot_extrema_overlay


def build_scale_space(
    image: np.ndarray,
    cfg: SiftConfig,
) -> Tuple[Pyramid, Pyramid]:
    """
    Build the Gaussian and DoG pyramids for one image.

    The octave count is checked against the base size before any smoothing
    or resampling happens.

    Parameters
    ----------
    image : ndarray, shape (H, W) or (H, W, C), samples on 0–255
    cfg : SiftConfig

    Returns
    -------
    gauss_pyr, dog_pyr : list of list of ScaleSpaceImage
    """
    ny, nx = np.asarray(image).shape[:2]
    factor = 2 if cfg.double_image else 1
    n_octaves = octave_count(nx * factor, ny * factor, cfg.n_octaves)

    base = create_initial_image(
        image, sigma=cfg.sigma, init_sigma=cfg.init_sigma,
        double_image=cfg.double_image, truncate=cfg.smooth_truncate,
    )
    gauss_pyr = build_gauss_pyramid(
        base, n_octaves, intervals=cfg.intervals,
        sigma=cfg.sigma, truncate=cfg.smooth_truncate,
    )
    dog_pyr = build_dog_pyramid(gauss_pyr)
    return gauss_pyr, dog_pyr


def detect_extrema(
    image: np.ndarray,
    cfg: Optional[SiftConfig] = None,
) -> np.ndarray:
    """
    Run detection on a single image array.

    Returns
    -------
    candidates : ndarray, shape (N, 5), int64
        Columns: octave, interval, row, col, polarity
    """
    if cfg is None:
        cfg = SiftConfig()
    _, dog_pyr = build_scale_space(image, cfg)
    return scale_space_extrema(
        dog_pyr, cfg.contrast_threshold, cfg.curvature_threshold, cfg.border,
    )


def detect_keypoints(
    image: np.ndarray,
    cfg: Optional[SiftConfig] = None,
) -> Tuple[np.ndarray, List[RefinedKeypoint]]:
    """
    Detect extrema and refine them into keypoints.

    Refinement always runs here, regardless of ``cfg.refine``.

    Returns
    -------
    candidates : ndarray, shape (N, 5), int64
    keypoints : list of RefinedKeypoint
    """
    if cfg is None:
        cfg = SiftConfig()
    _, dog_pyr = build_scale_space(image, cfg)
    candidates = scale_space_extrema(
        dog_pyr, cfg.contrast_threshold, cfg.curvature_threshold, cfg.border,
    )
    return candidates, refine_candidates(dog_pyr, candidates, cfg)


def process_image(
    image_path: str | Path,
    outdir: str | Path,
    cfg: Optional[SiftConfig] = None,
    verbose: bool = True,
) -> dict:
    """
    Full pipeline for one image: detect → write all outputs.

    Parameters
    ----------
    image_path : str or Path
    outdir : str or Path
        Directory for outputs (CSV, JSON, figures).
    cfg : SiftConfig or None (uses defaults)
    verbose : bool

    Returns
    -------
    result : dict
        {"path", "n_extrema", "n_keypoints", "time_s", "extrema_csv",
         "candidates", "keypoints", "image_shape", "n_octaves"}
    """
    image_path = Path(image_path)
    outdir = Path(outdir)
    if cfg is None:
        cfg = SiftConfig()

    t0 = time.perf_counter()

    if verbose:
        print(f"  Reading: {image_path.name}")
    image = read_image(image_path)
    image_shape = image.shape[:2]

    _, dog_pyr = build_scale_space(image, cfg)
    t_pyramid = time.perf_counter() - t0
    candidates = scale_space_extrema(
        dog_pyr, cfg.contrast_threshold, cfg.curvature_threshold, cfg.border,
    )
    keypoints: List[RefinedKeypoint] = []
    if cfg.refine:
        keypoints = refine_candidates(dog_pyr, candidates, cfg)

    stem = image_path.stem
    extrema_rows = candidates_to_dicts(candidates, cfg)

    csv_path = None
    if cfg.write_csv:
        csv_path = outdir / f"{stem}_extrema.csv"
        write_extrema_csv(extrema_rows, csv_path)
        if cfg.refine:
            write_keypoints_csv(keypoints_to_dicts(keypoints), outdir / f"{stem}_keypoints.csv")

    if cfg.write_overlay:
        plot_extrema_overlay(
            image, extrema_rows, outdir,
            name=f"{stem}_extrema_overlay",
            keypoints=keypoints_to_dicts(keypoints) if cfg.refine else None,
            formats=cfg.figure_formats, dpi=cfg.figure_dpi,
        )
        plt_close()

    if cfg.write_pyramid_figure:
        plot_dog_pyramid(
            dog_pyr, outdir, name=f"{stem}_dog_pyramid",
            formats=cfg.figure_formats, dpi=cfg.figure_dpi,
        )
        plt_close()

    elapsed = time.perf_counter() - t0

    if cfg.write_summary:
        write_summary(
            _summarize(image_shape, dog_pyr, candidates, keypoints, cfg, t_pyramid, elapsed),
            outdir / f"{stem}_summary.json",
        )

    if verbose:
        msg = f"  {candidates.shape[0]} extrema"
        if cfg.refine:
            msg += f", {len(keypoints)} keypoints"
        print(f"{msg}  ({elapsed:.1f}s)")

    return {
        "path": str(image_path),
        "n_extrema": int(candidates.shape[0]),
        "n_keypoints": len(keypoints),
        "time_s": round(elapsed, 2),
        "extrema_csv": str(csv_path) if csv_path else None,
        "candidates": candidates,
        "keypoints": keypoints,
        "image_shape": image_shape,
        "n_octaves": len(dog_pyr),
    }


def process_batch(
    image_dir,
    outdir: str | Path,
    cfg: Optional[SiftConfig] = None,
    verbose: bool = True,
    workers: int = 1,
) -> List[dict]:
    """
    Process all images in a directory (or from a pre-built path list).

    Parameters
    ----------
    image_dir : str, Path, or list of Path
        Directory containing images, or a pre-built list of image paths.
    outdir : str or Path
        Output directory.
    cfg : SiftConfig or None
    verbose : bool
    workers : int
        Number of parallel workers.  1 = sequential (no multiprocessing
        overhead).  >1 uses ``multiprocessing.Pool``, one image per task.

    Returns
    -------
    results : list of dict
    """
    if isinstance(image_dir, (list, tuple)):
        image_paths = sorted(Path(p) for p in image_dir)
    else:
        image_paths = list_images(image_dir)
    if not image_paths:
        if verbose:
            print(f"No images found in {image_dir}")
        return []

    if cfg is None:
        cfg = SiftConfig()

    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    if verbose:
        print(f"Found {len(image_paths)} image(s)")
        if workers > 1:
            print(f"Using {workers} workers")

    t0_wall = time.perf_counter()

    if workers > 1:
        args_list = [(str(p), str(outdir), cfg, verbose) for p in image_paths]
        with multiprocessing.Pool(workers) as pool:
            results = pool.starmap(_process_one, args_list)
    else:
        results = []
        for i, p in enumerate(image_paths, 1):
            if verbose:
                print(f"[{i}/{len(image_paths)}] {p.name}")
            results.append(process_image(p, outdir, cfg=cfg, verbose=verbose))

    wall_time = time.perf_counter() - t0_wall
    total = sum(r["n_extrema"] for r in results)

    if verbose:
        print(f"\nDone. {total} total extrema across {len(results)} "
              f"image(s) ({wall_time:.1f}s wall)")

    combined_rows: List[dict] = []
    for r in results:
        stem = Path(r["path"]).stem
        for row in candidates_to_dicts(r["candidates"], cfg):
            row["image"] = stem
            combined_rows.append(row)
    write_combined_csv(combined_rows, outdir / "all_extrema.csv")
    if verbose:
        print(f"Combined CSV: {outdir / 'all_extrema.csv'}  ({len(combined_rows)} rows)")

    return results


# --------------------------------------------------------------------------- #
# Multiprocessing helper (must be module-level for pickling)
# --------------------------------------------------------------------------- #

def _process_one(image_path: str, outdir: str, cfg: SiftConfig, verbose: bool) -> dict:
    """Thin wrapper around process_image for multiprocessing.Pool.starmap."""
    return process_image(image_path, outdir, cfg=cfg, verbose=verbose)


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #

def candidates_to_dicts(candidates: np.ndarray, cfg: SiftConfig) -> List[dict]:
    """
    Convert a candidate array to records, adding input-frame coordinates.

    x_px / y_px map the pyramid pixel back to the input image;
    scale_px is the cumulative blur sigma * 2^(octave + interval / S),
    halved when the base was doubled.
    """
    frame = 0.5 if cfg.double_image else 1.0
    records = []
    for row in candidates:
        o, i = int(row[_OCTAVE]), int(row[_INTERVAL])
        r, c = int(row[_ROW]), int(row[_COL])
        factor = 2.0 ** o * frame
        scale = cfg.sigma * 2.0 ** (o + i / cfg.intervals) * frame
        records.append({
            "octave": o,
            "interval": i,
            "row": r,
            "col": c,
            "polarity": int(row[_POLARITY]),
            "x_px": round(c * factor, 2),
            "y_px": round(r * factor, 2),
            "scale_px": round(scale, 4),
        })
    return records


def keypoints_to_dicts(keypoints: List[RefinedKeypoint]) -> List[dict]:
    """Convert refined keypoints to records for CSV writing."""
    return [
        {
            "x_px": round(kp.x, 2),
            "y_px": round(kp.y, 2),
            "scale_px": round(kp.scale, 4),
            "contrast": round(kp.contrast, 4),
            "octave": kp.octave,
            "interval": kp.interval,
            "row": kp.row,
            "col": kp.col,
            "offset_x": round(kp.offset[0], 4),
            "offset_y": round(kp.offset[1], 4),
            "offset_s": round(kp.offset[2], 4),
        }
        for kp in keypoints
    ]


def _summarize(
    image_shape: Tuple[int, int],
    dog_pyr: Pyramid,
    candidates: np.ndarray,
    keypoints: List[RefinedKeypoint],
    cfg: SiftConfig,
    t_pyramid: float,
    elapsed: float,
) -> dict:
    per_octave = np.bincount(candidates[:, _OCTAVE], minlength=len(dog_pyr)) \
        if candidates.shape[0] else np.zeros(len(dog_pyr), dtype=np.int64)
    return {
        "image_shape": [int(v) for v in image_shape],
        "n_octaves": len(dog_pyr),
        "intervals": cfg.intervals,
        "octave_shapes": [list(octave[0].shape) for octave in dog_pyr],
        "n_extrema": int(candidates.shape[0]),
        "n_maxima": int((candidates[:, _POLARITY] > 0).sum()),
        "n_minima": int((candidates[:, _POLARITY] < 0).sum()),
        "extrema_per_octave": [int(v) for v in per_octave],
        "n_keypoints": len(keypoints) if cfg.refine else None,
        "time_pyramid_s": round(t_pyramid, 3),
        "time_total_s": round(elapsed, 3),
    }


def plt_close():
    """Close all matplotlib figures to free memory."""
    import matplotlib.pyplot as plt
    plt.close("all")
