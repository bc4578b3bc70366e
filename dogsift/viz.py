"""
Visualisation helpers: extrema overlays, DoG pyramid montages, save_figure.

All figures are saved as PNG (300 DPI) + SVG by default.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import matplotlib
matplotlib.use("Agg")   # headless by default
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from matplotlib.colors import TwoSlopeNorm
from matplotlib.lines import Line2D

from .image import ScaleSpaceImage
from .resample import to_grayscale


MAX_COLOR = "#e74c3c"
MIN_COLOR = "#3498db"
KEYPOINT_COLOR = "#2ecc71"


def save_figure(
    fig: plt.Figure,
    name: str,
    outdir: str | Path,
    formats: Sequence[str] = ("png", "svg"),
    dpi: int = 300,
) -> List[Path]:
    """
    Save a matplotlib Figure to one or more formats.

    Parameters
    ----------
    fig : Figure
    name : str
        Base filename without extension.
    outdir : str or Path
        Output directory (created if needed).
    formats : sequence of str
        File formats to write (e.g. ("png", "svg")).
    dpi : int
        Resolution for raster formats.

    Returns
    -------
    list of Path
        Paths to saved files.
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    saved = []
    for fmt in formats:
        p = outdir / f"{name}.{fmt}"
        fig.savefig(str(p), dpi=dpi, bbox_inches="tight")
        saved.append(p)
    return saved


def plot_extrema_overlay(
    image: np.ndarray,
    extrema: List[dict],
    outdir: str | Path,
    name: str = "extrema_overlay",
    keypoints: Optional[List[dict]] = None,
    formats: Sequence[str] = ("png", "svg"),
    dpi: int = 300,
    linewidth: float = 0.8,
) -> plt.Figure:
    """
    Render the image with one circle per extremum (radius = scale).

    Maxima are drawn red, minima blue; refined keypoints, when given, are
    drawn as green crosses.

    Parameters
    ----------
    image : ndarray, shape (H, W) or (H, W, C)
    extrema : list of dict
        Records with x_px, y_px, scale_px, polarity.
    keypoints : list of dict or None
        Records with x_px, y_px.
    """
    gray = to_grayscale(image)
    fig, ax = plt.subplots(figsize=(10, 10 * gray.shape[0] / max(gray.shape[1], 1)))
    ax.imshow(gray, cmap="gray", vmin=0, vmax=255, origin="upper", interpolation="nearest")

    for e in extrema:
        color = MAX_COLOR if e["polarity"] > 0 else MIN_COLOR
        ax.add_patch(mpatches.Circle(
            (e["x_px"], e["y_px"]), radius=max(e["scale_px"], 1.0),
            fill=False, edgecolor=color, linewidth=linewidth, alpha=0.85,
        ))

    handles = [
        Line2D([], [], color=MAX_COLOR, marker="o", linestyle="", fillstyle="none", label="maximum"),
        Line2D([], [], color=MIN_COLOR, marker="o", linestyle="", fillstyle="none", label="minimum"),
    ]
    if keypoints:
        ax.plot([k["x_px"] for k in keypoints], [k["y_px"] for k in keypoints],
                "+", color=KEYPOINT_COLOR, markersize=5, linewidth=linewidth)
        handles.append(Line2D([], [], color=KEYPOINT_COLOR, marker="+", linestyle="",
                              label="keypoint"))

    ax.set_xlim(0, gray.shape[1])
    ax.set_ylim(gray.shape[0], 0)
    ax.legend(handles=handles, loc="upper right", fontsize=8)

    title = f"{name}  |  {len(extrema)} extrema"
    if keypoints is not None:
        title += f", {len(keypoints)} keypoints"
    ax.set_title(title, fontsize=11)
    ax.set_xlabel("x (px)")
    ax.set_ylabel("y (px)")

    fig.tight_layout()
    save_figure(fig, name, outdir, formats=formats, dpi=dpi)
    return fig


def plot_dog_pyramid(
    dog_pyr: List[List[ScaleSpaceImage]],
    outdir: str | Path,
    name: str = "dog_pyramid",
    formats: Sequence[str] = ("png", "svg"),
    dpi: int = 300,
    cmap: str = "RdBu_r",
) -> plt.Figure:
    """
    Montage of every DoG level: one row per octave, one column per interval.

    Each panel uses a diverging colormap centred on zero, scaled to the
    largest |D| in that octave.
    """
    n_octaves = len(dog_pyr)
    n_intervals = len(dog_pyr[0]) if n_octaves else 0
    fig, axes = plt.subplots(
        n_octaves, n_intervals,
        figsize=(2.2 * n_intervals, 2.2 * n_octaves),
        squeeze=False,
    )

    for o, octave in enumerate(dog_pyr):
        vmax = max(float(np.abs(img.intensity()).max()) for img in octave) or 1.0
        norm = TwoSlopeNorm(vmin=-vmax, vcenter=0.0, vmax=vmax)
        for i, img in enumerate(octave):
            ax = axes[o, i]
            ax.imshow(img.intensity(), cmap=cmap, norm=norm, interpolation="nearest")
            ax.set_xticks([])
            ax.set_yticks([])
            if o == 0:
                ax.set_title(f"interval {i}", fontsize=8)
            if i == 0:
                ax.set_ylabel(f"octave {o}\n{img.width}x{img.height}", fontsize=8)

    fig.suptitle(name, fontsize=11)
    fig.tight_layout()
    save_figure(fig, name, outdir, formats=formats, dpi=dpi)
    return fig
