"""
CLI entry point for dogsift.

Installed via ``pip install dogsift[io]``:
    dogsift  : detect scale-space extrema in one or more images
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _add_detect_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", "-i", type=str, nargs="+", required=True,
                        help="Path(s) to image(s) or directories (accepts multiple)")
    parser.add_argument("--outdir", "-o", type=str, required=True,
                        help="Output directory for CSV, JSON and figures")
    parser.add_argument("--intervals", type=int, default=3,
                        help="Sampled intervals per octave")
    parser.add_argument("--sigma", type=float, default=1.6,
                        help="Base sigma of each octave")
    parser.add_argument("--init-sigma", type=float, default=0.5,
                        help="Blur assumed present in the input image")
    parser.add_argument("--no-double", action="store_true",
                        help="Do not upscale the image 2x before building the pyramid")
    parser.add_argument("--octaves", type=int, default=None,
                        help="Number of octaves (default: floor(log2(min side)) - 2)")
    parser.add_argument("--contrast-threshold", type=float, default=0.04,
                        help="Contrast threshold on |D| (0-1 scale)")
    parser.add_argument("--curvature-threshold", type=float, default=10.0,
                        help="Ratio of principal curvatures for edge rejection")
    parser.add_argument("--border", type=int, default=5,
                        help="Ignore extrema within this many pixels of the edge")
    parser.add_argument("--refine", action="store_true",
                        help="Subpixel refinement with contrast / edge rejection")
    parser.add_argument("--max-interp-steps", type=int, default=5,
                        help="Maximum re-centring steps during refinement")
    parser.add_argument("--overlay", action="store_true",
                        help="Write per-image overlay figures (off by default)")
    parser.add_argument("--pyramid-figure", action="store_true",
                        help="Write per-image DoG pyramid montages (off by default)")
    parser.add_argument("--dpi", type=int, default=300,
                        help="Figure DPI")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Suppress progress output")


def _cfg_from_args(args: argparse.Namespace):
    """Build a SiftConfig from parsed CLI arguments."""
    from dogsift import SiftConfig

    return SiftConfig(
        intervals=args.intervals,
        sigma=args.sigma,
        init_sigma=args.init_sigma,
        double_image=not args.no_double,
        n_octaves=args.octaves,
        contrast_threshold=args.contrast_threshold,
        curvature_threshold=args.curvature_threshold,
        border=args.border,
        refine=args.refine,
        max_interp_steps=args.max_interp_steps,
        write_csv=True,
        write_summary=True,
        write_overlay=args.overlay,
        write_pyramid_figure=args.pyramid_figure,
        figure_dpi=args.dpi,
    )


def main(argv=None):
    """Entry point for ``dogsift`` command."""
    p = argparse.ArgumentParser(
        prog="dogsift",
        description="Difference-of-Gaussians scale-space extremum detector (SIFT detection stage)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_detect_args(p)
    p.add_argument("--workers", "-w", type=int, default=1,
                   help="Number of parallel workers (1 = sequential)")
    args = p.parse_args(argv)

    try:
        cfg = _cfg_from_args(args)
    except ValueError as e:
        p.error(str(e))

    from dogsift import process_image, process_batch
    from dogsift.io import list_images

    input_paths = [Path(ip) for ip in args.input]
    outdir = Path(args.outdir)

    verbose = not args.quiet
    if verbose:
        print(f"dogsift  |  S={cfg.intervals}  sigma={cfg.sigma}"
              f"  double={cfg.double_image}  refine={cfg.refine}")
        for ip in input_paths:
            print(f"  Input:  {ip}")
        print(f"  Output: {outdir}")

    if len(input_paths) == 1 and input_paths[0].is_file():
        results = [process_image(input_paths[0], outdir, cfg=cfg, verbose=verbose)]
    else:
        image_paths = []
        for ip in input_paths:
            if ip.is_dir():
                image_paths.extend(list_images(ip))
            elif ip.is_file():
                image_paths.append(ip)
            else:
                print(f"ERROR: Input not found: {ip}", file=sys.stderr)
                return 1
        if not image_paths:
            print("ERROR: No images found in input path(s)", file=sys.stderr)
            return 1
        results = process_batch(image_paths, outdir, cfg=cfg, verbose=verbose,
                                 workers=args.workers)

    total = sum(r["n_extrema"] for r in results)
    if verbose:
        print(f"\nTotal extrema: {total}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
