"""
Integration tests for the full pipeline.

Tests end-to-end detection on synthetic images with known blobs.
"""
from __future__ import annotations

import json

import numpy as np
import pytest

from dogsift import SiftConfig, build_scale_space, detect_extrema, detect_keypoints
from dogsift.pipeline import candidates_to_dicts, process_batch, process_image
from tests.conftest import make_blob


def _make_cfg(**kwargs):
    """Return a SiftConfig with outputs disabled (test-only)."""
    defaults = dict(write_csv=False, write_summary=False,
                    write_overlay=False, write_pyramid_figure=False)
    defaults.update(kwargs)
    return SiftConfig(**defaults)


def _save_png(path, image):
    from PIL import Image
    Image.fromarray(np.clip(image, 0, 255).astype(np.uint8)).save(path)


def test_scale_space_dimensions(blob_image):
    image, _ = blob_image
    gauss, dog = build_scale_space(image, _make_cfg())
    # 128 doubled → 256 → floor(log2 256) - 2 = 6 octaves
    assert len(gauss) == 6
    assert len(dog) == 6
    assert all(len(o) == 6 for o in gauss)
    assert all(len(o) == 5 for o in dog)
    assert gauss[0][0].bounds == (256, 256)
    assert gauss[5][0].bounds == (8, 8)


def test_scale_space_without_doubling(blob_image):
    image, _ = blob_image
    gauss, _ = build_scale_space(image, _make_cfg(double_image=False, n_octaves=3))
    assert len(gauss) == 3
    assert gauss[0][0].bounds == (128, 128)


def test_blank_image_has_no_extrema():
    cands = detect_extrema(np.full((64, 64), 128.0), _make_cfg())
    assert cands.shape == (0, 5)


def test_blobs_detected():
    """
    Blobs sized so their DoG response peaks on the middle interval of octave 1;
    high amplitude keeps neighbouring responses apart after 8-bit rounding.
    Centres sit on multiples of 4 and far from edges and each other, so every
    blob sees the same pyramid samples.
    """
    image = np.zeros((256, 256))
    blobs = [(64, 64, 5.7), (192, 64, 5.7), (128, 192, 5.7)]
    for cx, cy, sigma in blobs:
        make_blob(image, cx, cy, sigma, amplitude=250.0)

    cfg = _make_cfg(double_image=False)
    cands = detect_extrema(image, cfg)
    assert cands.shape[0] > 0

    records = candidates_to_dicts(cands, cfg)
    hits = 0
    for cx, cy, _ in blobs:
        near = [r for r in records
                if r["polarity"] < 0 and np.hypot(r["x_px"] - cx, r["y_px"] - cy) <= 3.0]
        hits += bool(near)
    assert hits == len(blobs)


def test_candidates_respect_scan_region(blob_image):
    image, _ = blob_image
    cfg = _make_cfg()
    _, dog = build_scale_space(image, cfg)
    cands = detect_extrema(image, cfg)
    for o, i, r, c, pol in cands:
        ny, nx = dog[o][i].shape
        assert 1 <= i <= cfg.intervals
        assert cfg.border <= r < ny - cfg.border
        assert cfg.border <= c < nx - cfg.border
        assert pol in (-1, 1)


def test_too_many_octaves_fails_before_smoothing(monkeypatch, blob_image):
    import dogsift.pipeline as pipeline_mod

    def fail(*args, **kwargs):
        raise AssertionError("initial image built before validation")

    monkeypatch.setattr(pipeline_mod, "create_initial_image", fail)
    image, _ = blob_image
    with pytest.raises(ValueError):
        build_scale_space(image, _make_cfg(n_octaves=7))


def test_candidates_to_dicts_coordinates():
    cands = np.array([[2, 3, 10, 20, -1]])
    rec = candidates_to_dicts(cands, _make_cfg(double_image=True))[0]
    assert rec["x_px"] == pytest.approx(40.0)     # 20 * 2² / 2
    assert rec["y_px"] == pytest.approx(20.0)
    assert rec["scale_px"] == pytest.approx(1.6 * 2.0 ** 3 / 2, abs=1e-4)
    assert rec["polarity"] == -1

    rec = candidates_to_dicts(cands, _make_cfg(double_image=False))[0]
    assert rec["x_px"] == pytest.approx(80.0)


def test_detect_keypoints_subset(blob_image):
    image, _ = blob_image
    cands, keypoints = detect_keypoints(image, _make_cfg())
    assert len(keypoints) <= cands.shape[0]
    for kp in keypoints:
        assert kp.scale > 0
        assert 0 <= kp.x < image.shape[1]
        assert 0 <= kp.y < image.shape[0]
        assert all(abs(v) < 0.5 for v in kp.offset)


def test_process_image_writes_outputs(tmp_path, blob_image):
    image, _ = blob_image
    path = tmp_path / "blobs.png"
    _save_png(path, image)
    outdir = tmp_path / "out"

    cfg = SiftConfig(refine=True, write_overlay=True, write_pyramid_figure=True,
                     figure_formats=("png",), figure_dpi=50)
    result = process_image(path, outdir, cfg=cfg, verbose=False)

    assert (outdir / "blobs_extrema.csv").exists()
    assert (outdir / "blobs_keypoints.csv").exists()
    assert (outdir / "blobs_extrema_overlay.png").exists()
    assert (outdir / "blobs_dog_pyramid.png").exists()

    summary = json.loads((outdir / "blobs_summary.json").read_text())
    assert summary["n_extrema"] == result["n_extrema"]
    assert summary["n_keypoints"] == result["n_keypoints"]
    assert summary["n_octaves"] == 6
    assert sum(summary["extrema_per_octave"]) == result["n_extrema"]
    assert summary["n_maxima"] + summary["n_minima"] == result["n_extrema"]


def test_process_batch_combined_csv(tmp_path, blob_image):
    image, _ = blob_image
    indir = tmp_path / "in"
    indir.mkdir()
    _save_png(indir / "a.png", image)
    _save_png(indir / "b.png", image[:, ::-1])

    cfg = _make_cfg(write_csv=True)
    results = process_batch(indir, tmp_path / "out", cfg=cfg, verbose=False)
    assert len(results) == 2

    lines = (tmp_path / "out" / "all_extrema.csv").read_text().splitlines()
    assert lines[0].startswith("image,octave,interval")
    assert len(lines) - 1 == sum(r["n_extrema"] for r in results)


def test_process_batch_empty_dir(tmp_path):
    assert process_batch(tmp_path, tmp_path / "out", verbose=False) == []


def test_process_batch_parallel_matches_sequential(tmp_path, blob_image):
    image, _ = blob_image
    indir = tmp_path / "in"
    indir.mkdir()
    _save_png(indir / "a.png", image)
    _save_png(indir / "b.png", image[:, ::-1])
    _save_png(indir / "c.png", image[::-1, :])

    cfg = _make_cfg(write_csv=True, refine=True)
    seq = process_batch(indir, tmp_path / "seq", cfg=cfg, verbose=False, workers=1)
    par = process_batch(indir, tmp_path / "par", cfg=cfg, verbose=False, workers=2)

    assert [r["n_extrema"] for r in par] == [r["n_extrema"] for r in seq]
    assert [r["keypoints"] for r in par] == [r["keypoints"] for r in seq]
    for r_seq, r_par in zip(seq, par):
        np.testing.assert_array_equal(r_par["candidates"], r_seq["candidates"])
    assert ((tmp_path / "par" / "all_extrema.csv").read_text()
            == (tmp_path / "seq" / "all_extrema.csv").read_text())
