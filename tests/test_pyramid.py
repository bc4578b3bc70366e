"""Tests for pyramid.py"""
import math

import numpy as np
import pytest

from dogsift.image import ScaleSpaceImage
from dogsift.pyramid import (
    build_gauss_pyramid,
    create_initial_image,
    cumulative_sigmas,
    downsample,
    max_octaves,
    octave_count,
    sigma_schedule,
)


@pytest.mark.parametrize("intervals", [1, 2, 3, 4, 6])
@pytest.mark.parametrize("sigma", [0.8, 1.6, 2.5])
def test_sigma_schedule_increments_increase(sigma, intervals):
    sig = sigma_schedule(sigma, intervals)
    assert sig.shape == (intervals + 3,)
    assert sig[0] == sigma
    assert np.all(np.diff(sig[1:]) > 0)


@pytest.mark.parametrize("intervals", [1, 2, 3, 5])
def test_sigma_schedule_composes_to_cumulative_blur(intervals):
    """Blurs add in quadrature: sqrt(sig0² + sig1² + ... + sig_i²) == sigma * k**i."""
    sigma = 1.6
    k = 2.0 ** (1.0 / intervals)
    sig = sigma_schedule(sigma, intervals)
    total = np.sqrt(np.cumsum(sig ** 2))
    np.testing.assert_allclose(total, sigma * k ** np.arange(intervals + 3), rtol=1e-12)
    np.testing.assert_allclose(total, cumulative_sigmas(sigma, intervals), rtol=1e-12)


def test_sigma_schedule_rejects_zero_intervals():
    with pytest.raises(ValueError):
        sigma_schedule(1.6, 0)


def test_max_octaves_formula():
    assert max_octaves(64, 64) == 4
    assert max_octaves(70, 50) == 3      # floor(log2(50)) = 5
    assert max_octaves(1024, 768) == 7
    assert max_octaves(8, 100) == 1


def test_max_octaves_image_too_small():
    with pytest.raises(ValueError):
        max_octaves(7, 100)


def test_octave_count_requested():
    assert octave_count(64, 64) == 4
    assert octave_count(64, 64, 2) == 2
    with pytest.raises(ValueError):
        octave_count(64, 64, 5)
    with pytest.raises(ValueError):
        octave_count(64, 64, 0)


def test_pyramid_shape(noise_image):
    base = ScaleSpaceImage.from_gray(noise_image)
    pyr = build_gauss_pyramid(base, n_octaves=4, intervals=3)
    assert len(pyr) == 4
    assert all(len(octave) == 6 for octave in pyr)
    for octave in pyr:
        assert len({img.bounds for img in octave}) == 1


def test_first_level_is_base(noise_image):
    base = ScaleSpaceImage.from_gray(noise_image)
    pyr = build_gauss_pyramid(base, n_octaves=2, intervals=3)
    assert pyr[0][0] is base


def test_next_octave_halves_interval_s():
    """Octave o+1 starts from interval S of octave o, halved with floor."""
    rng = np.random.default_rng(3)
    base = ScaleSpaceImage.from_gray(rng.integers(0, 256, size=(50, 70)))
    intervals = 3
    pyr = build_gauss_pyramid(base, n_octaves=3, intervals=intervals)

    for o in range(1, 3):
        prev = pyr[o - 1][intervals]
        assert pyr[o][0].width == prev.width // 2
        assert pyr[o][0].height == prev.height // 2
        assert pyr[o][0] == downsample(prev)
        assert not pyr[o][0] == downsample(pyr[o - 1][0])

    assert pyr[1][0].bounds == (35, 25)
    assert pyr[2][0].bounds == (17, 12)


def test_blur_increases_within_octave(noise_image):
    base = ScaleSpaceImage.from_gray(noise_image)
    pyr = build_gauss_pyramid(base, n_octaves=1, intervals=3)
    spreads = [float(np.std(img.intensity())) for img in pyr[0]]
    assert all(b < a for a, b in zip(spreads, spreads[1:]))


def test_too_many_octaves_fails_before_building(monkeypatch, noise_image):
    import dogsift.pyramid as pyramid_mod

    calls = []
    monkeypatch.setattr(pyramid_mod, "gaussian_smooth",
                        lambda *a, **k: calls.append(a))
    base = ScaleSpaceImage.from_gray(noise_image)
    with pytest.raises(ValueError):
        build_gauss_pyramid(base, n_octaves=10, intervals=3)
    assert calls == []


def test_zero_intervals_rejected(noise_image):
    base = ScaleSpaceImage.from_gray(noise_image)
    with pytest.raises(ValueError):
        build_gauss_pyramid(base, n_octaves=2, intervals=0)


def test_initial_image_doubles(noise_image):
    base = create_initial_image(noise_image, double_image=True)
    assert base.bounds == (128, 128)
    base = create_initial_image(noise_image, double_image=False)
    assert base.bounds == (64, 64)


def test_initial_image_converts_rgb():
    rgb = np.zeros((16, 16, 3))
    rgb[..., 0] = 255
    base = create_initial_image(rgb, double_image=False)
    # pure red → luma 76 on every colour channel
    assert (base.intensity() == 76).all()
    assert (base.as_array()[..., 1] == 76).all()
