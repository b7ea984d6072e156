"""Test patch sampling.

Tests for chromacal.core.patch_sampler:
    - Flat patches are recovered exactly, in chart order
    - Median / trimmed mean ignore sparse outliers, plain mean does not
    - Grayscale (H, W) images
    - ROI outside the image → EmptyPatchSampleError naming the patch
    - Disabled patches with an empty region are skipped
    - Sub-pixel sampling polygons

Run:
    pytest tests/test_patch_sampler.py -v
"""

import numpy as np
import pytest

from chromacal.core.errors import EmptyPatchSampleError, ImageFormatError
from chromacal.core.patch_sampler import PatchSampler, SampleStatistic, region_pixels


def _patch_colors(n):
    rng = np.random.default_rng(7)
    return rng.uniform(0.1, 0.9, size=(n, 3))


def test_flat_patches_recovered(builtin_chart, chart_roi, render_chart):
    aligned = builtin_chart.aligned_to(chart_roi)
    colors = _patch_colors(builtin_chart.n_patches)
    image = render_chart(aligned, colors, dtype=np.uint16)

    samples = PatchSampler().sample(aligned, image)

    assert [s.patch_index for s in samples] == list(range(24))
    assert [s.patch_name for s in samples] == list(builtin_chart.patch_names)
    values = np.array([s.value for s in samples]) / 65535.0
    np.testing.assert_allclose(values, colors, atol=1.0 / 65535.0)
    # ~100 px chips with 20% margin on each side
    assert all(s.pixel_count > 2000 for s in samples)


@pytest.mark.parametrize("statistic", [SampleStatistic.MEDIAN, SampleStatistic.TRIMMED_MEAN])
def test_robust_statistics_ignore_outliers(builtin_chart, chart_roi, render_chart, statistic):
    aligned = builtin_chart.aligned_to(chart_roi)
    colors = np.full((builtin_chart.n_patches, 3), 0.5)
    image = render_chart(aligned, colors, dtype=np.float32)

    # specular highlights: 2% of pixels saturated in every patch
    rng = np.random.default_rng(0)
    hot = rng.random(image.shape[:2]) < 0.02
    image[hot] = 1.0

    robust = PatchSampler(statistic, trim_fraction=0.1).sample(aligned, image)
    plain = PatchSampler("mean").sample(aligned, image)

    np.testing.assert_allclose([s.value for s in robust], 0.5, atol=1e-6)
    assert all(s.value[0] > 0.505 for s in plain)


def test_grayscale_image(builtin_chart, chart_roi, render_chart):
    aligned = builtin_chart.aligned_to(chart_roi)
    colors = np.repeat(np.linspace(0.1, 0.9, 24)[:, None], 3, axis=1)
    gray = render_chart(aligned, colors, dtype=np.uint8)[:, :, 0]

    samples = PatchSampler().sample(aligned, gray)

    assert len(samples[0].value) == 1
    np.testing.assert_allclose([s.value[0] for s in samples], np.rint(colors[:, 0] * 255))


def test_roi_outside_image_raises(builtin_chart):
    aligned = builtin_chart.aligned_to([(1000, 1000), (1600, 1000), (1600, 1400), (1000, 1400)])
    image = np.zeros((480, 680, 3), dtype=np.uint8)
    with pytest.raises(EmptyPatchSampleError) as exc_info:
        PatchSampler().sample(aligned, image)
    assert exc_info.value.patch_index == 0
    assert exc_info.value.patch_name == "A1"


def test_partially_visible_chart_fails_on_first_hidden_patch(builtin_chart):
    # right half of the chart hangs off a 300 px wide image
    aligned = builtin_chart.aligned_to([(0, 0), (600, 0), (600, 400), (0, 400)])
    image = np.zeros((400, 300, 3), dtype=np.uint8)
    with pytest.raises(EmptyPatchSampleError) as exc_info:
        PatchSampler().sample(aligned, image)
    assert exc_info.value.patch_name == "A4"


def test_disabled_patches_off_image_are_skipped(builtin_chart):
    # column 6 spans x 500..600, beyond a 500 px wide image
    chart = builtin_chart.with_enabled([n for n in builtin_chart.patch_names if not n.endswith("6")])
    aligned = chart.aligned_to([(0, 0), (600, 0), (600, 400), (0, 400)])
    image = np.full((400, 500, 3), 1000, dtype=np.uint16)

    samples = PatchSampler().sample(aligned, image)

    assert len(samples) == 20
    assert not any(s.patch_name.endswith("6") for s in samples)
    np.testing.assert_allclose([s.value for s in samples], 1000.0)

    # an enabled patch in the same place still fails
    with pytest.raises(EmptyPatchSampleError) as exc_info:
        PatchSampler().sample(builtin_chart.aligned_to([(0, 0), (600, 0), (600, 400), (0, 400)]), image)
    assert exc_info.value.patch_name == "A6"


def test_disabled_patches_inside_image_are_still_sampled(builtin_chart, chart_roi, render_chart):
    chart = builtin_chart.with_enabled(range(1, 24))
    aligned = chart.aligned_to(chart_roi)
    image = render_chart(aligned, _patch_colors(24), dtype=np.uint8)
    assert len(PatchSampler().sample(aligned, image)) == 24


def test_region_pixels_subpixel_polygon():
    image = np.arange(100, dtype=np.float64).reshape(10, 10, 1)
    pixels = region_pixels(image, np.array([[2.0, 3.0], [5.0, 3.0], [5.0, 6.0], [2.0, 6.0]]))
    assert len(pixels) == 16
    assert set(pixels[:, 0]) == {r * 10 + c for r in range(3, 7) for c in range(2, 6)}

    shifted = region_pixels(image, np.array([[2.5, 3.5], [4.5, 3.5], [4.5, 5.5], [2.5, 5.5]]))
    assert 0 < len(shifted) < 16


def test_invalid_image_raises(builtin_chart, chart_roi):
    aligned = builtin_chart.aligned_to(chart_roi)
    with pytest.raises(ImageFormatError):
        PatchSampler().sample(aligned, np.zeros(10))


def test_invalid_statistic_parameters():
    with pytest.raises(ValueError):
        PatchSampler("mode")
    with pytest.raises(ValueError):
        PatchSampler("trimmed_mean", trim_fraction=0.6)
