"""Shared fixtures: built-in chart, in-gamut synthetic chart, chart image renderer."""

import cv2
import numpy as np
import pytest

from chromacal.core.chart import GridColorChart
from chromacal.core.color_science import ColorSpace
from chromacal.utils.chart_loader import load_chart

# Skewed quadrilateral (TL, TR, BR, BL) inside a 680x480 canvas
CHART_ROI = ((40.0, 30.0), (640.0, 40.0), (630.0, 440.0), (30.0, 430.0))
CANVAS_SHAPE = (480, 680)


@pytest.fixture
def builtin_chart():
    """X-Rite ColorChecker Classic shipped with the package (Lab, D50)."""
    return load_chart()


@pytest.fixture
def colorgauge_chart():
    """Image Science ColorGauge Matte shipped with the package (30 patches, Lab, D50)."""
    return load_chart("imagescience_colorgauge_matte")


@pytest.fixture
def srgb_chart(builtin_chart):
    """ColorChecker layout with references clipped into the sRGB gamut (D65).

    Rendering these references into an image is lossless apart from quantization,
    so fits against this chart can be checked tightly.
    """
    srgb = np.clip(builtin_chart.reference_colors(ColorSpace.SRGB), 0.0, 1.0)
    return GridColorChart(
        name="synthetic sRGB",
        n_columns=builtin_chart.n_columns,
        n_rows=builtin_chart.n_rows,
        references=tuple(tuple(row) for row in srgb),
        patch_names=builtin_chart.patch_names,
        reference_space=ColorSpace.SRGB,
        ref_white="D65",
    )


@pytest.fixture
def chart_roi():
    return CHART_ROI


def render_chart_image(aligned, colors, dtype=np.uint16, shape=CANVAS_SHAPE, background=0.5):
    """Paint each patch of an aligned chart with a flat color.

    Args:
        aligned: AlignedChart giving patch outlines in image coordinates
        colors: (n_patches, 3) normalized colors in [0, 1]
        dtype: uint8 / uint16 / float32
    """
    max_value = 1.0 if np.issubdtype(np.dtype(dtype), np.floating) else np.iinfo(dtype).max
    height, width = shape
    image = np.full((height, width, 3), background * max_value, dtype=np.float64)
    for outline, color in zip(aligned.patch_outlines(), np.asarray(colors, dtype=np.float64)):
        mask = np.zeros((height, width), dtype=np.uint8)
        cv2.fillPoly(mask, [np.round(outline).astype(np.int32)], 1)
        image[mask > 0] = color * max_value
    if max_value == 1.0:
        return image.astype(dtype)
    return np.rint(image).astype(dtype)


@pytest.fixture
def render_chart():
    return render_chart_image
