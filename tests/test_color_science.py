"""Test color space conversions.

Tests for chromacal.core.color_science:
    - Round trips between every pair of supported spaces
    - Known values (sRGB white → Lab(100, 0, 0), sRGB black → Lab(0, 0, 0))
    - Space name parsing and unknown spaces
    - float64 output for any input dtype
    - ΔE00 of identical colors

Tolerance:
    - Round trip: relative ≤ 1e-6

Run:
    pytest tests/test_color_science.py -v
"""

import itertools

import numpy as np
import pytest

from chromacal.core.color_science import ColorConverter, ColorSpace, convert, delta_e
from chromacal.core.errors import UnsupportedSpaceError

# In-gamut sRGB colors, away from 0 and 1 so every space stays well conditioned
SRGB_SAMPLES = np.array([
    [0.20, 0.40, 0.60],
    [0.85, 0.30, 0.15],
    [0.50, 0.50, 0.50],
    [0.10, 0.75, 0.35],
    [0.95, 0.90, 0.80],
    [0.05, 0.05, 0.08],
])


@pytest.mark.parametrize("ref_white", ["D65", "D50"])
@pytest.mark.parametrize(
    "space_a, space_b", list(itertools.permutations(list(ColorSpace), 2))
)
def test_round_trip_all_pairs(space_a, space_b, ref_white):
    """convert(convert(x, A, B), B, A) ≈ x."""
    converter = ColorConverter(ref_white)
    x = converter.convert(SRGB_SAMPLES, ColorSpace.SRGB, space_a)
    y = converter.convert(x, space_a, space_b)
    back = converter.convert(y, space_b, space_a)
    np.testing.assert_allclose(back, x, rtol=1e-6, atol=1e-9)


@pytest.mark.parametrize("ref_white", ["D65", "D50"])
def test_srgb_white_is_lab_white(ref_white):
    """sRGB white maps to the reference white under Bradford adaptation."""
    lab = convert([1.0, 1.0, 1.0], ColorSpace.SRGB, ColorSpace.LAB, ColorConverter(ref_white))
    np.testing.assert_allclose(lab, [100.0, 0.0, 0.0], atol=1e-4)


def test_srgb_black_is_lab_black():
    lab = convert([0.0, 0.0, 0.0], ColorSpace.SRGB, ColorSpace.LAB)
    np.testing.assert_allclose(lab, [0.0, 0.0, 0.0], atol=1e-9)


def test_srgb_red_known_lab():
    """sRGB red under D65 ≈ Lab(53.24, 80.09, 67.20)."""
    lab = convert([1.0, 0.0, 0.0], "sRGB", "Lab")
    np.testing.assert_allclose(lab, [53.24, 80.09, 67.20], atol=0.05)


def test_srgb_linear_uses_transfer_function_only():
    linear = convert([0.5, 0.02, 0.0], ColorSpace.SRGB, ColorSpace.LINEAR_SRGB)
    np.testing.assert_allclose(linear, [((0.5 + 0.055) / 1.055) ** 2.4, 0.02 / 12.92, 0.0], rtol=1e-6)


def test_output_is_float64_and_shape_preserved():
    image = np.full((4, 5, 3), 0.25, dtype=np.float32)
    out = convert(image, ColorSpace.SRGB, ColorSpace.XYZ)
    assert out.dtype == np.float64
    assert out.shape == (4, 5, 3)


def test_same_space_returns_copy():
    values = np.array([0.1, 0.2, 0.3])
    out = convert(values, ColorSpace.XYZ, ColorSpace.XYZ)
    out[0] = 9.0
    assert values[0] == 0.1


@pytest.mark.parametrize("name, expected", [
    ("sRGB", ColorSpace.SRGB),
    ("srgb", ColorSpace.SRGB),
    ("Lab", ColorSpace.LAB),
    ("CIELab", ColorSpace.LAB),
    ("L*a*b*", ColorSpace.LAB),
    ("linear", ColorSpace.LINEAR_SRGB),
    ("Display P3", ColorSpace.DISPLAY_P3),
    ("xyz", ColorSpace.XYZ),
    (ColorSpace.XYZ, ColorSpace.XYZ),
])
def test_parse_space_names(name, expected):
    assert ColorSpace.parse(name) is expected


def test_unknown_space_raises():
    with pytest.raises(UnsupportedSpaceError) as exc_info:
        convert([0.1, 0.2, 0.3], "ProPhoto", ColorSpace.LAB)
    assert exc_info.value.space == "ProPhoto"
    # also a ValueError for callers that do not know the domain errors
    with pytest.raises(ValueError):
        ColorSpace.parse("CMYK")


def test_wrong_channel_count_raises():
    with pytest.raises(ValueError):
        convert(np.zeros((4, 4)), ColorSpace.SRGB, ColorSpace.LAB)


def test_unknown_reference_white_raises():
    with pytest.raises(ValueError):
        ColorConverter("D99")


def test_converter_dict_round_trip():
    converter = ColorConverter("D50")
    assert ColorConverter.from_dict(converter.to_dict()) == converter


def test_delta_e_identical_is_zero():
    lab = np.array([[50.0, 10.0, -10.0], [75.0, -20.0, 30.0]])
    np.testing.assert_allclose(delta_e(lab, lab), 0.0, atol=1e-12)


def test_delta_e_small_shift_below_jnd():
    assert float(delta_e([50.0, 0.0, 0.0], [50.5, 0.3, -0.3])) < 2.3
