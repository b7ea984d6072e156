"""Test image I/O helpers and the command line driver.

Tests for chromacal.utils.image_io and chromacal.__main__:
    - 16-bit PNG round trip in RGB order, non-ASCII paths
    - ROI files as a bare point list or {"points": [...]}
    - calibrate → recipe + report, apply → corrected directory
    - batch exits with 1 when any image fails, 0 otherwise
    - --method help lists the methods each bundled chart supports
    - invalid config values exit with 1

Run:
    pytest tests/test_cli.py -v
"""

import json

import cv2
import numpy as np
import pytest

from chromacal.__main__ import _method_help, main
from chromacal.core.errors import ImageFormatError
from chromacal.core.recipe import load_recipe
from chromacal.utils.image_io import list_images, load_image, load_roi, save_image


@pytest.fixture
def chart_files(tmp_path, builtin_chart, chart_roi, render_chart):
    """A colour-cast chart image, its ROI file and a directory of images to correct."""
    aligned = builtin_chart.aligned_to(chart_roi)
    truth = np.clip(builtin_chart.reference_colors("sRGB"), 0.0, 1.0)
    cast = np.clip(truth * np.array([1.1, 0.95, 0.8]) + 0.02, 0.0, 1.0)
    chart_image = render_chart(aligned, cast, dtype=np.uint16)

    chart_path = save_image(tmp_path / "chart.png", chart_image)
    roi_path = tmp_path / "roi.json"
    roi_path.write_text(json.dumps({"points": [list(p) for p in chart_roi]}), encoding="utf-8")

    raw_dir = tmp_path / "raw"
    for name in ("one.png", "two.png"):
        save_image(raw_dir / name, chart_image[:200, :300])
    (raw_dir / "notes.txt").write_text("not an image", encoding="utf-8")
    return chart_path, roi_path, raw_dir


def test_png_round_trip_keeps_rgb_order(tmp_path):
    image = np.zeros((4, 6, 3), dtype=np.uint16)
    image[..., 0] = 60000
    image[..., 2] = 123
    path = save_image(tmp_path / "色卡" / "测试.png", image)

    loaded = load_image(path)
    assert loaded.dtype == np.uint16
    np.testing.assert_array_equal(loaded, image)


def test_load_image_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_image(tmp_path / "absent.png")
    bogus = tmp_path / "bogus.png"
    bogus.write_bytes(b"not a png")
    with pytest.raises(ImageFormatError):
        load_image(bogus)


def test_grayscale_loaded_as_rgb(tmp_path):
    gray = np.arange(12, dtype=np.uint8).reshape(3, 4)
    path = tmp_path / "gray.png"
    cv2.imencode(".png", gray)[1].tofile(str(path))
    loaded = load_image(path)
    assert loaded.shape == (3, 4, 3)
    np.testing.assert_array_equal(loaded[..., 1], gray)


def test_load_roi_formats(tmp_path):
    bare = tmp_path / "bare.json"
    bare.write_text("[[1, 2], [3, 4], [5, 6]]", encoding="utf-8")
    assert load_roi(bare) == [(1.0, 2.0), (3.0, 4.0), (5.0, 6.0)]

    bad = tmp_path / "bad.json"
    bad.write_text('{"points": [[1, 2, 3]]}', encoding="utf-8")
    with pytest.raises(ValueError):
        load_roi(bad)


def test_list_images_filters_extensions(chart_files):
    _, _, raw_dir = chart_files
    assert [p.name for p in list_images(raw_dir)] == ["one.png", "two.png"]


def test_calibrate_then_apply(tmp_path, chart_files, capsys):
    chart_path, roi_path, raw_dir = chart_files
    recipe_path = tmp_path / "recipe.json"
    report_path = tmp_path / "report.json"

    assert main(["calibrate", "--image", str(chart_path), "--roi", str(roi_path),
                 "--space", "Linear sRGB", "--report", str(report_path), "-o", str(recipe_path)]) == 0
    recipe = load_recipe(recipe_path)
    assert recipe.image_pixel_type.value == "uint16"
    assert len(json.loads(report_path.read_text(encoding="utf-8"))["patches"]) == 24
    assert "ΔE00" in capsys.readouterr().out

    out_dir = tmp_path / "corrected"
    assert main(["apply", "--recipe", str(recipe_path), "--input", str(raw_dir),
                 "--output", str(out_dir), "--workers", "2"]) == 0
    assert sorted(p.name for p in out_dir.iterdir()) == ["one.png", "two.png"]
    assert load_image(out_dir / "one.png").shape == (200, 300, 3)


def test_batch_exit_code_reports_failures(tmp_path, chart_files):
    chart_path, roi_path, raw_dir = chart_files
    args = ["batch", "--image", str(chart_path), "--roi", str(roi_path),
            "--input", str(raw_dir), "--output", str(tmp_path / "out")]
    assert main(args) == 0

    # an 8-bit image does not match the 16-bit recipe
    save_image(raw_dir / "three.png", np.zeros((10, 10, 3), dtype=np.uint8))
    assert main(args) == 1
    assert (tmp_path / "out" / "one.png").exists()


def test_calibrate_reports_domain_errors(tmp_path, chart_files, capsys):
    chart_path, _, _ = chart_files
    roi_path = tmp_path / "short_roi.json"
    roi_path.write_text("[[0, 0], [10, 0]]", encoding="utf-8")
    code = main(["calibrate", "--image", str(chart_path), "--roi", str(roi_path),
                 "-o", str(tmp_path / "r.json")])
    assert code == 1
    assert "ROI" in capsys.readouterr().err


def test_method_help_lists_methods_per_builtin_chart():
    text = _method_help()
    assert "imagescience_colorgauge_matte (30 色块): Linear, Linear Cross-band, Quadratic Cross-band" in text
    assert text.endswith("xrite_colorchecker_classic (24 色块): Linear, Linear Cross-band")
    assert "Cubic Cross-band 60" in text


def test_null_config_value_reports_error(tmp_path, chart_files, capsys):
    chart_path, roi_path, _ = chart_files
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"calibration": {"chip_margin": None}}), encoding="utf-8")
    code = main(["--config", str(config_path), "calibrate", "--image", str(chart_path),
                 "--roi", str(roi_path), "-o", str(tmp_path / "r.json")])
    assert code == 1
    assert "chip_margin" in capsys.readouterr().err
