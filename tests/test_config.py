"""Test calibration configuration.

Tests for chromacal.core.data_types and chromacal.utils.defaults:
    - Dataclass defaults and validation
    - from_dict: unknown keys ignored, values cast to the field type
    - null or uncastable values → ValueError naming the key
    - load_config: flat or nested under "calibration"
    - load_default_config returns an independent copy of the bundled defaults

Run:
    pytest tests/test_config.py -v
"""

import json

import pytest

from chromacal.core.data_types import CalibrationConfig
from chromacal.utils.defaults import load_config, load_default_config


def test_defaults():
    config = CalibrationConfig()
    assert config.chip_margin == 0.2
    assert config.statistic == "median"
    assert config.geometric_transform == "perspective"
    assert config.block_workers == 1


@pytest.mark.parametrize("kwargs", [
    {"chip_margin": 0.5},
    {"chip_margin": -0.1},
    {"trim_fraction": 0.5},
    {"block_rows": 0},
    {"batch_workers": 0},
])
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValueError):
        CalibrationConfig(**kwargs)


def test_from_dict_casts_and_ignores_unknown():
    config = CalibrationConfig.from_dict({"chip_margin": "0.25", "block_rows": 64.0, "gpu": True})
    assert config.chip_margin == 0.25
    assert config.block_rows == 64
    assert isinstance(config.block_rows, int)
    assert CalibrationConfig.from_dict(config.to_dict()) == config


@pytest.mark.parametrize("data", [
    {"chip_margin": None},
    {"statistic": None},
    {"block_rows": [64]},
    {"quality_threshold": "high"},
])
def test_from_dict_rejects_invalid_values(data):
    key = next(iter(data))
    with pytest.raises(ValueError, match=key):
        CalibrationConfig.from_dict(data)


def test_load_config_null_value_raises_value_error(tmp_path):
    bad = tmp_path / "config.json"
    bad.write_text(json.dumps({"calibration": {"batch_workers": None}}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(bad)


def test_load_config_flat_and_nested(tmp_path):
    flat = tmp_path / "flat.json"
    flat.write_text(json.dumps({"statistic": "trimmed_mean", "quality_threshold": 3}), encoding="utf-8")
    nested = tmp_path / "nested.json"
    nested.write_text(json.dumps({"calibration": {"batch_workers": 8}}), encoding="utf-8")

    assert load_config(flat).statistic == "trimmed_mean"
    assert load_config(flat).quality_threshold == 3.0
    assert load_config(nested).batch_workers == 8


def test_load_config_missing_file(tmp_path):
    with pytest.raises(OSError):
        load_config(tmp_path / "absent.json")


def test_default_config_is_a_copy():
    first = load_default_config()
    first.chip_margin = 0.4
    assert load_default_config() == CalibrationConfig()
