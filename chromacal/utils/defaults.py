"""
默认配置加载器
集中式默认值入口：优先从 config/defaults/default.json 读取；若不存在，回退到内置 CalibrationConfig。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Union

from chromacal.core.data_types import CalibrationConfig
from chromacal.utils.app_paths import resolve_data_path
from chromacal.utils.debug_logger import log_file_operation, warning


_DEFAULT_CONFIG_CACHE: Optional[CalibrationConfig] = None


def load_config(path: Union[str, Path]) -> CalibrationConfig:
    """从JSON文件加载配置。文件可直接是配置字典，或包含 'calibration' 字段"""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log_file_operation("load config", str(path), success=False, error=str(e), module="defaults")
        raise
    log_file_operation("load config", str(path), module="defaults")
    return CalibrationConfig.from_dict(data.get("calibration", data))


def load_default_config() -> CalibrationConfig:
    """返回默认配置（缓存）。返回的是副本，调用方可以放心修改"""
    global _DEFAULT_CONFIG_CACHE
    if _DEFAULT_CONFIG_CACHE is None:
        try:
            _DEFAULT_CONFIG_CACHE = load_config(resolve_data_path("config", "defaults", "default.json"))
        except (OSError, json.JSONDecodeError, ValueError) as e:
            # 回退到内置默认（集中唯一硬编码）
            warning(f"默认配置文件不可用，使用内置默认值: {e}", "defaults")
            _DEFAULT_CONFIG_CACHE = CalibrationConfig()
    return CalibrationConfig.from_dict(_DEFAULT_CONFIG_CACHE.to_dict())
