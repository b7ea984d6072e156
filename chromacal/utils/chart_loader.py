#!/usr/bin/env python3
"""
色卡定义加载器

处理色卡 JSON schema，并构造不可变的 GridColorChart：
- type: "Lab" -> 参考色为 CIE Lab，相对 white_point
- type: "XYZ" -> 参考色为 CIE XYZ（Y 以 0..1 或 0..100 给出，由 scale 字段说明）
- type: "sRGB" -> 参考色为 0..1 的 sRGB 设备值

职责：
- 加载和验证色卡 JSON 文件（内置文件名或任意路径）
- 按 layout 行优先顺序组织色块
- 不维护任何全局注册表：调用方拿到的是普通的色卡值
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from chromacal.core.chart import GridColorChart
from chromacal.core.color_science import ColorSpace
from chromacal.core.errors import ChartLoadError
from chromacal.utils.app_paths import get_data_dir, resolve_data_path
from chromacal.utils.debug_logger import log_file_operation


DEFAULT_CHART = "xrite_colorchecker_classic"

_TYPE_TO_SPACE = {
    "Lab": ColorSpace.LAB,
    "XYZ": ColorSpace.XYZ,
    "sRGB": ColorSpace.SRGB,
}
_VALID_ILLUMINANTS = ["D50", "D55", "D60", "D65"]


def load_chart(name_or_path: Union[str, Path] = DEFAULT_CHART) -> GridColorChart:
    """
    加载色卡定义

    Args:
        name_or_path: 内置色卡名（如 'xrite_colorchecker_classic'，可省略 .json）或JSON文件路径

    Returns:
        GridColorChart

    Raises:
        ChartLoadError: 文件加载或格式错误
    """
    path = _resolve_chart_path(name_or_path)
    data = _load_chart_json(path)
    _validate_chart_schema(data, path.name)
    return _build_chart(data, path.name)


def list_builtin_charts() -> List[str]:
    """列出随包附带的色卡名"""
    try:
        chart_dir = get_data_dir("config") / "colorchecker"
    except FileNotFoundError:
        return []
    return sorted(p.stem for p in chart_dir.glob("*.json"))


def _resolve_chart_path(name_or_path: Union[str, Path]) -> Path:
    candidate = Path(name_or_path)
    if candidate.suffix.lower() == ".json" and candidate.exists():
        return candidate
    filename = candidate.name if candidate.suffix.lower() == ".json" else f"{candidate.name}.json"
    try:
        return resolve_data_path("config", "colorchecker", filename)
    except FileNotFoundError:
        raise ChartLoadError(f"找不到色卡定义: {name_or_path}")


def _load_chart_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log_file_operation("load chart", str(path), success=False, error=str(e), module="chart_loader")
        raise ChartLoadError(f"色卡文件格式错误: {path.name} - {e}")
    log_file_operation("load chart", str(path), module="chart_loader")
    return data


def _validate_chart_schema(data: Dict[str, Any], filename: str) -> None:
    """验证色卡 JSON schema"""
    if not isinstance(data, dict):
        raise ChartLoadError(f"色卡文件 {filename} 顶层必须是对象")

    for field in ("type", "white_point", "layout", "data"):
        if field not in data:
            raise ChartLoadError(f"色卡文件 {filename} 缺少必需字段: {field}")

    if data["type"] not in _TYPE_TO_SPACE:
        raise ChartLoadError(f"无效的type字段: {data['type']}, 支持: {list(_TYPE_TO_SPACE)}")

    if data["white_point"] not in _VALID_ILLUMINANTS:
        raise ChartLoadError(f"无效的white_point值: {data['white_point']}, 支持: {_VALID_ILLUMINANTS}")

    layout = data["layout"]
    if not isinstance(layout, dict) or not all(isinstance(layout.get(k), int) and layout[k] > 0
                                               for k in ("columns", "rows")):
        raise ChartLoadError(f"layout 字段必须包含正整数 columns 和 rows: {layout}")

    if not isinstance(data["data"], dict):
        raise ChartLoadError("data字段必须是字典类型")

    expected = layout["columns"] * layout["rows"]
    if len(data["data"]) != expected:
        raise ChartLoadError(
            f"色卡文件 {filename} 有 {len(data['data'])} 个色块，layout 要求 {expected} 个"
        )
    for patch_id, values in data["data"].items():
        if not isinstance(values, (list, tuple)) or len(values) != 3:
            raise ChartLoadError(f"色块 {patch_id} 的参考色必须是三个数值")
        if not all(isinstance(v, (int, float)) for v in values):
            raise ChartLoadError(f"色块 {patch_id} 的参考色含有非数值: {values}")


def _build_chart(data: Dict[str, Any], filename: str) -> GridColorChart:
    references = [list(map(float, v)) for v in data["data"].values()]
    # XYZ 参考色允许以 0..100 给出
    if data["type"] == "XYZ":
        scale = float(data.get("scale", 1.0))
        references = [[v / scale for v in ref] for ref in references]

    try:
        return GridColorChart(
            name=str(data.get("name", Path(filename).stem)),
            n_columns=data["layout"]["columns"],
            n_rows=data["layout"]["rows"],
            references=tuple(tuple(ref) for ref in references),
            patch_names=tuple(data["data"].keys()),
            reference_space=_TYPE_TO_SPACE[data["type"]],
            ref_white=data["white_point"],
            chip_margin=float(data.get("chip_margin", 0.2)),
        )
    except ValueError as e:
        raise ChartLoadError(f"色卡文件 {filename} 无法构造色卡: {e}")
