"""
核心配置数据类型
"""

from dataclasses import dataclass, fields
from typing import Any, Dict


@dataclass
class CalibrationConfig:
    """
    一次校准会话与批量校正的参数。

    chip_margin: 色块每边向内收缩的比例（避免边缘串色）
    statistic: 色块代表色的统计量 median / trimmed_mean / mean
    trim_fraction: trimmed_mean 两端各截去的比例
    geometric_transform: ROI对齐使用的变换 perspective / affine
    quality_threshold: 平均 ΔE00 超过该值时发出 CalibrationQualityWarning
    block_rows: 逐像素校正时每块的行数
    block_workers: 单张图像内并行处理行块的线程数
    batch_workers: 批量校正时并行处理的图像数
    """
    chip_margin: float = 0.2
    statistic: str = "median"
    trim_fraction: float = 0.1
    geometric_transform: str = "perspective"
    quality_threshold: float = 5.0
    block_rows: int = 256
    block_workers: int = 1
    batch_workers: int = 4

    def __post_init__(self):
        if not 0.0 <= self.chip_margin < 0.5:
            raise ValueError(f"chip_margin 必须在 [0, 0.5) 内: {self.chip_margin}")
        if not 0.0 <= self.trim_fraction < 0.5:
            raise ValueError(f"trim_fraction 必须在 [0, 0.5) 内: {self.trim_fraction}")
        for name in ("block_rows", "block_workers", "batch_workers"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} 必须为正整数: {getattr(self, name)}")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationConfig":
        """从字典创建配置；未知字段忽略，缺省字段使用默认值"""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in (data or {}).items():
            if key not in known:
                continue
            field_type = type(getattr(cls, key))
            if value is None:
                raise ValueError(f"配置项 {key} 不能为空，应为 {field_type.__name__}")
            try:
                kwargs[key] = field_type(value)
            except (TypeError, ValueError):
                raise ValueError(f"配置项 {key} 的值无效: {value!r}，应为 {field_type.__name__}")
        return cls(**kwargs)
