#!/usr/bin/env python3
"""
色块采样器

根据已对齐色卡的采样区域（色块按 chip_margin 向内收缩），从图像中提取每个色块的代表色。
使用稳健统计量（中位数 / 截尾均值）降低噪声、高光和边缘错位的影响。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union

import cv2
import numpy as np
from scipy.stats import trim_mean

from .chart import AlignedChart
from .errors import EmptyPatchSampleError, ImageFormatError
from ..utils.debug_logger import debug

# cv2.fillPoly 定点坐标的小数位数（2^4 = 1/16 像素精度）
_SUBPIXEL_SHIFT = 4


class SampleStatistic(Enum):
    MEDIAN = "median"
    TRIMMED_MEAN = "trimmed_mean"
    MEAN = "mean"

    @classmethod
    def parse(cls, value: Union["SampleStatistic", str]) -> "SampleStatistic":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"不支持的采样统计量: {value}, 支持: {[m.value for m in cls]}")


@dataclass(frozen=True)
class SampledColor:
    """单个色块的采样结果（图像原始数值单位）"""
    patch_index: int
    patch_name: str
    value: Tuple[float, ...]
    pixel_count: int


def region_pixels(image: np.ndarray, polygon: np.ndarray) -> np.ndarray:
    """
    取出落在多边形内的全部像素。

    Args:
        image: (H, W, C) 图像
        polygon: (N, 2) 图像像素坐标（可为小数）

    Returns:
        (K, C) 像素数组；多边形完全在图像外时 K=0
    """
    height, width = image.shape[:2]
    x0 = max(int(np.floor(polygon[:, 0].min())), 0)
    y0 = max(int(np.floor(polygon[:, 1].min())), 0)
    x1 = min(int(np.ceil(polygon[:, 0].max())) + 1, width)
    y1 = min(int(np.ceil(polygon[:, 1].max())) + 1, height)
    if x0 >= x1 or y0 >= y1:
        return np.empty((0, image.shape[2]), dtype=image.dtype)

    # 只在包围盒内建掩码，坐标转为定点数保留亚像素精度
    mask = np.zeros((y1 - y0, x1 - x0), dtype=np.uint8)
    local = (polygon - np.array([x0, y0], dtype=np.float64)) * (1 << _SUBPIXEL_SHIFT)
    cv2.fillPoly(mask, [np.round(local).astype(np.int32)], 1, lineType=cv2.LINE_8, shift=_SUBPIXEL_SHIFT)
    return image[y0:y1, x0:x1][mask > 0]


class PatchSampler:
    """色块采样器"""

    def __init__(self, statistic: Union[SampleStatistic, str] = SampleStatistic.MEDIAN,
                 trim_fraction: float = 0.1):
        self.statistic = SampleStatistic.parse(statistic)
        if not 0.0 <= trim_fraction < 0.5:
            raise ValueError(f"trim_fraction 必须在 [0, 0.5) 内: {trim_fraction}")
        self.trim_fraction = float(trim_fraction)

    def _reduce(self, pixels: np.ndarray) -> np.ndarray:
        if self.statistic is SampleStatistic.MEDIAN:
            return np.median(pixels, axis=0)
        if self.statistic is SampleStatistic.TRIMMED_MEAN:
            return trim_mean(pixels, self.trim_fraction, axis=0)
        return np.mean(pixels, axis=0)

    def sample(self, aligned: AlignedChart, image: np.ndarray) -> List[SampledColor]:
        """
        按色卡顺序提取每个色块的代表色。

        未启用的色块若采样区域为空（被遮挡或在图像外）则直接跳过，不出现在结果中。

        Raises:
            ImageFormatError: 图像不是 (H, W) 或 (H, W, C) 数组
            EmptyPatchSampleError: 某个启用色块的采样区域内没有像素
        """
        image = np.asarray(image)
        if image.ndim == 2:
            image = image[:, :, np.newaxis]
        if image.ndim != 3 or image.size == 0:
            raise ImageFormatError(f"色卡图像必须是 (H, W) 或 (H, W, C) 数组，实际形状: {image.shape}")

        chart = aligned.chart
        samples = []
        skipped = []
        for patch, polygon in zip(chart.patches, aligned.sampling_outlines()):
            pixels = region_pixels(image, polygon)
            if len(pixels) == 0:
                if not patch.enabled:
                    skipped.append(patch.name)
                    continue
                raise EmptyPatchSampleError(patch.index, patch.name, region=polygon)
            value = self._reduce(pixels.astype(np.float64))
            samples.append(SampledColor(
                patch_index=patch.index,
                patch_name=patch.name,
                value=tuple(float(v) for v in value),
                pixel_count=int(len(pixels)),
            ))

        if skipped:
            debug(f"跳过采样区域为空的未启用色块: {', '.join(skipped)}", "sampler")
        counts = [s.pixel_count for s in samples]
        if counts:
            debug(f"采样 {len(samples)} 个色块 ({self.statistic.value}), 每块像素数 {min(counts)}..{max(counts)}", "sampler")
        return samples
