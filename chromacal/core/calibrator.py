#!/usr/bin/env python3
"""
色彩校准器

一次校准会话：已对齐色卡 + 色卡图像 -> 采样 -> 拟合 -> CalibrationFit -> CorrectionRecipe。
会话中产生的对齐结果与采样色只在本次会话内使用；只有配方会被保留。
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .chart import AlignedChart, GeometricTransform, GridColorChart, Point
from .color_science import ColorSpace
from .data_types import CalibrationConfig
from .errors import CalibrationQualityWarning, ImageFormatError
from .mapping import Corrector, FitDiagnostics, MappingFitter, MappingMethod
from .patch_sampler import PatchSampler, SampledColor
from .recipe import CorrectionRecipe, PixelType
from ..utils.debug_logger import info


@dataclass(frozen=True)
class CalibrationFit:
    """一次校准的完整结果"""
    corrector: Corrector
    diagnostics: FitDiagnostics
    sampled: Tuple[SampledColor, ...]
    aligned_chart: AlignedChart
    pixel_type: PixelType
    observed_space: ColorSpace


class ColorCalibrator:
    """基于已对齐色卡计算校正映射"""

    def __init__(self, aligned_chart: AlignedChart,
                 reference_space: Union[ColorSpace, str] = ColorSpace.SRGB,
                 method: Union[MappingMethod, str] = MappingMethod.LINEAR_CROSS_BAND,
                 config: Optional[CalibrationConfig] = None,
                 observed_space: Union[ColorSpace, str] = ColorSpace.SRGB):
        self.aligned_chart = aligned_chart
        self.reference_space = ColorSpace.parse(reference_space)
        self.method = MappingMethod.parse(method)
        self.config = config or CalibrationConfig()
        self.observed_space = ColorSpace.parse(observed_space)
        self.sampler = PatchSampler(self.config.statistic, self.config.trim_fraction)
        self.fitter = MappingFitter()

    @property
    def chart(self) -> GridColorChart:
        return self.aligned_chart.chart

    def compute_calibration_mapping(self, image: np.ndarray) -> CalibrationFit:
        """
        从色卡图像计算校正映射。

        Raises:
            ImageFormatError: 图像不是三通道 8/16 位或浮点图像
            EmptyPatchSampleError: 色块采样区域为空
            UnderdeterminedFitError: 启用的色块数不足
        """
        image = np.asarray(image)
        if image.ndim != 3 or image.shape[2] != 3:
            raise ImageFormatError(f"色卡图像必须是 (H, W, 3) 数组，实际形状: {image.shape}")
        pixel_type = PixelType.from_dtype(image.dtype)

        raw = self.sampler.sample(self.aligned_chart, image)
        sampled = tuple(
            SampledColor(
                patch_index=s.patch_index,
                patch_name=s.patch_name,
                value=tuple(float(v) for v in pixel_type.normalize(np.array(s.value))),
                pixel_count=s.pixel_count,
            )
            for s in raw
        )

        corrector, diagnostics = self.fitter.fit(
            sampled, self.chart, self.reference_space, self.method, observed_space=self.observed_space
        )
        info(f"色卡 {self.chart.name} 校准完成: {diagnostics.summary()}", "calibrator")

        if diagnostics.mean_delta_e > self.config.quality_threshold:
            warnings.warn(
                CalibrationQualityWarning(
                    f"校准质量较差: 平均 ΔE00 {diagnostics.mean_delta_e:.2f} 超过阈值 "
                    f"{self.config.quality_threshold:.2f}，请检查ROI是否对准色卡",
                    diagnostics=diagnostics,
                ),
                stacklevel=2,
            )

        return CalibrationFit(
            corrector=corrector,
            diagnostics=diagnostics,
            sampled=sampled,
            aligned_chart=self.aligned_chart,
            pixel_type=pixel_type,
            observed_space=self.observed_space,
        )

    def build_recipe(self, fit: CalibrationFit,
                     output_space: Union[ColorSpace, str] = ColorSpace.SRGB) -> CorrectionRecipe:
        return CorrectionRecipe(
            corrector=fit.corrector,
            color_converter=self.chart.converter,
            reference_space=self.reference_space,
            image_pixel_type=fit.pixel_type,
            image_space=fit.observed_space,
            output_space=output_space,
        )


def build_recipe(chart_image: np.ndarray, roi: Sequence[Point], chart_template: GridColorChart,
                 reference_space: Union[ColorSpace, str] = ColorSpace.SRGB,
                 method: Union[MappingMethod, str] = MappingMethod.LINEAR_CROSS_BAND,
                 config: Optional[CalibrationConfig] = None,
                 output_space: Union[ColorSpace, str] = ColorSpace.SRGB) -> CorrectionRecipe:
    """
    由色卡图像和ROI构建校正配方。

    Args:
        chart_image: 色卡图像 (H, W, 3)
        roi: 色卡在图像中的控制点（默认依次对应 左上、右上、右下、左下）
        chart_template: 色卡模板（显式传入，不使用全局注册表）
        reference_space: 拟合所在的工作色彩空间
        method: 拟合方法
        config: 校准参数，默认使用 CalibrationConfig()
        output_space: 校正结果输出的显示色彩空间

    Returns:
        CorrectionRecipe
    """
    config = config or CalibrationConfig()
    chart = chart_template.with_chip_margin(config.chip_margin)
    aligned = chart.aligned_to(roi, GeometricTransform.parse(config.geometric_transform))
    calibrator = ColorCalibrator(aligned, reference_space, method, config)
    fit = calibrator.compute_calibration_mapping(chart_image)
    return calibrator.build_recipe(fit, output_space=output_space)
