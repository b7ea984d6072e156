#!/usr/bin/env python3
"""
校正映射拟合

在工作色彩空间中用最小二乘拟合「采样色 -> 参考色」的多项式映射：
- Linear: 每通道独立的增益 + 偏移
- Linear Cross-band: 每个输出通道是全部输入通道的线性组合 + 偏置（完整矩阵 + 偏移）
- Quadratic / Cubic Cross-band: 全部输入通道的二次 / 三次单项式

拟合结果是不可变的 Corrector，附带逐色块残差和 ΔE00 诊断。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from itertools import combinations_with_replacement
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np

from .chart import GridColorChart
from .color_science import ColorSpace, delta_e
from .errors import UnderdeterminedFitError
from .patch_sampler import SampledColor
from ..utils.debug_logger import debug


@lru_cache(maxsize=None)
def _monomials(n_bands: int, degree: int) -> Tuple[Tuple[int, ...], ...]:
    """按次数升序列出全部单项式（以通道下标元组表示，() 为常数项）"""
    terms = [()]
    for d in range(1, degree + 1):
        terms.extend(combinations_with_replacement(range(n_bands), d))
    return tuple(terms)


class MappingMethod(Enum):
    """拟合方法（封闭集合），每种方法决定系数的形状"""
    LINEAR = "Linear"
    LINEAR_CROSS_BAND = "Linear Cross-band"
    QUADRATIC_CROSS_BAND = "Quadratic Cross-band"
    CUBIC_CROSS_BAND = "Cubic Cross-band"

    @classmethod
    def parse(cls, value: Union["MappingMethod", str]) -> "MappingMethod":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", " ").replace("-", " ")
        for member in cls:
            if key in (member.value.lower().replace("-", " "), member.name.lower().replace("_", " ")):
                return member
        raise ValueError(f"不支持的拟合方法: {value}, 支持: {[m.value for m in cls]}")

    @property
    def degree(self) -> int:
        return {
            MappingMethod.LINEAR: 1,
            MappingMethod.LINEAR_CROSS_BAND: 1,
            MappingMethod.QUADRATIC_CROSS_BAND: 2,
            MappingMethod.CUBIC_CROSS_BAND: 3,
        }[self]

    @property
    def is_cross_band(self) -> bool:
        return self is not MappingMethod.LINEAR

    def terms_per_band(self, n_bands: int) -> int:
        if not self.is_cross_band:
            return 2
        return len(_monomials(n_bands, self.degree))

    def coefficient_count(self, n_bands: int) -> int:
        """全部自由系数个数"""
        return n_bands * self.terms_per_band(n_bands)

    def design_matrix(self, values: np.ndarray) -> np.ndarray:
        """
        交叉通道方法的设计矩阵。

        Args:
            values: (N, n_bands)

        Returns:
            (N, terms) 设计矩阵，列顺序与 _monomials 一致
        """
        if not self.is_cross_band:
            raise ValueError("Linear 方法按通道独立拟合，没有共享的设计矩阵")
        values = np.asarray(values, dtype=np.float64)
        columns = []
        for term in _monomials(values.shape[-1], self.degree):
            col = np.ones(values.shape[:-1], dtype=np.float64)
            for band in term:
                col = col * values[..., band]
            columns.append(col)
        return np.stack(columns, axis=-1)

    def fit(self, observed: np.ndarray, reference: np.ndarray) -> "Corrector":
        """
        普通最小二乘拟合（无正则化）。

        Args:
            observed: (N, n_bands) 工作空间中的采样色
            reference: (N, n_bands) 工作空间中的参考色

        Raises:
            UnderdeterminedFitError: N 小于全部系数个数
        """
        observed = np.asarray(observed, dtype=np.float64)
        reference = np.asarray(reference, dtype=np.float64)
        if observed.shape != reference.shape or observed.ndim != 2:
            raise ValueError(f"采样色与参考色形状不一致: {observed.shape} vs {reference.shape}")

        n_patches, n_bands = observed.shape
        n_coefficients = self.coefficient_count(n_bands)
        if n_patches < n_coefficients:
            raise UnderdeterminedFitError(n_patches, n_coefficients, self.value)

        if self.is_cross_band:
            solution, *_ = np.linalg.lstsq(self.design_matrix(observed), reference, rcond=None)
            coefficients = solution.T
        else:
            coefficients = np.empty((n_bands, 2))
            for band in range(n_bands):
                design = np.column_stack([np.ones(n_patches), observed[:, band]])
                coefficients[band], *_ = np.linalg.lstsq(design, reference[:, band], rcond=None)
        return Corrector(method=self, coefficients=coefficients)


@dataclass(frozen=True)
class Corrector:
    """
    拟合得到的校正函数：颜色向量 (n_bands) -> 颜色向量 (n_bands)。

    coefficients 形状为 (n_bands, terms_per_band)，第 b 行是输出通道 b 的系数；
    Linear 方法每行为 [偏移, 增益]。系数数组只读，可在多线程中并发调用。
    """
    method: MappingMethod
    coefficients: np.ndarray = field(compare=False, repr=False)

    def __post_init__(self):
        method = MappingMethod.parse(self.method)
        coefficients = np.array(self.coefficients, dtype=np.float64)
        if coefficients.ndim != 2:
            raise ValueError(f"系数必须是二维数组，实际形状: {coefficients.shape}")
        expected = method.terms_per_band(coefficients.shape[0])
        if coefficients.shape[1] != expected:
            raise ValueError(
                f"{method.value} 每通道需要 {expected} 个系数，实际 {coefficients.shape[1]} 个"
            )
        coefficients.setflags(write=False)
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "coefficients", coefficients)

    @property
    def n_bands(self) -> int:
        return self.coefficients.shape[0]

    def apply(self, values) -> np.ndarray:
        """对 (..., n_bands) 颜色数组逐像素应用校正，返回 float64"""
        values = np.asarray(values, dtype=np.float64)
        if values.shape[-1] != self.n_bands:
            raise ValueError(f"输入通道数 {values.shape[-1]} 与校正器通道数 {self.n_bands} 不一致")
        if self.method.is_cross_band:
            return self.method.design_matrix(values) @ self.coefficients.T
        return self.coefficients[:, 0] + values * self.coefficients[:, 1]

    __call__ = apply

    def to_dict(self) -> Dict:
        return {"method": self.method.value, "coefficients": self.coefficients.tolist()}

    @classmethod
    def from_dict(cls, data: Dict) -> "Corrector":
        return cls(method=MappingMethod.parse(data["method"]), coefficients=np.array(data["coefficients"]))


@dataclass(frozen=True)
class PatchResidual:
    """单个色块的拟合残差（工作空间数值）"""
    patch_index: int
    patch_name: str
    observed: Tuple[float, ...]
    reference: Tuple[float, ...]
    corrected: Tuple[float, ...]
    residual: float
    delta_e: float


@dataclass(frozen=True)
class FitDiagnostics:
    """拟合质量诊断。系统本身不拒绝差的拟合，由调用方根据指标决定"""
    method: MappingMethod
    working_space: ColorSpace
    patches: Tuple[PatchResidual, ...]

    @property
    def residuals(self) -> np.ndarray:
        return np.array([p.residual for p in self.patches])

    @property
    def delta_es(self) -> np.ndarray:
        return np.array([p.delta_e for p in self.patches])

    @property
    def mean_residual(self) -> float:
        return float(self.residuals.mean())

    @property
    def max_residual(self) -> float:
        return float(self.residuals.max())

    @property
    def rms_residual(self) -> float:
        return float(np.sqrt(np.mean(self.residuals ** 2)))

    @property
    def mean_delta_e(self) -> float:
        return float(self.delta_es.mean())

    @property
    def median_delta_e(self) -> float:
        return float(np.median(self.delta_es))

    @property
    def max_delta_e(self) -> float:
        return float(self.delta_es.max())

    def worst_patches(self, n: int = 3) -> List[PatchResidual]:
        return sorted(self.patches, key=lambda p: p.delta_e, reverse=True)[:n]

    def summary(self) -> str:
        worst = ", ".join(f"{p.patch_name}={p.delta_e:.2f}" for p in self.worst_patches())
        return (
            f"{self.method.value} @ {self.working_space.value}: "
            f"ΔE00 平均 {self.mean_delta_e:.3f} / 中位 {self.median_delta_e:.3f} / 最大 {self.max_delta_e:.3f}, "
            f"残差RMS {self.rms_residual:.5f}; 最差色块: {worst}"
        )

    def to_dict(self) -> Dict:
        return {
            "method": self.method.value,
            "working_space": self.working_space.value,
            "mean_delta_e": self.mean_delta_e,
            "median_delta_e": self.median_delta_e,
            "max_delta_e": self.max_delta_e,
            "mean_residual": self.mean_residual,
            "max_residual": self.max_residual,
            "rms_residual": self.rms_residual,
            "patches": [
                {
                    "index": p.patch_index,
                    "name": p.patch_name,
                    "observed": list(p.observed),
                    "reference": list(p.reference),
                    "corrected": list(p.corrected),
                    "residual": p.residual,
                    "delta_e": p.delta_e,
                }
                for p in self.patches
            ],
        }


class MappingFitter:
    """在工作空间中拟合采样色到参考色的映射"""

    def fit(self, sampled: Sequence[SampledColor], chart: GridColorChart,
            working_space: Union[ColorSpace, str], method: Union[MappingMethod, str],
            observed_space: Union[ColorSpace, str] = ColorSpace.SRGB) -> Tuple[Corrector, FitDiagnostics]:
        """
        Args:
            sampled: 采样色，数值为 observed_space 中的归一化值（RGB 为 0..1）
            chart: 提供参考色与启用状态的色卡
            working_space: 拟合所在的色彩空间
            method: 拟合方法
            observed_space: 采样色所在的色彩空间（通常是相机输出的 sRGB）

        Returns:
            (Corrector, FitDiagnostics)
        """
        working = ColorSpace.parse(working_space)
        observed_space = ColorSpace.parse(observed_space)
        method = MappingMethod.parse(method)
        converter = chart.converter

        patches = chart.patches
        used: List[Tuple[SampledColor, int]] = []
        seen = set()
        for s in sampled:
            if not 0 <= s.patch_index < chart.n_patches:
                raise ValueError(f"采样色块序号 {s.patch_index} 不属于色卡 {chart.name}")
            if s.patch_index in seen:
                raise ValueError(f"色块 {s.patch_name} 被重复采样")
            seen.add(s.patch_index)
            if patches[s.patch_index].enabled:
                used.append((s, s.patch_index))

        n_coefficients = method.coefficient_count(3)
        if len(used) < n_coefficients:
            raise UnderdeterminedFitError(len(used), n_coefficients, method.value)

        indices = [i for _, i in used]
        observed = converter.convert(np.array([s.value for s, _ in used]), observed_space, working)
        reference = chart.reference_colors(working)[indices]

        corrector = method.fit(observed, reference)
        corrected = corrector.apply(observed)

        residuals = np.linalg.norm(corrected - reference, axis=1)
        delta = _delta_e_in_lab(converter, corrected, reference, working)
        diagnostics = FitDiagnostics(
            method=method,
            working_space=working,
            patches=tuple(
                PatchResidual(
                    patch_index=i,
                    patch_name=patches[i].name,
                    observed=tuple(observed[k].tolist()),
                    reference=tuple(reference[k].tolist()),
                    corrected=tuple(corrected[k].tolist()),
                    residual=float(residuals[k]),
                    delta_e=float(delta[k]),
                )
                for k, i in enumerate(indices)
            ),
        )
        debug(f"拟合完成 {len(indices)} 个色块: {diagnostics.summary()}", "mapping")
        return corrector, diagnostics


def _delta_e_in_lab(converter, corrected: np.ndarray, reference: np.ndarray,
                    working: ColorSpace) -> np.ndarray:
    lab_corrected = converter.convert(corrected, working, ColorSpace.LAB)
    lab_reference = converter.convert(reference, working, ColorSpace.LAB)
    return delta_e(lab_corrected, lab_reference)
