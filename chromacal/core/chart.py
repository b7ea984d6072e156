"""
网格色卡模型

色卡局部坐标：每个色块是一个单位正方形，第 r 行第 c 列覆盖 [c, c+1] x [r, r+1]。
四个标准角点依次为 左上(0,0)、右上(cols,0)、右下(cols,rows)、左下(0,rows)。

对齐：用ROI点与色卡控制点（默认四角）做最小二乘拟合，得到仿射或透视变换，
色块轮廓经该变换映射到图像像素坐标。色卡实例不可变，对齐产生新的 AlignedChart。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .color_science import ColorConverter, ColorSpace
from .errors import InsufficientGeometryError
from ..utils.debug_logger import debug

Point = Tuple[float, float]


class GeometricTransform(Enum):
    """对齐所用的几何变换类型"""
    AFFINE = "affine"
    PERSPECTIVE = "perspective"

    @property
    def min_points(self) -> int:
        return 3 if self is GeometricTransform.AFFINE else 4

    @classmethod
    def parse(cls, value: Union["GeometricTransform", str]) -> "GeometricTransform":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"不支持的几何变换类型: {value}, 支持: {[m.value for m in cls]}")


@dataclass(frozen=True)
class Patch:
    """单个色块"""
    index: int
    name: str
    reference: Tuple[float, float, float]
    outline: Tuple[Point, ...]
    enabled: bool = True

    @property
    def centroid(self) -> Point:
        pts = np.asarray(self.outline, dtype=np.float64)
        cx, cy = pts.mean(axis=0)
        return float(cx), float(cy)


def _as_points(points, name: str) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"{name} 必须是 (N, 2) 的点序列，实际形状: {arr.shape}")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} 含有非有限坐标")
    return arr


def _fit_affine(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """最小二乘仿射：dst ≈ [x y 1] @ P"""
    for pts, label in ((src, "色卡控制点"), (dst, "ROI")):
        if np.linalg.matrix_rank(np.column_stack([pts, np.ones(len(pts))])) < 3:
            raise InsufficientGeometryError(
                f"{label}共线，无法确定仿射变换", n_points=len(pts), required=3
            )
    design = np.column_stack([src, np.ones(len(src))])
    params, *_ = np.linalg.lstsq(design, dst, rcond=None)
    matrix = np.eye(3)
    matrix[:2, :] = params.T
    if abs(np.linalg.det(matrix)) < 1e-12:
        raise InsufficientGeometryError(
            "拟合得到的仿射变换奇异", n_points=len(src), required=3
        )
    return matrix


def _fit_perspective(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """全部点参与的最小二乘单应性拟合"""
    for pts, label in ((src, "色卡控制点"), (dst, "ROI")):
        homog = np.column_stack([pts, np.ones(len(pts))])
        if np.linalg.matrix_rank(homog) < 3:
            raise InsufficientGeometryError(
                f"{label}共线，无法确定透视变换", n_points=len(pts), required=4
            )
    matrix, _ = cv2.findHomography(src, dst, 0)
    if matrix is None or not np.isfinite(matrix).all() or abs(matrix[2, 2]) < 1e-12:
        raise InsufficientGeometryError(
            "ROI点构型退化，无法确定透视变换", n_points=len(src), required=4
        )
    matrix = matrix / matrix[2, 2]
    if abs(np.linalg.det(matrix)) < 1e-12:
        raise InsufficientGeometryError(
            "拟合得到的透视变换奇异", n_points=len(src), required=4
        )
    return matrix


def map_points(matrix: np.ndarray, points) -> np.ndarray:
    """用 3x3 变换矩阵映射 (N, 2) 点"""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    return cv2.perspectiveTransform(pts, np.asarray(matrix, dtype=np.float64)).reshape(-1, 2)


@dataclass(frozen=True)
class GridColorChart:
    """
    网格排列的参考色卡。

    references 按行优先顺序给出每个色块在 reference_space 中的参考色，
    XYZ/Lab 参考色相对于 ref_white。
    """
    name: str
    n_columns: int
    n_rows: int
    references: Tuple[Tuple[float, float, float], ...]
    patch_names: Tuple[str, ...] = ()
    reference_space: ColorSpace = ColorSpace.LAB
    ref_white: str = "D50"
    chip_margin: float = 0.2
    enabled: Tuple[bool, ...] = ()

    def __post_init__(self):
        n = self.n_columns * self.n_rows
        if self.n_columns < 1 or self.n_rows < 1:
            raise ValueError(f"色卡行列数必须为正: {self.n_rows}x{self.n_columns}")
        refs = tuple(tuple(float(v) for v in ref) for ref in self.references)
        if len(refs) != n or any(len(ref) != 3 for ref in refs):
            raise ValueError(f"色卡 {self.name} 需要 {n} 个三通道参考色，实际 {len(refs)} 个")
        object.__setattr__(self, "references", refs)
        object.__setattr__(self, "reference_space", ColorSpace.parse(self.reference_space))

        names = tuple(self.patch_names) or tuple(
            f"{chr(ord('A') + r)}{c + 1}" for r in range(self.n_rows) for c in range(self.n_columns)
        )
        if len(names) != n:
            raise ValueError(f"色块名称数量 {len(names)} 与色块数 {n} 不一致")
        object.__setattr__(self, "patch_names", names)

        enabled = tuple(bool(v) for v in self.enabled) or (True,) * n
        if len(enabled) != n:
            raise ValueError(f"enabled 长度 {len(enabled)} 与色块数 {n} 不一致")
        object.__setattr__(self, "enabled", enabled)

        if not 0.0 <= self.chip_margin < 0.5:
            raise ValueError(f"chip_margin 必须在 [0, 0.5) 内: {self.chip_margin}")
        # 校验参考白
        ColorConverter(self.ref_white)

    # === 基本属性 ===
    @property
    def converter(self) -> ColorConverter:
        return ColorConverter(ref_white=self.ref_white)

    @property
    def n_patches(self) -> int:
        return self.n_columns * self.n_rows

    @property
    def patches(self) -> Tuple[Patch, ...]:
        result = []
        for i, (name, ref, on) in enumerate(zip(self.patch_names, self.references, self.enabled)):
            r, c = divmod(i, self.n_columns)
            outline = ((c, r), (c + 1, r), (c + 1, r + 1), (c, r + 1))
            result.append(Patch(index=i, name=name, reference=ref,
                                outline=tuple((float(x), float(y)) for x, y in outline), enabled=on))
        return tuple(result)

    def canonical_corners(self) -> np.ndarray:
        """左上、右上、右下、左下"""
        w, h = float(self.n_columns), float(self.n_rows)
        return np.array([[0.0, 0.0], [w, 0.0], [w, h], [0.0, h]])

    def sampling_outline(self, index: int) -> np.ndarray:
        """色块按 chip_margin 向内收缩后的采样区域（色卡局部坐标）"""
        r, c = divmod(index, self.n_columns)
        m = self.chip_margin
        return np.array([
            [c + m, r + m],
            [c + 1 - m, r + m],
            [c + 1 - m, r + 1 - m],
            [c + m, r + 1 - m],
        ])

    def reference_colors(self, space: Union[ColorSpace, str, None] = None) -> np.ndarray:
        """参考色 (N, 3)，可转换到任意支持空间"""
        refs = np.array(self.references, dtype=np.float64)
        if space is None:
            return refs
        return self.converter.convert(refs, self.reference_space, space)

    # === 派生副本 ===
    def with_chip_margin(self, chip_margin: float) -> "GridColorChart":
        return replace(self, chip_margin=float(chip_margin))

    def with_enabled(self, chips: Iterable[Union[int, str]]) -> "GridColorChart":
        """只启用给定的色块（按序号或名称）"""
        selected = set()
        for chip in chips:
            if isinstance(chip, str):
                if chip not in self.patch_names:
                    raise ValueError(f"色卡 {self.name} 中没有色块 {chip}")
                selected.add(self.patch_names.index(chip))
            else:
                if not 0 <= int(chip) < self.n_patches:
                    raise ValueError(f"色块序号越界: {chip}")
                selected.add(int(chip))
        return replace(self, enabled=tuple(i in selected for i in range(self.n_patches)))

    def aligned_to(self, roi: Sequence[Point],
                   transform: Union[GeometricTransform, str] = GeometricTransform.PERSPECTIVE,
                   chart_points: Optional[Sequence[Point]] = None) -> "AlignedChart":
        """
        将色卡对齐到图像中的ROI。

        Args:
            roi: 图像像素坐标的控制点，按顺序对应 chart_points
            transform: 仿射（至少3点）或透视（至少4点）
            chart_points: 色卡局部坐标的控制点，默认四个标准角点

        Raises:
            InsufficientGeometryError: 点数不足、共线或透视解退化
        """
        kind = GeometricTransform.parse(transform)
        dst = _as_points(roi, "ROI")
        if len(dst) < kind.min_points:
            raise InsufficientGeometryError(
                f"{kind.value} 变换至少需要 {kind.min_points} 个ROI点，当前只有 {len(dst)} 个",
                n_points=len(dst), required=kind.min_points,
            )

        if chart_points is None:
            corners = self.canonical_corners()
            if len(dst) > len(corners):
                raise ValueError(f"ROI有 {len(dst)} 个点，但色卡只有 {len(corners)} 个默认控制点")
            src = corners[:len(dst)]
        else:
            src = _as_points(chart_points, "chart_points")
            if len(src) != len(dst):
                raise ValueError(f"ROI点数 {len(dst)} 与色卡控制点数 {len(src)} 不一致")

        matrix = _fit_affine(src, dst) if kind is GeometricTransform.AFFINE else _fit_perspective(src, dst)
        rms = float(np.sqrt(np.mean(np.sum((map_points(matrix, src) - dst) ** 2, axis=1))))
        debug(f"色卡 {self.name} 对齐: {kind.value}, {len(dst)} 点, RMS残差 {rms:.4f}px", "chart")

        matrix.setflags(write=False)
        return AlignedChart(
            chart=self,
            transform=matrix,
            kind=kind,
            roi=tuple((float(x), float(y)) for x, y in dst),
            alignment_rms=rms,
        )


@dataclass(frozen=True)
class AlignedChart:
    """已对齐到图像坐标的色卡，不持有任何图像引用"""
    chart: GridColorChart
    transform: np.ndarray = field(compare=False, repr=False)
    kind: GeometricTransform = GeometricTransform.PERSPECTIVE
    roi: Tuple[Point, ...] = ()
    alignment_rms: float = 0.0

    def to_image(self, points) -> np.ndarray:
        return map_points(self.transform, points)

    def patch_outlines(self) -> List[np.ndarray]:
        return [self.to_image(p.outline) for p in self.chart.patches]

    def sampling_outlines(self) -> List[np.ndarray]:
        return [self.to_image(self.chart.sampling_outline(i)) for i in range(self.chart.n_patches)]
