"""
校准引擎的错误类型

所有致命错误继承 ChromacalError；拟合质量问题只发出 CalibrationQualityWarning，
由调用方决定是否拒绝该次校准。
"""

from __future__ import annotations

from typing import Any, Optional


class ChromacalError(Exception):
    """校准引擎错误基类"""
    pass


class UnsupportedSpaceError(ChromacalError, ValueError):
    """未知或不支持的色彩空间"""

    def __init__(self, space: Any, message: Optional[str] = None):
        self.space = space
        super().__init__(message or f"不支持的色彩空间: {space!r}")


class InsufficientGeometryError(ChromacalError):
    """ROI控制点不足或退化（共线），无法确定几何变换"""

    def __init__(self, message: str, n_points: int = 0, required: int = 0):
        self.n_points = n_points
        self.required = required
        super().__init__(message)


class EmptyPatchSampleError(ChromacalError):
    """色块采样区域内没有任何像素（例如ROI落在图像之外）"""

    def __init__(self, patch_index: int, patch_name: str, region=None):
        self.patch_index = patch_index
        self.patch_name = patch_name
        self.region = region
        super().__init__(
            f"色块 {patch_name} (#{patch_index}) 的采样区域内没有像素，请检查ROI是否位于图像内"
        )


class UnderdeterminedFitError(ChromacalError):
    """参与拟合的色块数少于待求系数个数"""

    def __init__(self, n_patches: int, n_coefficients: int, method: str):
        self.n_patches = n_patches
        self.n_coefficients = n_coefficients
        self.method = method
        super().__init__(
            f"拟合方法 '{method}' 需要至少 {n_coefficients} 个色块，当前只有 {n_patches} 个"
        )


class ImageFormatError(ChromacalError, ValueError):
    """输入图像格式错误或与校正配方的像素类型不符"""
    pass


class ChartLoadError(ChromacalError):
    """色卡定义文件加载或格式错误"""
    pass


class CalibrationQualityWarning(UserWarning):
    """拟合质量较差（非致命），携带完整的拟合诊断"""

    def __init__(self, message: str, diagnostics=None):
        super().__init__(message)
        self.diagnostics = diagnostics
