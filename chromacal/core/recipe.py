"""
校正配方

CorrectionRecipe 是一次校准的持久产物：拟合好的校正器 + 色卡的色彩转换器 +
工作（参考）色彩空间 + 图像像素类型。配方不可变，可被任意多张图像、任意多个线程共享。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np

from .color_science import ColorConverter, ColorSpace
from .errors import ImageFormatError, UnsupportedSpaceError
from .mapping import Corrector
from ..utils.debug_logger import log_file_operation

RECIPE_VERSION = 1


class PixelType(Enum):
    """图像像素类型；浮点图像名义范围为 [0, 1]"""
    UINT8 = "uint8"
    UINT16 = "uint16"
    FLOAT32 = "float32"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @property
    def max_value(self) -> float:
        return {PixelType.UINT8: 255.0, PixelType.UINT16: 65535.0, PixelType.FLOAT32: 1.0}[self]

    @classmethod
    def from_dtype(cls, dtype) -> "PixelType":
        dtype = np.dtype(dtype)
        if dtype == np.uint8:
            return cls.UINT8
        if dtype == np.uint16:
            return cls.UINT16
        if np.issubdtype(dtype, np.floating):
            return cls.FLOAT32
        raise ImageFormatError(f"不支持的像素数据类型: {dtype}")

    @classmethod
    def parse(cls, value: Union["PixelType", str]) -> "PixelType":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    def normalize(self, array: np.ndarray) -> np.ndarray:
        """像素值 -> float64 [0, 1]（浮点图像不缩放）"""
        return np.asarray(array, dtype=np.float64) / self.max_value

    def denormalize(self, array: np.ndarray) -> np.ndarray:
        """float [0, 1] -> 本像素类型；超出范围的值截断，整数类型四舍五入"""
        scaled = np.clip(np.asarray(array, dtype=np.float64), 0.0, 1.0) * self.max_value
        if self is PixelType.FLOAT32:
            return scaled.astype(np.float32)
        return np.rint(scaled).astype(self.dtype)


@dataclass(frozen=True)
class CorrectionRecipe:
    """
    校正配方

    corrector: 在 reference_space 中工作的校正器
    color_converter: 色卡的色彩转换器（参考白/观察者）
    reference_space: 拟合所在的工作色彩空间
    image_pixel_type: 期望的输入/输出像素类型
    image_space: 输入图像的设备色彩空间
    output_space: 校正结果输出的显示色彩空间
    """
    corrector: Corrector
    color_converter: ColorConverter
    reference_space: ColorSpace
    image_pixel_type: PixelType
    image_space: ColorSpace = ColorSpace.SRGB
    output_space: ColorSpace = ColorSpace.SRGB

    def __post_init__(self):
        object.__setattr__(self, "reference_space", ColorSpace.parse(self.reference_space))
        object.__setattr__(self, "image_pixel_type", PixelType.parse(self.image_pixel_type))
        for name in ("image_space", "output_space"):
            space = ColorSpace.parse(getattr(self, name))
            if not space.is_rgb:
                raise UnsupportedSpaceError(space, f"{name} 必须是RGB色彩空间，实际: {space.value}")
            object.__setattr__(self, name, space)
        if self.corrector.n_bands != 3:
            raise ValueError(f"校正器必须是三通道，实际 {self.corrector.n_bands} 通道")

    @property
    def n_bands(self) -> int:
        return self.corrector.n_bands

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": RECIPE_VERSION,
            "corrector": self.corrector.to_dict(),
            "color_converter": self.color_converter.to_dict(),
            "reference_space": self.reference_space.value,
            "image_pixel_type": self.image_pixel_type.value,
            "image_space": self.image_space.value,
            "output_space": self.output_space.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrectionRecipe":
        version = data.get("version", RECIPE_VERSION)
        if version > RECIPE_VERSION:
            raise ValueError(f"配方版本 {version} 高于当前支持的版本 {RECIPE_VERSION}")
        return cls(
            corrector=Corrector.from_dict(data["corrector"]),
            color_converter=ColorConverter.from_dict(data.get("color_converter", {})),
            reference_space=ColorSpace.parse(data["reference_space"]),
            image_pixel_type=PixelType.parse(data["image_pixel_type"]),
            image_space=ColorSpace.parse(data.get("image_space", ColorSpace.SRGB.value)),
            output_space=ColorSpace.parse(data.get("output_space", ColorSpace.SRGB.value)),
        )


def save_recipe(recipe: CorrectionRecipe, path: Union[str, Path]) -> Path:
    """将配方保存为JSON"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(recipe.to_dict(), f, ensure_ascii=False, indent=2)
    except OSError as e:
        log_file_operation("save recipe", str(path), success=False, error=str(e), module="recipe")
        raise
    log_file_operation("save recipe", str(path), module="recipe")
    return path


def load_recipe(path: Union[str, Path]) -> CorrectionRecipe:
    """从JSON加载配方"""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log_file_operation("load recipe", str(path), success=False, error=str(e), module="recipe")
        raise
    log_file_operation("load recipe", str(path), module="recipe")
    return CorrectionRecipe.from_dict(data)
