"""
色彩科学转换工具
- 设备RGB（sRGB / Display P3，sRGB 分段伽马）、线性RGB、CIE XYZ、CIE Lab 之间的互相转换
- XYZ/Lab 数值相对于参考白（色卡的白点）；RGB 空间通过 Bradford 适配到参考白
- 所有中间计算使用 float64，避免链式转换累积舍入误差

数值范围约定：RGB 名义范围 [0,1]；XYZ 以参考白 Y=1 归一；Lab 的 L 为 0..100。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Tuple, Union

import numpy as np
from colour import CCS_ILLUMINANTS, Lab_to_XYZ, RGB_COLOURSPACES, XYZ_to_Lab, delta_E, xy_to_XYZ
from colour.adaptation import chromatic_adaptation_VonKries
from colour.models import eotf_inverse_sRGB, eotf_sRGB

from .errors import UnsupportedSpaceError


DEFAULT_OBSERVER = "CIE 1931 2 Degree Standard Observer"


class ColorSpace(Enum):
    """支持的色彩空间"""
    SRGB = "sRGB"
    LINEAR_SRGB = "Linear sRGB"
    DISPLAY_P3 = "Display P3"
    XYZ = "XYZ"
    LAB = "L*a*b*"

    @classmethod
    def parse(cls, value: Union["ColorSpace", str]) -> "ColorSpace":
        """按枚举、名称、取值或常用别名解析色彩空间"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnsupportedSpaceError(value)
        key = value.strip().lower()
        for member in cls:
            if key == member.value.lower() or key == member.name.lower():
                return member
        if key in _ALIASES:
            return _ALIASES[key]
        raise UnsupportedSpaceError(value)

    @property
    def is_rgb(self) -> bool:
        return self in _RGB_DEFINITIONS


_ALIASES = {
    "lab": ColorSpace.LAB,
    "cielab": ColorSpace.LAB,
    "cie lab": ColorSpace.LAB,
    "cie l*a*b*": ColorSpace.LAB,
    "cie xyz": ColorSpace.XYZ,
    "linear": ColorSpace.LINEAR_SRGB,
    "linear rgb": ColorSpace.LINEAR_SRGB,
    "srgb linear": ColorSpace.LINEAR_SRGB,
    "p3": ColorSpace.DISPLAY_P3,
}

# RGB空间 -> (colour 中的色彩空间名称, 是否使用 sRGB 分段伽马)
_RGB_DEFINITIONS = {
    ColorSpace.SRGB: ("sRGB", True),
    ColorSpace.LINEAR_SRGB: ("sRGB", False),
    ColorSpace.DISPLAY_P3: ("Display P3", True),
}


@lru_cache(maxsize=None)
def _rgb_matrices(space: ColorSpace) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """返回 (RGB->XYZ, XYZ->RGB, RGB白点XYZ)。

    XYZ->RGB 取 RGB->XYZ 的数值逆，而不是标准中公布的四位小数矩阵，
    保证往返转换误差在 1e-6 以内。白点取矩阵对 RGB(1,1,1) 的响应。
    """
    name, _ = _RGB_DEFINITIONS[space]
    m = np.array(RGB_COLOURSPACES[name].matrix_RGB_to_XYZ, dtype=np.float64)
    m_inv = np.linalg.inv(m)
    white = m.sum(axis=1)
    for arr in (m, m_inv, white):
        arr.setflags(write=False)
    return m, m_inv, white


def _as_float64(values) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape[-1:] != (3,):
        raise ValueError(f"颜色数组最后一维必须为3，实际形状: {arr.shape}")
    return arr


@dataclass(frozen=True)
class ColorConverter:
    """色彩转换器：定义 XYZ/Lab 所相对的参考白和标准观察者"""
    ref_white: str = "D65"
    observer: str = DEFAULT_OBSERVER

    def __post_init__(self):
        if self.observer not in CCS_ILLUMINANTS:
            raise ValueError(f"未知的标准观察者: {self.observer}")
        if self.ref_white not in CCS_ILLUMINANTS[self.observer]:
            raise ValueError(f"未知的参考白: {self.ref_white}")

    @property
    def white_xy(self) -> np.ndarray:
        return np.array(CCS_ILLUMINANTS[self.observer][self.ref_white], dtype=np.float64)

    @property
    def white_XYZ(self) -> np.ndarray:
        return np.asarray(xy_to_XYZ(self.white_xy), dtype=np.float64)

    def to_xyz(self, values, space: Union[ColorSpace, str]) -> np.ndarray:
        """任意支持空间 -> XYZ（相对参考白）"""
        space = ColorSpace.parse(space)
        arr = _as_float64(values)
        if space is ColorSpace.XYZ:
            return arr.copy()
        if space is ColorSpace.LAB:
            return np.asarray(Lab_to_XYZ(arr, illuminant=self.white_xy), dtype=np.float64)

        _, companded = _RGB_DEFINITIONS[space]
        m, _, rgb_white = _rgb_matrices(space)
        linear = np.asarray(eotf_sRGB(arr), dtype=np.float64) if companded else arr
        xyz = linear @ m.T
        return np.asarray(
            chromatic_adaptation_VonKries(xyz, rgb_white, self.white_XYZ, transform="Bradford"),
            dtype=np.float64,
        )

    def from_xyz(self, xyz, space: Union[ColorSpace, str]) -> np.ndarray:
        """XYZ（相对参考白） -> 任意支持空间"""
        space = ColorSpace.parse(space)
        arr = _as_float64(xyz)
        if space is ColorSpace.XYZ:
            return arr.copy()
        if space is ColorSpace.LAB:
            return np.asarray(XYZ_to_Lab(arr, illuminant=self.white_xy), dtype=np.float64)

        _, companded = _RGB_DEFINITIONS[space]
        _, m_inv, rgb_white = _rgb_matrices(space)
        adapted = np.asarray(
            chromatic_adaptation_VonKries(arr, self.white_XYZ, rgb_white, transform="Bradford"),
            dtype=np.float64,
        )
        linear = adapted @ m_inv.T
        return np.asarray(eotf_inverse_sRGB(linear), dtype=np.float64) if companded else linear

    def convert(self, values, from_space: Union[ColorSpace, str],
                to_space: Union[ColorSpace, str]) -> np.ndarray:
        """颜色转换，支持 (3,) 或 (..., 3)。返回 float64。"""
        src = ColorSpace.parse(from_space)
        dst = ColorSpace.parse(to_space)
        if src is dst:
            return _as_float64(values).copy()
        # 同一组基色之间只差传递函数，不经过 XYZ
        if {src, dst} == {ColorSpace.SRGB, ColorSpace.LINEAR_SRGB}:
            arr = _as_float64(values)
            if src is ColorSpace.SRGB:
                return np.asarray(eotf_sRGB(arr), dtype=np.float64)
            return np.asarray(eotf_inverse_sRGB(arr), dtype=np.float64)
        return self.from_xyz(self.to_xyz(values, src), dst)

    def to_dict(self):
        return {"ref_white": self.ref_white, "observer": self.observer}

    @classmethod
    def from_dict(cls, data) -> "ColorConverter":
        return cls(
            ref_white=data.get("ref_white", "D65"),
            observer=data.get("observer", DEFAULT_OBSERVER),
        )


def convert(values, from_space: Union[ColorSpace, str], to_space: Union[ColorSpace, str],
            converter: ColorConverter = None) -> np.ndarray:
    """使用给定（默认 D65）转换器进行颜色转换"""
    return (converter or ColorConverter()).convert(values, from_space, to_space)


def delta_e(lab1, lab2, method: str = "CIE 2000") -> np.ndarray:
    """两组 Lab 颜色之间的色差，默认 CIEDE2000"""
    lab1 = _as_float64(lab1)
    lab2 = _as_float64(lab2)
    return np.asarray(delta_E(lab1, lab2, method=method), dtype=np.float64)
