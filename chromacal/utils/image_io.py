#!/usr/bin/env python3
"""
图像与ROI文件读写

图像通过 np.fromfile + cv2.imdecode 读取，支持非ASCII路径；返回 RGB 顺序的数组，
保留原始位深（8/16位整数或浮点）。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Tuple, Union

import cv2
import numpy as np

from chromacal.core.errors import ImageFormatError
from chromacal.utils.debug_logger import log_file_operation

IMAGE_EXTENSIONS = (".png", ".tif", ".tiff", ".jpg", ".jpeg", ".bmp")


def load_image(path: Union[str, Path]) -> np.ndarray:
    """读取图像为 (H, W, 3) RGB 数组；灰度图扩展为三通道，alpha 通道丢弃"""
    path = Path(path)
    if not path.exists():
        log_file_operation("load image", str(path), success=False, error="not found", module="image_io")
        raise FileNotFoundError(f"图像文件不存在: {path}")

    data = np.fromfile(str(path), dtype=np.uint8)
    image = cv2.imdecode(data, cv2.IMREAD_UNCHANGED) if data.size else None
    if image is None:
        log_file_operation("load image", str(path), success=False, error="decode failed", module="image_io")
        raise ImageFormatError(f"无法解码图像: {path}")

    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    else:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

    log_file_operation("load image", str(path), module="image_io")
    return image


def save_image(path: Union[str, Path], image: np.ndarray) -> Path:
    """保存 RGB 图像；8/16位由数组类型决定，浮点图像需要保存为 .tif/.exr"""
    path = Path(path)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ImageFormatError(f"只能保存 (H, W, 3) 图像，实际形状: {image.shape}")
    path.parent.mkdir(parents=True, exist_ok=True)

    ok, buffer = cv2.imencode(path.suffix or ".png", cv2.cvtColor(image, cv2.COLOR_RGB2BGR))
    if not ok:
        log_file_operation("save image", str(path), success=False, error="encode failed", module="image_io")
        raise ImageFormatError(f"无法以 {path.suffix} 格式编码 {image.dtype} 图像: {path}")
    buffer.tofile(str(path))
    log_file_operation("save image", str(path), module="image_io")
    return path


def load_roi(path: Union[str, Path]) -> List[Tuple[float, float]]:
    """
    读取ROI控制点。

    文件可以是点列表 [[x, y], ...]，或 {"points": [[x, y], ...]}。
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    points = data.get("points") if isinstance(data, dict) else data
    if not isinstance(points, list) or not all(
        isinstance(p, (list, tuple)) and len(p) == 2 for p in points
    ):
        raise ValueError(f"ROI文件格式错误，应为 [[x, y], ...]: {path}")
    return [(float(x), float(y)) for x, y in points]


def list_images(directory: Union[str, Path],
                extensions: Iterable[str] = IMAGE_EXTENSIONS) -> List[Path]:
    """列出目录下的图像文件（不递归，按文件名排序）"""
    directory = Path(directory)
    if not directory.is_dir():
        raise NotADirectoryError(f"不是目录: {directory}")
    suffixes = {e.lower() for e in extensions}
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in suffixes)
