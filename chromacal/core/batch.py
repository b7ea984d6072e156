#!/usr/bin/env python3
"""
批量校正

把同一个校正配方应用到多张图像：
- 单张图像：按行分块，逐像素应用校正器并转换到输出色彩空间；行块之间互不依赖，可并行
- 多张图像：对预先列好的源列表做扇出，每张图像独立加载/校正/保存，
  单张失败只记录在该图像的结果里，不会中断其它图像
- 取消只在图像之间检查，不会中断某张图像的像素循环
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .errors import ImageFormatError
from .recipe import CorrectionRecipe, PixelType
from ..utils.debug_logger import debug, error, info

STAGE_LOAD = "load"
STAGE_CORRECT = "correct"
STAGE_SAVE = "save"
STAGE_CANCELLED = "cancelled"
STAGE_DONE = "done"


@dataclass(frozen=True)
class BatchItemResult:
    """单个源的处理结果"""
    source: Any
    ok: bool
    stage: str
    error: Optional[BaseException] = None
    output: Any = None

    def describe(self) -> str:
        if self.ok:
            return f"{self.source}: OK"
        return f"{self.source}: {self.stage} 失败 - {type(self.error).__name__}: {self.error}"


@dataclass(frozen=True)
class BatchReport:
    """批量校正报告，results 与输入顺序一致"""
    results: Tuple[BatchItemResult, ...]

    @property
    def succeeded(self) -> List[BatchItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[BatchItemResult]:
        return [r for r in self.results if not r.ok and r.stage != STAGE_CANCELLED]

    @property
    def cancelled(self) -> List[BatchItemResult]:
        return [r for r in self.results if r.stage == STAGE_CANCELLED]

    @property
    def all_ok(self) -> bool:
        return all(r.ok for r in self.results)

    def summary(self) -> str:
        return (
            f"共 {len(self.results)} 张: 成功 {len(self.succeeded)}, "
            f"失败 {len(self.failed)}, 取消 {len(self.cancelled)}"
        )


class BatchApplicator:
    """将校正配方应用到单张或多张图像"""

    def __init__(self, block_rows: int = 256, block_workers: int = 1):
        if block_rows < 1 or block_workers < 1:
            raise ValueError(f"block_rows/block_workers 必须为正: {block_rows}, {block_workers}")
        self.block_rows = int(block_rows)
        self.block_workers = int(block_workers)

    @classmethod
    def from_config(cls, config) -> "BatchApplicator":
        return cls(block_rows=config.block_rows, block_workers=config.block_workers)

    # =======================
    # 单张图像
    # =======================

    def _check_image(self, recipe: CorrectionRecipe, image) -> np.ndarray:
        if not isinstance(image, np.ndarray):
            raise ImageFormatError(f"输入图像必须是 numpy 数组，实际类型: {type(image).__name__}")
        if image.ndim != 3 or image.shape[2] != recipe.n_bands or image.shape[0] == 0 or image.shape[1] == 0:
            raise ImageFormatError(
                f"输入图像必须是 (H, W, {recipe.n_bands}) 数组，实际形状: {image.shape}"
            )
        pixel_type = PixelType.from_dtype(image.dtype)
        if pixel_type is not recipe.image_pixel_type:
            raise ImageFormatError(
                f"图像像素类型 {pixel_type.value} 与配方要求的 {recipe.image_pixel_type.value} 不一致"
            )
        if pixel_type is PixelType.FLOAT32 and not np.isfinite(image).all():
            raise ImageFormatError("浮点图像含有 NaN 或无穷大")
        return image

    def _correct_block(self, recipe: CorrectionRecipe, block: np.ndarray) -> np.ndarray:
        converter = recipe.color_converter
        values = recipe.image_pixel_type.normalize(block)
        working = converter.convert(values, recipe.image_space, recipe.reference_space)
        corrected = recipe.corrector.apply(working)
        display = converter.convert(corrected, recipe.reference_space, recipe.output_space)
        # 校正在极端值处可能略超出范围，按约定截断而不是报错
        return recipe.image_pixel_type.denormalize(display)

    def correct(self, recipe: CorrectionRecipe, image: np.ndarray) -> np.ndarray:
        """
        对单张图像应用配方。

        Returns:
            与输入同形状、像素类型为 recipe.image_pixel_type 的校正结果

        Raises:
            ImageFormatError: 图像形状或像素类型不符
        """
        image = self._check_image(recipe, image)
        height = image.shape[0]
        output = np.empty(image.shape, dtype=recipe.image_pixel_type.dtype)
        starts = range(0, height, self.block_rows)

        def run_block(start: int) -> None:
            stop = min(start + self.block_rows, height)
            output[start:stop] = self._correct_block(recipe, image[start:stop])

        if self.block_workers > 1 and len(starts) > 1:
            with ThreadPoolExecutor(max_workers=self.block_workers) as executor:
                # list() 让行块中的异常在这里重新抛出
                list(executor.map(run_block, starts))
        else:
            for start in starts:
                run_block(start)
        return output

    # =======================
    # 批量
    # =======================

    def _process_one(self, recipe: CorrectionRecipe, source: Any,
                     load: Callable[[Any], np.ndarray],
                     save: Optional[Callable[[Any, np.ndarray], Any]],
                     cancel_event: Optional[threading.Event]) -> BatchItemResult:
        if cancel_event is not None and cancel_event.is_set():
            debug(f"{source}: 已取消", "batch")
            return BatchItemResult(source=source, ok=False, stage=STAGE_CANCELLED)

        stage = STAGE_LOAD
        try:
            image = load(source)
            stage = STAGE_CORRECT
            corrected = self.correct(recipe, image)
            stage = STAGE_SAVE
            output = save(source, corrected) if save is not None else corrected
        except Exception as e:
            result = BatchItemResult(source=source, ok=False, stage=stage, error=e)
            error(result.describe(), "batch")
            return result

        debug(f"{source}: 校正完成", "batch")
        return BatchItemResult(source=source, ok=True, stage=STAGE_DONE, output=output)

    def iter_results(self, recipe: CorrectionRecipe, sources: Iterable[Any],
                     load: Callable[[Any], np.ndarray],
                     save: Optional[Callable[[Any, np.ndarray], Any]] = None,
                     max_workers: int = 1,
                     cancel_event: Optional[threading.Event] = None) -> Iterator[BatchItemResult]:
        """
        按输入顺序逐个产出结果。

        Args:
            recipe: 校正配方（只读共享）
            sources: 预先列好的源列表（文件路径或任意键）
            load: source -> 图像数组
            save: (source, 校正后图像) -> 任意输出；为 None 时结果里直接携带校正后的图像
            max_workers: 并行处理的图像数
            cancel_event: 置位后尚未开始的图像记为取消
        """
        sources = list(sources)

        def task(source):
            return self._process_one(recipe, source, load, save, cancel_event)

        if max_workers <= 1:
            for source in sources:
                yield task(source)
            return

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            yield from executor.map(task, sources)

    def run(self, recipe: CorrectionRecipe, sources: Iterable[Any],
            load: Callable[[Any], np.ndarray],
            save: Optional[Callable[[Any, np.ndarray], Any]] = None,
            max_workers: int = 1,
            cancel_event: Optional[threading.Event] = None) -> BatchReport:
        """处理全部源并汇总报告，单个失败不会中断其它图像"""
        report = BatchReport(results=tuple(
            self.iter_results(recipe, sources, load, save, max_workers, cancel_event)
        ))
        info(f"批量校正结束: {report.summary()}", "batch")
        return report


def apply_recipe(recipe: CorrectionRecipe, image: np.ndarray) -> np.ndarray:
    """对单张图像应用校正配方"""
    return BatchApplicator().correct(recipe, image)
