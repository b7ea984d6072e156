"""
chromacal 命令行入口

    python -m chromacal calibrate --image chart.png --roi roi.json -o recipe.json
    python -m chromacal apply --recipe recipe.json --input raw/ --output corrected/
    python -m chromacal batch --image chart.png --roi roi.json --input raw/ --output corrected/
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from chromacal.core.batch import BatchApplicator, BatchReport
from chromacal.core.calibrator import ColorCalibrator
from chromacal.core.chart import GeometricTransform
from chromacal.core.color_science import ColorSpace
from chromacal.core.errors import ChromacalError
from chromacal.core.mapping import MappingMethod
from chromacal.core.recipe import CorrectionRecipe, load_recipe, save_recipe
from chromacal.utils.chart_loader import DEFAULT_CHART, list_builtin_charts, load_chart
from chromacal.utils.debug_logger import set_console_level
from chromacal.utils.defaults import load_config, load_default_config
from chromacal.utils.image_io import list_images, load_image, load_roi, save_image


def _method_help() -> str:
    """拟合方法说明，列出每个内置色卡色块数足够的方法"""
    supported = []
    for name in list_builtin_charts():
        chart = load_chart(name)
        methods = [m.value for m in MappingMethod if m.coefficient_count(3) <= chart.n_patches]
        supported.append(f"{name} ({chart.n_patches} 色块): {', '.join(methods)}")
    return ("拟合方法，启用的色块数需不少于系数总数 "
            "(Linear 6, Linear Cross-band 12, Quadratic Cross-band 30, Cubic Cross-band 60)。"
            "内置色卡可用: " + "; ".join(supported))


def _add_calibration_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--image", required=True, help="色卡图像路径")
    parser.add_argument("--roi", required=True, help="ROI JSON 文件（[[x, y], ...]，依次为 左上、右上、右下、左下）")
    parser.add_argument("--chart", default=DEFAULT_CHART, help="内置色卡名或色卡 JSON 路径")
    parser.add_argument("--space", default=ColorSpace.SRGB.value, help="拟合所在的工作色彩空间")
    parser.add_argument("--method", default=MappingMethod.LINEAR_CROSS_BAND.value,
                        choices=[m.value for m in MappingMethod], help=_method_help())
    parser.add_argument("--output-space", default=ColorSpace.SRGB.value, help="输出显示色彩空间")
    parser.add_argument("--report", default=None, help="拟合诊断报告 JSON 输出路径")


def _add_apply_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", required=True, help="待校正图像目录")
    parser.add_argument("--output", required=True, help="校正结果输出目录")
    parser.add_argument("--workers", type=int, default=None, help="并行处理的图像数（默认取配置）")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chromacal", description="基于色卡的图像色彩校准")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v 输出INFO，-vv 输出DEBUG")
    parser.add_argument("--config", default=None, help="校准配置 JSON（默认使用内置 default.json）")
    subparsers = parser.add_subparsers(dest="command", required=True)

    calibrate = subparsers.add_parser("calibrate", help="由色卡图像构建校正配方")
    _add_calibration_arguments(calibrate)
    calibrate.add_argument("-o", "--recipe", required=True, help="配方 JSON 输出路径")

    apply = subparsers.add_parser("apply", help="将配方应用到目录中的图像")
    apply.add_argument("--recipe", required=True, help="配方 JSON 路径")
    _add_apply_arguments(apply)

    batch = subparsers.add_parser("batch", help="构建配方并立即应用到目录中的图像")
    _add_calibration_arguments(batch)
    _add_apply_arguments(batch)
    batch.add_argument("--recipe", default=None, help="同时保存配方到此路径")
    return parser


def _calibrate(args, config) -> CorrectionRecipe:
    chart = load_chart(args.chart).with_chip_margin(config.chip_margin)
    aligned = chart.aligned_to(load_roi(args.roi), GeometricTransform.parse(config.geometric_transform))
    calibrator = ColorCalibrator(aligned, args.space, args.method, config)
    fit = calibrator.compute_calibration_mapping(load_image(args.image))
    print(fit.diagnostics.summary())

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(fit.diagnostics.to_dict(), f, ensure_ascii=False, indent=2)
    return calibrator.build_recipe(fit, output_space=args.output_space)


def _apply(args, config, recipe: CorrectionRecipe) -> BatchReport:
    output_dir = Path(args.output)
    sources = list_images(args.input)

    def save(source: Path, image):
        return save_image(output_dir / source.name, image)

    applicator = BatchApplicator.from_config(config)
    workers = args.workers if args.workers is not None else config.batch_workers
    report = applicator.run(recipe, sources, load_image, save, max_workers=workers)
    for result in report.results:
        print(result.describe())
    print(report.summary())
    return report


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        set_console_level(logging.DEBUG if args.verbose > 1 else logging.INFO)

    try:
        config = load_config(args.config) if args.config else load_default_config()
        if args.command == "apply":
            recipe = load_recipe(args.recipe)
        else:
            recipe = _calibrate(args, config)
            if args.recipe:
                save_recipe(recipe, args.recipe)
        if args.command == "calibrate":
            return 0
        report = _apply(args, config, recipe)
    except (ChromacalError, OSError, ValueError, KeyError) as e:
        print(f"错误: {e}", file=sys.stderr)
        return 1
    return 0 if report.all_ok else 1


if __name__ == "__main__":
    sys.exit(main())
