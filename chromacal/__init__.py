"""
chromacal: 基于色卡的图像色彩校准

由一张色卡图像和ROI构建校正配方，再把配方批量应用到同一成像条件下拍摄的其它图像。
"""

from chromacal.core.batch import BatchApplicator, BatchItemResult, BatchReport, apply_recipe
from chromacal.core.calibrator import CalibrationFit, ColorCalibrator, build_recipe
from chromacal.core.chart import AlignedChart, GeometricTransform, GridColorChart, Patch
from chromacal.core.color_science import ColorConverter, ColorSpace, convert, delta_e
from chromacal.core.data_types import CalibrationConfig
from chromacal.core.errors import (
    CalibrationQualityWarning,
    ChartLoadError,
    ChromacalError,
    EmptyPatchSampleError,
    ImageFormatError,
    InsufficientGeometryError,
    UnderdeterminedFitError,
    UnsupportedSpaceError,
)
from chromacal.core.mapping import Corrector, FitDiagnostics, MappingFitter, MappingMethod
from chromacal.core.patch_sampler import PatchSampler, SampledColor, SampleStatistic
from chromacal.core.recipe import CorrectionRecipe, PixelType, load_recipe, save_recipe
from chromacal.utils.chart_loader import load_chart

__version__ = "0.1.0"
