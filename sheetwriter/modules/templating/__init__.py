"""Repeat-region expansion for spreadsheet templates."""

from .charts import ChartInfo, ChartProcessor
from .config import EngineSettings, GenerationMode
from .errors import ConfigurationError, PackageFormatError, SheetwriterError, TemplateProcessingException
from .formulas import FormulaAdjuster
from .geometry import Area, ColRange, RepeatDirection, RepeatExpansionInfo, RepeatRegionSpec, RowRange
from .markers import VariableResolver, prepare_marker_env
from .pipeline import ChartReconciler
from .positions import PositionCalculator, PositionModel

__all__ = [
    "Area",
    "ChartInfo",
    "ChartProcessor",
    "ChartReconciler",
    "ColRange",
    "ConfigurationError",
    "EngineSettings",
    "FormulaAdjuster",
    "GenerationMode",
    "PackageFormatError",
    "PositionCalculator",
    "PositionModel",
    "RepeatDirection",
    "RepeatExpansionInfo",
    "RepeatRegionSpec",
    "RowRange",
    "SheetwriterError",
    "TemplateProcessingException",
    "VariableResolver",
    "prepare_marker_env",
]
