"""Chart reconciliation around a render, dispatched on the generation mode."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from .charts.objects import adjust_workbook
from .charts.processor import ChartInfo, ChartProcessor, VariableResolverFn
from .config import EngineSettings
from .geometry import RepeatExpansionInfo

logger = logging.getLogger(__name__)


class ChartReconciler:
    """Keeps charts in step with the repeat expansion of one render.

    In streaming mode the charts are pulled out of the template by
    :meth:`begin` and put back by :meth:`finish`. In direct mode the workbook
    keeps its charts, so both calls pass bytes through and
    :meth:`adjust_workbook` moves them on the in-memory workbook instead.
    """

    def __init__(self, settings: EngineSettings | None = None, processor: ChartProcessor | None = None):
        self.settings = settings or EngineSettings()
        self.processor = processor or ChartProcessor()

    @property
    def streaming(self) -> bool:
        return self.settings.streaming

    def begin(self, template_bytes: bytes) -> tuple[ChartInfo | None, bytes]:
        if not self.streaming:
            logger.debug("Direct generation keeps charts in place, nothing to extract")
            return None, template_bytes
        return self.processor.extract_and_remove(template_bytes)

    def finish(
        self,
        generated_bytes: bytes,
        chart_info: ChartInfo | None,
        variable_resolver: VariableResolverFn | None = None,
        repeat_expansions: Mapping[str, Sequence[RepeatExpansionInfo]] | None = None,
    ) -> bytes:
        if not self.streaming:
            return generated_bytes
        return self.processor.restore(generated_bytes, chart_info, variable_resolver, repeat_expansions)

    def adjust_workbook(self, workbook, repeat_expansions: Mapping[str, Sequence[RepeatExpansionInfo]]) -> None:
        if self.streaming:
            logger.debug("Streaming generation restores charts from the package, skipping workbook adjustment")
            return
        adjust_workbook(workbook, repeat_expansions)
