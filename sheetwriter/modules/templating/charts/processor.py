"""Carry charts and drawings through the streaming generation path.

Streaming writers keep memory bounded by writing rows as they go, and they drop
chart parts they cannot model. :class:`ChartProcessor` strips the charts from
the template before generation and puts them back afterwards, merging the
template drawings into whatever the writer produced and moving chart ranges and
anchors to follow the expanded repeat regions.
"""

from __future__ import annotations

import logging
import posixpath
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from lxml import etree

from ..geometry import RepeatExpansionInfo
from .drawings import (
    calculate_rid_mapping,
    classify_anchors,
    merge_drawing_rels_xml,
    merge_drawing_xml,
)
from .package import (
    CONTENT_TYPES_PART,
    PackageWriter,
    add_overrides,
    chart_overrides,
    is_chart_part,
    is_chart_relationship,
    is_chart_rels_part,
    is_drawing_part,
    is_drawing_rels_part,
    iter_relationships,
    local_name,
    parse_xml,
    part_for_rels_path,
    open_package,
    read_package,
    rels_path_for,
    remove_chart_overrides,
    resolve_target,
    serialize_xml,
    sheet_names_by_drawing,
)
from .ranges import adjust_chart_xml, first_formula_sheet

logger = logging.getLogger(__name__)

VariableResolverFn = Callable[[str], str]


def is_chart_xml(name: str) -> bool:
    """Chart definitions, as opposed to the style and colour parts beside them."""

    return is_chart_part(name) and posixpath.basename(name).startswith("chart") and name.endswith(".xml")


@dataclass(frozen=True)
class ChartInfo:
    """Chart-related parts extracted from a template package.

    Keys are zip entry names such as ``xl/charts/chart1.xml``.
    ``drawing_files`` and ``drawing_rels_files`` only hold drawings that
    reference a chart; the ``all_`` variants hold every drawing.
    """

    chart_files: dict[str, bytes] = field(default_factory=dict)
    chart_rels_files: dict[str, bytes] = field(default_factory=dict)
    drawing_files: dict[str, bytes] = field(default_factory=dict)
    drawing_rels_files: dict[str, bytes] = field(default_factory=dict)
    content_type_entries: tuple[str, ...] = ()
    all_drawing_files: dict[str, bytes] = field(default_factory=dict)
    all_drawing_rels_files: dict[str, bytes] = field(default_factory=dict)
    sheet_names_by_drawing: dict[str, str] = field(default_factory=dict)

    @property
    def chart_count(self) -> int:
        return sum(1 for name in self.chart_files if is_chart_xml(name))


@dataclass
class RestoreReport:
    charts_restored: int = 0
    drawings_merged: int = 0
    anchors_restored: int = 0
    relationships_remapped: int = 0


@dataclass
class RestoreContext:
    """State shared by the steps of a single :meth:`ChartProcessor.restore`."""

    writer: PackageWriter
    chart_info: ChartInfo
    variable_resolver: VariableResolverFn | None = None
    repeat_expansions: Mapping[str, Sequence[RepeatExpansionInfo]] = field(default_factory=dict)
    report: RestoreReport = field(default_factory=RestoreReport)

    @property
    def written(self) -> set[str]:
        return self.writer.written

    def resolve(self, data: bytes) -> bytes:
        if self.variable_resolver is None:
            return data
        return self.variable_resolver(data.decode("utf-8")).encode("utf-8")

    def expansions_for(self, sheet_name: str | None) -> Sequence[RepeatExpansionInfo]:
        if not sheet_name:
            return ()
        return self.repeat_expansions.get(sheet_name, ())


def _references_chart(rels_xml: bytes) -> bool:
    return any(is_chart_relationship(rel) for rel in iter_relationships(parse_xml(rels_xml)))


def _chart_targets(drawing_part: str, rels_xml: bytes) -> list[str]:
    return [
        resolve_target(drawing_part, rel.get("Target"))
        for rel in iter_relationships(parse_xml(rels_xml, rels_path_for(drawing_part)))
        if rel.get("Target") and is_chart_relationship(rel)
    ]


def _remove_chart_relationships(rels_xml: bytes, part: str) -> bytes:
    root = parse_xml(rels_xml, part)
    chart_rels = [rel for rel in iter_relationships(root) if is_chart_relationship(rel)]
    if not chart_rels:
        return rels_xml
    for rel in chart_rels:
        root.remove(rel)
    return serialize_xml(root)


def _override_entries(content_types_xml: bytes, drawing_parts) -> tuple[str, ...]:
    """Serialized overrides for chart parts and the given drawing parts."""

    root = parse_xml(content_types_xml, CONTENT_TYPES_PART)
    wanted = {f"/{name}" for name in drawing_parts}
    nodes = chart_overrides(content_types_xml)
    nodes += [
        node
        for node in root
        if isinstance(node.tag, str) and local_name(node) == "Override" and node.get("PartName") in wanted
    ]
    return tuple(etree.tostring(node, encoding="unicode", with_tail=False) for node in nodes)


class ChartProcessor:
    """Extracts charts from a template and restores them into generated output."""

    def extract_and_remove(self, package_bytes: bytes) -> tuple[ChartInfo | None, bytes]:
        with open_package(package_bytes) as archive:
            return self._extract(archive, package_bytes)

    def _extract(self, archive: zipfile.ZipFile, package_bytes: bytes) -> tuple[ChartInfo | None, bytes]:
        infos, files = read_package(archive)

        chart_files = {name: data for name, data in files.items() if is_chart_part(name)}
        if not chart_files:
            logger.debug("Package has no charts, nothing to extract")
            return None, package_bytes

        chart_rels_files = {name: data for name, data in files.items() if is_chart_rels_part(name)}
        all_drawing_files = {name: data for name, data in files.items() if is_drawing_part(name)}
        all_drawing_rels_files = {name: data for name, data in files.items() if is_drawing_rels_part(name)}

        drawing_rels_files = {
            name: data for name, data in all_drawing_rels_files.items() if _references_chart(data)
        }
        drawing_files = {}
        for rels_name in drawing_rels_files:
            drawing_name = part_for_rels_path(rels_name)
            if drawing_name in all_drawing_files:
                drawing_files[drawing_name] = all_drawing_files[drawing_name]

        content_types = files.get(CONTENT_TYPES_PART)
        content_type_entries = _override_entries(content_types, drawing_files) if content_types else ()

        info = ChartInfo(
            chart_files=chart_files,
            chart_rels_files=chart_rels_files,
            drawing_files=drawing_files,
            drawing_rels_files=drawing_rels_files,
            content_type_entries=content_type_entries,
            all_drawing_files=all_drawing_files,
            all_drawing_rels_files=all_drawing_rels_files,
            sheet_names_by_drawing=sheet_names_by_drawing(files),
        )

        with PackageWriter() as writer:
            for entry in infos:
                name = entry.filename
                if is_chart_part(name) or is_chart_rels_part(name):
                    continue
                if name not in files:
                    writer.copy(archive, entry)
                    continue
                data = files[name]
                if name == CONTENT_TYPES_PART:
                    data = remove_chart_overrides(data)
                elif name in drawing_rels_files:
                    data = _remove_chart_relationships(data, name)
                writer.write(entry, data)
            stripped = writer.getvalue()

        logger.info(
            "Extracted %s charts (%s parts) and %s chart drawings",
            info.chart_count,
            len(chart_files) + len(chart_rels_files),
            len(drawing_files),
        )
        return info, stripped

    def restore(
        self,
        generated_bytes: bytes,
        chart_info: ChartInfo | None,
        variable_resolver: VariableResolverFn | None = None,
        repeat_expansions: Mapping[str, Sequence[RepeatExpansionInfo]] | None = None,
    ) -> bytes:
        if chart_info is None:
            return generated_bytes
        data, _ = self.restore_with_report(generated_bytes, chart_info, variable_resolver, repeat_expansions)
        return data

    def restore_with_report(
        self,
        generated_bytes: bytes,
        chart_info: ChartInfo,
        variable_resolver: VariableResolverFn | None = None,
        repeat_expansions: Mapping[str, Sequence[RepeatExpansionInfo]] | None = None,
    ) -> tuple[bytes, RestoreReport]:
        """Put the charts of ``chart_info`` back into ``generated_bytes``.

        ``repeat_expansions`` maps sheet titles to the repeats rendered on
        them; chart ranges and anchors on those sheets are moved accordingly.
        """

        with open_package(generated_bytes) as archive, PackageWriter() as writer:
            infos, files = read_package(archive)
            context = RestoreContext(
                writer=writer,
                chart_info=chart_info,
                variable_resolver=variable_resolver,
                repeat_expansions=dict(repeat_expansions or {}),
            )
            drawings, drawing_rels = self._copy_entries(context, archive, infos, files)
            rid_mappings = self._rid_mappings(context, drawing_rels)
            drawing_sheets = self._drawing_sheets(context, files)
            self._write_drawings(context, drawings, rid_mappings, drawing_sheets)
            self._write_drawing_rels(context, drawing_rels, rid_mappings)
            self._write_chart_parts(context, drawing_sheets)
            data = writer.getvalue()

        report = context.report
        logger.info(
            "Restored %s charts, merged %s drawings (%s chart anchors), remapped %s relationships",
            report.charts_restored,
            report.drawings_merged,
            report.anchors_restored,
            report.relationships_remapped,
        )
        return data, report

    def _copy_entries(self, context: RestoreContext, archive: zipfile.ZipFile, infos, files):
        drawings: list[tuple[zipfile.ZipInfo, bytes]] = []
        drawing_rels: list[tuple[zipfile.ZipInfo, bytes]] = []
        for entry in infos:
            name = entry.filename
            if name not in files:
                context.writer.copy(archive, entry)
                continue
            data = files[name]
            if name == CONTENT_TYPES_PART:
                context.writer.write(entry, add_overrides(data, list(context.chart_info.content_type_entries)))
            elif is_drawing_part(name):
                drawings.append((entry, data))
            elif is_drawing_rels_part(name):
                drawing_rels.append((entry, data))
            else:
                context.writer.write(entry, data)
        return drawings, drawing_rels

    def _rid_mappings(self, context: RestoreContext, drawing_rels) -> dict[str, dict[str, str]]:
        mappings: dict[str, dict[str, str]] = {}
        for entry, data in drawing_rels:
            original = context.chart_info.drawing_rels_files.get(entry.filename)
            if original is None:
                continue
            mapping = calculate_rid_mapping(data, original)
            mappings[entry.filename] = mapping
            context.report.relationships_remapped += len(mapping)
        return mappings

    def _drawing_sheets(self, context: RestoreContext, generated_files: Mapping[str, bytes]) -> dict[str, str]:
        """Sheet title for each drawing, preferring the charts' own formulas."""

        info = context.chart_info
        sheets = dict(sheet_names_by_drawing(generated_files))
        sheets.update(info.sheet_names_by_drawing)
        for rels_name, rels_xml in info.drawing_rels_files.items():
            drawing_name = part_for_rels_path(rels_name)
            for chart_name in _chart_targets(drawing_name, rels_xml):
                chart_xml = info.chart_files.get(chart_name)
                sheet_name = first_formula_sheet(chart_xml.decode("utf-8")) if chart_xml else None
                if sheet_name:
                    sheets[drawing_name] = sheet_name
                    break
        return sheets

    def _chart_sheets(self, context: RestoreContext, drawing_sheets: Mapping[str, str]) -> dict[str, str]:
        sheets: dict[str, str] = {}
        for rels_name, rels_xml in context.chart_info.drawing_rels_files.items():
            drawing_name = part_for_rels_path(rels_name)
            if drawing_name not in drawing_sheets:
                continue
            for chart_name in _chart_targets(drawing_name, rels_xml):
                sheets.setdefault(chart_name, drawing_sheets[drawing_name])
        return sheets

    def _write_drawings(self, context: RestoreContext, drawings, rid_mappings, drawing_sheets) -> None:
        info = context.chart_info
        for entry, data in drawings:
            name = entry.filename
            original = info.drawing_files.get(name) or info.all_drawing_files.get(name)
            if original is not None:
                expansions = context.expansions_for(drawing_sheets.get(name))
                data = merge_drawing_xml(data, original, rid_mappings.get(rels_path_for(name)), expansions)
                context.report.drawings_merged += 1
                context.report.anchors_restored += len(classify_anchors(parse_xml(original, name)).chart)
            context.writer.write(entry, context.resolve(data))

    def _write_drawing_rels(self, context: RestoreContext, drawing_rels, rid_mappings) -> None:
        for entry, data in drawing_rels:
            original = context.chart_info.drawing_rels_files.get(entry.filename)
            if original is not None:
                data = merge_drawing_rels_xml(data, original, rid_mappings.get(entry.filename, {}))
            context.writer.write(entry, data)

    def _write_chart_parts(self, context: RestoreContext, drawing_sheets: Mapping[str, str]) -> None:
        info = context.chart_info
        chart_sheets = self._chart_sheets(context, drawing_sheets)
        for name, data in info.chart_files.items():
            if name in context.written:
                continue
            if is_chart_xml(name):
                text = data.decode("utf-8")
                sheet_name = first_formula_sheet(text) or chart_sheets.get(name)
                expansions = context.expansions_for(sheet_name)
                if sheet_name is None and context.repeat_expansions:
                    logger.warning("Cannot tell which sheet chart %s belongs to, ranges left as is", name)
                data = adjust_chart_xml(text, sheet_name, expansions).encode("utf-8")
                context.report.charts_restored += 1
            context.writer.write(name, context.resolve(data))

        for group in (info.chart_rels_files, info.drawing_files, info.drawing_rels_files):
            for name, data in group.items():
                context.writer.write(name, data)

        # Drawings whose relationships the writer dropped get the template ones back.
        for name, data in info.all_drawing_rels_files.items():
            if part_for_rels_path(name) in context.written and context.writer.write(name, data):
                logger.debug("Restored missing drawing relationships %s", name)
