"""Package-level helpers: zip entries, safe XML parsing and relationships."""

from __future__ import annotations

import io
import logging
import posixpath
import re
import shutil
import zipfile
from typing import Iterator

from lxml import etree

from ..errors import PackageFormatError

logger = logging.getLogger(__name__)

CONTENT_TYPES_PART = "[Content_Types].xml"
WORKBOOK_PART = "xl/workbook.xml"

RELATIONSHIP_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
RELATIONSHIP_PREFIX = f"{{{RELATIONSHIP_NS}}}"
PACKAGE_RELATIONSHIP_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
PACKAGE_RELATIONSHIP_PREFIX = f"{{{PACKAGE_RELATIONSHIP_NS}}}"
CONTENT_TYPES_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
CONTENT_TYPES_PREFIX = f"{{{CONTENT_TYPES_NS}}}"
SPREADSHEET_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"

CHART_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.drawingml.chart+xml"
CHART_STYLE_CONTENT_TYPE = "application/vnd.ms-office.chartstyle+xml"
CHART_COLORS_CONTENT_TYPE = "application/vnd.ms-office.chartcolorstyle+xml"
CHART_CONTENT_TYPES = frozenset(
    {CHART_CONTENT_TYPE, CHART_STYLE_CONTENT_TYPE, CHART_COLORS_CONTENT_TYPE}
)

_CHART_PART_RE = re.compile(r"^xl/charts/[^/]+\.(?:xml|rels)$")
_CHART_RELS_PART_RE = re.compile(r"^xl/charts/_rels/.+$")
_DRAWING_PART_RE = re.compile(r"^xl/drawings/[^/]+\.xml$")
_DRAWING_RELS_PART_RE = re.compile(r"^xl/drawings/_rels/.+$")
_SHEET_RELS_PART_RE = re.compile(r"^xl/(?:worksheets|chartsheets)/_rels/[^/]+\.rels$")
_RID_RE = re.compile(r"^rId(\d+)$")


def is_chart_part(name: str) -> bool:
    return bool(_CHART_PART_RE.match(name))


def is_chart_rels_part(name: str) -> bool:
    return bool(_CHART_RELS_PART_RE.match(name))


def is_drawing_part(name: str) -> bool:
    return bool(_DRAWING_PART_RE.match(name))


def is_drawing_rels_part(name: str) -> bool:
    return bool(_DRAWING_RELS_PART_RE.match(name))


def is_structure_part(name: str) -> bool:
    """Workbook and sheet relationship parts used to tell which sheet hosts a drawing."""

    return name in (WORKBOOK_PART, rels_path_for(WORKBOOK_PART)) or bool(_SHEET_RELS_PART_RE.match(name))


def is_tracked_part(name: str) -> bool:
    return (
        name == CONTENT_TYPES_PART
        or is_chart_part(name)
        or is_chart_rels_part(name)
        or is_drawing_part(name)
        or is_drawing_rels_part(name)
        or is_structure_part(name)
    )


def rels_path_for(part_name: str) -> str:
    """``xl/drawings/drawing1.xml`` -> ``xl/drawings/_rels/drawing1.xml.rels``."""

    folder, filename = posixpath.split(part_name)
    return posixpath.join(folder, "_rels", f"{filename}.rels")


def part_for_rels_path(rels_path: str) -> str:
    """Inverse of :func:`rels_path_for`."""

    folder, filename = posixpath.split(rels_path)
    if posixpath.basename(folder) == "_rels":
        folder = posixpath.dirname(folder)
    if filename.endswith(".rels"):
        filename = filename[: -len(".rels")]
    return posixpath.join(folder, filename)


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship ``target`` relative to ``source_part``."""

    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base_dir = posixpath.dirname(source_part)
    return posixpath.normpath(posixpath.join(base_dir, target))


# XML ------------------------------------------------------------------------


def _safe_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        dtd_validation=False,
        huge_tree=False,
        remove_blank_text=False,
    )


def parse_xml(data, part: str | None = None) -> etree._Element:
    """Parse an untrusted package part.

    Entities are never resolved and parts carrying a DTD are rejected.
    """

    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        root = etree.fromstring(data, _safe_parser())
    except etree.XMLSyntaxError as exc:
        raise PackageFormatError(f"Malformed XML in {part or 'package part'}: {exc}", part=part) from exc
    docinfo = root.getroottree().docinfo
    if docinfo.doctype or docinfo.internalDTD is not None:
        raise PackageFormatError(f"Document type declarations are not allowed in {part or 'package part'}", part=part)
    return root


def serialize_xml(root: etree._Element, *, declaration: bool = True) -> bytes:
    return etree.tostring(
        root.getroottree() if declaration else root,
        xml_declaration=declaration,
        encoding="UTF-8",
        standalone=True if declaration else None,
    )


def local_name(node) -> str:
    return etree.QName(node).localname


# Relationships ------------------------------------------------------------------


def iter_relationships(root: etree._Element) -> Iterator[etree._Element]:
    for rel in root:
        if isinstance(rel.tag, str) and local_name(rel) == "Relationship":
            yield rel


def relationship_number(rel_id: str | None) -> int | None:
    match = _RID_RE.match(rel_id or "")
    return int(match.group(1)) if match else None


def is_chart_relationship(rel: etree._Element) -> bool:
    target = rel.get("Target") or ""
    rel_type = rel.get("Type") or ""
    return "charts/" in target or rel_type.endswith("/chart")


def parse_relationship_targets(xml) -> dict[str, str]:
    if not xml:
        return {}
    root = parse_xml(xml)
    targets: dict[str, str] = {}
    for rel in iter_relationships(root):
        rel_id = rel.get("Id")
        target = rel.get("Target")
        if rel_id and target:
            targets[rel_id] = target
    return targets


# Zip --------------------------------------------------------------------------


def open_package(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise PackageFormatError(f"Not a spreadsheet package: {exc}") from exc


def read_package(archive: zipfile.ZipFile, wanted=is_tracked_part) -> tuple[list[zipfile.ZipInfo], dict[str, bytes]]:
    """Return every entry in stored order plus the contents of the ``wanted`` parts.

    Worksheets and media are left compressed in ``archive``; callers copy them
    across with :meth:`PackageWriter.copy`.
    """

    infos = archive.infolist()
    try:
        files = {info.filename: archive.read(info) for info in infos if wanted(info.filename)}
    except zipfile.BadZipFile as exc:
        raise PackageFormatError(f"Corrupt package entry: {exc}") from exc
    return infos, files


def copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    new_info = zipfile.ZipInfo(info.filename)
    new_info.date_time = info.date_time
    new_info.external_attr = info.external_attr
    new_info.internal_attr = info.internal_attr
    new_info.compress_type = info.compress_type
    new_info.flag_bits = info.flag_bits
    new_info.file_size = info.file_size
    return new_info


def new_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=(1980, 1, 1, 0, 0, 0))
    info.compress_type = zipfile.ZIP_DEFLATED
    return info


class PackageWriter:
    """Writes entries to a new package, each name at most once."""

    def __init__(self):
        self._buffer = io.BytesIO()
        self._archive = zipfile.ZipFile(self._buffer, "w")
        self.written: set[str] = set()

    def __enter__(self) -> "PackageWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._archive.close()

    def write(self, info_or_name, content: bytes) -> bool:
        info = new_info(info_or_name) if isinstance(info_or_name, str) else copy_info(info_or_name)
        if info.filename in self.written:
            return False
        self._archive.writestr(info, content)
        self.written.add(info.filename)
        return True

    def copy(self, source: zipfile.ZipFile, info: zipfile.ZipInfo) -> bool:
        """Stream an entry of ``source`` across without holding it in memory."""

        if info.filename in self.written:
            return False
        try:
            with source.open(info) as reader, self._archive.open(copy_info(info), "w") as writer:
                shutil.copyfileobj(reader, writer)
        except zipfile.BadZipFile as exc:
            raise PackageFormatError(f"Corrupt package entry {info.filename}: {exc}", part=info.filename) from exc
        self.written.add(info.filename)
        return True

    def getvalue(self) -> bytes:
        self._archive.close()
        return self._buffer.getvalue()


# Content types -------------------------------------------------------------------


def chart_overrides(content_types_xml) -> list[etree._Element]:
    """``Override`` elements declaring chart parts or chart content types."""

    root = parse_xml(content_types_xml, CONTENT_TYPES_PART)
    overrides = []
    for node in root:
        if not isinstance(node.tag, str) or local_name(node) != "Override":
            continue
        part_name = node.get("PartName") or ""
        content_type = node.get("ContentType") or ""
        if "/charts/" in part_name or content_type in CHART_CONTENT_TYPES:
            overrides.append(node)
    return overrides


def remove_chart_overrides(content_types_xml: bytes) -> bytes:
    root = parse_xml(content_types_xml, CONTENT_TYPES_PART)
    removed = 0
    for node in list(root):
        if not isinstance(node.tag, str) or local_name(node) != "Override":
            continue
        part_name = node.get("PartName") or ""
        if "/charts/" in part_name or (node.get("ContentType") or "") in CHART_CONTENT_TYPES:
            root.remove(node)
            removed += 1
    if not removed:
        return content_types_xml
    return serialize_xml(root)


def add_overrides(content_types_xml: bytes, entries: list[str]) -> bytes:
    """Append serialized ``Override`` ``entries`` whose part names are missing."""

    if not entries:
        return content_types_xml
    root = parse_xml(content_types_xml, CONTENT_TYPES_PART)
    existing = {node.get("PartName") for node in root if isinstance(node.tag, str)}
    added = 0
    for entry in entries:
        override = parse_xml(entry)
        part_name = override.get("PartName")
        if part_name in existing:
            continue
        etree.SubElement(root, f"{CONTENT_TYPES_PREFIX}Override", attrib=dict(override.attrib))
        existing.add(part_name)
        added += 1
    if not added:
        return content_types_xml
    return serialize_xml(root)


# Workbook structure -------------------------------------------------------------


def sheet_names_by_drawing(files: dict[str, bytes]) -> dict[str, str]:
    """Map drawing part names to the title of the sheet that hosts them."""

    workbook_xml = files.get(WORKBOOK_PART)
    workbook_rels = files.get(rels_path_for(WORKBOOK_PART))
    if not workbook_xml or not workbook_rels:
        return {}

    targets = parse_relationship_targets(workbook_rels)
    workbook = parse_xml(workbook_xml, WORKBOOK_PART)
    mapping: dict[str, str] = {}
    for sheet in workbook.iter(f"{{{SPREADSHEET_NS}}}sheet"):
        name = sheet.get("name")
        rel_id = sheet.get(f"{RELATIONSHIP_PREFIX}id")
        target = targets.get(rel_id or "")
        if not name or not target:
            continue
        sheet_part = resolve_target(WORKBOOK_PART, target)
        sheet_rels = files.get(rels_path_for(sheet_part))
        if not sheet_rels:
            continue
        for drawing_target in parse_relationship_targets(sheet_rels).values():
            drawing_part = resolve_target(sheet_part, drawing_target)
            if is_drawing_part(drawing_part):
                mapping[drawing_part] = name
    return mapping
