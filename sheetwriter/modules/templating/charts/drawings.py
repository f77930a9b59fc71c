"""Structural merging of drawing parts and their relationship files."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from lxml import etree

from ..geometry import RepeatExpansionInfo
from .package import (
    RELATIONSHIP_PREFIX,
    is_chart_relationship,
    iter_relationships,
    local_name,
    parse_xml,
    relationship_number,
    serialize_xml,
)
from .ranges import shift_anchor

logger = logging.getLogger(__name__)

_RELATIONSHIP_ID = f"{RELATIONSHIP_PREFIX}id"
# Absolute anchors only take part when they hold a chart.
_ANCHOR_NAMES = ("twoCellAnchor", "oneCellAnchor", "absoluteAnchor")


@dataclass
class ClassifiedAnchors:
    chart: list = field(default_factory=list)
    shape: list = field(default_factory=list)
    connector: list = field(default_factory=list)
    one_cell: list = field(default_factory=list)

    @property
    def non_chart(self) -> list:
        return self.shape + self.connector + self.one_cell

    @property
    def all(self) -> list:
        return self.chart + self.non_chart


def _has_descendant(node, name: str) -> bool:
    for child in node.iterdescendants():
        if isinstance(child.tag, str) and local_name(child) == name:
            return True
    return False


def classify_anchors(root) -> ClassifiedAnchors:
    """Sort the top-level anchors of a drawing by what they hold."""

    anchors = ClassifiedAnchors()
    for node in root:
        if not isinstance(node.tag, str) or local_name(node) not in _ANCHOR_NAMES:
            continue
        name = local_name(node)
        if _has_descendant(node, "graphicFrame"):
            anchors.chart.append(node)
        elif name == "twoCellAnchor":
            if _has_descendant(node, "cxnSp"):
                anchors.connector.append(node)
            else:
                anchors.shape.append(node)
        elif name == "oneCellAnchor":
            anchors.one_cell.append(node)
    return anchors


def anchor_signature(anchor) -> bytes:
    """Canonical form of an anchor used to detect duplicates.

    Whitespace-only text is dropped and only namespaces the subtree uses are
    rendered, so pretty-printing and root declarations do not matter.
    """

    clone = deepcopy(anchor)
    for node in clone.iter():
        if node.text is not None and not node.text.strip():
            node.text = None
        if node is not clone and node.tail is not None and not node.tail.strip():
            node.tail = None
    clone.tail = None
    return etree.tostring(clone, method="c14n", exclusive=True, with_comments=False)


def _child(node, name: str):
    for child in node:
        if isinstance(child.tag, str) and local_name(child) == name:
            return child
    return None


def _marker(node) -> tuple[int, int] | None:
    if node is None:
        return None
    row_node, col_node = _child(node, "row"), _child(node, "col")
    if row_node is None or col_node is None:
        return None
    try:
        return int((row_node.text or "").strip()), int((col_node.text or "").strip())
    except ValueError:
        return None


def _set_marker(node, cell: tuple[int, int]) -> None:
    _child(node, "row").text = str(cell[0])
    _child(node, "col").text = str(cell[1])


def shift_anchor_element(anchor, expansions: Sequence[RepeatExpansionInfo]) -> bool:
    """Move the ``from``/``to`` markers of ``anchor``; returns whether it moved."""

    if not expansions:
        return False
    from_node, to_node = _child(anchor, "from"), _child(anchor, "to")
    start = _marker(from_node)
    if start is None:
        return False
    end = _marker(to_node)
    new_start, new_end = shift_anchor(start, end, expansions)
    if new_start == start and new_end == end:
        return False
    _set_marker(from_node, new_start)
    if end is not None:
        _set_marker(to_node, new_end)
    return True


def apply_rid_mapping(node, rid_mapping: Mapping[str, str]) -> None:
    if not rid_mapping:
        return
    for element in node.iter():
        if not isinstance(element.tag, str):
            continue
        rel_id = element.get(_RELATIONSHIP_ID)
        if rel_id in rid_mapping:
            element.set(_RELATIONSHIP_ID, rid_mapping[rel_id])


def _with_namespaces(root, extra: Mapping[str | None, str]):
    missing = {prefix: uri for prefix, uri in extra.items() if prefix not in root.nsmap}
    if not missing:
        return root
    nsmap = dict(root.nsmap)
    nsmap.update(missing)
    replacement = etree.Element(root.tag, attrib=dict(root.attrib), nsmap=nsmap)
    replacement.text = root.text
    for child in list(root):
        replacement.append(child)
    return replacement


def merge_drawing_xml(
    current_xml,
    original_xml,
    rid_mapping: Mapping[str, str] | None = None,
    expansions: Sequence[RepeatExpansionInfo] = (),
) -> bytes:
    """Merge the template drawing into the generated one.

    Chart anchors in the generated drawing are dropped and replaced by the
    template's, with remapped relationship ids and shifted markers. Other
    template anchors are added unless an identical anchor already exists.
    """

    rid_mapping = rid_mapping or {}
    current = parse_xml(current_xml, "current drawing")
    original = parse_xml(original_xml, "template drawing")

    current_anchors = classify_anchors(current)
    original_anchors = classify_anchors(original)
    signatures = {anchor_signature(anchor) for anchor in current_anchors.all}

    for anchor in current_anchors.chart:
        current.remove(anchor)

    current = _with_namespaces(current, original.nsmap)

    for anchor in original_anchors.chart:
        restored = deepcopy(anchor)
        restored.tail = None
        apply_rid_mapping(restored, rid_mapping)
        shift_anchor_element(restored, expansions)
        current.append(restored)

    added = 0
    for anchor in original_anchors.non_chart:
        if anchor_signature(anchor) in signatures:
            continue
        restored = deepcopy(anchor)
        restored.tail = None
        shift_anchor_element(restored, expansions)
        if anchor_signature(restored) in signatures:
            continue
        current.append(restored)
        added += 1

    logger.debug(
        "Merged drawing: %s chart anchors restored, %s other anchors added",
        len(original_anchors.chart),
        added,
    )
    return serialize_xml(current)


def calculate_rid_mapping(current_rels_xml, original_rels_xml) -> dict[str, str]:
    """Allocate fresh ids for the template's chart relationships.

    New ids start above the highest numeric id in the generated file.
    Malformed ids are logged and ignored when computing that maximum.
    """

    current = parse_xml(current_rels_xml, "current drawing relationships")
    original = parse_xml(original_rels_xml, "template drawing relationships")

    highest = 0
    for rel in iter_relationships(current):
        rel_id = rel.get("Id")
        number = relationship_number(rel_id)
        if number is None:
            logger.warning("Ignoring malformed relationship id %r", rel_id)
            continue
        highest = max(highest, number)

    mapping: dict[str, str] = {}
    for rel in iter_relationships(original):
        rel_id = rel.get("Id")
        if not rel_id or not is_chart_relationship(rel) or rel_id in mapping:
            continue
        highest += 1
        mapping[rel_id] = f"rId{highest}"
    return mapping


def merge_drawing_rels_xml(current_rels_xml, original_rels_xml, rid_mapping: Mapping[str, str]) -> bytes:
    """Copy the template's chart relationships into the generated file."""

    original = parse_xml(original_rels_xml, "template drawing relationships")
    chart_rels = [rel for rel in iter_relationships(original) if is_chart_relationship(rel)]
    if not chart_rels:
        return current_rels_xml if isinstance(current_rels_xml, bytes) else current_rels_xml.encode("utf-8")

    current = parse_xml(current_rels_xml, "current drawing relationships")
    for rel in chart_rels:
        attributes = dict(rel.attrib)
        attributes["Id"] = rid_mapping.get(attributes.get("Id", ""), attributes.get("Id", ""))
        etree.SubElement(current, rel.tag, attrib=attributes)
    return serialize_xml(current)
