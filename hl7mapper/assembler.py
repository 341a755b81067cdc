# hl7mapper/assembler.py

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

from .hl7_msh import build_header
from .mappings import Mapping, resolve_json_path

logger = logging.getLogger(__name__)

SEGMENT_SEP = "\r"
FIELD_SEP = "|"
COMPONENT_SEP = "^"

MappingLike = Union[Mapping, Dict[str, Any]]


def _to_text(value: Any) -> str:
    """
    Render a resolved JSON value for an HL7 slot.
    true/false as in JSON, whole floats without ".0", containers as JSON.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def _join_sparse(slots: Dict[int, str], sep: str) -> str:
    """Join positions 0..max, unset positions as empty strings."""
    if not slots:
        return ""
    return sep.join(slots.get(i, "") for i in range(max(slots) + 1))


class SegmentBuilder:
    """
    One segment's sparse field slots.

    Slot 0 is the segment id. A slot holds either a scalar string or a
    {component_index: value} dict for composite fields.
    """

    def __init__(self, segment: str) -> None:
        self.segment = segment
        self._slots: Dict[int, Union[str, Dict[int, str]]] = {0: segment}

    def set_field(self, field: int, value: str) -> None:
        # replaces a composite at the same position
        self._slots[field] = value

    def set_component(self, field: int, component: int, value: str) -> None:
        slot = self._slots.get(field)
        if not isinstance(slot, dict):
            slot = {}
            self._slots[field] = slot
        slot[component - 1] = value

    def to_er7(self) -> str:
        rendered: Dict[int, str] = {}
        for pos, slot in self._slots.items():
            rendered[pos] = _join_sparse(slot, COMPONENT_SEP) if isinstance(slot, dict) else slot
        return _join_sparse(rendered, FIELD_SEP)


def _coerce(mapping: MappingLike) -> Mapping:
    return mapping if isinstance(mapping, Mapping) else Mapping.from_dict(mapping)


def build_segments(input_json: Any, mappings: Iterable[MappingLike]) -> List[SegmentBuilder]:
    """
    Apply mappings in order, grouped by segment in first-seen order.
    Mappings whose value is missing, None or "" write nothing.
    """
    segments: Dict[str, SegmentBuilder] = {}

    for raw in mappings:
        m = _coerce(raw)
        value = resolve_json_path(input_json, m.json_path)
        if value is None or value == "":
            logger.debug("No value at %s, skipping %s", m.json_path, m.label)
            continue

        segment = m.segment.upper()
        if segment == "MSH":
            # the header is always synthesized
            continue

        builder = segments.get(segment)
        if builder is None:
            builder = segments[segment] = SegmentBuilder(segment)

        text = _to_text(value)
        if m.component:
            builder.set_component(m.field, m.component, text)
        else:
            builder.set_field(m.field, text)

    return list(segments.values())


def assemble_message(
    input_json: Any,
    mappings: Iterable[MappingLike],
    version: Optional[str] = None,
    *,
    today: Optional[date] = None,
    default_version: str = "2.3",
) -> str:
    """
    Build an HL7 v2 message (segments joined by \\r) from a JSON document
    and a list of jsonPath -> segment/field/component mappings.

    The MSH header is fixed apart from its date and version; mappings never
    touch it.
    """
    header = build_header(version, day=today, default_version=default_version)
    lines = [header.to_er7()]
    lines.extend(builder.to_er7() for builder in build_segments(input_json, mappings))
    return SEGMENT_SEP.join(lines)
