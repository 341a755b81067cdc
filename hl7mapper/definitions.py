# hl7mapper/definitions.py

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ParseError

DEFAULT_VERSION = "2.5"

# "PID.5", "PID-12" -> 5, 12
_POSITION_RE = re.compile(r"[.-](\d+)$")


@dataclass(frozen=True)
class SegmentSummary:
    segment: str
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FieldDefinition:
    field: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SegmentDetail:
    segment: str
    title: str
    fields: List[FieldDefinition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment": self.segment,
            "title": self.title,
            "fields": [f.to_dict() for f in self.fields],
        }


def normalize_version(version: Any, default: str = DEFAULT_VERSION) -> str:
    """
    Normalize an HL7 version identifier.

      ""      -> "2.5" (default)
      "7"     -> "2.7"
      " 2.8 " -> "2.8"

    Anything else is returned trimmed and otherwise untouched.
    """
    if not isinstance(version, str) or not version.strip():
        return default

    clean = version.strip()
    if clean.startswith("2."):
        return clean
    if clean.isdigit():
        return f"2.{clean}"
    return clean


def _segment_title(segment_id: str, label: Optional[str]) -> str:
    if isinstance(label, str) and " - " in label:
        return label.split(" - ", 1)[1]
    return segment_id


def parse_segment_list(payload: Any, url: str = "") -> List[SegmentSummary]:
    """
    Map the catalog's `[{id, label}, ...]` list onto SegmentSummary records.
    """
    if not isinstance(payload, list):
        raise ParseError(f"Expected a list of segments from {url}", url=url)

    segments: List[SegmentSummary] = []
    for item in payload:
        if not isinstance(item, dict) or not item.get("id"):
            raise ParseError(f"Malformed segment entry from {url}: {item!r}", url=url)
        segment_id = str(item["id"])
        segments.append(
            SegmentSummary(segment=segment_id, title=_segment_title(segment_id, item.get("label")))
        )
    return segments


def parse_field_position(position: Any) -> Optional[int]:
    """
    Extract the trailing `.N` / `-N` field number from a catalog position.
    Returns None when there is no usable number.
    """
    if position is None:
        return None
    match = _POSITION_RE.search(str(position))
    if not match:
        return None
    num = int(match.group(1))
    return num if num > 0 else None


def parse_field_definitions(raw_fields: Any) -> List[FieldDefinition]:
    """
    Parse catalog field entries, dropping those without a position number,
    sorted ascending by field number.
    """
    fields: List[FieldDefinition] = []
    for raw in raw_fields or []:
        if not isinstance(raw, dict):
            continue
        num = parse_field_position(raw.get("position") or raw.get("id") or "")
        if num is None:
            continue
        fields.append(FieldDefinition(field=num, name=raw.get("name") or f"Field {num}"))

    fields.sort(key=lambda f: f.field)
    return fields


def parse_segment_detail(segment_id: str, payload: Any, url: str = "") -> SegmentDetail:
    if not isinstance(payload, dict):
        raise ParseError(f"Expected a segment object from {url}", url=url)

    raw_fields = payload.get("fields")
    if raw_fields is not None and not isinstance(raw_fields, list):
        raise ParseError(f"Expected a field list from {url}", url=url)

    return SegmentDetail(
        segment=segment_id,
        title=payload.get("longName") or segment_id,
        fields=parse_field_definitions(raw_fields),
    )
