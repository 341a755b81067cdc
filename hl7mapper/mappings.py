# hl7mapper/mappings.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import ValidationError

# Segment used when a mapping does not name one
DEFAULT_SEGMENT = "PID"


@dataclass(frozen=True)
class Mapping:
    json_path: str
    segment: str
    field: int
    component: Optional[int] = None

    @property
    def target(self) -> Tuple[str, int, Optional[int]]:
        return (self.segment, self.field, self.component)

    @property
    def label(self) -> str:
        """PID-5.2 style label."""
        base = f"{self.segment}-{self.field}"
        return f"{base}.{self.component}" if self.component else base

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Mapping":
        """
        Build a Mapping from the wire shape:
          {"jsonPath": "patient.id", "segment": "PID", "field": 3, "component": null}
        """
        if not isinstance(raw, dict):
            raise ValidationError(f"mapping must be an object, got {type(raw).__name__}")

        json_path = raw.get("jsonPath")
        if not isinstance(json_path, str) or not json_path.strip():
            raise ValidationError("mapping jsonPath is required")

        segment = str(raw.get("segment") or DEFAULT_SEGMENT).strip().upper()
        field = _position(raw.get("field"), "field")
        if field is None:
            raise ValidationError(f"mapping field is required ({json_path})")

        return cls(
            json_path=json_path.strip(),
            segment=segment,
            field=field,
            component=_position(raw.get("component"), "component"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jsonPath": self.json_path,
            "segment": self.segment,
            "field": self.field,
            "component": self.component,
        }


def _position(value: Any, name: str) -> Optional[int]:
    """
    Coerce a field / component number. None, "" and 0 mean "not set".
    """
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        num = value
    elif isinstance(value, float) and value.is_integer():
        num = int(value)
    elif isinstance(value, str) and re.fullmatch(r"[0-9]+", value.strip()):
        num = int(value)
    else:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    if num < 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return num or None


class MappingSet:
    """
    Ordered mappings with at most one per (segment, field, component).
    Putting a mapping on a taken target replaces the old one.
    """

    def __init__(self, mappings: Optional[List[Mapping]] = None) -> None:
        self._items: List[Mapping] = []
        for m in mappings or []:
            self.put(m)

    def put(self, mapping: Mapping) -> None:
        self._items = [m for m in self._items if m.target != mapping.target]
        self._items.append(mapping)

    def remove(self, segment: str, field: int, component: Optional[int] = None) -> bool:
        target = (segment.upper(), field, component)
        before = len(self._items)
        self._items = [m for m in self._items if m.target != target]
        return len(self._items) != before

    def clear(self) -> None:
        self._items = []

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._items]

    def __iter__(self) -> Iterator[Mapping]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


# ---------------------------------------------------------------------------
# JSON paths
# ---------------------------------------------------------------------------

def resolve_json_path(document: Any, path: str) -> Any:
    """
    Walk a dotted path ("patient.name.0.family") through dicts and lists.
    Returns None when any step is missing.
    """
    node = document
    for part in path.split("."):
        if isinstance(node, dict):
            node = node.get(part)
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return None
    return node


def extract_json_paths(document: Any, prefix: str = "") -> List[str]:
    """
    Dotted paths of every leaf value, in document order.
    These are what a user picks from when building mappings.
    """
    paths: List[str] = []
    if isinstance(document, dict):
        items = ((str(k), v) for k, v in document.items())
    elif isinstance(document, list):
        items = ((str(i), v) for i, v in enumerate(document))
    else:
        return [prefix] if prefix else []

    for key, value in items:
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, (dict, list)):
            paths.extend(extract_json_paths(value, path))
        else:
            paths.append(path)
    return paths
