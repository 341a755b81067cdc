# hl7mapper/hl7_parser.py

from typing import Any, Dict, List

from hl7apy.core import Message
from hl7apy.exceptions import HL7apyException
from hl7apy.parser import parse_message

from .errors import ParseError


def _normalize_hl7_text(hl7_text: str) -> str:
    """
    Normalize HL7 text so that:
    - All line endings become '\r'
    - Empty lines are stripped

    hl7apy mis-reads MSH-12 (version) when the text uses
    inconsistent newlines.
    """
    normalized = hl7_text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [ln for ln in normalized.split("\n") if ln.strip() != ""]

    if not lines:
        return ""

    return "\r".join(lines) + "\r"


def _safe_er7(element: Any) -> str:
    try:
        return element.to_er7()
    except HL7apyException:
        return str(getattr(element, "value", "") or "")


def _describe_segment(segment: Any) -> Dict[str, Any]:
    fields: Dict[str, str] = {}
    for field in segment.children:
        # repeated fields are out of scope; the last repetition wins
        fields[field.name] = _safe_er7(field)
    return {"segment": segment.name, "fields": fields}


def read_message(hl7_text: str) -> Message:
    normalized = _normalize_hl7_text(hl7_text or "")
    if not normalized:
        raise ParseError("HL7 text is empty")
    try:
        return parse_message(normalized, find_groups=False)
    except HL7apyException as e:
        raise ParseError(f"hl7apy could not parse the message: {e}") from e


def describe_message(hl7_text: str) -> List[Dict[str, Any]]:
    """
    Read an assembled message back with hl7apy and list its segments:

      [{"segment": "PID", "fields": {"PID_3": "123", "PID_5": "^Smith"}}, ...]

    Used as a preview of what a receiving system would see.
    """
    msg = read_message(hl7_text)
    return [_describe_segment(child) for child in msg.children]
