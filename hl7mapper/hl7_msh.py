# hl7mapper/hl7_msh.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

FIELD_SEP = "|"
ENCODING_CHARS = "^~\\&"


@dataclass(frozen=True)
class MSH:
    field_sep: str
    encoding_chars: str
    sending_app: str
    sending_facility: str
    receiving_app: str
    receiving_facility: str
    message_datetime: str
    message_type: str
    message_control_id: str
    processing_id: str
    version: str

    def to_er7(self) -> str:
        msh_fields = [
            "MSH",
            self.encoding_chars,        # MSH-2
            self.sending_app,           # MSH-3
            self.sending_facility,      # MSH-4
            self.receiving_app,         # MSH-5
            self.receiving_facility,    # MSH-6
            self.message_datetime,      # MSH-7
            "",                         # MSH-8 (security)
            self.message_type,          # MSH-9
            self.message_control_id,    # MSH-10
            self.processing_id,         # MSH-11
            self.version,               # MSH-12
        ]
        return self.field_sep.join(msh_fields)


def hl7_date(day: date) -> str:
    """HL7 DT: YYYYMMDD."""
    return day.strftime("%Y%m%d")


def build_header(version: Any, day: Optional[date] = None, default_version: str = "2.3") -> MSH:
    """
    The fixed header every assembled message starts with.
    Only the date (MSH-7) and version (MSH-12) vary.
    """
    return MSH(
        field_sep=FIELD_SEP,
        encoding_chars=ENCODING_CHARS,
        sending_app="APP",
        sending_facility="HOSP",
        receiving_app="SYS",
        receiving_facility="FAC",
        message_datetime=hl7_date(day or date.today()),
        message_type="ADT^A01",
        message_control_id="MSG00001",
        processing_id="P",
        version=str(version) if version else default_version,
    )


def parse_msh(hl7_text: str) -> Optional[MSH]:
    """Read the header back out of an emitted message (None when there is no MSH)."""
    for line in re.split(r"\r\n|\r|\n", hl7_text or ""):
        if line.startswith("MSH") and len(line) > 3:
            break
    else:
        return None

    # MSH-1 is the separator itself, so values[i] holds MSH-(i + 1)
    values = line.split(line[3])
    values[0] = line[3]
    values += [""] * (12 - len(values))
    return MSH(
        field_sep=values[0],
        encoding_chars=values[1],
        sending_app=values[2],
        sending_facility=values[3],
        receiving_app=values[4],
        receiving_facility=values[5],
        message_datetime=values[6],
        message_type=values[8],
        message_control_id=values[9],
        processing_id=values[10],
        version=values[11],
    )
