# run_mapper.py

import sys
import json
from pathlib import Path

from hl7mapper.errors import MapperError
from hl7mapper.hl7_msh import parse_msh
from hl7mapper.hl7_parser import describe_message
from hl7mapper.service import MapperService


def _load_json(path: Path):
    if not path.exists():
        print(f"File not found: {path}")
        sys.exit(1)
    return json.loads(path.read_text(encoding="utf-8"))


def header_summary(hl7: str) -> dict:
    msh = parse_msh(hl7)
    if msh is None:
        return {}
    return {
        "type": msh.message_type,
        "control_id": msh.message_control_id,
        "date": msh.message_datetime,
        "version": msh.version,
    }


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: python run_mapper.py path/to/input.json path/to/mappings.json [version]")
        sys.exit(1)

    input_json = _load_json(Path(sys.argv[1]))
    mappings = _load_json(Path(sys.argv[2]))
    version = sys.argv[3] if len(sys.argv) > 3 else None

    # mappings file may be a bare list or {"mappings": [...]}
    if isinstance(mappings, dict):
        mappings = mappings.get("mappings", [])

    service = MapperService()
    try:
        hl7 = service.assemble_message(input_json, mappings, version)
    except MapperError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print("=== HL7 Message ===")
    print(hl7.replace("\r", "\n"))

    print("\n=== Header ===")
    for key, value in header_summary(hl7).items():
        print(f"{key}: {value}")

    print("\n=== Parsed Segments (hl7apy) ===")
    try:
        print(json.dumps(describe_message(hl7), indent=2))
    except MapperError as e:
        print(f"Could not read the message back: {e}")


if __name__ == "__main__":
    main()
