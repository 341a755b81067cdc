# ui/streamlit_app.py

import sys
import json
import asyncio
from pathlib import Path

import streamlit as st

# Make sure we can import from hl7mapper/
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT_DIR))

from hl7mapper.errors import MapperError  # type: ignore
from hl7mapper.hl7_parser import describe_message  # type: ignore
from hl7mapper.mappings import Mapping, MappingSet, extract_json_paths  # type: ignore
from hl7mapper.service import MapperService  # type: ignore

VERSIONS = ["2.3", "2.4", "2.5", "2.5.1", "2.6", "2.7", "2.8"]


@st.cache_resource
def get_service() -> MapperService:
    return MapperService()


service = get_service()

if "mappings" not in st.session_state:
    st.session_state.mappings = MappingSet()
if "field_cache" not in st.session_state:
    st.session_state.field_cache = {}
mappings: MappingSet = st.session_state.mappings

st.title("JSON → HL7 v2 Mapper")

st.write(
    "Paste a JSON document, map its fields onto HL7 segment positions, "
    "and generate an HL7 v2 message."
)

version = st.selectbox("HL7 version", VERSIONS, index=VERSIONS.index("2.5"))
if st.session_state.get("version") != version:
    # a different schema: start over
    st.session_state.version = version
    mappings.clear()
    st.session_state.field_cache.clear()

json_text = st.text_area("Input JSON", height=200, value="{}")
try:
    input_json = json.loads(json_text or "{}")
except json.JSONDecodeError as e:
    st.error(f"Invalid JSON: {e}")
    input_json = {}

json_paths = extract_json_paths(input_json)

try:
    segments = asyncio.run(service.list_segments(version))
except MapperError as e:
    st.error(str(e))
    segments = []

if segments:
    labels = {f"{s.segment} - {s.title}": s.segment for s in segments}
    segment_id = labels[st.selectbox(f"Segment ({len(segments)})", list(labels))]

    # fields are fetched once per segment selection; only "Reload fields" refetches
    field_cache = st.session_state.field_cache
    reload = st.button("Reload fields")
    detail = None if reload else field_cache.get((version, segment_id))
    if detail is None:
        try:
            detail = asyncio.run(service.get_segment_detail(version, segment_id, refresh=reload))
        except MapperError as e:
            st.error(str(e))
        else:
            field_cache[(version, segment_id)] = detail

    if detail is not None and not detail.fields:
        st.warning("No fields found.")
    elif detail is not None and json_paths:
        with st.form("add_mapping"):
            json_path = st.selectbox("JSON path", json_paths)
            field_labels = {f"{segment_id}-{f.field} {f.name}": f.field for f in detail.fields}
            field = field_labels[st.selectbox(f"Field ({len(detail.fields)})", list(field_labels))]
            component = st.number_input("Component (0 = whole field)", min_value=0, step=1)
            if st.form_submit_button("Add mapping"):
                mappings.put(
                    Mapping(
                        json_path=json_path,
                        segment=segment_id,
                        field=field,
                        component=int(component) or None,
                    )
                )

if len(mappings):
    st.subheader("Mappings")
    st.table([{"HL7": m.label, "JSON path": m.json_path} for m in mappings])
    if st.button("Clear mappings"):
        mappings.clear()
        st.rerun()

if st.button("Generate HL7"):
    hl7 = service.assemble_message(input_json, list(mappings), version)

    st.subheader("HL7 Message")
    st.code(hl7.replace("\r", "\n"))

    st.subheader("Parsed Segments (hl7apy)")
    try:
        st.json(describe_message(hl7))
    except MapperError as e:
        st.error(str(e))
