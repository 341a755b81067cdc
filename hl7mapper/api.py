# hl7mapper/api.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import MapperError, ValidationError
from .service import MapperService

logger = logging.getLogger(__name__)


# ---------- Pydantic Models ----------

class SegmentOut(BaseModel):
    segment: str
    title: str


class SegmentListResponse(BaseModel):
    segments: List[SegmentOut]


class FieldOut(BaseModel):
    field: int
    name: str


class SegmentDetailResponse(BaseModel):
    segment: str
    title: str
    fields: List[FieldOut]


class MappingIn(BaseModel):
    # checked by Mapping.from_dict
    jsonPath: Any = None
    segment: Any = None
    field: Any = None
    component: Any = None


class GenerateRequest(BaseModel):
    inputJson: Any = None
    mappings: List[MappingIn] = []
    version: Any = None


class GenerateResponse(BaseModel):
    hl7: str


# ---------- App ----------

def create_app(service: Optional[MapperService] = None) -> FastAPI:
    app = FastAPI(title="JSON → HL7 v2 Mapper API")
    app.state.service = service or MapperService()

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": problems or "invalid request"})

    @app.exception_handler(MapperError)
    async def mapper_error_handler(request: Request, exc: MapperError) -> JSONResponse:
        logger.error("%s error: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Request failed."})

    @app.get("/health")
    def health_check() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/hl7-segments", response_model=SegmentListResponse)
    async def list_segments(version: str = Query("2.5")) -> SegmentListResponse:
        segments = await app.state.service.list_segments(version)
        return SegmentListResponse(
            segments=[SegmentOut(segment=s.segment, title=s.title) for s in segments]
        )

    @app.get("/hl7-segment-details", response_model=SegmentDetailResponse)
    async def segment_details(
        version: str = Query("2.5"),
        segment: str = Query(""),
    ) -> SegmentDetailResponse:
        detail = await app.state.service.get_segment_detail(version, segment)
        return SegmentDetailResponse(
            segment=detail.segment,
            title=detail.title,
            fields=[FieldOut(field=f.field, name=f.name) for f in detail.fields],
        )

    @app.post("/generate-hl7", response_model=GenerateResponse)
    def generate_hl7(req: GenerateRequest) -> GenerateResponse:
        hl7 = app.state.service.assemble_message(
            req.inputJson,
            [m.model_dump() for m in req.mappings],
            req.version,
        )
        return GenerateResponse(hl7=hl7)

    return app


app = create_app()
