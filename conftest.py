# conftest.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

import httpx
import pytest

from hl7mapper.config import Settings
from hl7mapper.definition_client import DefinitionClient
from hl7mapper.segment_cache import SegmentDefinitionCache
from hl7mapper.service import MapperService

BASE_URL = "https://catalog.test/v2-api/1"

PID_DETAIL = {
    "id": "PID",
    "longName": "Patient Identification",
    "fields": [
        {"position": "PID.5", "name": "Patient Name"},
        {"position": "PID.3", "name": "Patient Identifier List"},
        {"position": "PID.1", "name": "Set ID - PID"},
        {"id": "PID-12", "name": "County Code"},
        {"position": "PID", "name": "No number"},
    ],
}


class FakeCatalog:
    """
    Stand-in for the remote definition service, served through httpx.MockTransport.

    `fail_next` answers that many upcoming requests with `fail_status`
    (or a connection error when `fail_status` is None).
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Any] = {
            f"{BASE_URL}/HL7v2.5/Segments": [
                {"id": "MSH", "label": "MSH - Message Header"},
                {"id": "PID", "label": "PID - Patient Identification"},
                {"id": "ZZZ"},
            ],
            f"{BASE_URL}/HL7v2.5/Segments/PID": PID_DETAIL,
            f"{BASE_URL}/HL7v2.5/Segments/EMPTY": {"id": "EMPTY", "fields": []},
        }
        self.calls: List[str] = []
        self.fail_next = 0
        self.fail_status = 503

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        if self.fail_next:
            self.fail_next -= 1
            if self.fail_status is None:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(self.fail_status, text="unavailable")

        if url not in self.routes:
            return httpx.Response(404, json={"message": "not found"})
        payload = self.routes[url]
        if isinstance(payload, str):
            return httpx.Response(200, text=payload)
        return httpx.Response(200, json=payload)


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def delays() -> List[float]:
    return []


@pytest.fixture
def client(catalog: FakeCatalog, delays: List[float]) -> DefinitionClient:
    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    return DefinitionClient(
        BASE_URL,
        retries=4,
        retry_delay=0.5,
        transport=httpx.MockTransport(catalog.handler),
        sleep=fake_sleep,
    )


@pytest.fixture
def cache(client: DefinitionClient) -> SegmentDefinitionCache:
    return SegmentDefinitionCache(client)


@pytest.fixture
def service(cache: SegmentDefinitionCache) -> MapperService:
    return MapperService(settings=Settings(), cache=cache, today=lambda: date(2024, 1, 5))
