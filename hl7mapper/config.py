# hl7mapper/config.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# Public HL7 v2 definition catalog (Caristix)
DEFINITION_BASE_URL = os.getenv(
    "HL7_DEFINITION_BASE_URL", "https://hl7-definition.caristix.com/v2-api/1"
)
DEFINITION_RETRIES = int(os.getenv("HL7_DEFINITION_RETRIES", "4"))
DEFINITION_RETRY_DELAY = float(os.getenv("HL7_DEFINITION_RETRY_DELAY", "0.5"))
DEFINITION_TIMEOUT = float(os.getenv("HL7_DEFINITION_TIMEOUT", "30"))

DEFAULT_VERSION = os.getenv("HL7_DEFAULT_VERSION", "2.5")
HEADER_VERSION = os.getenv("HL7_HEADER_VERSION", "2.3")

USER_AGENT = "json-to-hl7-mapper"


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFINITION_BASE_URL
    retries: int = DEFINITION_RETRIES
    retry_delay: float = DEFINITION_RETRY_DELAY
    timeout: float = DEFINITION_TIMEOUT
    # None keeps entries for the life of the process
    cache_ttl: Optional[float] = None
    default_version: str = DEFAULT_VERSION
    header_version: str = HEADER_VERSION


def load_settings() -> Settings:
    """
    Build Settings from the environment.
    Re-reads the variables, so tests can monkeypatch them.
    """
    return Settings(
        base_url=os.getenv("HL7_DEFINITION_BASE_URL", DEFINITION_BASE_URL).rstrip("/"),
        retries=int(os.getenv("HL7_DEFINITION_RETRIES", str(DEFINITION_RETRIES))),
        retry_delay=float(os.getenv("HL7_DEFINITION_RETRY_DELAY", str(DEFINITION_RETRY_DELAY))),
        timeout=float(os.getenv("HL7_DEFINITION_TIMEOUT", str(DEFINITION_TIMEOUT))),
        cache_ttl=_optional_float("HL7_DEFINITION_CACHE_TTL"),
        default_version=os.getenv("HL7_DEFAULT_VERSION", DEFAULT_VERSION),
        header_version=os.getenv("HL7_HEADER_VERSION", HEADER_VERSION),
    )
