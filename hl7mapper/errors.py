# hl7mapper/errors.py

from __future__ import annotations


class MapperError(Exception):
    """Base error for the JSON -> HL7 mapper."""
    pass


class ValidationError(MapperError):
    """Bad caller input (missing segment id, malformed mapping)."""
    pass


# ---------------------------------------------------------------------------
# Definition service failures
# ---------------------------------------------------------------------------

class DefinitionServiceError(MapperError):
    """Terminal failure talking to the remote segment-definition catalog."""

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class TransportError(DefinitionServiceError):
    """Network failure reaching the catalog (retried before surfacing)."""
    pass


class UpstreamStatusError(DefinitionServiceError):
    """Non-2xx response from the catalog (retried before surfacing)."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Failed request ({status_code}): {url}", url=url)
        self.status_code = status_code


class ParseError(MapperError):
    """
    Payload did not have the expected shape. Never retried.

    Raised for catalog responses and for HL7 text hl7apy cannot read back.
    """

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url
