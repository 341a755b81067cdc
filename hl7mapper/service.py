# hl7mapper/service.py

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Iterable, List, Optional

from .assembler import MappingLike, assemble_message
from .config import Settings, load_settings
from .definition_client import DefinitionClient
from .definitions import SegmentDetail, SegmentSummary
from .errors import ValidationError
from .segment_cache import SegmentDefinitionCache


class MapperService:
    """
    The operations the HTTP shell, CLI and UI sit on:
    list_segments, get_segment_detail and assemble_message.

    Owns the definition cache; nothing here is module-global.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[SegmentDefinitionCache] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.settings = settings or load_settings()
        if cache is None:
            cache = SegmentDefinitionCache(
                DefinitionClient.from_settings(self.settings),
                default_version=self.settings.default_version,
                ttl=self.settings.cache_ttl,
            )
        self.cache = cache
        self._today = today or date.today

    async def list_segments(self, version: Any) -> List[SegmentSummary]:
        return await self.cache.get_segments(version)

    async def get_segment_detail(
        self,
        version: Any,
        segment_id: Optional[str],
        refresh: bool = True,
    ) -> SegmentDetail:
        """
        By default always refetches: the cached detail for this segment is
        invalidated first. `refresh=False` serves a cached detail when there is one.
        """
        segment = (segment_id or "").strip().upper()
        if not segment:
            raise ValidationError("segment is required")

        if refresh:
            self.cache.invalidate(version, segment)
        return await self.cache.get_segment_detail(version, segment)

    def assemble_message(
        self,
        input_json: Any,
        mappings: Iterable[MappingLike],
        version: Optional[str] = None,
    ) -> str:
        return assemble_message(
            input_json,
            mappings,
            version,
            today=self._today(),
            default_version=self.settings.header_version,
        )
