"""Base class shared by all provider adapters."""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from processor.event_processor import EventProcessor
from processor.models import CacheEntry, Event, ProviderConfig, ProviderResult, QueryContext

logger = logging.getLogger(__name__)


class BaseProvider:
    """
    Adapter turning one upstream source into canonical events.

    Subclasses implement ``fetch``. Cache helpers store and restore the
    canonical event payload; a ``cache`` of None disables caching.
    """

    type = ''

    def __init__(self, settings, http, cache=None, processor: Optional[EventProcessor] = None):
        self.settings = settings
        self.http = http
        self.cache = cache
        self.processor = processor or EventProcessor(settings.local_timezone)

    def fetch(self, source: ProviderConfig, context: QueryContext) -> ProviderResult:
        raise NotImplementedError

    def _read_cached_payload(self, collection: str, key_parts: List[str], ttl_seconds: float,
                             schema_version: Optional[int] = None
                             ) -> Optional[Tuple[List[Event], Dict[str, Any]]]:
        """
        Restore a cached payload.

        Args:
            collection: Cache collection
            key_parts: Request key parts
            ttl_seconds: Freshness bound
            schema_version: Required ``schemaVersion`` metadata, if any

        Returns:
            Tuple of (events, raw payload dict) or None on miss
        """
        if self.cache is None:
            return None
        entry = self.cache.read(collection, key_parts, ttl_seconds)
        if entry is None:
            return None
        if schema_version is not None and entry.metadata.get('schemaVersion') != schema_version:
            logger.debug(f"Ignoring {collection} entry with outdated schema")
            return None
        try:
            payload = json.loads(entry.body)
        except ValueError:
            logger.warning(f"Ignoring undecodable {collection} entry")
            return None
        events = [Event.from_dict(item) for item in payload.get('events', []) if isinstance(item, dict)]
        return events, payload

    def _write_cached_payload(self, collection: str, key_parts: List[str], events: List[Event],
                              extra: Optional[Dict[str, Any]] = None,
                              metadata: Optional[Dict[str, Any]] = None) -> None:
        if self.cache is None:
            return
        payload: Dict[str, Any] = {'events': [event.to_dict() for event in events]}
        payload.update(extra or {})
        self.cache.write(
            collection,
            key_parts,
            CacheEntry(body=json.dumps(payload), metadata=dict(metadata or {}))
        )
