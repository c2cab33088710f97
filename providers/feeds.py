"""Shared behaviour of the RSS and iCal feed adapters."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from processor.filters import apply_source_event_filters
from processor.models import Address, Event, ImageQuota, ProviderConfig, ProviderResult, QueryContext, Venue
from providers.base import BaseProvider
from providers.errors import ConfigurationError

logger = logging.getLogger(__name__)

IMAGE_FETCH_LIMIT = 25


def is_valid_http_url(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def build_feed_venue(source: ProviderConfig, location_label: Optional[str]) -> Venue:
    """Venue from the item's location, falling back to the configured venue and the source name."""
    config_venue = source.config.get('venue') if isinstance(source.config.get('venue'), dict) else {}
    address = config_venue.get('address') if isinstance(config_venue.get('address'), dict) else {}
    return Venue(
        name=location_label or config_venue.get('name') or source.name or source.id or '',
        address=Address(
            city=address.get('city') or '',
            region=address.get('region') or '',
            country=address.get('country') or '',
        ),
    )


def _coordinate_key(value: Optional[float]) -> str:
    return f"{value:.4f}" if isinstance(value, (int, float)) else 'none'


class FeedProvider(BaseProvider):
    """
    Base for syndication feeds configured by ``config.feedUrl``.

    Subclasses implement ``load_events``; this class handles validation,
    caching, per-source filters and image hydration.
    """

    CACHE_COLLECTION = 'rssCache'
    CACHE_TTL_SECONDS = 30 * 60
    CACHE_VERSION = 'v1'
    SCHEMA_VERSION = 3
    KEY_PREFIX = 'rss'

    def __init__(self, settings, http, cache=None, processor=None, hydrator=None):
        super().__init__(settings, http, cache, processor)
        self.hydrator = hydrator

    def load_events(self, source: ProviderConfig, context: QueryContext, feed_url: str) -> List[Event]:
        raise NotImplementedError

    def is_cacheable(self, source: ProviderConfig) -> bool:
        return True

    def feed_time_zone(self, source: ProviderConfig) -> str:
        return source.config.get('timeZone') or self.settings.local_timezone

    def cache_key_parts(self, feed_url: str, context: QueryContext) -> List[str]:
        return [
            self.KEY_PREFIX,
            self.CACHE_VERSION,
            feed_url,
            f"days:{context.lookahead_days}",
            f"lat:{_coordinate_key(context.latitude)}",
            f"lon:{_coordinate_key(context.longitude)}",
        ]

    def fetch(self, source: ProviderConfig, context: QueryContext) -> ProviderResult:
        """
        Fetch, filter and hydrate a feed.

        Previews (``context.limit`` set) bypass the cache.

        Raises:
            ConfigurationError: If the feed URL is missing or not http(s)
            UpstreamError: If the feed request fails
        """
        feed_url = source.config.get('feedUrl')
        if not is_valid_http_url(feed_url):
            raise ConfigurationError(
                'Datasource feed URL is missing or invalid', status=400, code='missing_feed_url'
            )
        feed_url = feed_url.strip()

        use_cache = context.limit is None and self.is_cacheable(source)
        key_parts = self.cache_key_parts(feed_url, context)
        if use_cache:
            cached = self._read_cached_payload(
                self.CACHE_COLLECTION, key_parts, self.CACHE_TTL_SECONDS, schema_version=self.SCHEMA_VERSION
            )
            if cached is not None:
                events, _ = cached
                logger.info(f"Using cached feed for {source.id} ({len(events)} events)")
                return ProviderResult(events=events, cached=True)

        events = self.load_events(source, context, feed_url)
        events = apply_source_event_filters(events, source.config)
        self.hydrate_images(events, source, context)
        events = self.processor.process_events(events)

        if use_cache:
            metadata: Dict[str, Any] = {
                'feedUrl': feed_url,
                'lookaheadDays': context.lookahead_days,
                'latitude': context.latitude,
                'longitude': context.longitude,
                'schemaVersion': self.SCHEMA_VERSION,
            }
            self._write_cached_payload(
                self.CACHE_COLLECTION, key_parts, events, extra={'feedUrl': feed_url}, metadata=metadata
            )
        logger.info(f"Loaded {len(events)} events from {source.id}")
        return ProviderResult(events=events, cached=False)

    def hydrate_images(self, events: List[Event], source: ProviderConfig, context: QueryContext) -> None:
        if self.hydrator is None or source.config.get('fetchImageFromLink') is False:
            return
        limit = source.config.get('imageFetchLimit')
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 0:
            limit = IMAGE_FETCH_LIMIT
        parent = context.image_quota
        quota = parent.child(limit) if parent is not None else ImageQuota(limit)
        self.hydrator.hydrate(events, quota)
