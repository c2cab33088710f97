"""Ticketmaster Discovery API adapter (music and comedy segments)."""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from dateutil.tz import gettz

from processor.dates import format_utc, parse_iso, utc_now
from processor.models import Address, Event, EventImage, EventTime, ProviderConfig, ProviderResult, QueryContext, Venue
from providers.base import BaseProvider
from providers.errors import ConfigurationError, ProviderError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_SEGMENTS = [
    {'key': 'music', 'description': 'Live music', 'params': {'classificationName': 'Music'}},
    {'key': 'comedy', 'description': 'Comedy', 'params': {'classificationName': 'Comedy'}},
]

DETAIL_LIST_FIELDS = ('priceRanges', 'products', 'promoters', 'promotions', 'outlets')
DETAIL_OBJECT_FIELDS = ('promoter', 'sales', 'seatmap', 'ticketLimit', 'accessibility', 'ageRestrictions')


def build_cache_key_parts(latitude: Optional[float], longitude: Optional[float], radius_miles: float,
                          start_date_time: str, end_date_time: str,
                          segments: List[Dict[str, Any]], version: str = 'v1',
                          source_id: str = 'ticketmaster') -> List[str]:
    """Cache key parts for one Discovery window and datasource; empty parts are omitted."""
    lat = f"{latitude:.4f}" if isinstance(latitude, (int, float)) else 'none'
    lon = f"{longitude:.4f}" if isinstance(longitude, (int, float)) else 'none'
    segment_key = ','.join(str(segment.get('key')) for segment in segments if segment.get('key'))
    parts = [
        source_id,
        version,
        f"lat:{lat}",
        f"lon:{lon}",
        f"radius:{radius_miles:.1f}",
        f"start:{start_date_time}",
        f"end:{end_date_time}",
        f"segments:{segment_key}" if segment_key else '',
    ]
    return [part for part in parts if part]


def _is_empty(value: Any) -> bool:
    return value is None or value == '' or (isinstance(value, (list, dict)) and not value)


def _format_images(raw_images: Any) -> List[EventImage]:
    images = []
    for image in raw_images if isinstance(raw_images, list) else []:
        if not isinstance(image, dict) or not image.get('url'):
            continue
        width = image.get('width')
        height = image.get('height')
        images.append(EventImage(
            url=image['url'],
            ratio=image.get('ratio'),
            width=width if isinstance(width, int) else None,
            height=height if isinstance(height, int) else None,
            fallback=bool(image.get('fallback')),
        ))
    return images


def _format_attractions(raw_attractions: Any) -> List[Dict[str, Any]]:
    attractions = []
    for attraction in raw_attractions if isinstance(raw_attractions, list) else []:
        if not isinstance(attraction, dict):
            continue
        homepages = (attraction.get('externalLinks') or {}).get('homepage') or []
        homepage = homepages[0].get('url') if homepages and isinstance(homepages[0], dict) else None
        attractions.append({
            'id': attraction.get('id'),
            'name': attraction.get('name') or '',
            'type': attraction.get('type'),
            'url': attraction.get('url') or homepage,
            'locale': attraction.get('locale'),
            'classifications': attraction.get('classifications') or None,
        })
    return attractions


def format_event(raw: Dict[str, Any], segment_key: Optional[str],
                 source_id: str = 'ticketmaster') -> Optional[Event]:
    """
    Convert one Discovery API event into a canonical Event.

    Args:
        raw: Event object from ``_embedded.events``
        segment_key: Segment the event was requested under
        source_id: Datasource id stamped on the event

    Returns:
        Event, or None if the record has no id
    """
    if not isinstance(raw, dict) or raw.get('id') is None:
        return None
    start = (raw.get('dates') or {}).get('start') or {}
    venues = (raw.get('_embedded') or {}).get('venues') or []
    venue = venues[0] if venues and isinstance(venues[0], dict) else {}

    local = None
    if start.get('localDate'):
        local = f"{start['localDate']}T{start.get('localTime') or '00:00:00'}"
    utc = None
    parsed_utc = parse_iso(start.get('dateTime'))
    if parsed_utc is not None:
        utc = format_utc(parsed_utc)
    elif local and venue.get('timezone') and gettz(venue['timezone']):
        parsed_local = parse_iso(local)
        if parsed_local is not None:
            utc = format_utc(parsed_local.replace(tzinfo=gettz(venue['timezone'])))

    genres: List[str] = []
    classifications = []
    for cls in raw.get('classifications') or []:
        if not isinstance(cls, dict):
            continue
        normalized = {'primary': bool(cls.get('primary'))}
        for field_name in ('segment', 'genre', 'subGenre', 'type', 'subType'):
            value = cls.get(field_name) or None
            normalized[field_name] = value
            name = value.get('name') if isinstance(value, dict) else None
            if isinstance(name, str) and name.strip() and name.strip() not in genres:
                genres.append(name.strip())
        classifications.append(normalized)

    images = _format_images(raw.get('images'))
    details: Dict[str, Any] = {
        'classifications': classifications,
        'images': [image.to_dict() for image in images],
        'attractions': _format_attractions((raw.get('_embedded') or {}).get('attractions')),
        'info': raw.get('info'),
        'pleaseNote': raw.get('pleaseNote'),
    }
    for field_name in DETAIL_LIST_FIELDS + DETAIL_OBJECT_FIELDS:
        details[field_name] = raw.get(field_name)
    details = {key: value for key, value in details.items() if not _is_empty(value)}

    distance = raw.get('distance')
    state = venue.get('state') or {}
    country = venue.get('country') or {}
    return Event(
        id=str(raw['id']),
        name=raw.get('name') or '',
        source=source_id,
        start=EventTime(local=local, utc=utc),
        url=raw.get('url') or '',
        venue=Venue(
            name=venue.get('name') or '',
            address=Address(
                city=(venue.get('city') or {}).get('name') or '',
                region=state.get('stateCode') or state.get('name') or '',
                country=country.get('countryCode') or country.get('name') or '',
            ),
        ),
        segment=segment_key,
        genres=genres,
        distance=float(distance) if isinstance(distance, (int, float)) and not isinstance(distance, bool) else None,
        summary=raw.get('info') or raw.get('pleaseNote') or '',
        images=images,
        extensions={'ticketmaster': details} if details else {},
    )


class TicketmasterProvider(BaseProvider):
    """Structured-API adapter querying each configured segment in parallel."""

    type = 'ticketmaster'
    API_URL = 'https://app.ticketmaster.com/discovery/v2/events.json'
    CACHE_COLLECTION = 'ticketmasterCache'
    CACHE_TTL_SECONDS = 15 * 60
    CACHE_VERSION = 'v1'
    PAGE_SIZE = 100

    def fetch(self, source: ProviderConfig, context: QueryContext) -> ProviderResult:
        """
        Fetch events around the query point for the lookahead window.

        Args:
            source: Datasource config (``config.segments`` overrides the defaults)
            context: Normalized query

        Returns:
            ProviderResult with merged events and per-segment summaries

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: If every segment request failed
        """
        if not self.settings.ticketmaster_api_key:
            raise ConfigurationError(
                'Ticketmaster API key missing', status=500, code='ticketmaster_api_key_missing'
            )

        segments = self._resolve_segments(source)
        start_dt = utc_now().replace(minute=0, second=0, microsecond=0)
        end_dt = start_dt + timedelta(days=context.lookahead_days)
        start_date_time, end_date_time = format_utc(start_dt), format_utc(end_dt)
        key_parts = build_cache_key_parts(
            context.latitude, context.longitude, context.radius_miles,
            start_date_time, end_date_time, segments, self.CACHE_VERSION, source.id
        )

        cached = self._read_cached_payload(self.CACHE_COLLECTION, key_parts, self.CACHE_TTL_SECONDS)
        if cached is not None:
            events, payload = cached
            logger.info(f"Using cached Ticketmaster payload ({len(events)} events)")
            return ProviderResult(events=events, cached=True, segments=payload.get('segments') or [])

        with ThreadPoolExecutor(max_workers=len(segments)) as executor:
            results = list(executor.map(
                lambda segment: self._fetch_segment_safely(
                    source.id, context, start_date_time, end_date_time, segment
                ),
                segments
            ))

        combined: Dict[str, Event] = {}
        summaries = []
        successful = False
        for events, summary in results:
            summaries.append(summary)
            if not summary['ok']:
                continue
            successful = True
            for event in events:
                combined.setdefault(event.id, event)

        if not successful:
            raise UpstreamError('Ticketmaster fetch failed', status=502, code='ticketmaster_fetch_failed')

        events = self.processor.process_events(list(combined.values()))
        self._write_cached_payload(
            self.CACHE_COLLECTION,
            key_parts,
            events,
            extra={
                'source': source.id,
                'radiusMiles': context.radius_miles,
                'lookaheadDays': context.lookahead_days,
                'segments': summaries,
            },
            metadata={'count': len(events), 'segments': summaries},
        )
        logger.info(f"Fetched {len(events)} Ticketmaster events across {len(segments)} segments")
        return ProviderResult(events=events, cached=False, segments=summaries)

    def _resolve_segments(self, source: ProviderConfig) -> List[Dict[str, Any]]:
        configured = source.config.get('segments') if isinstance(source.config, dict) else None
        if isinstance(configured, list):
            segments = [segment for segment in configured if isinstance(segment, dict) and segment.get('key')]
            if segments:
                return segments
        return DEFAULT_SEGMENTS

    def _fetch_segment_safely(self, source_id: str, context: QueryContext, start_date_time: str,
                              end_date_time: str, segment: Dict[str, Any]) -> Tuple[List[Event], Dict[str, Any]]:
        try:
            return self._fetch_segment(source_id, context, start_date_time, end_date_time, segment)
        except ProviderError as e:
            logger.error(f"Ticketmaster segment fetch failed ({segment.get('key')}): {e}")
            return [], {
                'key': segment.get('key'),
                'description': segment.get('description'),
                'ok': False,
                'status': e.status,
                'error': e.message or 'Request failed',
            }

    def _fetch_segment(self, source_id: str, context: QueryContext, start_date_time: str,
                       end_date_time: str, segment: Dict[str, Any]) -> Tuple[List[Event], Dict[str, Any]]:
        params = {
            'apikey': self.settings.ticketmaster_api_key,
            'latlong': f"{context.latitude},{context.longitude}",
            'radius': str(context.radius_miles),
            'unit': 'miles',
            'size': str(self.PAGE_SIZE),
            'sort': 'date,asc',
            'startDateTime': start_date_time,
            'endDateTime': end_date_time,
        }
        for key, value in (segment.get('params') or {}).items():
            if value is not None:
                params[key] = value

        data = self.http.get_json(self.API_URL, params=params)
        raw_events = ((data or {}).get('_embedded') or {}).get('events') or []
        events = [
            event for event in (format_event(raw, segment.get('key'), source_id) for raw in raw_events) if event
        ]
        raw_total = ((data or {}).get('page') or {}).get('totalElements')
        return events, {
            'key': segment.get('key'),
            'description': segment.get('description'),
            'ok': True,
            'status': 200,
            'total': len(events),
            'rawTotal': raw_total if isinstance(raw_total, int) else None,
        }
