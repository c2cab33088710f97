"""Generic RSS/Atom adapter (Trumba-aware)."""
import logging
import re
from typing import List, Optional, Tuple

from processor.dates import (
    extract_dates_from_description, find_first_iso_date, first_parseable_date, is_category_date_like,
    is_event_in_lookahead, parse_category_date, parse_date_value
)
from processor.geo import distance_miles
from processor.identity import build_feed_event_id
from processor.images import extract_first_image_url
from processor.models import Event, EventImage, EventTime, ProviderConfig, QueryContext
from processor.text import (
    clean_text, extract_labeled_detail, extract_xml_attribute, extract_xml_blocks, extract_xml_link,
    extract_xml_value, extract_xml_values
)
from providers.errors import ParseError
from providers.feeds import FeedProvider, build_feed_venue

logger = logging.getLogger(__name__)

ITEM_LIMIT = 500
_FEED_ROOT = re.compile(r'<(?:rss|feed|rdf:RDF|channel)\b', re.IGNORECASE)
SMITHSONIAN_SOURCE_ID = 'smithsonian'

START_TAGS = [
    'trumba:startdatetime', 'trumba:startdate', 'trumba:startdatetimeutc', 'trumba:startdateutc',
    'x-trumba:startdatetime', 'x-trumba:startdate', 'x-trumba:startdatetimeutc', 'x-trumba:startdateutc',
    'ev:startdate', 'ev:startdatetime', 'dtstart', 'startdate', 'startdatetime', 'start',
    'published', 'updated',
]
END_TAGS = [
    'trumba:enddatetime', 'trumba:enddate', 'trumba:enddatetimeutc', 'trumba:enddateutc',
    'x-trumba:enddatetime', 'x-trumba:enddate', 'x-trumba:enddatetimeutc', 'x-trumba:enddateutc',
    'ev:enddate', 'ev:enddatetime', 'dtend', 'enddate', 'enddatetime', 'end',
]
LOCATION_TAGS = [
    'trumba:location', 'x-trumba:location', 'location', 'geo:placename', 'ev:location', 'event:location',
]


def _parse_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_coordinates(item_xml: str) -> Tuple[Optional[float], Optional[float]]:
    """Item coordinates from ``geo:lat``/``geo:long`` or a ``georss:point``."""
    lat = _parse_float(extract_xml_value(item_xml, ['geo:lat', 'georss:lat']))
    lon = _parse_float(extract_xml_value(item_xml, ['geo:long', 'georss:long', 'georss:lon']))
    if lat is None or lon is None:
        parts = extract_xml_value(item_xml, 'georss:point').split()
        if len(parts) >= 2:
            lat = _parse_float(parts[0]) if _parse_float(parts[0]) is not None else lat
            lon = _parse_float(parts[1]) if _parse_float(parts[1]) is not None else lon
    return lat, lon


def _first_date(item_xml: str, tag_names: List[str], default_tz: str) -> Optional[str]:
    return first_parseable_date(
        (extract_xml_value(item_xml, name) for name in tag_names), default_tz
    )


def parse_item(item_xml: str, source: ProviderConfig, context: QueryContext,
               default_tz: str) -> Optional[Event]:
    """
    Convert one ``<item>``/``<entry>`` into an Event.

    Args:
        item_xml: Raw item markup
        source: Datasource config
        context: Normalized query
        default_tz: Zone for dates without an offset

    Returns:
        Event, or None when the item falls outside the lookahead window
    """
    title = clean_text(extract_xml_value(item_xml, 'title')) or 'Untitled event'
    guid = extract_xml_value(item_xml, ['guid', 'id'])
    link = extract_xml_link(item_xml).strip()
    description_raw = extract_xml_value(item_xml, ['content:encoded', 'description', 'summary'])
    summary = clean_text(description_raw)

    start = _first_date(item_xml, START_TAGS, default_tz)
    if not start:
        start = (
            parse_date_value(extract_xml_value(item_xml, ['pubDate', 'dc:date']), default_tz)
            or find_first_iso_date(item_xml, default_tz)
        )
    end = _first_date(item_xml, END_TAGS, default_tz)
    categories = [value for value in (clean_text(raw) for raw in extract_xml_values(item_xml, 'category')) if value]
    if not start:
        start = parse_category_date(categories, default_tz)
    description_start, description_end = extract_dates_from_description(summary, default_tz)
    start = start or description_start
    end = end or description_end
    if not is_event_in_lookahead(start, end, context.lookahead_days):
        return None

    is_smithsonian = source.id == SMITHSONIAN_SOURCE_ID
    location = clean_text(extract_xml_value(item_xml, LOCATION_TAGS))
    if not location and is_smithsonian:
        location = extract_labeled_detail(description_raw, 'Venue')

    image_url = (
        extract_xml_attribute(item_xml, 'media:content', 'url')
        or extract_xml_attribute(item_xml, 'media:thumbnail', 'url')
        or extract_xml_attribute(item_xml, 'enclosure', 'url')
        or extract_first_image_url(description_raw)
    )

    alternate_links = [
        value.strip() for value in (
            extract_xml_value(item_xml, 'x-trumba:ealink'),
            extract_xml_value(item_xml, 'x-trumba:weblink'),
        ) if value and value.strip()
    ]

    genre_sources = categories
    if is_smithsonian:
        detail = extract_labeled_detail(description_raw, 'Categories')
        detail_categories = [value for value in (clean_text(part) for part in re.split(r'[;,]', detail)) if value]
        if detail_categories:
            genre_sources = detail_categories
    genres = [category for category in genre_sources if not is_category_date_like(category)]
    if is_smithsonian and 'museum' not in {genre.strip().lower() for genre in genres}:
        genres.append('Museum')

    lat, lon = extract_coordinates(item_xml)
    event = Event(
        id=build_feed_event_id(source.id, guid, title, start, link),
        name=title,
        source=source.id,
        start=EventTime(local=start, utc=start),
        end=EventTime(local=end, utc=end) if end else None,
        url=link,
        alternate_links=alternate_links,
        venue=build_feed_venue(source, location),
        genres=genres,
        distance=distance_miles(context.latitude, context.longitude, lat, lon),
        summary=summary,
    )
    if image_url:
        event.images = [EventImage(url=image_url, fallback=True)]
    return event


def parse_feed(xml: str, source: ProviderConfig, context: QueryContext, default_tz: str) -> List[Event]:
    """
    Parse RSS ``<item>`` elements (or Atom ``<entry>`` elements), capped at 500.

    Raises:
        ParseError: If the body is not an RSS/Atom document
    """
    if not xml or not isinstance(xml, str):
        return []
    if not _FEED_ROOT.search(xml):
        raise ParseError('Response is not an RSS or Atom document')
    items = extract_xml_blocks(xml, 'item', ITEM_LIMIT) or extract_xml_blocks(xml, 'entry', ITEM_LIMIT)
    events = []
    for item_xml in items:
        try:
            event = parse_item(item_xml, source, context, default_tz)
        except Exception as e:
            logger.warning(f"Failed to parse feed item from {source.id}: {e}")
            continue
        if event is not None:
            events.append(event)
    return events


class RssProvider(FeedProvider):
    """RSS 2.0 / Atom feeds configured by ``config.feedUrl``."""

    type = 'rss'
    KEY_PREFIX = 'rss'

    def load_events(self, source: ProviderConfig, context: QueryContext, feed_url: str) -> List[Event]:
        xml = self.http.get_text(
            feed_url,
            headers={
                'Accept': 'application/rss+xml, application/xml, text/xml, */*',
                'User-Agent': 'LiveShowsRSS/1.0',
            }
        )
        try:
            return parse_feed(xml, source, context, self.feed_time_zone(source))
        except ParseError as e:
            logger.warning(f"Unparseable feed from {source.id}: {e.message}")
            return []
