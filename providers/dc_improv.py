"""DC Improv show listing scraper."""
import logging
import re
from datetime import date
from typing import List, Optional
from urllib.parse import urljoin

from processor.dates import MONTH_NAMES, format_local, resolve_listing_year, to_24_hour
from processor.geo import distance_miles
from processor.identity import build_listing_event_id
from processor.models import Address, Event, EventImage, EventTime, ProviderConfig, ProviderResult, QueryContext, Venue
from providers.base import BaseProvider
from providers.html_tokens import Token, tokenize_html

logger = logging.getLogger(__name__)

SOURCE_ID = 'dcimprov'
SHOWS_URL = 'https://www.dcimprov.com/index.php/shows'
LATITUDE = 38.9055
LONGITUDE = -77.0422
VENUE_NAME = 'DC Improv'
GENRES = ['Comedy']

_DATE_HEADING = re.compile(
    r'^(January|February|March|April|May|June|July|August|September|October|November|December)\s+\d{1,2}',
    re.IGNORECASE
)
_TIME = re.compile(r'(\d{1,2})(?::(\d{2}))?\s*(am|pm)')


def normalize_href(href: Optional[str], base_url: str = SHOWS_URL) -> str:
    """Make listing links absolute (``//host``, ``www.`` and relative paths)."""
    trimmed = (href or '').strip()
    if not trimmed:
        return ''
    if re.match(r'^https?://', trimmed, re.IGNORECASE):
        return trimmed
    if trimmed.startswith('//'):
        return f"https:{trimmed}"
    if trimmed.lower().startswith('www.'):
        return f"https://{trimmed}"
    return urljoin(base_url, trimmed)


def parse_show_time(value: str):
    """Return (hour, minute) from text such as ``7:30 p.m.``, or None."""
    match = _TIME.search((value or '').replace('.', '').lower())
    if not match:
        return None
    hour = to_24_hour(int(match.group(1)), match.group(3))
    return hour, int(match.group(2) or 0)


def parse_date_line(line: str, today: date) -> Optional[str]:
    """
    Parse a date heading like ``March 5 - March 7 @ 7:30 pm``.

    Only the first day of a range is used; missing times default to 20:00.

    Returns:
        Local ISO start or None
    """
    date_part, _, time_part = line.partition('@')
    range_parts = [part.strip() for part in date_part.split('-') if part.strip()]
    if not range_parts:
        return None
    words = range_parts[0].replace(',', ' ').split()
    if len(words) < 2 or words[0].lower() not in MONTH_NAMES:
        return None
    try:
        day = int(words[1])
    except ValueError:
        return None
    month = MONTH_NAMES.index(words[0].lower()) + 1
    year = resolve_listing_year(month, day, today)
    time = parse_show_time(time_part) or (20, 0)
    try:
        date(year, month, day)
    except ValueError:
        return None
    return format_local(year, month, day, time[0], time[1])


def venue_for_detail(line: str) -> Optional[str]:
    """Venue name for a room detail line (``Lounge``, ``Off-Site / The Hamilton``)."""
    parts = [part.strip() for part in line.split('/') if part.strip()]
    if len(parts) >= 2 and 'off-site' in parts[0].lower():
        return parts[1]
    if parts and parts[0].lower() in ('lounge', 'main room'):
        return f"{VENUE_NAME} - {parts[0]}"
    return None


class DcImprovParser:
    """Line-oriented state machine over the tokenized shows page."""

    def __init__(self, today: Optional[date] = None, source_id: str = SOURCE_ID):
        self.today = today or date.today()
        self.source_id = source_id
        self.events: List[Event] = []
        self.current_start: Optional[str] = None
        self.last_event: Optional[Event] = None
        self.pending_image: Optional[EventImage] = None

    def parse(self, html: str) -> List[Event]:
        for token in tokenize_html(html):
            self._handle(token)
        return self.events

    def _attach_image(self, url: str) -> None:
        image = EventImage(url=url)
        if self.last_event is not None:
            self.last_event.images = [image]
        else:
            self.pending_image = image

    def _handle(self, token: Token) -> None:
        if token.kind == 'text' and _DATE_HEADING.match(token.text):
            self.current_start = parse_date_line(token.text, self.today)
            self.last_event = None
            return
        if not self.current_start:
            return

        if token.kind == 'image':
            url = normalize_href(token.href)
            if url:
                self._attach_image(url)
            return

        if token.kind == 'link':
            lower = token.text.lower()
            if 'image' in lower:
                url = normalize_href(token.href)
                if url:
                    self._attach_image(url)
                return
            if 'tickets' in lower:
                if self.last_event is not None and not self.last_event.url:
                    self.last_event.url = normalize_href(token.href)
                return
            self._start_event(token)
            return

        if token.text.lower() == 'image' or self.last_event is None:
            return
        venue_name = venue_for_detail(token.text)
        if venue_name:
            self.last_event.venue.name = venue_name
        elif not self.last_event.summary:
            self.last_event.summary = token.text

    def _start_event(self, token: Token) -> None:
        name = token.text.strip()
        url = normalize_href(token.href)
        event = Event(
            id=build_listing_event_id(self.source_id, name, self.current_start, url),
            name=name,
            source=self.source_id,
            start=EventTime(local=self.current_start),
            url=url,
            venue=Venue(name=VENUE_NAME, address=Address('Washington', 'DC', 'US')),
            segment='comedy',
            genres=list(GENRES),
        )
        if self.pending_image is not None:
            event.images = [self.pending_image]
            self.pending_image = None
        self.events.append(event)
        self.last_event = event


class DcImprovProvider(BaseProvider):
    """Scrapes the DC Improv shows page."""

    type = 'dcimprov'
    CACHE_COLLECTION = 'dcImprovCache'
    CACHE_TTL_SECONDS = 30 * 60
    CACHE_KEY = ['dcimprov', 'v4']

    def cache_key(self, source: ProviderConfig) -> List[str]:
        """Listing cache key; datasources under another id cache separately."""
        if source.id == SOURCE_ID:
            return self.CACHE_KEY
        return self.CACHE_KEY + [source.id]

    def fetch(self, source: ProviderConfig, context: QueryContext) -> ProviderResult:
        cached = self._read_cached_payload(self.CACHE_COLLECTION, self.cache_key(source), self.CACHE_TTL_SECONDS)
        if cached is not None:
            events, _ = cached
            logger.info(f"Using cached DC Improv listing ({len(events)} events)")
            return ProviderResult(events=self._apply_distance(events, context), cached=True)

        html = self.http.get_text(
            source.config.get('url') or SHOWS_URL, headers={'Accept': 'text/html,application/xhtml+xml'}
        )
        events = self.processor.process_events(DcImprovParser(source_id=source.id).parse(html))
        self._write_cached_payload(
            self.CACHE_COLLECTION, self.cache_key(source), events,
            extra={'source': source.id}, metadata={'count': len(events)}
        )
        logger.info(f"Scraped {len(events)} DC Improv shows")
        return ProviderResult(events=self._apply_distance(events, context), cached=False)

    def _apply_distance(self, events: List[Event], context: QueryContext) -> List[Event]:
        distance = distance_miles(context.latitude, context.longitude, LATITUDE, LONGITUDE)
        if distance is not None:
            for event in events:
                event.distance = distance
        return events
