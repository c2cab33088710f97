"""Black Cat (DC) schedule scraper."""
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from processor.dates import MONTH_NAMES, format_local, resolve_listing_year
from processor.geo import distance_miles
from processor.identity import build_listing_event_id
from processor.images import extract_meta_content
from processor.models import (
    Address, Event, EventImage, EventTime, ImageQuota, ProviderConfig, ProviderResult, QueryContext, Venue
)
from providers.base import BaseProvider
from providers.dc_improv import normalize_href
from providers.html_tokens import Token, tokenize_html

logger = logging.getLogger(__name__)

SOURCE_ID = 'blackcat'
SCHEDULE_URL = 'https://www.blackcatdc.com/schedule.html'
LATITUDE = 38.9147
LONGITUDE = -77.0319
VENUE_NAME = 'Black Cat'
GENRES = ['Music']
IMAGE_FETCH_LIMIT = 12
MAX_PENDING_IMAGES = 3

_DATE_HEADING = re.compile(
    r'^(?:(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?,?\s+)?'
    r'(January|February|March|April|May|June|July|August|September|October|November|December)'
    r'\s+(\d{1,2})\b',
    re.IGNORECASE
)
_DOORS_TIME = re.compile(r'doors?\s*(?:at)?\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?', re.IGNORECASE)
_SHOW_TIME = re.compile(r'show(?:time)?\s*(?:at)?\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?', re.IGNORECASE)
_GENERIC_TIME = re.compile(r'\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b', re.IGNORECASE)
_SUFFIX = re.compile(r'\b(early show|late show|matinee)\b', re.IGNORECASE)
_STATUS = re.compile(r'(sold out|postponed|cancelled)', re.IGNORECASE)
_LATE_STATUS = re.compile(r'(tickets on sale|sold out|postponed|cancelled)', re.IGNORECASE)
_NOT_A_TITLE = re.compile(
    r'(image|missing image|doors?\s|showtime|show at|tickets on sale|sold out|postponed|cancelled|'
    r'red room|concert room|early show|late show|matinee)',
    re.IGNORECASE
)
_BUTTON_IMAGE = re.compile(r'buy-button|ticket|button', re.IGNORECASE)
_HEADER_IMAGE = re.compile(r'header|logo|nav|banner|bg|site|blackcat-logo', re.IGNORECASE)


def parse_date_heading(line: str, today: date) -> Optional[Tuple[int, int, int]]:
    """Return (year, month, day) for a line such as ``Friday March 8``."""
    match = _DATE_HEADING.match(line.strip())
    if not match:
        return None
    month = MONTH_NAMES.index(match.group(1).lower()) + 1
    day = int(match.group(2))
    year = resolve_listing_year(month, day, today)
    try:
        date(year, month, day)
    except ValueError:
        return None
    return year, month, day


def parse_show_time(line: str) -> Optional[Tuple[int, int]]:
    """
    Read doors time, then show time, then any clock time from a line.

    Hours without am/pm are evening hours.
    """
    normalized = re.sub(r'\s+', ' ', line or '').strip()
    for pattern in (_DOORS_TIME, _SHOW_TIME, _GENERIC_TIME):
        match = pattern.search(normalized)
        if not match:
            continue
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        meridiem = (match.group(3) or '').lower()
        if meridiem == 'pm' and hour != 12:
            hour += 12
        elif meridiem == 'am' and hour == 12:
            hour = 0
        elif not meridiem and hour != 12:
            hour += 12
        if hour > 23 or minute > 59:
            return None
        return hour, minute
    return None


def is_title_candidate(line: Optional[str]) -> bool:
    """Headliners are printed in capitals; status and time lines are not titles."""
    cleaned = (line or '').strip()
    if not cleaned or _NOT_A_TITLE.search(cleaned):
        return False
    letters = re.sub(r'[^a-zA-Z]', '', cleaned)
    return bool(letters) and letters == letters.upper()


def venue_name_for_detail(detail_line: Optional[str]) -> str:
    lower = (detail_line or '').lower()
    if 'red room' in lower:
        return f"{VENUE_NAME} - Red Room"
    if 'concert room' in lower:
        return f"{VENUE_NAME} - Concert Room"
    return VENUE_NAME


def extract_page_image(html: Optional[str], base_url: str) -> str:
    """
    Pick the artwork on a Black Cat event page.

    Tries og:image, then the image of the ``band-photo`` block, then the
    first ``/images/`` asset, skipping site chrome (header, logo, banners).
    """
    if not html:
        return ''
    candidates = [extract_meta_content(html, 'og:image')]
    soup = BeautifulSoup(html, 'html.parser')
    band_photo = soup.find(class_=re.compile('band-photo'))
    if band_photo is not None:
        img = band_photo if band_photo.name == 'img' and band_photo.get('src') else band_photo.find_next('img', src=True)
        candidates.append(img.get('src') if img is not None else '')
    asset = soup.find('img', src=re.compile(r'/images/'))
    candidates.append(asset.get('src') if asset is not None else '')

    for candidate in candidates:
        url = normalize_href(candidate, base_url)
        if url and not _HEADER_IMAGE.search(url):
            return url
    return ''


@dataclass
class _Show:
    name: str = ''
    url: str = ''
    summary_parts: List[str] = field(default_factory=list)
    extra_titles: List[str] = field(default_factory=list)
    images: List[EventImage] = field(default_factory=list)
    last_event: Optional[Event] = None


class BlackCatParser:
    """State machine over the tokenized schedule page."""

    def __init__(self, today: Optional[date] = None, source_id: str = SOURCE_ID):
        self.today = today or date.today()
        self.source_id = source_id
        self.events: List[Event] = []
        self.current_date: Optional[Tuple[int, int, int]] = None
        self.show: Optional[_Show] = None
        self.pending_flags: List[str] = []
        self.pending_images: List[EventImage] = []

    def parse(self, html: str) -> List[Event]:
        for token in tokenize_html(html):
            self._handle(token)
        self._finalize_pending()
        return self.events

    def _handle(self, token: Token) -> None:
        if token.kind == 'text':
            heading = parse_date_heading(token.text, self.today)
            if heading:
                self._finalize_pending()
                self.current_date = heading
                return
        if self.current_date is None:
            return

        if token.kind == 'link':
            self._handle_link(token)
        elif token.kind == 'image':
            self._handle_image(token)
        else:
            self._handle_text(token.text)

    def _handle_link(self, token: Token) -> None:
        if self.show is None or self.show.last_event is not None:
            self.show = _Show()
        text = token.text.strip()
        if not is_title_candidate(text):
            return
        if not self.show.name:
            self._name_show(text)
            self.show.url = normalize_href(token.href, SCHEDULE_URL)
        else:
            self.show.extra_titles.append(text)
            if not self.show.url:
                self.show.url = normalize_href(token.href, SCHEDULE_URL)

    def _handle_image(self, token: Token) -> None:
        url = normalize_href(token.href, SCHEDULE_URL)
        if not url or _BUTTON_IMAGE.search(url):
            return
        image = EventImage(url=url)
        if self.show is not None and self.show.last_event is None:
            self.show.images.append(image)
        else:
            self.pending_images.append(image)
            del self.pending_images[:-MAX_PENDING_IMAGES]

    def _handle_text(self, line: str) -> None:
        if self.show is None and _STATUS.search(line):
            self.pending_flags.append(line)
            return

        starts_new_show = self.show is not None and self.show.last_event is not None and is_title_candidate(line)
        if self.show is None or starts_new_show or not self.show.name:
            if is_title_candidate(line):
                if self.show is None or starts_new_show:
                    self.show = _Show()
                self._name_show(line.strip())
            return

        time = parse_show_time(line)
        if time:
            self._push_event(self.show, time, line)
            return

        last_event = self.show.last_event
        if last_event is not None and _LATE_STATUS.search(line):
            last_event.summary = f"{last_event.summary} · {line}" if last_event.summary else line
            return
        self.show.summary_parts.append(line)

    def _name_show(self, name: str) -> None:
        self.show.name = name
        if self.pending_flags:
            self.show.summary_parts.extend(self.pending_flags)
            self.pending_flags = []
        if self.pending_images and not self.show.images:
            self.show.images.append(self.pending_images[0])
        self.pending_images = []

    def _push_event(self, show: _Show, time: Optional[Tuple[int, int]], detail_line: Optional[str]) -> None:
        if not show.name or self.current_date is None:
            return
        hour, minute = time or (20, 0)
        local = format_local(*self.current_date, hour, minute)
        suffix_match = _SUFFIX.search(detail_line or '')
        name = f"{show.name} - {suffix_match.group(1).title()}" if suffix_match else show.name

        summary_parts = []
        if show.extra_titles:
            summary_parts.append(' / '.join(show.extra_titles))
        summary_parts.extend(show.summary_parts)
        if detail_line:
            summary_parts.append(detail_line)

        url = show.url or SCHEDULE_URL
        event = Event(
            id=build_listing_event_id(self.source_id, name, local, url),
            name=name,
            source=self.source_id,
            start=EventTime(local=local),
            url=url,
            venue=Venue(name=venue_name_for_detail(detail_line), address=Address('Washington', 'DC', 'US')),
            segment='music',
            genres=list(GENRES),
            summary=' · '.join(summary_parts),
            images=show.images[:1],
        )
        self.events.append(event)
        show.last_event = event

    def _finalize_pending(self) -> None:
        if self.show is not None and self.show.name and self.show.last_event is None:
            self._push_event(self.show, None, None)
        self.show = None
        self.pending_flags = []


class BlackCatProvider(BaseProvider):
    """Scrapes the Black Cat schedule and hydrates artwork from event pages."""

    type = 'blackcat'
    CACHE_COLLECTION = 'blackCatCache'
    CACHE_TTL_SECONDS = 30 * 60
    CACHE_KEY = ['blackcat', 'v2']

    def cache_key(self, source: ProviderConfig) -> List[str]:
        """Listing cache key; datasources under another id cache separately."""
        if source.id == SOURCE_ID:
            return self.CACHE_KEY
        return self.CACHE_KEY + [source.id]

    def __init__(self, settings, http, cache=None, processor=None, hydrator=None):
        super().__init__(settings, http, cache, processor)
        self.hydrator = hydrator

    def fetch(self, source: ProviderConfig, context: QueryContext) -> ProviderResult:
        cached = self._read_cached_payload(self.CACHE_COLLECTION, self.cache_key(source), self.CACHE_TTL_SECONDS)
        if cached is not None:
            events, _ = cached
            logger.info(f"Using cached Black Cat schedule ({len(events)} events)")
            return ProviderResult(events=self._apply_distance(events, context), cached=True)

        html = self.http.get_text(
            source.config.get('url') or SCHEDULE_URL, headers={'Accept': 'text/html,application/xhtml+xml'}
        )
        events = BlackCatParser(source_id=source.id).parse(html)
        if self.hydrator is not None and source.config.get('fetchImageFromLink') is not False:
            limit = source.config.get('imageFetchLimit', IMAGE_FETCH_LIMIT)
            parent = context.image_quota
            quota = parent.child(limit) if parent is not None else ImageQuota(limit)
            self.hydrator.hydrate(events, quota, page_extractor=self._fetch_page_image)
        events = self.processor.process_events(events)

        self._write_cached_payload(
            self.CACHE_COLLECTION, self.cache_key(source), events,
            extra={'source': source.id}, metadata={'count': len(events)}
        )
        logger.info(f"Scraped {len(events)} Black Cat shows")
        return ProviderResult(events=self._apply_distance(events, context), cached=False)

    def _fetch_page_image(self, url: str) -> str:
        if not re.search(r'blackcatdc\.com', url or '', re.IGNORECASE):
            return ''
        html = self.hydrator.fetch_html(url, user_agent='LiveShowsBot/1.0')
        return extract_page_image(html, url)

    def _apply_distance(self, events: List[Event], context: QueryContext) -> List[Event]:
        distance = distance_miles(context.latitude, context.longitude, LATITUDE, LONGITUDE)
        if distance is not None:
            for event in events:
                event.distance = distance
        return events
