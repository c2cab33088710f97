"""Generic iCalendar adapter."""
import logging
import re
from typing import List, Optional

from processor.dates import is_category_date_like, is_event_in_lookahead, parse_ical_datetime
from processor.identity import build_feed_event_id
from processor.images import extract_first_image_url, resolve_url
from processor.models import Event, EventImage, EventTime, ProviderConfig, QueryContext
from processor.text import (
    IcalProperty, clean_text, decode_ical_text, extract_first_url, iter_vevent_blocks, unfold_ical_lines
)
from providers.errors import ParseError, UpstreamError
from providers.feeds import FeedProvider, build_feed_venue
from providers.sixth_and_i import fetch_mirror_events, is_challenge_page, is_sixth_and_i_source

logger = logging.getLogger(__name__)

_IMAGE_EXTENSION = re.compile(r'\.(png|jpe?g|webp|gif|svg)(\?.*)?$', re.IGNORECASE)


def _find(props: List[IcalProperty], name: str) -> Optional[IcalProperty]:
    return next((prop for prop in props if prop.name == name), None)


def extract_image_url(props: List[IcalProperty], base_url: Optional[str]) -> str:
    """First IMAGE/ATTACH property that is an image by FMTTYPE or file extension."""
    for prop in props:
        if prop.name not in ('IMAGE', 'ATTACH'):
            continue
        raw = decode_ical_text(prop.value).strip()
        if not raw:
            continue
        fmt_type = prop.params.get('FMTTYPE')
        fmt_type = fmt_type.lower() if isinstance(fmt_type, str) else ''
        if fmt_type.startswith('image/') or _IMAGE_EXTENSION.search(raw):
            return resolve_url(raw, base_url)
    return ''


def build_event(props: List[IcalProperty], source: ProviderConfig, context: QueryContext,
                time_zone: Optional[str]) -> Optional[Event]:
    """
    Convert one VEVENT's properties into an Event.

    Returns:
        Event, or None when the event falls outside the lookahead window
    """
    uid_prop = _find(props, 'UID')
    summary_prop = _find(props, 'SUMMARY')
    uid = decode_ical_text(uid_prop.value) if uid_prop else ''
    title = (decode_ical_text(summary_prop.value) if summary_prop else '').strip() or 'Untitled event'

    start_prop = _find(props, 'DTSTART')
    end_prop = _find(props, 'DTEND')
    start = parse_ical_datetime(
        start_prop.value if start_prop else '', start_prop.params.get('TZID') if start_prop else None, time_zone
    )
    end = parse_ical_datetime(
        end_prop.value if end_prop else '', end_prop.params.get('TZID') if end_prop else None, time_zone
    )
    if not is_event_in_lookahead(start, end, context.lookahead_days):
        return None

    alt_desc = _find(props, 'X-ALT-DESC')
    description = ''
    if alt_desc and 'text/html' in str(alt_desc.params.get('FMTTYPE') or '').lower():
        description = decode_ical_text(alt_desc.value)
    if not description:
        description_prop = _find(props, 'DESCRIPTION')
        description = decode_ical_text(description_prop.value) if description_prop else ''

    location_prop = _find(props, 'LOCATION')
    url_prop = _find(props, 'URL')
    url = decode_ical_text(url_prop.value).strip() if url_prop else ''
    if not url and description:
        url = extract_first_url(description)

    categories = []
    for prop in props:
        if prop.name != 'CATEGORIES':
            continue
        categories.extend(value for value in (clean_text(part) for part in decode_ical_text(prop.value).split(',')) if value)

    image_url = extract_image_url(props, url)
    if not image_url and description:
        image_url = resolve_url(extract_first_image_url(description), url)

    event = Event(
        id=build_feed_event_id(source.id, uid or url or title, title, start, url),
        name=title,
        source=source.id,
        start=EventTime(local=start, utc=start),
        end=EventTime(local=end, utc=end) if end else None,
        url=url,
        venue=build_feed_venue(source, clean_text(decode_ical_text(location_prop.value)) if location_prop else ''),
        genres=[category for category in categories if not is_category_date_like(category)],
        summary=clean_text(description),
    )
    if image_url:
        event.images = [EventImage(url=image_url, fallback=True)]
    return event


def parse_calendar(ics: Optional[str], source: ProviderConfig, context: QueryContext,
                   time_zone: Optional[str]) -> List[Event]:
    """
    Parse every VEVENT of a calendar body.

    Raises:
        ParseError: If a non-empty body is not an iCalendar document
    """
    if ics and 'BEGIN:VCALENDAR' not in ics.upper():
        raise ParseError('Response is not an iCalendar document')
    events = []
    for props in iter_vevent_blocks(unfold_ical_lines(ics)):
        try:
            event = build_event(props, source, context, time_zone)
        except Exception as e:
            logger.warning(f"Failed to parse VEVENT from {source.id}: {e}")
            continue
        if event is not None:
            events.append(event)
    return events


class IcalProvider(FeedProvider):
    """iCalendar feeds, with the Sixth & I mirror tried first for that source."""

    type = 'ical'
    KEY_PREFIX = 'ical'

    def is_cacheable(self, source: ProviderConfig) -> bool:
        return not is_sixth_and_i_source(source)

    def feed_time_zone(self, source: ProviderConfig) -> Optional[str]:
        # TZID wins over the override; bare local times without either are UTC
        return source.config.get('timeZone') or None

    def load_events(self, source: ProviderConfig, context: QueryContext, feed_url: str) -> List[Event]:
        time_zone = self.feed_time_zone(source)
        mirror_zone = time_zone or self.settings.local_timezone
        sixth_and_i = is_sixth_and_i_source(source)
        if sixth_and_i:
            mirrored = fetch_mirror_events(self.http, source, context, mirror_zone)
            if mirrored:
                logger.info(f"Using mirrored listing for {source.id}")
                return mirrored

        response = self.http.get(
            feed_url,
            headers={
                'Accept': 'text/calendar, text/plain, */*',
                'User-Agent': 'LiveShowsRSS/1.0',
            }
        )
        text = response.text or ''
        if sixth_and_i and (not response.ok or is_challenge_page(text)):
            mirrored = fetch_mirror_events(self.http, source, context, mirror_zone)
            if mirrored:
                return mirrored
        if not response.ok:
            raise UpstreamError(
                f"iCal request failed with status {response.status_code}", status=response.status_code
            )
        try:
            return parse_calendar(text, source, context, time_zone)
        except ParseError as e:
            logger.warning(f"Unparseable calendar from {source.id}: {e.message}")
            return []
