"""Sixth & I listing read through a text mirror (the direct iCal feed is bot-protected)."""
import logging
import re
from typing import List, Optional

from processor.dates import is_event_in_lookahead, parse_date_value, to_24_hour, zoned_time_to_utc
from processor.identity import build_feed_event_id
from processor.models import Event, EventImage, EventTime, ProviderConfig, QueryContext
from processor.text import clean_text
from providers.errors import ProviderError
from providers.feeds import build_feed_venue

logger = logging.getLogger(__name__)

SOURCE_ID = 'sixthandi'
MIRROR_URL = 'https://r.jina.ai/http://www.sixthandi.org/events/'
VENUE_LABEL = 'Sixth & I'

_MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}
_DATE_PATTERN = re.compile(
    r'^(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|Aug(?:ust)?|'
    r'Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\s+(\d{1,2}),\s*(\d{4})'
    r'(?:\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm))?',
    re.IGNORECASE
)
_IMAGE_AND_URL = re.compile(
    r'\[!\[[^\]]*\]\((https?://[^)\s]+)\)\]\((https?://www\.sixthandi\.org/event/[^)\s]+)\)',
    re.IGNORECASE
)
_DATE_FIELD = re.compile(
    r'\*\*Date:\*\*\s*(.*?)(?:\s+\*\*Admission:\*\*|\s+\*\*Category:\*\*|\n|$)',
    re.IGNORECASE | re.DOTALL
)
_CATEGORY_FIELD = re.compile(
    r'\*\*Category:\*\*\s*\[([^\]]+)\]\((https?://[^\s)"]+)(?:\s+"[^"]*")?\)',
    re.IGNORECASE
)


def is_sixth_and_i_source(source: ProviderConfig) -> bool:
    if (source.id or '').lower() == SOURCE_ID:
        return True
    return 'sixthandi.org' in str(source.config.get('feedUrl') or '').lower()


def is_challenge_page(text: Optional[str]) -> bool:
    """Cloudflare "Just a moment" interstitial."""
    if not text or not isinstance(text, str):
        return False
    return bool(
        re.search(r'just a moment', text, re.IGNORECASE)
        and re.search(r'cf_chl_opt|cf-mitigated|challenge-platform', text, re.IGNORECASE)
    )


def parse_date_time(raw_value: Optional[str], time_zone: Optional[str]) -> Optional[str]:
    """
    Parse ``Mar 5, 2025 7:30pm ET`` (time optional) into UTC ISO.

    Zone words are ignored; the wall time is read in ``time_zone``.
    """
    if not raw_value or not isinstance(raw_value, str):
        return None
    cleaned = clean_text(raw_value).replace('|', ' ')
    cleaned = re.sub(r'\b(?:ET|EST|EDT)\b', '', cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    if not cleaned:
        return None
    match = _DATE_PATTERN.match(cleaned)
    if not match:
        return parse_date_value(cleaned, time_zone)
    month = _MONTHS[match.group(1)[:3].lower()]
    hour = to_24_hour(int(match.group(4) or 0), match.group(6))
    try:
        return zoned_time_to_utc(
            int(match.group(3)), month, int(match.group(2)), hour, int(match.group(5) or 0), 0, time_zone
        )
    except ValueError:
        return None


def parse_mirror_events(markdown: Optional[str], source: ProviderConfig, context: QueryContext,
                        time_zone: Optional[str]) -> List[Event]:
    """
    Parse the mirrored listing (one markdown block per event card).

    Args:
        markdown: Mirror response body
        source: Datasource config
        context: Normalized query (for the lookahead window)
        time_zone: Zone of the listed wall times

    Returns:
        Events in listing order
    """
    if not markdown or not isinstance(markdown, str):
        return []
    blocks = [
        block for block in re.split(r'\n(?=\[!\[Image)', markdown)
        if '[![Image' in block and 'https://www.sixthandi.org/event/' in block
    ]
    events = []
    for block in blocks:
        card = _IMAGE_AND_URL.search(block)
        if not card:
            continue
        image_url, event_url = card.group(1), card.group(2)
        title_pattern = re.compile(
            rf'\[([^\]]+)\]\({re.escape(event_url)}(?:\s+"[^"]*")?\)', re.IGNORECASE
        )
        title_match = title_pattern.search(block)
        title = clean_text(title_match.group(1)) if title_match else ''
        if not title:
            continue

        date_match = _DATE_FIELD.search(block)
        start = parse_date_time(date_match.group(1) if date_match else '', time_zone)
        if not start or not is_event_in_lookahead(start, None, context.lookahead_days):
            continue

        genres: List[str] = []
        category = _CATEGORY_FIELD.search(block)
        if category:
            name = clean_text(category.group(1))
            category_url = category.group(2).lower()
            if name:
                genres.append(name)
            if '/arts-entertainment/' in category_url:
                genres.append('Talks & Entertainment')
            if '/jewish-life/' in category_url:
                genres.append('Jewish Life')

        summary_chunk = re.split(r'\*\*Date:\*\*', block, maxsplit=1, flags=re.IGNORECASE)[0]
        summary_chunk = _IMAGE_AND_URL.sub(' ', summary_chunk)
        summary_chunk = title_pattern.sub(' ', summary_chunk)
        summary_chunk = re.sub(r'\n-{3,}\n?', ' ', summary_chunk)
        summary_chunk = re.sub(r'\n#{1,6}[^\n]*', ' ', summary_chunk)

        events.append(Event(
            id=build_feed_event_id(source.id, event_url, title, start, event_url),
            name=title,
            source=source.id,
            start=EventTime(local=start, utc=start),
            url=event_url,
            venue=build_feed_venue(source, VENUE_LABEL),
            genres=list(dict.fromkeys(genres)),
            summary=clean_text(summary_chunk),
            images=[EventImage(url=image_url, fallback=True)],
        ))
    return events


def fetch_mirror_events(http, source: ProviderConfig, context: QueryContext,
                        time_zone: Optional[str]) -> List[Event]:
    """Fetch and parse the mirror; any failure yields an empty list."""
    if not is_sixth_and_i_source(source):
        return []
    try:
        response = http.get(
            MIRROR_URL,
            headers={
                'Accept': 'text/plain, text/markdown, text/html, */*',
                'User-Agent': 'LiveShowsRSS/1.0',
            },
            retries=1
        )
    except ProviderError as e:
        logger.warning(f"Sixth & I mirror fetch failed: {e}")
        return []
    if not response.ok:
        logger.warning(f"Sixth & I mirror returned {response.status_code}")
        return []
    return parse_mirror_events(response.text, source, context, time_zone)
