"""Post-merge filtering, sorting and de-duplication of canonical events."""
import logging
from datetime import date
from typing import Any, Collection, Dict, Iterable, List, Optional, Tuple

from processor.dates import local_to_utc, parse_iso, parse_local_parts
from processor.models import Event
from processor.text import clean_text

logger = logging.getLogger(__name__)


def _normalize_token(value: Any) -> str:
    return clean_text(value if isinstance(value, str) else '').lower()


def _normalize_list(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [token for token in (_normalize_token(value) for value in values) if token]


def _token_matches(token: str, value: str) -> bool:
    if not token or not value:
        return False
    return token == value or token in value or value in token


def _has_token_match(values: List[str], tokens: List[str]) -> bool:
    return any(_token_matches(token, value) for token in tokens for value in values)


def apply_source_event_filters(events: List[Event], config: Optional[Dict[str, Any]]) -> List[Event]:
    """
    Apply a datasource's include/exclude genre and keyword lists.

    Genre tokens match loosely (equality or containment either way) against
    the event genres and the event's text; keywords are substring matches
    against name, summary, venue name and genres.

    Args:
        events: Events produced by one datasource
        config: Datasource config dict

    Returns:
        Events that pass every configured list
    """
    if not events:
        return []
    config = config if isinstance(config, dict) else {}
    include_genres = _normalize_list(config.get('includeGenres'))
    exclude_genres = _normalize_list(config.get('excludeGenres'))
    include_keywords = _normalize_list(config.get('includeKeywords'))
    exclude_keywords = _normalize_list(config.get('excludeKeywords'))
    if not (include_genres or exclude_genres or include_keywords or exclude_keywords):
        return list(events)

    kept = []
    for event in events:
        genre_tokens = _normalize_list(event.genres)
        text_blob = _normalize_token(
            ' '.join([event.name or '', event.summary or '', event.venue.name or ''] + genre_tokens)
        )
        genre_like = genre_tokens + [text_blob] if text_blob else genre_tokens

        if include_genres and not _has_token_match(genre_like, include_genres):
            continue
        if exclude_genres and _has_token_match(genre_like, exclude_genres):
            continue
        if include_keywords and not any(token in text_blob for token in include_keywords):
            continue
        if exclude_keywords and any(token in text_blob for token in exclude_keywords):
            continue
        kept.append(event)
    return kept


def is_weekday_before_cutoff(event: Event, cutoff: Tuple[int, int],
                             scoped_sources: Collection[str] = ('ticketmaster',)) -> bool:
    """
    True for a Monday-Friday event whose local start is strictly before ``cutoff``.

    Only events from ``scoped_sources`` are subject to the rule, and only
    when the start carries an hour and minute.
    """
    if event.source and event.source not in scoped_sources:
        return False
    raw = event.start.local or event.start.utc
    parts = parse_local_parts(raw)
    if parts is None or parts.hour is None or parts.minute is None:
        return False
    try:
        weekday = date(parts.year, parts.month, parts.day).weekday()
    except ValueError:
        return False
    if weekday > 4:
        return False
    return (parts.hour, parts.minute) < tuple(cutoff)


def apply_weekday_cutoff(events: Iterable[Event], cutoff: Tuple[int, int],
                         scoped_sources: Collection[str] = ('ticketmaster',)) -> List[Event]:
    return [event for event in events if not is_weekday_before_cutoff(event, cutoff, scoped_sources)]


def _resolved_start(event: Event, local_tz: Optional[str]) -> Optional[float]:
    parsed = parse_iso(event.start.utc) if event.start.utc else None
    if parsed is None and event.start.local:
        parsed = parse_iso(local_to_utc(event.start.local, local_tz))
    return parsed.timestamp() if parsed else None


def sort_events_by_time_and_distance(events: Iterable[Event],
                                     local_tz: Optional[str] = None) -> List[Event]:
    """
    Order by resolved start instant, then distance.

    The start instant is the UTC time, else the local time read in
    ``local_tz``. Events without a start and without a distance sort last
    within their group. The sort is stable.
    """
    def sort_key(event: Event):
        start = _resolved_start(event, local_tz)
        distance = event.distance if isinstance(event.distance, (int, float)) else None
        return (
            start is None,
            start if start is not None else 0.0,
            distance is None,
            distance if distance is not None else 0.0,
        )

    return sorted(events, key=sort_key)


def dedupe_events(events: Iterable[Event]) -> List[Event]:
    """Drop repeated ids; the first occurrence wins."""
    seen = set()
    unique = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique
