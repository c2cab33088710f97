"""Deterministic event ID derivation."""
import re
from typing import Optional

SLUG_MAX_LENGTH = 80
URL_FRAGMENT_LENGTH = 40


def slugify(value: Optional[str], max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Lowercase a value and collapse non-alphanumerics to single hyphens.

    Args:
        value: Text to slugify
        max_length: Maximum slug length (default: 80)

    Returns:
        Slug with no leading or trailing hyphens (may be empty)
    """
    text = str(value or '').lower()
    text = re.sub(r'[^a-z0-9]+', '-', text).strip('-')
    return text[:max_length]


def _date_part(iso_value: Optional[str]) -> str:
    if not iso_value:
        return 'date-unknown'
    return iso_value.split('T', 1)[0]


def build_listing_event_id(
    provider_id: str,
    name: Optional[str],
    start_iso: Optional[str],
    url: Optional[str] = None
) -> str:
    """
    Build the ID of an event scraped from a listing page.

    Format: ``{provider}::{slug(name)}::{date}[::{url-fragment}]`` where the
    URL fragment is the link without its scheme, cut to 40 characters.
    """
    slug = slugify(name or 'show') or 'show'
    event_id = f"{provider_id}::{slug}::{_date_part(start_iso)}"
    if url:
        fragment = re.sub(r'^https?://', '', url, flags=re.IGNORECASE)[:URL_FRAGMENT_LENGTH]
        if fragment:
            event_id = f"{event_id}::{fragment}"
    return event_id


def build_feed_event_id(
    provider_id: str,
    guid: Optional[str],
    title: Optional[str],
    start_iso: Optional[str],
    link: Optional[str] = None
) -> str:
    """
    Build the ID of an RSS/iCal item.

    The feed's own identifier (GUID/UID) is preferred, then the link, then
    the title.
    """
    base = guid or link or title or 'event'
    slug = slugify(base) or 'event'
    return f"{provider_id}::{slug}::{_date_part(start_iso)}"
