"""Datasource registry: built-in defaults, JSON overrides and the provider table."""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from processor.event_processor import EventProcessor
from processor.models import ProviderConfig
from providers.base import BaseProvider
from providers.black_cat import SCHEDULE_URL as BLACK_CAT_SCHEDULE_URL
from providers.black_cat import BlackCatProvider
from providers.dc_improv import SHOWS_URL as DC_IMPROV_SHOWS_URL
from providers.dc_improv import DcImprovProvider
from providers.ical import IcalProvider
from providers.rss import RssProvider
from providers.ticketmaster import DEFAULT_SEGMENTS, TicketmasterProvider

logger = logging.getLogger(__name__)

SMITHSONIAN_FEED_URL = 'https://www.trumba.com/calendars/smithsonian-events.rss'


def normalize_datasource_id(value: Any) -> str:
    """Lowercase slug of ``[a-z0-9-_]``, at most 64 characters."""
    if not value:
        return ''
    text = re.sub(r'[^a-z0-9-_]', '-', str(value).strip().lower())
    text = re.sub(r'-+', '-', text)
    return text.strip('-')[:64]


def normalize_datasource(raw: Any, fallback_id: Optional[str] = None) -> Optional[ProviderConfig]:
    """
    Build a ProviderConfig from a raw (JSON) datasource record.

    Args:
        raw: Datasource dict
        fallback_id: Id used when the record has neither ``id`` nor ``key``

    Returns:
        ProviderConfig, or None when the record is unusable
    """
    if not isinstance(raw, dict):
        return None
    source_id = normalize_datasource_id(raw.get('id') or raw.get('key') or fallback_id)
    if not source_id:
        return None
    name = raw.get('name').strip() if isinstance(raw.get('name'), str) and raw.get('name').strip() else source_id
    source_type = raw.get('type').strip().lower() if isinstance(raw.get('type'), str) else ''
    enabled = raw.get('enabled')
    description = raw.get('description').strip() if isinstance(raw.get('description'), str) else ''
    try:
        order = int(raw.get('order', 0))
    except (TypeError, ValueError):
        order = 0
    config = dict(raw['config']) if isinstance(raw.get('config'), dict) else {}
    if raw.get('feedUrl') and not config.get('feedUrl'):
        config['feedUrl'] = str(raw['feedUrl']).strip()
    return ProviderConfig(
        id=source_id,
        name=name,
        type=source_type or 'ticketmaster',
        enabled=True if enabled is None else bool(enabled),
        order=order,
        description=description,
        config=config,
    )


def sort_datasources(sources: List[ProviderConfig]) -> List[ProviderConfig]:
    return sorted(sources, key=lambda source: (source.order, source.name))


def build_default_datasources() -> List[ProviderConfig]:
    """Datasources used when no override file is configured."""
    return [
        ProviderConfig(
            id='ticketmaster',
            name='Ticketmaster',
            type='ticketmaster',
            description='Ticketmaster Discovery API',
            order=0,
            config={'segments': [dict(segment) for segment in DEFAULT_SEGMENTS]},
        ),
        ProviderConfig(
            id='dcimprov',
            name='DC Improv',
            type='dcimprov',
            description='DC Improv shows page',
            order=1,
            config={'url': DC_IMPROV_SHOWS_URL},
        ),
        ProviderConfig(
            id='smithsonian',
            name='Smithsonian',
            type='rss',
            description='Smithsonian events (Trumba RSS)',
            order=2,
            config={
                'feedUrl': SMITHSONIAN_FEED_URL,
                'fetchImageFromLink': True,
                'imageFetchLimit': 25,
                'venue': {'address': {'city': 'Washington', 'region': 'DC', 'country': 'US'}},
            },
        ),
        ProviderConfig(
            id='blackcat',
            name='Black Cat',
            type='blackcat',
            description='Black Cat schedule page',
            order=3,
            config={'url': BLACK_CAT_SCHEDULE_URL},
        ),
    ]


def load_datasources(path: Optional[str] = None) -> List[ProviderConfig]:
    """
    Load datasources from a JSON file, falling back to the defaults.

    The file holds either a list of records or ``{"sources": [...]}``.

    Args:
        path: JSON file path (empty for defaults)

    Returns:
        Sorted list of ProviderConfig
    """
    if not path:
        return build_default_datasources()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            parsed = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read datasources from {path}: {e}")
        return build_default_datasources()

    records = parsed.get('sources') if isinstance(parsed, dict) else parsed
    if not isinstance(records, list):
        logger.warning(f"Datasource file {path} has no source list; using defaults")
        return build_default_datasources()
    sources = [source for source in (normalize_datasource(record) for record in records) if source]
    if not sources:
        return build_default_datasources()
    logger.info(f"Loaded {len(sources)} datasources from {path}")
    return sort_datasources(sources)


def find_datasource(sources: List[ProviderConfig], source_id: str) -> Optional[ProviderConfig]:
    wanted = normalize_datasource_id(source_id)
    if not wanted:
        return None
    return next((source for source in sources if source.id == wanted), None)


def build_providers(settings, http, cache=None, hydrator=None) -> Dict[str, BaseProvider]:
    """Provider table keyed by datasource type."""
    processor = EventProcessor(settings.local_timezone)
    return {
        'ticketmaster': TicketmasterProvider(settings, http, cache, processor),
        'dcimprov': DcImprovProvider(settings, http, cache, processor),
        'blackcat': BlackCatProvider(settings, http, cache, processor, hydrator=hydrator),
        'rss': RssProvider(settings, http, cache, processor, hydrator=hydrator),
        'ical': IcalProvider(settings, http, cache, processor, hydrator=hydrator),
    }
