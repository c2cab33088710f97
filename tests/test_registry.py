"""Unit tests for settings and the datasource registry."""
import json

import pytest

from config import Settings, parse_cutoff
from processor.models import ProviderConfig
from providers.black_cat import BlackCatProvider
from providers.http import HttpClient
from providers.ical import IcalProvider
from providers.registry import (
    build_default_datasources,
    build_providers,
    find_datasource,
    load_datasources,
    normalize_datasource,
    normalize_datasource_id,
)
from providers.rss import RssProvider


class TestSettings:
    """Test environment parsing."""

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.cache_table_name == 'live-shows-cache'
        assert settings.ticketmaster_api_key == ''
        assert settings.weekday_cutoff == (16, 30)
        assert settings.rendered_image_fallback is False

    def test_api_key_aliases(self):
        assert Settings.from_env({'TICKETMASTER_KEY': ' abc '}).ticketmaster_api_key == 'abc'
        assert Settings.from_env({
            'TICKETMASTER_API_KEY': 'primary', 'TICKETMASTER_CONSUMER_KEY': 'other'
        }).ticketmaster_api_key == 'primary'

    def test_overrides(self):
        settings = Settings.from_env({
            'CACHE_TABLE_NAME': 'shows',
            'IMAGE_HYDRATION_LIMIT': '5',
            'REQUEST_TIMEOUT_SECONDS': 'soon',
            'RENDERED_IMAGE_FALLBACK': 'true',
            'WEEKDAY_CUTOFF': '17:15',
        })
        assert settings.cache_table_name == 'shows'
        assert settings.image_hydration_limit == 5
        assert settings.request_timeout_seconds == 10
        assert settings.rendered_image_fallback is True
        assert settings.weekday_cutoff == (17, 15)

    @pytest.mark.parametrize('value, expected', [
        ('16:30', (16, 30)),
        ('7:05', (7, 5)),
        ('25:00', (16, 30)),
        ('noon', (16, 30)),
        (None, (16, 30)),
    ])
    def test_parse_cutoff(self, value, expected):
        assert parse_cutoff(value) == expected


class TestNormalizeDatasource:
    """Test datasource record normalization."""

    @pytest.mark.parametrize('value, expected', [
        ('Black Cat', 'black-cat'),
        ('  DC__Improv!! ', 'dc__improv'),
        ('--rss--feed--', 'rss-feed'),
        ('x' * 80, 'x' * 64),
        (None, ''),
    ])
    def test_normalize_id(self, value, expected):
        assert normalize_datasource_id(value) == expected

    def test_defaults_applied(self):
        source = normalize_datasource({'key': 'Club Feed', 'feedUrl': 'https://club.test/rss'})

        assert source == ProviderConfig(
            id='club-feed', name='club-feed', type='ticketmaster', enabled=True, order=0,
            description='', config={'feedUrl': 'https://club.test/rss'}
        )

    def test_explicit_fields(self):
        source = normalize_datasource({
            'id': 'venue', 'name': ' The Venue ', 'type': 'ICAL', 'enabled': False,
            'order': '4', 'description': ' calendar ', 'config': {'feedUrl': 'https://venue.test/a.ics'},
        })
        assert source.name == 'The Venue'
        assert source.type == 'ical'
        assert source.enabled is False
        assert source.order == 4
        assert source.description == 'calendar'

    def test_invalid_order_defaults_to_zero(self):
        assert normalize_datasource({'id': 'a', 'order': 'first'}).order == 0

    def test_unusable_records(self):
        assert normalize_datasource('not a dict') is None
        assert normalize_datasource({'name': 'No id'}) is None
        assert normalize_datasource({'name': 'No id'}, fallback_id='fallback').id == 'fallback'


class TestLoadDatasources:
    """Test loading datasources from disk."""

    def test_no_path_uses_defaults(self):
        sources = load_datasources('')
        assert [source.id for source in sources] == ['ticketmaster', 'dcimprov', 'smithsonian', 'blackcat']

    def test_loads_and_sorts(self, tmp_path):
        path = tmp_path / 'sources.json'
        path.write_text(json.dumps({'sources': [
            {'id': 'zeta', 'name': 'Zeta', 'type': 'rss', 'order': 1},
            {'id': 'beta', 'name': 'Beta', 'type': 'rss', 'order': 1},
            {'id': 'alpha', 'name': 'Alpha', 'type': 'ical', 'order': 0},
            'garbage',
        ]}))

        assert [source.id for source in load_datasources(str(path))] == ['alpha', 'beta', 'zeta']

    def test_plain_list(self, tmp_path):
        path = tmp_path / 'sources.json'
        path.write_text(json.dumps([{'id': 'only', 'type': 'rss'}]))

        assert [source.id for source in load_datasources(str(path))] == ['only']

    @pytest.mark.parametrize('content', ['{not json', '[]', '{"sources": "nope"}'])
    def test_unusable_file_falls_back_to_defaults(self, tmp_path, content):
        path = tmp_path / 'sources.json'
        path.write_text(content)

        assert load_datasources(str(path)) == build_default_datasources()

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        assert load_datasources(str(tmp_path / 'absent.json')) == build_default_datasources()

    def test_find_datasource(self):
        sources = build_default_datasources()
        assert find_datasource(sources, 'BlackCat').id == 'blackcat'
        assert find_datasource(sources, 'unknown') is None
        assert find_datasource(sources, '') is None


class TestBuildProviders:
    """Test the provider table."""

    def test_provider_types(self, settings):
        hydrator = object()
        providers = build_providers(settings, HttpClient(), hydrator=hydrator)

        assert sorted(providers) == ['blackcat', 'dcimprov', 'ical', 'rss', 'ticketmaster']
        assert isinstance(providers['rss'], RssProvider)
        assert isinstance(providers['ical'], IcalProvider)
        assert isinstance(providers['blackcat'], BlackCatProvider)
        assert providers['rss'].hydrator is hydrator
        assert providers['rss'].processor is providers['ticketmaster'].processor
