"""Unit tests for the RSS/Atom and iCal adapters (including the Sixth & I mirror)."""
from datetime import datetime, timedelta, timezone

import pytest
import responses

from processor.dates import local_to_utc, zoned_time_to_utc
from processor.models import ProviderConfig, QueryContext
from providers.errors import ConfigurationError, ParseError, UpstreamError
from providers.http import HttpClient
from providers.ical import IcalProvider, parse_calendar
from providers.rss import RssProvider, extract_coordinates, parse_feed
from providers.sixth_and_i import (
    MIRROR_URL,
    is_challenge_page,
    is_sixth_and_i_source,
    parse_date_time,
    parse_mirror_events,
)

SOON = datetime.now(timezone.utc) + timedelta(days=3)
LATER = datetime.now(timezone.utc) + timedelta(days=90)
FEED_URL = 'https://feeds.test/events.rss'
ICAL_URL = 'https://venue.test/events.ics'
SIXTH_AND_I_ICAL_URL = 'https://www.sixthandi.org/events/?ical=1'

SMITHSONIAN = ProviderConfig(
    id='smithsonian', name='Smithsonian', type='rss',
    config={'feedUrl': FEED_URL, 'venue': {'address': {'city': 'Washington', 'region': 'DC', 'country': 'US'}}}
)
GENERIC_RSS = ProviderConfig(id='clubfeed', name='Club Feed', type='rss', config={'feedUrl': FEED_URL})
VENUE_ICAL = ProviderConfig(id='venue', name='Venue', type='ical', config={'feedUrl': ICAL_URL})
SIXTH_AND_I = ProviderConfig(
    id='sixthandi', name='Sixth & I', type='ical', config={'feedUrl': SIXTH_AND_I_ICAL_URL}
)


def rss_feed() -> str:
    soon_local = SOON.strftime('%Y-%m-%dT19:00:00')
    later_local = LATER.strftime('%Y-%m-%dT19:00:00')
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:x-trumba="http://schemas.trumba.com/rss/x-trumba" xmlns:geo="http://www.w3.org/2003/01/geo/wgs84_pos#">
<channel>
<title>Events</title>
<item>
  <title>Jazz in the Garden</title>
  <guid isPermaLink="false">http://uid.trumba.com/event/123</guid>
  <link>https://www.si.edu/events/jazz</link>
  <description><![CDATA[<b>Venue</b>: Sculpture Garden<br/><b>Categories</b>: Music, Outdoors<br/>
  <img src="https://img.test/jazz.jpg" width="600" height="400">]]></description>
  <category>2024/03/05 (Tue)</category>
  <category>Music</category>
  <x-trumba:startdatetime>{soon_local}</x-trumba:startdatetime>
  <x-trumba:ealink>https://www.trumba.com/ea/123</x-trumba:ealink>
  <geo:lat>38.8888</geo:lat>
  <geo:long>-77.0230</geo:long>
</item>
<item>
  <title>Far Future Gala</title>
  <guid>http://uid.trumba.com/event/456</guid>
  <link>https://www.si.edu/events/gala</link>
  <description>Black tie.</description>
  <x-trumba:startdatetime>{later_local}</x-trumba:startdatetime>
</item>
</channel>
</rss>"""


def ical_feed() -> str:
    day = SOON.strftime('%Y%m%d')
    return '\r\n'.join([
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        'BEGIN:VEVENT',
        'UID:evt-1@venue.test',
        'SUMMARY:Zoned Show',
        f'DTSTART;TZID=America/New_York:{day}T200000',
        'URL:https://venue.test/e1',
        'CATEGORIES:Music,Indie',
        'DESCRIPTION:Great show\\, see https://venue.test/more',
        'ATTACH;FMTTYPE=image/jpeg:https://venue.test/e1.jpg',
        'END:VEVENT',
        'BEGIN:VEVENT',
        'UID:evt-2@venue.test',
        'SUMMARY:UTC',
        '  Show',
        f'DTSTART:{day}T200000Z',
        'DESCRIPTION:Tickets https://venue.test/e2',
        'END:VEVENT',
        'END:VCALENDAR',
        '',
    ])


def mirror_markdown() -> str:
    date_text = SOON.strftime('%b %d, %Y')
    return f"""Title: Events | Sixth & I

[![Image 1: Author Talk](https://www.sixthandi.org/wp-content/uploads/talk.jpg)](https://www.sixthandi.org/event/author-talk/)

### [An Evening with An Author](https://www.sixthandi.org/event/author-talk/ "An Evening with An Author")

A conversation about the new book.

**Date:** {date_text} 7:30pm ET **Admission:** $25 **Category:** [Arts & Entertainment](https://www.sixthandi.org/events/arts-entertainment/ "Arts & Entertainment")
"""


class FakeCache:
    """In-memory stand-in for ResponseCache (no TTL handling)."""

    def __init__(self):
        self.entries = {}

    def read(self, collection, key_parts, ttl_seconds):
        return self.entries.get((collection, tuple(key_parts)))

    def write(self, collection, key_parts, entry):
        self.entries[(collection, tuple(key_parts))] = entry
        return True


@pytest.fixture
def context():
    return QueryContext(latitude=38.8888, longitude=-77.0230, lookahead_days=14)


class TestRssParsing:
    """Test RSS item conversion."""

    def test_lookahead_window_drops_far_items(self, context):
        events = parse_feed(rss_feed(), SMITHSONIAN, context, 'America/New_York')
        assert [event.name for event in events] == ['Jazz in the Garden']

    def test_smithsonian_details(self, context):
        event = parse_feed(rss_feed(), SMITHSONIAN, context, 'America/New_York')[0]

        assert event.id.startswith('smithsonian::http-uid-trumba-com-event-123::')
        assert event.url == 'https://www.si.edu/events/jazz'
        assert event.venue.name == 'Sculpture Garden'
        assert event.venue.address.city == 'Washington'
        assert event.genres == ['Music', 'Outdoors', 'Museum']
        assert event.alternate_links == ['https://www.trumba.com/ea/123']
        assert event.images[0].url == 'https://img.test/jazz.jpg'
        assert event.images[0].fallback is True
        assert event.distance == 0.0

    def test_naive_start_read_in_feed_zone(self, context):
        event = parse_feed(rss_feed(), SMITHSONIAN, context, 'America/New_York')[0]
        assert event.start.utc == local_to_utc(SOON.strftime('%Y-%m-%dT19:00:00'), 'America/New_York')

    def test_date_like_categories_are_not_genres(self, context):
        event = parse_feed(rss_feed(), GENERIC_RSS, context, 'America/New_York')[0]
        assert event.genres == ['Music']
        assert event.venue.name == 'Club Feed'

    def test_atom_entries(self, context):
        published = SOON.strftime('%Y-%m-%dT18:00:00Z')
        atom = (
            '<feed xmlns="http://www.w3.org/2005/Atom"><entry>'
            '<title>Atom Show</title><id>tag:feeds.test,2024:1</id>'
            f'<link href="https://feeds.test/atom-show"/><published>{published}</published>'
            '<summary>Doors at 7</summary></entry></feed>'
        )
        events = parse_feed(atom, GENERIC_RSS, context, 'America/New_York')
        assert len(events) == 1
        assert events[0].url == 'https://feeds.test/atom-show'
        assert events[0].start.utc == published

    def test_undated_item_is_kept(self, context):
        xml = '<rss><channel><item><title>Sometime</title><link>https://a.test/s</link></item></channel></rss>'
        events = parse_feed(xml, GENERIC_RSS, context, 'America/New_York')
        assert events[0].start.utc is None

    def test_georss_point(self):
        assert extract_coordinates('<georss:point>38.9 -77.03</georss:point>') == (38.9, -77.03)

    def test_empty_feed(self, context):
        assert parse_feed('', GENERIC_RSS, context, 'America/New_York') == []

    def test_html_body_is_a_parse_error(self, context):
        with pytest.raises(ParseError):
            parse_feed('<html><body>Maintenance</body></html>', GENERIC_RSS, context, 'America/New_York')


class TestRssProvider:
    """Test the RSS provider pipeline."""

    @pytest.fixture
    def provider(self, settings):
        return RssProvider(settings, HttpClient(base_delay=0), cache=FakeCache())

    @responses.activate
    def test_fetch_then_cache_hit(self, provider, context):
        responses.add(responses.GET, FEED_URL, body=rss_feed(), status=200)

        first = provider.fetch(SMITHSONIAN, context)
        second = provider.fetch(SMITHSONIAN, context)

        assert first.cached is False
        assert second.cached is True
        assert len(responses.calls) == 1
        assert [event.to_dict() for event in second.events] == [event.to_dict() for event in first.events]

    @responses.activate
    def test_preview_bypasses_cache(self, provider, context):
        responses.add(responses.GET, FEED_URL, body=rss_feed(), status=200)
        context.limit = 5

        provider.fetch(SMITHSONIAN, context)
        provider.fetch(SMITHSONIAN, context)

        assert len(responses.calls) == 2
        assert provider.cache.entries == {}

    @responses.activate
    def test_source_filters_applied(self, provider, context):
        responses.add(responses.GET, FEED_URL, body=rss_feed(), status=200)
        source = ProviderConfig(
            id='clubfeed', name='Club Feed', type='rss',
            config={'feedUrl': FEED_URL, 'excludeKeywords': ['jazz']}
        )

        assert provider.fetch(source, context).events == []

    def test_missing_feed_url(self, provider, context):
        source = ProviderConfig(id='broken', name='Broken', type='rss', config={'feedUrl': 'ftp://x'})

        with pytest.raises(ConfigurationError) as exc_info:
            provider.fetch(source, context)
        assert exc_info.value.code == 'missing_feed_url'
        assert exc_info.value.status == 400

    @responses.activate
    def test_upstream_error(self, provider, context):
        responses.add(responses.GET, FEED_URL, status=404)

        with pytest.raises(UpstreamError):
            provider.fetch(GENERIC_RSS, context)

    @responses.activate
    def test_unparseable_feed_degrades_to_empty(self, provider, context):
        responses.add(responses.GET, FEED_URL, body='<html><body>Maintenance</body></html>', status=200)

        result = provider.fetch(GENERIC_RSS, context)

        assert result.events == []
        assert result.cached is False


class TestIcalParsing:
    """Test VEVENT conversion."""

    @pytest.fixture
    def events(self, context):
        return parse_calendar(ical_feed(), VENUE_ICAL, context, None)

    def test_tzid_and_utc_instants(self, events):
        zoned, utc = events
        assert zoned.start.utc == zoned_time_to_utc(SOON.year, SOON.month, SOON.day, 20, 0, 0, 'America/New_York')
        assert utc.start.utc == SOON.strftime('%Y-%m-%dT20:00:00Z')
        assert zoned.start.utc != utc.start.utc

    def test_fields(self, events):
        zoned, utc = events
        assert zoned.name == 'Zoned Show'
        assert zoned.url == 'https://venue.test/e1'
        assert zoned.genres == ['Music', 'Indie']
        assert zoned.images[0].url == 'https://venue.test/e1.jpg'
        assert zoned.summary == 'Great show, see https://venue.test/more'
        assert utc.name == 'UTC Show'
        assert utc.url == 'https://venue.test/e2'

    def test_ids_are_deterministic(self, context):
        first = parse_calendar(ical_feed(), VENUE_ICAL, context, None)
        second = parse_calendar(ical_feed(), VENUE_ICAL, context, None)
        assert [event.id for event in first] == [event.id for event in second]
        assert first[0].id.startswith('venue::evt-1-venue-test::')

    def test_non_calendar_body(self, context):
        with pytest.raises(ParseError):
            parse_calendar('<html>Not found</html>', VENUE_ICAL, context, None)


class TestSixthAndI:
    """Test the mirrored Sixth & I listing."""

    def test_source_detection(self):
        assert is_sixth_and_i_source(SIXTH_AND_I)
        assert is_sixth_and_i_source(
            ProviderConfig(id='other', name='x', type='ical', config={'feedUrl': 'https://sixthandi.org/x.ics'})
        )
        assert not is_sixth_and_i_source(VENUE_ICAL)

    def test_challenge_page(self):
        assert is_challenge_page('<title>Just a moment...</title><script>window._cf_chl_opt={}</script>')
        assert not is_challenge_page('BEGIN:VCALENDAR')

    def test_parse_date_time(self):
        assert parse_date_time('Mar 5, 2024 7:30pm ET', 'America/New_York') == '2024-03-06T00:30:00Z'
        assert parse_date_time('Mar 5, 2024', 'America/New_York') == '2024-03-05T05:00:00Z'
        assert parse_date_time('', 'America/New_York') is None

    def test_parse_mirror_events(self, context):
        events = parse_mirror_events(mirror_markdown(), SIXTH_AND_I, context, 'America/New_York')

        assert len(events) == 1
        event = events[0]
        assert event.name == 'An Evening with An Author'
        assert event.url == 'https://www.sixthandi.org/event/author-talk/'
        assert event.venue.name == 'Sixth & I'
        assert event.genres == ['Arts & Entertainment', 'Talks & Entertainment']
        assert event.images[0].url == 'https://www.sixthandi.org/wp-content/uploads/talk.jpg'
        assert 'A conversation about the new book.' in event.summary


class TestIcalProvider:
    """Test the iCal provider including mirror fallbacks."""

    @pytest.fixture
    def provider(self, settings):
        return IcalProvider(settings, HttpClient(base_delay=0), cache=FakeCache())

    @responses.activate
    def test_direct_feed(self, provider, context):
        responses.add(responses.GET, ICAL_URL, body=ical_feed(), status=200)

        result = provider.fetch(VENUE_ICAL, context)

        assert [event.name for event in result.events] == ['Zoned Show', 'UTC Show']
        assert all(event.start.local and event.start.utc for event in result.events)

    @responses.activate
    def test_sixth_and_i_prefers_mirror(self, provider, context):
        responses.add(responses.GET, MIRROR_URL, body=mirror_markdown(), status=200)

        result = provider.fetch(SIXTH_AND_I, context)

        assert [event.name for event in result.events] == ['An Evening with An Author']
        assert len(responses.calls) == 1
        assert provider.cache.entries == {}

    @responses.activate
    def test_sixth_and_i_falls_back_to_direct_feed(self, provider, context):
        responses.add(responses.GET, MIRROR_URL, status=404)
        responses.add(responses.GET, SIXTH_AND_I_ICAL_URL, body=ical_feed(), status=200)

        result = provider.fetch(SIXTH_AND_I, context)

        assert [event.name for event in result.events] == ['Zoned Show', 'UTC Show']

    @responses.activate
    def test_sixth_and_i_challenge_without_mirror_fails(self, provider, context):
        responses.add(responses.GET, MIRROR_URL, status=404)
        responses.add(
            responses.GET, SIXTH_AND_I_ICAL_URL,
            body='<title>Just a moment...</title><div id="challenge-platform"></div>', status=403
        )

        with pytest.raises(UpstreamError) as exc_info:
            provider.fetch(SIXTH_AND_I, context)
        assert exc_info.value.status == 403
