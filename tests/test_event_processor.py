"""Unit tests for EventProcessor."""
import pytest

from processor.event_processor import EventProcessor
from processor.models import Event, EventImage, EventTime


def make_event(**overrides) -> Event:
    fields = {
        'id': 'dcimprov::show::2024-01-15',
        'name': 'Live Comedy Night',
        'source': 'dcimprov',
        'start': EventTime(local='2024-01-15T19:00:00', utc=None),
        'url': 'https://example.com/event/123',
        'summary': 'Stand-up all night',
    }
    fields.update(overrides)
    return Event(**fields)


class TestEventProcessor:
    """Test cases for EventProcessor class."""

    @pytest.fixture
    def processor(self):
        return EventProcessor('America/New_York')

    def test_process_events_valid_event(self, processor):
        """Test processing a valid event."""
        processed = processor.process_events([make_event()])

        assert len(processed) == 1
        event = processed[0]
        assert event.name == 'Live Comedy Night'
        assert event.start.local == '2024-01-15T19:00:00'
        assert event.start.utc == '2024-01-16T00:00:00Z'
        assert event.summary == 'Stand-up all night'

    def test_process_events_missing_required_fields(self, processor):
        """Test that events with missing required fields are skipped."""
        raw_events = [
            make_event(id=''),
            make_event(name='   '),
            make_event(id='valid::one::2024-01-15'),
        ]

        processed = processor.process_events(raw_events)

        assert [event.id for event in processed] == ['valid::one::2024-01-15']

    def test_utc_only_start_copies_to_local(self, processor):
        event = processor.process_events([
            make_event(start=EventTime(local=None, utc='2024-01-15T19:00:00+00:00'))
        ])[0]
        assert event.start.utc == '2024-01-15T19:00:00Z'
        assert event.start.local == '2024-01-15T19:00:00Z'

    def test_malformed_start_becomes_null_pair(self, processor):
        event = processor.process_events([
            make_event(start=EventTime(local='tomorrow night', utc='soon'))
        ])[0]
        assert event.start.local is None
        assert event.start.utc is None

    @pytest.mark.parametrize('local', ['2024-02-30T20:00:00', '2023-02-29', '2024-03-05T25:10:00'])
    def test_impossible_local_date_becomes_null_pair(self, processor, local):
        event = processor.process_events([make_event(start=EventTime(local=local, utc=None))])[0]
        assert event.start.local is None
        assert event.start.utc is None

    def test_leap_day_local_date_kept(self, processor):
        event = processor.process_events([make_event(start=EventTime(local='2024-02-29T20:00:00'))])[0]
        assert event.start.local == '2024-02-29T20:00:00'
        assert event.start.utc == '2024-03-01T01:00:00Z'

    def test_empty_end_is_dropped(self, processor):
        event = processor.process_events([make_event(end=EventTime(local='', utc=None))])[0]
        assert event.end is None

    def test_genres_deduplicated_case_insensitively(self, processor):
        event = processor.process_events([
            make_event(genres=['Comedy', 'comedy', ' Stand-Up ', '', 'COMEDY'])
        ])[0]
        assert event.genres == ['Comedy', 'Stand-Up']

    @pytest.mark.parametrize('distance, expected', [
        (2.5, 2.5),
        (0, 0.0),
        (-1.0, None),
        (float('nan'), None),
        (float('inf'), None),
        (True, None),
    ])
    def test_distance_normalization(self, processor, distance, expected):
        event = processor.process_events([make_event(distance=distance)])[0]
        assert event.distance == expected

    def test_title_and_summary_truncated(self, processor):
        event = processor.process_events([make_event(name='A' * 300, summary='B' * 3000)])[0]
        assert len(event.name) == 200
        assert len(event.summary) == 2000

    def test_images_without_url_and_self_links_dropped(self, processor):
        event = processor.process_events([
            make_event(
                images=[EventImage(url=''), EventImage(url='https://example.com/a.jpg')],
                alternate_links=['https://example.com/event/123', 'https://example.com/alt'],
            )
        ])[0]
        assert [image.url for image in event.images] == ['https://example.com/a.jpg']
        assert event.alternate_links == ['https://example.com/alt']

    def test_processing_is_idempotent(self, processor):
        first = processor.process_events([make_event(genres=['Comedy', 'comedy'])])
        second = processor.process_events(
            [Event.from_dict(event.to_dict()) for event in first]
        )
        assert [event.to_dict() for event in first] == [event.to_dict() for event in second]

    def test_process_events_handles_errors(self, processor):
        """A broken event is skipped without failing the batch."""
        broken = make_event()
        broken.genres = None
        broken.images = None

        processed = processor.process_events([broken, make_event(id='ok::one::2024-01-15')])

        assert [event.id for event in processed] == ['ok::one::2024-01-15']
