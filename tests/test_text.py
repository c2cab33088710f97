"""Unit tests for text extraction utilities."""
from processor.text import (
    clean_text,
    decode_html_entities,
    decode_ical_text,
    extract_first_url,
    extract_labeled_detail,
    extract_xml_attribute,
    extract_xml_blocks,
    extract_xml_link,
    extract_xml_value,
    extract_xml_values,
    iter_vevent_blocks,
    parse_ical_line,
    strip_tags,
    unfold_ical_lines,
)


class TestHtmlText:
    """Test entity decoding and tag stripping."""

    def test_decodes_named_and_numeric_entities(self):
        assert decode_html_entities('Tom &amp; Jerry &#8211; &#x41;') == 'Tom & Jerry – A'

    def test_non_breaking_space_becomes_space(self):
        assert decode_html_entities('a&nbsp;b') == 'a b'

    def test_strip_tags_replaces_markup_with_whitespace(self):
        assert strip_tags('<p>One</p><p>Two</p>') == ' One  Two '

    def test_clean_text(self):
        assert clean_text('<b>Live</b>\n  at&nbsp;the <i>Club</i> ') == 'Live at the Club'

    def test_clean_text_handles_non_strings(self):
        assert clean_text(None) == ''
        assert clean_text(42) == ''


class TestXmlExtraction:
    """Test RSS/Atom field extraction."""

    ITEM = (
        '<item>'
        '<title><![CDATA[Jazz &amp; Blues Night]]></title>'
        '<category>Music</category>'
        '<category>Jazz</category>'
        '<link>https://example.com/jazz</link>'
        '<enclosure url="https://example.com/jazz.jpg" type="image/jpeg"/>'
        '</item>'
    )

    def test_extract_value_unwraps_cdata(self):
        assert extract_xml_value(self.ITEM, 'title') == 'Jazz & Blues Night'

    def test_first_candidate_with_a_match_wins(self):
        assert extract_xml_value(self.ITEM, ['missing', 'link', 'title']) == 'https://example.com/jazz'

    def test_missing_tag_returns_empty_string(self):
        assert extract_xml_value(self.ITEM, 'description') == ''

    def test_extract_values_preserves_order(self):
        assert extract_xml_values(self.ITEM, 'category') == ['Music', 'Jazz']

    def test_extract_attribute(self):
        assert extract_xml_attribute(self.ITEM, 'enclosure', 'url') == 'https://example.com/jazz.jpg'

    def test_atom_link_href(self):
        assert extract_xml_link('<entry><link href="https://example.com/a"/></entry>') == 'https://example.com/a'

    def test_extract_blocks_respects_limit(self):
        xml = '<rss>' + ''.join(f'<item><title>{i}</title></item>' for i in range(5)) + '</rss>'
        blocks = extract_xml_blocks(xml, 'item', limit=3)
        assert len(blocks) == 3
        assert blocks[0] == '<item><title>0</title></item>'

    def test_labeled_detail(self):
        description = '<b>Venue</b>: National Museum of African Art<br/><b>Cost</b>: Free'
        assert extract_labeled_detail(description, 'Venue') == 'National Museum of African Art'
        assert extract_labeled_detail(description, 'Categories') == ''

    def test_first_url(self):
        assert extract_first_url('Tickets at https://example.com/t?id=1 now') == 'https://example.com/t?id=1'


class TestIcal:
    """Test iCalendar unfolding and property parsing."""

    def test_unfold_joins_continuation_lines(self):
        text = 'SUMMARY:A very long\r\n  title\r\nUID:1\r\n'
        assert unfold_ical_lines(text) == ['SUMMARY:A very long title', 'UID:1']

    def test_parse_line_with_params(self):
        prop = parse_ical_line('DTSTART;TZID="America/New_York":20240115T200000')
        assert prop.name == 'DTSTART'
        assert prop.params == {'TZID': 'America/New_York'}
        assert prop.value == '20240115T200000'

    def test_parse_line_value_keeps_colons(self):
        prop = parse_ical_line('URL:https://example.com/event')
        assert prop.value == 'https://example.com/event'

    def test_parse_line_without_separator(self):
        assert parse_ical_line('garbage') is None

    def test_decode_ical_text(self):
        assert decode_ical_text(r'Doors\, drinks\; music\nLate') == 'Doors, drinks; music\nLate'

    def test_vevent_blocks(self):
        lines = [
            'BEGIN:VCALENDAR',
            'BEGIN:VEVENT',
            'UID:one',
            'SUMMARY:First',
            'END:VEVENT',
            'BEGIN:VEVENT',
            'UID:two',
            'END:VEVENT',
            'END:VCALENDAR',
        ]
        blocks = iter_vevent_blocks(lines)
        assert len(blocks) == 2
        assert [prop.name for prop in blocks[0]] == ['UID', 'SUMMARY']
        assert blocks[1][0].value == 'two'
