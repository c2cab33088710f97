"""Provider-agnostic text extraction for HTML, RSS/Atom XML and iCalendar."""
import html
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

TagNames = Union[str, Sequence[str]]

_TAG_PATTERN = re.compile(r'<[^>]+>')
_CDATA_PATTERN = re.compile(r'^<!\[CDATA\[(.*?)\]\]>$', re.IGNORECASE | re.DOTALL)
_URL_PATTERN = re.compile(r'https?://[^\s<>"\']+', re.IGNORECASE)


def decode_html_entities(value: Optional[str]) -> str:
    """Decode named and numeric entities; non-breaking spaces become spaces."""
    if not value or not isinstance(value, str):
        return ''
    return html.unescape(value).replace('\xa0', ' ')


def strip_tags(value: Optional[str]) -> str:
    """Replace any ``<...>`` markup with whitespace."""
    if not value or not isinstance(value, str):
        return ''
    return _TAG_PATTERN.sub(' ', value)


def collapse_whitespace(value: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', value or '').strip()


def clean_text(value: Optional[str]) -> str:
    """Decode entities, strip markup and collapse whitespace."""
    if not value or not isinstance(value, str):
        return ''
    return collapse_whitespace(strip_tags(decode_html_entities(value)))


def decode_xml_value(value: Optional[str]) -> str:
    """Unwrap a CDATA section (if any) and decode entities."""
    if not value or not isinstance(value, str):
        return ''
    trimmed = value.strip()
    match = _CDATA_PATTERN.match(trimmed)
    raw = match.group(1) if match else trimmed
    return decode_html_entities(raw)


def _as_names(tag_names: TagNames) -> List[str]:
    if isinstance(tag_names, str):
        return [tag_names]
    return list(tag_names)


def _element_pattern(tag_name: str) -> re.Pattern:
    escaped = re.escape(tag_name)
    return re.compile(
        rf'<{escaped}\b[^>]*>(.*?)</{escaped}>',
        re.IGNORECASE | re.DOTALL
    )


def extract_xml_value(xml: Optional[str], tag_names: TagNames) -> str:
    """
    Return the decoded body of the first element matching any tag name.

    Tag names are tried in order; the first name with a match wins.

    Args:
        xml: XML fragment to search
        tag_names: One tag name or an ordered list of candidates

    Returns:
        Decoded text, or an empty string when nothing matches
    """
    if not xml or not tag_names:
        return ''
    for name in _as_names(tag_names):
        match = _element_pattern(name).search(xml)
        if match:
            return decode_xml_value(match.group(1))
    return ''


def extract_xml_values(xml: Optional[str], tag_name: str) -> List[str]:
    """Return the decoded bodies of every matching element, in document order."""
    if not xml or not tag_name:
        return []
    return [decode_xml_value(match.group(1)) for match in _element_pattern(tag_name).finditer(xml)]


def extract_xml_attribute(xml: Optional[str], tag_name: str, attr_name: str) -> str:
    """Return an attribute of the first element with the given tag name."""
    if not xml or not tag_name or not attr_name:
        return ''
    pattern = re.compile(
        rf'<{re.escape(tag_name)}\b[^>]*\s{re.escape(attr_name)}\s*=\s*([\'"])(.*?)\1',
        re.IGNORECASE | re.DOTALL
    )
    match = pattern.search(xml)
    return decode_xml_value(match.group(2)) if match else ''


def extract_xml_link(xml: Optional[str]) -> str:
    """RSS ``<link>text</link>`` or Atom ``<link href="..."/>``."""
    return extract_xml_value(xml, 'link') or extract_xml_attribute(xml, 'link', 'href')


def extract_xml_blocks(xml: Optional[str], tag_name: str, limit: Optional[int] = None) -> List[str]:
    """Return whole ``<tag>...</tag>`` blocks (markup included), capped at ``limit``."""
    if not xml:
        return []
    blocks = []
    for match in _element_pattern(tag_name).finditer(xml):
        blocks.append(match.group(0))
        if limit is not None and len(blocks) >= limit:
            break
    return blocks


def extract_labeled_detail(html_text: Optional[str], label: str) -> str:
    """Find a ``<b>Label</b>: value`` detail inside an HTML description."""
    if not html_text or not label:
        return ''
    pattern = re.compile(
        rf'<b>\s*{re.escape(label)}\s*</b>\s*:\s*([^<\r\n]+)',
        re.IGNORECASE
    )
    match = pattern.search(html_text)
    return clean_text(match.group(1)) if match else ''


def extract_first_url(value: Optional[str]) -> str:
    if not value or not isinstance(value, str):
        return ''
    match = _URL_PATTERN.search(value)
    return match.group(0) if match else ''


# ---------------------------------------------------------------------------
# iCalendar


@dataclass
class IcalProperty:
    """One content line of an iCalendar document."""
    name: str
    value: str
    params: Dict[str, Union[str, bool]] = field(default_factory=dict)


def unfold_ical_lines(text: Optional[str]) -> List[str]:
    """
    Join RFC 5545 continuation lines (lines starting with a space or tab).

    Args:
        text: Raw iCalendar document

    Returns:
        Logical lines with empty lines removed
    """
    if not text or not isinstance(text, str):
        return []
    raw_lines = text.replace('\r\n', '\n').replace('\r', '\n').split('\n')
    lines: List[str] = []
    for index, line in enumerate(raw_lines):
        if index == 0:
            line = line.lstrip('﻿')
        if not line:
            continue
        if line[0] in (' ', '\t'):
            if lines:
                lines[-1] += line[1:]
            else:
                lines.append(line.lstrip())
            continue
        lines.append(line)
    return lines


def parse_ical_line(line: Optional[str]) -> Optional[IcalProperty]:
    """
    Split ``NAME;PARAM=VALUE:value`` into its parts.

    Args:
        line: Unfolded content line

    Returns:
        IcalProperty, or None when the line has no name/value separator
    """
    if not line or not isinstance(line, str):
        return None
    left, sep, value = line.partition(':')
    if not sep or not left:
        return None
    parts = left.split(';')
    name = parts[0].strip().upper()
    if not name:
        return None
    params: Dict[str, Union[str, bool]] = {}
    for part in parts[1:]:
        raw_key, _, raw_value = part.partition('=')
        key = raw_key.strip().upper()
        if not key:
            continue
        raw_value = raw_value.strip()
        params[key] = raw_value.strip('"') if raw_value else True
    return IcalProperty(name=name, value=value, params=params)


def decode_ical_text(value: Optional[str]) -> str:
    """Undo iCalendar TEXT escaping, then decode HTML entities."""
    if not value or not isinstance(value, str):
        return ''
    unescaped = re.sub(
        r'\\([nN,;:\\])',
        lambda match: '\n' if match.group(1) in 'nN' else match.group(1),
        value
    )
    return decode_html_entities(unescaped)


def iter_vevent_blocks(lines: Sequence[str]) -> List[List[IcalProperty]]:
    """Group unfolded lines into ``BEGIN:VEVENT`` ... ``END:VEVENT`` property lists."""
    blocks: List[List[IcalProperty]] = []
    props: Optional[List[IcalProperty]] = None
    for line in lines:
        trimmed = line.strip()
        if trimmed == 'BEGIN:VEVENT':
            props = []
            continue
        if trimmed == 'END:VEVENT':
            if props:
                blocks.append(props)
            props = None
            continue
        if props is None:
            continue
        parsed = parse_ical_line(line)
        if parsed:
            props.append(parsed)
    return blocks
