"""Flatten listing pages into a stream of text, link and image tokens."""
import re
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import CData, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

SKIPPED_TAGS = ['script', 'style', 'noscript']
_SKIPPED_STRINGS = (Comment, Doctype, Declaration, ProcessingInstruction, CData)


@dataclass
class Token:
    """One line of a flattened page: ``text``, ``link`` (text + href) or ``image`` (href)."""
    kind: str
    text: str = ''
    href: str = ''


def _collapse(value: str) -> str:
    return re.sub(r'\s+', ' ', value.replace('\xa0', ' ')).strip()


def _image_src(tag: Tag) -> str:
    for attribute in ('src', 'data-src'):
        value = tag.get(attribute)
        if value and str(value).strip():
            return str(value).strip()
    return ''


def _walk(node: Tag, tokens: List[Token]) -> None:
    for child in node.children:
        if isinstance(child, _SKIPPED_STRINGS):
            continue
        if isinstance(child, NavigableString):
            for line in str(child).splitlines():
                text = _collapse(line)
                if text:
                    tokens.append(Token('text', text=text))
            continue
        if not isinstance(child, Tag):
            continue
        if child.name == 'img':
            src = _image_src(child)
            if src:
                tokens.append(Token('image', href=src))
            continue
        href = str(child.get('href') or '').strip() if child.name == 'a' else ''
        if href:
            for img in child.find_all('img'):
                src = _image_src(img)
                if src:
                    tokens.append(Token('image', href=src))
            text = _collapse(child.get_text(' '))
            if text:
                tokens.append(Token('link', text=text, href=href))
            continue
        _walk(child, tokens)


def tokenize_html(html: Optional[str]) -> List[Token]:
    """
    Flatten an HTML page in document order.

    Scripts, styles and comments are dropped. Every element boundary acts
    as a line break; anchors with an href become a single link token
    (preceded by image tokens for any images they wrap).

    Args:
        html: Page HTML

    Returns:
        List of Token objects
    """
    if not html or not isinstance(html, str):
        return []
    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup(SKIPPED_TAGS):
        tag.decompose()
    tokens: List[Token] = []
    _walk(soup, tokens)
    return tokens
