"""Image discovery on event pages (Open Graph tags, then scored <img> candidates)."""
import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

NON_EVENT_IMAGE_PATTERN = re.compile(
    r'(?:^|[/._-])(logo|logos|icon|icons|favicon|sprite|avatar|gravatar|placeholder|'
    r'spacer|pixel|loader|loading)(?:[/._-]|$)',
    re.IGNORECASE
)
PLACEHOLDER_IMAGE_PATTERN = re.compile(
    r'Trumba_Event_Actions_Logo|GenericAvatar|(?:^|[/._-])(logo|logos|icon|icons|favicon|'
    r'sprite|spacer|pixel|loader|loading)(?:[/._-]|$)',
    re.IGNORECASE
)
IMAGE_SRC_ATTRIBUTES = ('src', 'data-src', 'data-lazy-src', 'data-original')


def _to_int(value) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


def _attr_text(value) -> str:
    # bs4 returns multi-valued attributes (class) as lists
    if isinstance(value, (list, tuple)):
        return ' '.join(value)
    return str(value or '').strip()


def score_image_candidate(src: str, class_name: str = '', alt: str = '',
                          width: int = 0, height: int = 0) -> Optional[int]:
    """
    Score an <img> as a likely event image.

    Args:
        src: Image source
        class_name: class attribute
        alt: alt attribute
        width: Declared width (0 if unknown)
        height: Declared height (0 if unknown)

    Returns:
        Score (higher is better) or None when the image is disqualified
    """
    if not src:
        return None
    src = src.lower()
    class_name = (class_name or '').lower()
    alt = (alt or '').lower()
    combined = f"{src} {class_name} {alt}"
    if src.startswith('data:') or NON_EVENT_IMAGE_PATTERN.search(combined):
        return None

    score = 0
    if re.search(r'wp-post-image|attachment-', class_name):
        score += 120
    if re.search(r'tribe|event|show|hero|featured', combined):
        score += 40
    if '/wp-content/uploads/' in src:
        score += 70
    if alt and not NON_EVENT_IMAGE_PATTERN.search(alt):
        score += 20
    if width >= 240:
        score += 25
    if height >= 180:
        score += 25
    if 0 < width < 120:
        score -= 20
    if 0 < height < 120:
        score -= 20
    if re.search(r'\.svg(\?|$)', src):
        score -= 80
    return score


def extract_first_image_url(html: Optional[str]) -> str:
    """Return the src of the best scoring <img> in the document."""
    if not html or not isinstance(html, str):
        return ''
    soup = BeautifulSoup(html, 'html.parser')
    candidates = []
    for img in soup.find_all('img'):
        src = ''
        for attribute in IMAGE_SRC_ATTRIBUTES:
            src = _attr_text(img.get(attribute))
            if src:
                break
        if not src:
            continue
        width = _to_int(img.get('width'))
        height = _to_int(img.get('height'))
        score = score_image_candidate(
            src, _attr_text(img.get('class')), _attr_text(img.get('alt')), width, height
        )
        if score is None:
            continue
        candidates.append((score, width * height, src))
    if not candidates:
        return ''
    # stable sort keeps document order for ties
    candidates.sort(key=lambda candidate: (candidate[0], candidate[1]), reverse=True)
    return candidates[0][2]


def extract_meta_content(html: Optional[str], property_name: str) -> str:
    """Content of ``<meta property|name="...">``."""
    if not html or not isinstance(html, str):
        return ''
    soup = BeautifulSoup(html, 'html.parser')
    wanted = property_name.lower()
    for meta in soup.find_all('meta'):
        key = _attr_text(meta.get('property') or meta.get('name')).lower()
        if key == wanted:
            content = _attr_text(meta.get('content'))
            if content:
                return content
    return ''


def extract_link_href(html: Optional[str], rel_name: str) -> str:
    """href of ``<link rel="...">``."""
    if not html or not isinstance(html, str) or not rel_name:
        return ''
    soup = BeautifulSoup(html, 'html.parser')
    wanted = rel_name.lower()
    for link in soup.find_all('link'):
        rel = _attr_text(link.get('rel')).lower().split()
        if wanted in rel:
            href = _attr_text(link.get('href'))
            if href:
                return href
    return ''


def resolve_url(value: Optional[str], base_url: Optional[str] = None) -> str:
    """Resolve ``value`` against ``base_url``; empty string unless the result is absolute."""
    if not value or not isinstance(value, str):
        return ''
    resolved = urljoin(base_url or '', value.strip())
    parsed = urlparse(resolved)
    if not parsed.scheme or not parsed.netloc:
        return ''
    return resolved


def extract_open_graph_image(html: Optional[str], base_url: Optional[str] = None) -> str:
    """
    Find the representative image of a page.

    Tries og:image, twitter:image, ``<link rel="image_src">`` and finally
    the best scoring <img>.

    Args:
        html: Page HTML
        base_url: URL of the page, for relative references

    Returns:
        Absolute image URL or empty string
    """
    for candidate in (
        extract_meta_content(html, 'og:image'),
        extract_meta_content(html, 'twitter:image'),
        extract_link_href(html, 'image_src'),
    ):
        if candidate:
            return resolve_url(candidate, base_url)
    return resolve_url(extract_first_image_url(html), base_url)


def is_placeholder_image(url: Optional[str]) -> bool:
    """Generic avatars, logos and tracking pixels (missing URLs count too)."""
    if not url or not isinstance(url, str):
        return True
    return bool(PLACEHOLDER_IMAGE_PATTERN.search(url))


def unique_urls(values: List[Optional[str]]) -> List[str]:
    seen = set()
    urls = []
    for value in values:
        url = value.strip() if isinstance(value, str) else ''
        if not url or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls
