"""Best-effort image hydration for events that arrive without artwork."""
import logging
from typing import Callable, List, Optional

from processor.images import extract_open_graph_image, is_placeholder_image, unique_urls
from processor.models import Event, EventImage, ImageQuota
from providers.errors import ProviderError

logger = logging.getLogger(__name__)

PageExtractor = Callable[[str], str]


class ImageHydrator:
    """Looks up an image on each event's own page, within a quota."""

    USER_AGENT = 'LiveShowsRSS/1.0'

    def __init__(self, http, rendered=None, timeout: float = 8):
        """
        Initialize the hydrator.

        Args:
            http: Shared HttpClient
            rendered: Optional RenderedPageFetcher used when the plain fetch finds nothing
            timeout: Per-page deadline in seconds
        """
        self.http = http
        self.rendered = rendered
        self.timeout = timeout

    def fetch_html(self, url: str, user_agent: Optional[str] = None) -> str:
        """Fetch a page body in one attempt; empty string on any failure."""
        try:
            response = self.http.get(
                url,
                headers={
                    'Accept': 'text/html,application/xhtml+xml',
                    'User-Agent': user_agent or self.USER_AGENT,
                },
                timeout=self.timeout,
                retries=1
            )
        except ProviderError as e:
            logger.debug(f"Image page fetch failed for {url}: {e}")
            return ''
        if not response.ok:
            logger.debug(f"Image page {url} returned {response.status_code}")
            return ''
        return response.text or ''

    def fetch_image_from_url(self, url: str) -> str:
        html = self.fetch_html(url)
        if not html:
            return ''
        return extract_open_graph_image(html, url)

    def fetch_image_from_event_links(self, event: Event) -> str:
        """
        Try the event URL and then its alternate links.

        Each link gets a plain fetch first and the rendered fetch when the
        plain result is empty or a placeholder.

        Returns:
            Image URL or empty string
        """
        for url in unique_urls([event.url] + list(event.alternate_links)):
            image_url = self.fetch_image_from_url(url)
            if (not image_url or is_placeholder_image(image_url)) and self.rendered is not None:
                image_url = self.rendered.fetch_image(url, timeout=self.timeout * 6)
            if image_url and not is_placeholder_image(image_url):
                return image_url
        return ''

    def hydrate(self, events: List[Event], quota: ImageQuota,
                page_extractor: Optional[PageExtractor] = None) -> int:
        """
        Attach a fallback image to events that have a URL but no image.

        The quota is consumed only when an image is found.

        Args:
            events: Events to hydrate in place
            quota: Provider quota (usually nested under the request quota)
            page_extractor: Site-specific lookup tried before the generic one

        Returns:
            Number of events hydrated
        """
        hydrated = 0
        for event in events:
            if quota.exhausted:
                break
            if not event.url or event.images:
                continue
            image_url = page_extractor(event.url) if page_extractor else ''
            if not image_url:
                image_url = self.fetch_image_from_event_links(event)
            if image_url and quota.consume():
                event.images = [EventImage(url=image_url, fallback=True)]
                hydrated += 1
        if hydrated:
            logger.info(f"Hydrated images for {hydrated} events")
        return hydrated
