"""Headless-browser image lookup for pages that only render images client-side."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from processor.images import extract_open_graph_image

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 11_0) '
    'AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36'
)
IMAGE_SELECTOR = '.tribe-events-event-image img, img.wp-post-image, .right img[alt], img[src*="/i/"]'
NAVIGATION_TIMEOUT_MS = 30000
SELECTOR_TIMEOUT_MS = 8000
SETTLE_DELAY_MS = 2400


class RenderedPageFetcher:
    """
    Reusable Chromium handle.

    Playwright's sync API is bound to the thread that started it, so every
    browser call runs on one dedicated worker thread. The browser is
    launched on first use and released by ``close()``.
    """

    def __init__(self, user_agent: str = BROWSER_USER_AGENT):
        self.user_agent = user_agent
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='rendered-page')
        self._playwright = None
        self._browser = None

    def fetch_image(self, url: str, timeout: Optional[float] = None) -> str:
        """
        Render a page and return its representative image URL.

        Args:
            url: Page to render
            timeout: Seconds to wait for the worker (default: no bound)

        Returns:
            Absolute image URL, or empty string on any failure
        """
        if not url:
            return ''
        try:
            return self._executor.submit(self._fetch_image, url).result(timeout=timeout)
        except Exception as e:
            logger.warning(f"Rendered image fetch failed for {url}: {e}")
            return ''

    def _ensure_browser(self):
        if self._browser is not None:
            return self._browser
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=True, args=['--no-sandbox', '--disable-dev-shm-usage']
            )
        except Exception:
            # leave the handle unset so a later call can retry the launch
            self._playwright.stop()
            self._playwright = None
            raise
        logger.info('Launched headless Chromium for image lookups')
        return self._browser

    def _fetch_image(self, url: str) -> str:
        browser = self._ensure_browser()
        context = browser.new_context(user_agent=self.user_agent)
        try:
            page = context.new_page()
            page.goto(url, wait_until='domcontentloaded', timeout=NAVIGATION_TIMEOUT_MS)
            try:
                page.wait_for_selector(IMAGE_SELECTOR, timeout=SELECTOR_TIMEOUT_MS)
            except Exception:
                page.wait_for_timeout(SETTLE_DELAY_MS)
            return extract_open_graph_image(page.content(), page.url or url)
        finally:
            context.close()

    def _shutdown_browser(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def close(self) -> None:
        """Close the browser (on its own thread) and stop the worker."""
        try:
            self._executor.submit(self._shutdown_browser).result()
        except Exception as e:
            logger.warning(f"Failed to close headless browser: {e}")
        finally:
            self._executor.shutdown(wait=True)
