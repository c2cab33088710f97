"""Shared HTTP client with bounded retries and exponential backoff."""
import logging
import time
from typing import Dict, Optional

import requests

from providers.errors import FetchTimeoutError, UpstreamError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class HttpClient:
    """Thin wrapper around ``requests`` used by every provider."""

    def __init__(self, timeout: float = 10, max_retries: int = 3, base_delay: float = 1,
                 user_agent: str = 'LiveShowsBot/1.0'):
        """
        Initialize the client.

        Args:
            timeout: Default per-call deadline in seconds
            max_retries: Attempts for retryable failures (default: 3)
            base_delay: First backoff delay in seconds; doubles per attempt
            user_agent: User-Agent sent unless overridden
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.user_agent = user_agent

    def get(self, url: str, params: Optional[Dict] = None, headers: Optional[Dict] = None,
            timeout: Optional[float] = None, retries: Optional[int] = None) -> requests.Response:
        """
        GET a URL, retrying rate limits, 5xx responses and transport errors.

        Args:
            url: Target URL
            params: Query parameters
            headers: Extra headers
            timeout: Deadline override in seconds
            retries: Attempt count override

        Returns:
            The final response (which may still be a non-2xx status)

        Raises:
            FetchTimeoutError: If the last attempt timed out
            UpstreamError: If the last attempt failed at the transport level
        """
        merged_headers = {'User-Agent': self.user_agent}
        merged_headers.update(headers or {})
        attempts = max(1, retries) if retries is not None else self.max_retries
        deadline = timeout if timeout is not None else self.timeout

        for attempt in range(attempts):
            try:
                logger.debug(f"GET {url} (attempt {attempt + 1}/{attempts})")
                response = requests.get(
                    url,
                    params=params,
                    headers=merged_headers,
                    timeout=deadline
                )
                if response.status_code not in RETRYABLE_STATUSES or attempt == attempts - 1:
                    return response
                reason = f"status {response.status_code}"
            except requests.Timeout as e:
                if attempt == attempts - 1:
                    logger.error(f"All {attempts} attempts for {url} timed out: {e}")
                    raise FetchTimeoutError(f"Request to {url} timed out") from e
                reason = str(e)
            except requests.RequestException as e:
                if attempt == attempts - 1:
                    logger.error(f"All {attempts} attempts for {url} failed. Last error: {e}")
                    raise UpstreamError(f"Request to {url} failed: {e}") from e
                reason = str(e)

            delay = self.base_delay * (2 ** attempt)
            logger.warning(
                f"Request failed (attempt {attempt + 1}/{attempts}): {reason}. "
                f"Retrying in {delay} seconds..."
            )
            if delay:
                time.sleep(delay)

    def get_text(self, url: str, **kwargs) -> str:
        """
        GET a URL and return its body, raising on non-2xx.

        Raises:
            UpstreamError: For non-2xx responses (status carried through)
        """
        response = self.get(url, **kwargs)
        if not response.ok:
            raise UpstreamError(
                f"Request to {url} failed with status {response.status_code}",
                status=response.status_code
            )
        return response.text

    def get_json(self, url: str, **kwargs):
        response = self.get(url, **kwargs)
        if not response.ok:
            raise UpstreamError(
                f"Request to {url} failed with status {response.status_code}",
                status=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {url}") from e
