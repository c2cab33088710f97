"""Error taxonomy for provider adapters and aggregation."""
from typing import List, Optional


class ProviderError(Exception):
    """Base error raised by a provider adapter."""

    default_status: Optional[int] = None
    default_code = 'provider_error'

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status
        self.code = code or self.default_code


class ConfigurationError(ProviderError):
    """Missing credential or feed URL."""

    default_status = 500
    default_code = 'configuration_error'


class UpstreamError(ProviderError):
    """Upstream responded with a non-2xx status or an unusable body."""

    default_status = 502
    default_code = 'upstream_error'


class FetchTimeoutError(UpstreamError):
    """Upstream did not answer before the deadline."""

    default_status = 408
    default_code = 'fetch_timeout'


class ParseError(ProviderError):
    """Markup could not be parsed."""

    default_code = 'parse_error'


class AggregationError(Exception):
    """Request-level failure: no provider produced events, or none is enabled."""

    STATUS_BY_CODE = {
        'ticketmaster_api_key_missing': 500,
        'datasource_fetch_failed': 502,
        'no_enabled_sources': 500,
    }

    def __init__(self, code: str, message: str, summaries: Optional[List] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.summaries = summaries or []

    @property
    def status(self) -> int:
        return self.STATUS_BY_CODE.get(self.code, 500)
