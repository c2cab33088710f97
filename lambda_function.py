"""AWS Lambda handler for the Live Shows events API."""
import json
import logging
import math
import os
import time
from typing import Any, Dict, List, Optional

from config import Settings
from processor.aggregator import Aggregator
from processor.dates import format_utc, utc_now
from processor.models import ProviderConfig, QueryContext
from providers.errors import AggregationError
from providers.http import HttpClient
from providers.hydration import ImageHydrator
from providers.registry import build_providers, find_datasource, load_datasources
from providers.rendered import RenderedPageFetcher
from storage.response_cache import ResponseCache

DEFAULT_RADIUS_MILES = 50
MAX_RADIUS_MILES = 150
DEFAULT_LOOKAHEAD_DAYS = 14
MAX_LOOKAHEAD_DAYS = 60
DEFAULT_PREVIEW_LIMIT = 25
MAX_PREVIEW_LIMIT = 100

RESPONSE_HEADERS = {
    'Content-Type': 'application/json',
    'Access-Control-Allow-Origin': '*',
}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


class Service:
    """Components shared by every invocation of one container."""

    def __init__(self, settings: Settings, sources: List[ProviderConfig], aggregator: Aggregator,
                 cache: Optional[ResponseCache] = None):
        self.settings = settings
        self.sources = sources
        self.aggregator = aggregator
        self.cache = cache


_service: Optional[Service] = None


def build_service(settings: Settings) -> Service:
    """
    Wire the HTTP client, cache, hydrator, providers and orchestrator.

    Args:
        settings: Container settings

    Returns:
        Service instance
    """
    http = HttpClient(timeout=settings.request_timeout_seconds)
    cache = ResponseCache(
        table_name=settings.cache_table_name,
        memory_max_entries=settings.memory_cache_max_entries
    )
    rendered = RenderedPageFetcher() if settings.rendered_image_fallback else None
    hydrator = ImageHydrator(http, rendered=rendered, timeout=settings.image_fetch_timeout_seconds)
    providers = build_providers(settings, http, cache, hydrator)
    sources = load_datasources(settings.datasources_path)
    return Service(settings, sources, Aggregator(providers, settings), cache)


def get_service() -> Service:
    """Container-wide service; settings are read from the environment on first use."""
    global _service
    if _service is None:
        _service = build_service(Settings.from_env())
    return _service


def json_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': dict(RESPONSE_HEADERS),
        'body': json.dumps(body)
    }


def error_response(status_code: int, error: str, message: Optional[str] = None,
                   **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {'error': error}
    if message:
        body['message'] = message
    body.update(extra)
    return json_response(status_code, body)


def _parse_float(value: Any) -> Optional[float]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def _clamp_int(value: Any, default: int, maximum: int) -> int:
    parsed = _parse_float(value)
    if parsed is None or parsed <= 0:
        return default
    return int(min(max(round(parsed), 1), maximum))


def parse_coordinates(params: Dict[str, Any]):
    """
    Read ``lat``/``lon`` (or ``latitude``/``longitude``) rounded to 4 decimals.

    Returns:
        Tuple of (latitude, longitude), either element None when missing or invalid
    """
    latitude = _parse_float(params.get('lat', params.get('latitude')))
    longitude = _parse_float(params.get('lon', params.get('longitude')))
    if latitude is not None and not -90 <= latitude <= 90:
        latitude = None
    if longitude is not None and not -180 <= longitude <= 180:
        longitude = None
    return (
        round(latitude, 4) if latitude is not None else None,
        round(longitude, 4) if longitude is not None else None,
    )


def build_query_context(params: Dict[str, Any], with_limit: bool = False) -> QueryContext:
    """
    Normalize query-string parameters into a QueryContext.

    Args:
        params: Query-string parameters
        with_limit: Read ``limit`` (previews only)

    Returns:
        QueryContext
    """
    latitude, longitude = parse_coordinates(params)
    radius = _parse_float(params.get('radius'))
    if radius is None or radius <= 0:
        radius = DEFAULT_RADIUS_MILES
    radius = round(min(max(radius, 1), MAX_RADIUS_MILES), 1)
    return QueryContext(
        latitude=latitude,
        longitude=longitude,
        radius_miles=radius,
        lookahead_days=_clamp_int(params.get('days'), DEFAULT_LOOKAHEAD_DAYS, MAX_LOOKAHEAD_DAYS),
        limit=_clamp_int(params.get('limit'), DEFAULT_PREVIEW_LIMIT, MAX_PREVIEW_LIMIT) if with_limit else None,
    )


def handle_events(service: Service, params: Dict[str, Any]) -> Dict[str, Any]:
    context = build_query_context(params)
    if context.latitude is None or context.longitude is None:
        return error_response(400, 'missing_coordinates', 'lat and lon query parameters are required')

    try:
        result = service.aggregator.aggregate(service.sources, context)
    except AggregationError as e:
        logging.getLogger(__name__).error(f"Aggregation failed: {e.message}", extra={'error_code': e.code})
        return error_response(
            e.status, e.code, e.message, sources=[summary.to_dict() for summary in e.summaries]
        )

    enabled = [source for source in service.sources if source.enabled]
    body: Dict[str, Any] = {
        'source': enabled[0].id if len(enabled) == 1 else 'mixed',
        'generatedAt': format_utc(utc_now()),
        'cached': result.cached,
        'radiusMiles': context.radius_miles,
        'lookaheadDays': context.lookahead_days,
        'events': [event.to_dict() for event in result.events],
        'sources': [summary.to_dict() for summary in result.summaries],
    }
    if result.segments:
        body['segments'] = result.segments
    return json_response(200, body)


def handle_preview(service: Service, source_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
    source = find_datasource(service.sources, source_id)
    if source is None:
        return error_response(404, 'datasource_not_found', f"Unknown datasource: {source_id}")

    context = build_query_context(params, with_limit=True)
    if source.type == 'ticketmaster' and (context.latitude is None or context.longitude is None):
        return error_response(400, 'missing_coordinates', 'lat and lon query parameters are required')

    envelope = service.aggregator.preview(source, context)
    return json_response(200 if envelope['ok'] else envelope['status'], envelope)


def handle_cache_clear(service: Service, raw_body: Optional[str]) -> Dict[str, Any]:
    try:
        payload = json.loads(raw_body) if raw_body else {}
    except ValueError:
        return error_response(400, 'invalid_json', 'Request body must be JSON')
    collection = payload.get('collection') if isinstance(payload, dict) else None
    if not collection or not isinstance(collection, str):
        return error_response(400, 'missing_collection', 'collection is required')
    if service.cache is None:
        return json_response(200, {'collection': collection, 'deleted': 0})
    deleted = service.cache.clear(collection.strip())
    return json_response(200, {'collection': collection.strip(), 'deleted': deleted})


def _request_method(event: Dict[str, Any]) -> str:
    method = event.get('httpMethod') or ((event.get('requestContext') or {}).get('http') or {}).get('method')
    return (method or 'GET').upper()


def _request_path(event: Dict[str, Any]) -> str:
    path = event.get('path') or event.get('rawPath') or '/'
    return '/' + path.strip('/')


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function (API Gateway proxy integration).

    Routes:
        GET /events
        GET /datasources/{id}/preview
        POST /cache/clear

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)

    start_time = time.time()
    event = event or {}
    method = _request_method(event)
    path = _request_path(event)
    params = event.get('queryStringParameters') or {}
    logger.info(f"Request started: {method} {path}", extra={'params': params})

    try:
        service = get_service()
        segments = [segment for segment in path.split('/') if segment]

        if method == 'GET' and segments == ['events']:
            response = handle_events(service, params)
        elif method == 'GET' and len(segments) == 3 and segments[0] == 'datasources' and segments[2] == 'preview':
            response = handle_preview(service, segments[1], params)
        elif method == 'POST' and segments == ['cache', 'clear']:
            response = handle_cache_clear(service, event.get('body'))
        else:
            response = error_response(404, 'not_found', f"No route for {method} {path}")

        duration = time.time() - start_time
        logger.info(
            f"Request completed: {method} {path} -> {response['statusCode']}",
            extra={'duration_seconds': round(duration, 2)}
        )
        return response

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Request failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return error_response(
            500, 'internal_error', str(e),
            error_type=type(e).__name__,
            duration_seconds=round(duration, 2)
        )
