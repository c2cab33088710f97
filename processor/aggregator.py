"""Aggregation orchestrator: concurrent provider fan-out, merge, filter and sort."""
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from processor.dates import format_utc, utc_now
from processor.filters import apply_weekday_cutoff, dedupe_events, sort_events_by_time_and_distance
from processor.models import (
    AggregationResult, Event, ImageQuota, ProviderConfig, ProviderResult, ProviderSummary, QueryContext
)
from providers.errors import AggregationError, ProviderError

logger = logging.getLogger(__name__)

MAX_WORKERS = 8


class AggregationState(Enum):
    IDLE = 'idle'
    DISPATCHING = 'dispatching'
    COLLECTING = 'collecting'
    MERGING = 'merging'
    FILTERING = 'filtering'
    SORTING = 'sorting'
    DONE = 'done'


class Aggregator:
    """
    Runs every enabled datasource concurrently and merges the results.

    A provider failure is recorded in its summary and never cancels or
    fails the others; only "no provider succeeded" is a request error.
    """

    def __init__(self, providers: Dict[str, Any], settings):
        """
        Initialize the orchestrator.

        Args:
            providers: Provider instances keyed by datasource type
            settings: Settings (cutoff, local zone and image quota)
        """
        self.providers = providers
        self.settings = settings
        self.state = AggregationState.IDLE

    def _transition(self, state: AggregationState) -> None:
        logger.debug(f"Aggregation state {self.state.value} -> {state.value}")
        self.state = state

    def scoped_cutoff_sources(self, sources: List[ProviderConfig]) -> List[str]:
        """Ids of the datasources subject to the weekday cutoff rule."""
        return [source.id for source in sources if source.type == 'ticketmaster']

    def _run_fetch(self, source: ProviderConfig,
                   context: QueryContext) -> Tuple[Optional[ProviderResult], ProviderSummary]:
        provider = self.providers.get(source.type)
        if provider is None:
            logger.error(f"Datasource {source.id} has unsupported type {source.type}")
            return None, ProviderSummary(
                id=source.id, name=source.name, type=source.type, ok=False,
                status=400, error='unsupported_source_type'
            )
        try:
            result = provider.fetch(source, context)
        except ProviderError as e:
            logger.error(f"Datasource {source.id} failed: {e.message}", extra={'error_code': e.code})
            return None, ProviderSummary(
                id=source.id, name=source.name, type=source.type, ok=False,
                status=e.status, error=e.code if e.code == 'ticketmaster_api_key_missing' else e.message
            )
        except Exception as e:
            logger.error(
                f"Datasource {source.id} raised unexpectedly: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return None, ProviderSummary(
                id=source.id, name=source.name, type=source.type, ok=False, status=500, error=str(e) or None
            )
        return result, ProviderSummary(
            id=source.id, name=source.name, type=source.type, ok=True,
            cached=result.cached, total=len(result.events)
        )

    def aggregate(self, sources: List[ProviderConfig], context: QueryContext) -> AggregationResult:
        """
        Fetch all enabled datasources and build the merged result.

        Args:
            sources: Datasource configs (disabled ones are skipped)
            context: Normalized query

        Returns:
            AggregationResult with sorted events and one summary per source

        Raises:
            AggregationError: If no source is enabled or none succeeded
        """
        self.state = AggregationState.IDLE
        enabled = [source for source in sources if source.enabled]
        if not enabled:
            raise AggregationError('no_enabled_sources', 'No datasources are enabled')
        if context.image_quota is None:
            context.image_quota = ImageQuota(self.settings.image_hydration_limit)

        self._transition(AggregationState.DISPATCHING)
        with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(enabled))) as executor:
            futures = [executor.submit(self._run_fetch, source, context) for source in enabled]
            self._transition(AggregationState.COLLECTING)
            outcomes = [future.result() for future in futures]

        self._transition(AggregationState.MERGING)
        merged: List[Event] = []
        summaries: List[ProviderSummary] = []
        segments: List[Dict[str, Any]] = []
        succeeded = []
        for result, summary in outcomes:
            summaries.append(summary)
            if result is None:
                continue
            succeeded.append(result)
            merged.extend(dedupe_events(result.events))
            if not segments and result.segments:
                segments = list(result.segments)

        if not succeeded:
            self._transition(AggregationState.DONE)
            if any(summary.error == 'ticketmaster_api_key_missing' for summary in summaries):
                raise AggregationError(
                    'ticketmaster_api_key_missing', 'Ticketmaster API key missing', summaries
                )
            raise AggregationError('datasource_fetch_failed', 'All datasources failed', summaries)

        self._transition(AggregationState.FILTERING)
        filtered = apply_weekday_cutoff(
            merged, self.settings.weekday_cutoff, self.scoped_cutoff_sources(enabled)
        )

        self._transition(AggregationState.SORTING)
        ordered = sort_events_by_time_and_distance(filtered, self.settings.local_timezone)

        self._transition(AggregationState.DONE)
        cached = all(result.cached for result in succeeded)
        logger.info(
            f"Aggregated {len(ordered)} events from {len(succeeded)}/{len(enabled)} datasources",
            extra={'cached': cached, 'dropped_by_cutoff': len(merged) - len(filtered)}
        )
        return AggregationResult(events=ordered, summaries=summaries, cached=cached, segments=segments)

    def preview(self, source: ProviderConfig, context: QueryContext) -> Dict[str, Any]:
        """
        Fetch one datasource and return a capped, sorted sample.

        Args:
            source: Datasource config
            context: Normalized query (``limit`` caps the sample)

        Returns:
            Preview envelope with ``ok``, ``status`` and ``preview`` fields
        """
        if context.image_quota is None:
            context.image_quota = ImageQuota(self.settings.image_hydration_limit)
        result, summary = self._run_fetch(source, context)
        envelope: Dict[str, Any] = {
            'sourceId': source.id,
            'type': source.type,
            'ok': summary.ok,
            'fetchedAt': format_utc(utc_now()),
        }
        if result is None:
            envelope['status'] = summary.status or 502
            envelope['error'] = summary.error or 'Request failed'
            return envelope

        events = apply_weekday_cutoff(
            dedupe_events(result.events), self.settings.weekday_cutoff, self.scoped_cutoff_sources([source])
        )
        events = sort_events_by_time_and_distance(events, self.settings.local_timezone)
        limit = context.limit if context.limit is not None else len(events)
        envelope['status'] = 200
        envelope['preview'] = {
            'total': len(events),
            'truncated': len(events) > limit,
            'events': [event.to_dict() for event in events[:limit]],
            'segments': list(result.segments),
        }
        return envelope
