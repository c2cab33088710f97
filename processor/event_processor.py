"""Event processor for validating and normalizing canonical events."""
import logging
import math
from typing import List, Optional

from processor.dates import is_valid_local, local_to_utc, normalize_utc
from processor.models import Event, EventTime

logger = logging.getLogger(__name__)


class EventProcessor:
    """Validates provider output and enforces the canonical event shape."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000

    def __init__(self, local_timezone: str = 'America/New_York'):
        """
        Initialize the processor.

        Args:
            local_timezone: Zone used to derive UTC from a local-only start
        """
        self.local_timezone = local_timezone

    def process_events(self, raw_events: List[Event]) -> List[Event]:
        """
        Validate and normalize events from one provider.

        Args:
            raw_events: Events built by a provider adapter

        Returns:
            List of valid, normalized Event objects
        """
        processed_events = []

        for event in raw_events:
            try:
                processed_event = self._process_single_event(event)
                if processed_event:
                    processed_events.append(processed_event)
            except Exception as e:
                logger.warning(
                    f"Failed to process event '{getattr(event, 'name', '')}': {e}"
                )
                continue

        logger.debug(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed_events

    def _process_single_event(self, event: Event) -> Optional[Event]:
        """
        Process a single event.

        Args:
            event: Event from a provider

        Returns:
            Normalized Event or None if validation fails
        """
        if not event.id or not str(event.id).strip():
            logger.warning(f"Event '{event.name}' missing required field: id")
            return None
        if not event.name or not event.name.strip():
            logger.warning(f"Event '{event.id}' missing required field: name")
            return None

        event.name = event.name.strip()[:self.MAX_TITLE_LENGTH]
        event.summary = (event.summary or '')[:self.MAX_DESCRIPTION_LENGTH]
        event.start = self._normalize_time(event.start)
        if event.end is not None:
            end = self._normalize_time(event.end)
            event.end = end if (end.local or end.utc) else None
        event.genres = self._dedupe_genres(event.genres)
        event.distance = self._normalize_distance(event.distance)
        event.images = [image for image in event.images if image.url]
        event.alternate_links = [link for link in event.alternate_links if link and link != event.url]
        return event

    def _normalize_time(self, value: Optional[EventTime]) -> EventTime:
        """
        Make a time satisfy "local is null only when utc is null".

        Unparseable values, including impossible calendar dates, are dropped.
        A local-only time gets a UTC value derived from the configured zone
        and is dropped when none can be derived; a UTC-only time uses the
        UTC value as its local value.
        """
        value = value or EventTime()
        local = value.local if is_valid_local(value.local) else None
        utc = normalize_utc(value.utc)
        if local and not utc:
            utc = local_to_utc(local, self.local_timezone)
            if not utc:
                local = None
        if utc and not local:
            local = utc
        return EventTime(local=local, utc=utc)

    def _dedupe_genres(self, genres: List[str]) -> List[str]:
        seen = set()
        unique = []
        for genre in genres or []:
            text = str(genre).strip() if genre else ''
            if not text or text.lower() in seen:
                continue
            seen.add(text.lower())
            unique.append(text)
        return unique

    def _normalize_distance(self, distance) -> Optional[float]:
        if isinstance(distance, bool) or not isinstance(distance, (int, float)):
            return None
        if not math.isfinite(distance) or distance < 0:
            return None
        return float(distance)
