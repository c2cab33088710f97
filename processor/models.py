"""Data models for the event aggregation pipeline."""
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Address:
    """Coarse venue address."""
    city: str = ''
    region: str = ''
    country: str = ''

    def to_dict(self) -> Dict[str, str]:
        return {'city': self.city, 'region': self.region, 'country': self.country}


@dataclass
class Venue:
    """Venue an event takes place at."""
    name: str = ''
    address: Address = field(default_factory=Address)

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'address': self.address.to_dict()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Venue':
        data = data if isinstance(data, dict) else {}
        address = data.get('address') if isinstance(data.get('address'), dict) else {}
        return cls(
            name=str(data.get('name') or ''),
            address=Address(
                city=str(address.get('city') or ''),
                region=str(address.get('region') or ''),
                country=str(address.get('country') or ''),
            ),
        )


@dataclass
class EventTime:
    """A point in time as venue-local wall time and as UTC, both ISO 8601."""
    local: Optional[str] = None
    utc: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'local': self.local, 'utc': self.utc}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'EventTime':
        data = data if isinstance(data, dict) else {}
        return cls(local=data.get('local') or None, utc=data.get('utc') or None)


@dataclass
class EventImage:
    """Image attached to an event."""
    url: str
    ratio: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'ratio': self.ratio,
            'width': self.width,
            'height': self.height,
            'fallback': self.fallback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventImage':
        width = data.get('width')
        height = data.get('height')
        return cls(
            url=str(data.get('url') or ''),
            ratio=data.get('ratio'),
            width=width if isinstance(width, int) else None,
            height=height if isinstance(height, int) else None,
            fallback=bool(data.get('fallback')),
        )


@dataclass
class Event:
    """Canonical, provider-agnostic event."""
    id: str
    name: str
    source: str
    start: EventTime = field(default_factory=EventTime)
    end: Optional[EventTime] = None
    url: str = ''
    alternate_links: List[str] = field(default_factory=list)
    venue: Venue = field(default_factory=Venue)
    segment: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    distance: Optional[float] = None
    summary: str = ''
    images: List[EventImage] = field(default_factory=list)
    extensions: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON wire shape (camelCase keys)."""
        data: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'start': self.start.to_dict(),
            'url': self.url,
            'venue': self.venue.to_dict(),
            'segment': self.segment,
            'genres': list(self.genres),
            'distance': self.distance,
            'summary': self.summary,
            'source': self.source,
            'images': [image.to_dict() for image in self.images],
        }
        if self.end is not None:
            data['end'] = self.end.to_dict()
        if self.alternate_links:
            data['alternateLinks'] = list(self.alternate_links)
        if self.extensions:
            data['extensions'] = dict(self.extensions)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Event':
        """Rebuild an event from its wire shape (used for cached payloads)."""
        distance = data.get('distance')
        images = data.get('images') if isinstance(data.get('images'), list) else []
        return cls(
            id=str(data.get('id') or ''),
            name=str(data.get('name') or ''),
            source=str(data.get('source') or ''),
            start=EventTime.from_dict(data.get('start')),
            end=EventTime.from_dict(data['end']) if isinstance(data.get('end'), dict) else None,
            url=str(data.get('url') or ''),
            alternate_links=[str(link) for link in data.get('alternateLinks') or []],
            venue=Venue.from_dict(data.get('venue')),
            segment=data.get('segment'),
            genres=[str(genre) for genre in data.get('genres') or []],
            distance=float(distance) if isinstance(distance, (int, float)) else None,
            summary=str(data.get('summary') or ''),
            images=[EventImage.from_dict(image) for image in images if isinstance(image, dict)],
            extensions=dict(data.get('extensions') or {}),
        )


@dataclass
class ProviderConfig:
    """Externally supplied datasource configuration (read-only per request)."""
    id: str
    name: str
    type: str
    enabled: bool = True
    order: int = 0
    description: str = ''
    config: Dict[str, Any] = field(default_factory=dict)


class ImageQuota:
    """
    Thread-safe counter bounding image hydration work.

    A quota may be nested under a parent (e.g. a provider quota under the
    request-wide quota); consuming decrements both.
    """

    def __init__(self, limit: int, parent: Optional['ImageQuota'] = None):
        self.remaining = max(0, int(limit))
        self.parent = parent
        self._lock = threading.Lock()

    @property
    def exhausted(self) -> bool:
        if self.remaining <= 0:
            return True
        return self.parent.exhausted if self.parent is not None else False

    def child(self, limit: int) -> 'ImageQuota':
        return ImageQuota(limit, parent=self)

    def consume(self) -> bool:
        """Take one unit; returns False when the quota (or its parent) is spent."""
        with self._lock:
            if self.remaining <= 0:
                return False
            if self.parent is not None and not self.parent.consume():
                return False
            self.remaining -= 1
            return True


@dataclass
class QueryContext:
    """Normalized query shape for one aggregation request."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_miles: float = 50.0
    lookahead_days: int = 14
    limit: Optional[int] = None
    image_quota: Optional[ImageQuota] = None


@dataclass
class ProviderResult:
    """Events returned by one adapter call."""
    events: List[Event]
    cached: bool = False
    segments: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ProviderSummary:
    """Per-provider diagnostic summary reported with every response."""
    id: str
    name: str
    type: str
    ok: bool
    cached: bool = False
    total: Optional[int] = None
    status: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'ok': self.ok,
            'cached': self.cached,
        }
        if self.ok:
            data['total'] = self.total if self.total is not None else 0
        else:
            data['status'] = self.status
            data['error'] = self.error or 'Request failed'
        return data


@dataclass
class AggregationResult:
    """Merged, filtered and sorted output of one aggregation request."""
    events: List[Event]
    summaries: List[ProviderSummary]
    cached: bool
    segments: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CacheEntry:
    """Immutable snapshot stored in the response cache."""
    body: str
    status: int = 200
    content_type: str = 'application/json'
    metadata: Dict[str, Any] = field(default_factory=dict)
    key_parts: List[str] = field(default_factory=list)
    written_at: int = 0  # epoch milliseconds
