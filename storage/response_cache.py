"""DynamoDB-backed response cache with an in-process LRU fast path."""
import hashlib
import json
import logging
import threading
import time
import zlib
from collections import OrderedDict
from typing import Callable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import CacheEntry

logger = logging.getLogger(__name__)


def build_cache_key(collection: str, key_parts: List[str]) -> str:
    """
    Derive the item key for a collection and its key parts.

    Args:
        collection: Logical cache collection (e.g. ``ticketmasterCache``)
        key_parts: Ordered, non-empty strings describing the request

    Returns:
        ``"{collection}:{sha256 of the JSON-encoded parts}"``
    """
    digest = hashlib.sha256(
        json.dumps(list(key_parts), separators=(',', ':')).encode('utf-8')
    ).hexdigest()
    return f"{collection}:{digest}"


class ResponseCache:
    """Read-through/write-through cache of provider payloads."""

    HOUSEKEEPING_TTL_SECONDS = 7 * 24 * 60 * 60

    def __init__(self, table_name: str, region_name: Optional[str] = None,
                 memory_max_entries: int = 256, clock: Callable[[], float] = time.time,
                 dynamodb=None):
        """
        Initialize DynamoDB table reference and the in-process layer.

        Args:
            table_name: Name of the DynamoDB table (hash key ``cache_key``)
            region_name: AWS region (default: from the environment)
            memory_max_entries: Bound of the in-process LRU
            clock: Returns the current time in epoch seconds
            dynamodb: Pre-built boto3 DynamoDB resource
        """
        self.table_name = table_name
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self.memory_max_entries = max(0, memory_max_entries)
        self.clock = clock
        self._memory: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._lock = threading.Lock()
        logger.info(f"Initialized ResponseCache for table: {table_name}")

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _is_fresh(self, entry: CacheEntry, ttl_seconds: float) -> bool:
        return self._now_ms() - entry.written_at < ttl_seconds * 1000

    def _remember(self, cache_key: str, entry: CacheEntry) -> None:
        if not self.memory_max_entries:
            return
        with self._lock:
            self._memory[cache_key] = entry
            self._memory.move_to_end(cache_key)
            while len(self._memory) > self.memory_max_entries:
                self._memory.popitem(last=False)

    def _recall(self, cache_key: str, ttl_seconds: float) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._memory.get(cache_key)
            if entry is None:
                return None
            if not self._is_fresh(entry, ttl_seconds):
                del self._memory[cache_key]
                return None
            self._memory.move_to_end(cache_key)
            return entry

    def read(self, collection: str, key_parts: List[str], ttl_seconds: float) -> Optional[CacheEntry]:
        """
        Return a fresh entry, or None on miss, expiry or storage failure.

        Args:
            collection: Cache collection
            key_parts: Key parts of the request
            ttl_seconds: Maximum age of a usable entry

        Returns:
            CacheEntry or None
        """
        cache_key = build_cache_key(collection, key_parts)
        entry = self._recall(cache_key, ttl_seconds)
        if entry is not None:
            logger.debug(f"Memory cache hit for {collection}")
            return entry

        try:
            item = self.table.get_item(Key={'cache_key': cache_key}).get('Item')
            if not item:
                return None
            entry = self._item_to_entry(item)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Cache read failed for {collection}: {e}")
            return None
        except (zlib.error, ValueError, KeyError) as e:
            logger.warning(f"Discarding unreadable cache item for {collection}: {e}")
            return None

        if not self._is_fresh(entry, ttl_seconds):
            logger.debug(f"Cache entry for {collection} is stale")
            return None
        self._remember(cache_key, entry)
        logger.debug(f"Cache hit for {collection}")
        return entry

    def write(self, collection: str, key_parts: List[str], entry: CacheEntry) -> bool:
        """
        Store an entry stamped with the current time.

        Failures are logged and swallowed; the in-process layer is updated
        either way.

        Returns:
            True if the durable write succeeded
        """
        cache_key = build_cache_key(collection, key_parts)
        entry.written_at = self._now_ms()
        entry.key_parts = list(key_parts)
        self._remember(cache_key, entry)

        try:
            self.table.put_item(Item=self._entry_to_item(cache_key, collection, entry))
            logger.debug(f"Cached payload for {collection}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Cache write failed for {collection}: {e}")
            return False

    def clear(self, collection: str) -> int:
        """
        Delete every entry of a collection.

        Args:
            collection: Cache collection to empty

        Returns:
            Number of durable items deleted

        Raises:
            ClientError: If the scan or delete fails
        """
        prefix = f"{collection}:"
        with self._lock:
            for cache_key in [key for key in self._memory if key.startswith(prefix)]:
                del self._memory[cache_key]

        scan_kwargs = {
            'FilterExpression': Attr('collection').eq(collection),
            'ProjectionExpression': 'cache_key',
        }
        try:
            response = self.table.scan(**scan_kwargs)
            keys = [item['cache_key'] for item in response.get('Items', [])]
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **scan_kwargs
                )
                keys.extend(item['cache_key'] for item in response.get('Items', []))

            with self.table.batch_writer() as batch:
                for cache_key in keys:
                    batch.delete_item(Key={'cache_key': cache_key})
        except ClientError as e:
            logger.error(f"Error clearing cache collection {collection}: {e}")
            raise

        logger.info(f"Cleared {len(keys)} entries from {collection}")
        return len(keys)

    def _entry_to_item(self, cache_key: str, collection: str, entry: CacheEntry) -> dict:
        return {
            'cache_key': cache_key,
            'collection': collection,
            'key_parts': list(entry.key_parts),
            'status': entry.status,
            'content_type': entry.content_type,
            'body': zlib.compress(entry.body.encode('utf-8')),
            'metadata': json.dumps(entry.metadata or {}),
            'written_at': entry.written_at,
            'ttl': entry.written_at // 1000 + self.HOUSEKEEPING_TTL_SECONDS,
        }

    def _item_to_entry(self, item: dict) -> CacheEntry:
        body = item['body']
        raw = body.value if hasattr(body, 'value') else bytes(body)
        return CacheEntry(
            body=zlib.decompress(raw).decode('utf-8'),
            status=int(item.get('status', 200)),
            content_type=str(item.get('content_type', 'application/json')),
            metadata=json.loads(item.get('metadata') or '{}'),
            key_parts=[str(part) for part in item.get('key_parts', [])],
            written_at=int(item['written_at']),
        )
