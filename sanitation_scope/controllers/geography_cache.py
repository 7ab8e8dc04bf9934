"""Memoised loader for district / block / GP option lists.

Geography is static reference data for a session: a list, once loaded for a
parent key, is stored as an immutable tuple and never replaced. Loads still
in flight are shared, so a hover prefetch and a click for the same key issue
a single provider request.
"""
import asyncio
import logging
from typing import Dict, Optional, Tuple

from sanitation_scope.clients.api import GeographyProvider
from sanitation_scope.models.geography import Collection, GeographyNode, LoadResult, ProviderResult

logger = logging.getLogger(__name__)

CacheKey = Tuple[Collection, Tuple[int, ...]]


def parent_key_for(collection: Collection, district_id: Optional[int] = None, block_id: Optional[int] = None) -> Dict[str, int]:
    """Build the parent key a collection is listed under."""
    if collection == Collection.DISTRICTS:
        return {}
    if collection == Collection.BLOCKS:
        return {"district_id": district_id}
    return {"district_id": district_id, "block_id": block_id}


def _cache_key(collection: Collection, parent_key: Dict[str, int]) -> CacheKey:
    if collection == Collection.DISTRICTS:
        return collection, ()
    if collection == Collection.BLOCKS:
        return collection, (parent_key["district_id"],)
    return collection, (parent_key["district_id"], parent_key["block_id"])


class GeographyCache:
    def __init__(self, provider: GeographyProvider):
        self._provider = provider
        self._entries: Dict[CacheKey, Tuple[GeographyNode, ...]] = {}
        self._pending: Dict[CacheKey, asyncio.Task] = {}

    async def load(self, collection: Collection, parent_key: Optional[Dict[str, int]] = None) -> LoadResult:
        """Return the option list for ``(collection, parent_key)``.

        Failures are not cached: the caller gets an empty list plus the
        error, and the next call for the same key tries again.
        """
        key = _cache_key(collection, parent_key or {})
        cached = self._entries.get(key)
        if cached is not None:
            return LoadResult(items=list(cached))

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key))
            self._pending[key] = task
            task.add_done_callback(lambda _t, k=key: self._pending.pop(k, None))

        # shield: one caller being cancelled must not cancel the shared load
        result = await asyncio.shield(task)
        return LoadResult(items=list(result.items), error=result.error)

    def peek(self, collection: Collection, parent_key: Optional[Dict[str, int]] = None) -> Optional[Tuple[GeographyNode, ...]]:
        """Cached list for a key, or None if it has not loaded successfully."""
        return self._entries.get(_cache_key(collection, parent_key or {}))

    def is_pending(self, collection: Collection, parent_key: Optional[Dict[str, int]] = None) -> bool:
        return _cache_key(collection, parent_key or {}) in self._pending

    def find(self, collection: Collection, node_id: int) -> Optional[GeographyNode]:
        """Look up a node by id across every cached list of a collection."""
        for (entry_collection, _), nodes in self._entries.items():
            if entry_collection != collection:
                continue
            for node in nodes:
                if node.id == node_id:
                    return node
        return None

    async def _fetch(self, key: CacheKey) -> LoadResult:
        collection, ids = key
        logger.info(f"Loading {collection.value} for {ids or 'state'}")
        try:
            if collection == Collection.DISTRICTS:
                result: ProviderResult = await self._provider.list_districts()
            elif collection == Collection.BLOCKS:
                result = await self._provider.list_blocks(*ids)
            else:
                result = await self._provider.list_gps(*ids)
        except Exception as e:
            # anything a provider raises is treated like a reported error
            logger.error(f"Geography provider raised for {collection.value} {ids}: {str(e)}")
            return LoadResult(error=str(e) or e.__class__.__name__)

        if not result.ok:
            logger.error(f"Failed to load {collection.value} for {ids or 'state'}: {result.error}")
            return LoadResult(error=result.error)

        nodes = tuple(result.data or ())
        self._entries[key] = nodes
        logger.info(f"Loaded {len(nodes)} {collection.value} for {ids or 'state'}")
        return LoadResult(items=list(nodes))
