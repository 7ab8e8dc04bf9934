"""Translates dropdown hovers and clicks into cache loads and commits.

Hovering only moves the hierarchy cursor and prefetches the next column;
clicking commits. The two paths share nothing but the cache, so a click
never waits on, or is overwritten by, a hover prefetch still in flight.
"""
import logging
from typing import Callable, Dict, List, Optional

from sanitation_scope.controllers.geography_cache import GeographyCache, parent_key_for
from sanitation_scope.controllers.selection import ScopeSelection
from sanitation_scope.models.geography import Collection, GeographyNode, LoadResult, ScopeTier

logger = logging.getLogger(__name__)


class DropdownInteractionController:
    def __init__(self, selection: ScopeSelection, cache: GeographyCache):
        self.selection = selection
        self.cache = cache
        self.is_open = False
        self.options: Dict[Collection, List[GeographyNode]] = {c: [] for c in Collection}
        self.errors: Dict[Collection, Optional[str]] = {c: None for c in Collection}
        self._shown: Dict[Collection, Optional[Dict[str, int]]] = {c: None for c in Collection}

    @property
    def policy(self):
        return self.selection.policy

    @property
    def columns(self) -> List[Collection]:
        """Browsable columns for the active tier, coarsest first."""
        return self.policy.browsable_columns(self.selection.active_tier)

    def _clear_columns(self, *collections: Collection) -> None:
        for collection in collections or tuple(Collection):
            self.options[collection] = []
            self.errors[collection] = None
            self._shown[collection] = None

    # ============= LOADING =============

    async def _show(self, collection: Collection, parent_key: Dict[str, int],
                    still_current: Callable[[], bool] = lambda: True) -> LoadResult:
        """Load a column and display it if the cursor still points at it."""
        result = await self.cache.load(collection, parent_key)
        if not still_current():
            logger.info(f"Ignoring {collection.value} for {parent_key}: cursor moved on")
            return result
        self.options[collection] = result.items
        self.errors[collection] = result.error
        self._shown[collection] = parent_key
        if result.error is None:
            self._reconcile(collection, parent_key, result.items)
        return result

    def _reconcile(self, collection: Collection, parent_key: Dict[str, int], items: List[GeographyNode]) -> None:
        if collection == Collection.BLOCKS:
            self.selection.reconcile_blocks(parent_key["district_id"], items)
        elif collection == Collection.GPS:
            self.selection.reconcile_gps(parent_key["block_id"], items)

    def _branch_district_id(self) -> Optional[int]:
        cursor = self.selection.cursor
        if cursor.district is not None:
            return cursor.district.id
        return self.selection.district_id

    def _branch_block(self) -> Optional[GeographyNode]:
        cursor = self.selection.cursor
        if cursor.block is not None:
            return cursor.block
        if self.selection.block_id is not None:
            return GeographyNode(
                id=self.selection.block_id,
                name=self.selection.block_name or "",
                parent_id=self.selection.district_id,
            )
        return None

    def _parent_key(self, collection: Collection) -> Optional[Dict[str, int]]:
        """Parent key of a column along the cursor's branch, if known."""
        if collection == Collection.DISTRICTS:
            return parent_key_for(collection)
        district_id = self._branch_district_id()
        if district_id is None:
            return None
        if collection == Collection.BLOCKS:
            return parent_key_for(collection, district_id)
        block = self._branch_block()
        if block is None:
            return None
        return parent_key_for(collection, block.parent_id or district_id, block.id)

    async def load_column(self, collection: Collection) -> Optional[LoadResult]:
        parent_key = self._parent_key(collection)
        if parent_key is None:
            return None
        return await self._show(collection, parent_key, lambda: self._parent_key(collection) == parent_key)

    async def retry_column(self, collection: Collection) -> Optional[LoadResult]:
        """Reload a column whose last load failed."""
        logger.info(f"Retrying {collection.value}")
        return await self.load_column(collection)

    # ============= TIER & OPEN/CLOSE =============

    async def set_active_tier(self, tier: ScopeTier) -> bool:
        if not self.selection.set_active_tier(tier):
            return False
        self.is_open = False
        self._clear_columns()
        columns = self.columns
        if columns:
            await self.load_column(columns[0])
        return True

    async def open(self) -> bool:
        """Open the dropdown at the cursor's branch; False if nothing is browsable."""
        columns = self.columns
        if not columns:
            return False
        self.is_open = True
        self.selection.release_stale_labels()
        for collection in columns:
            await self.load_column(collection)
        return True

    def close(self) -> None:
        self.is_open = False

    def click_outside(self) -> None:
        """A click outside the dropdown closes it and commits nothing."""
        self.close()

    # ============= HOVER =============

    async def hover_district(self, node: GeographyNode) -> Optional[LoadResult]:
        """Aim the cursor at a district and prefetch its blocks."""
        tier = self.selection.active_tier
        if tier not in (ScopeTier.BLOCK, ScopeTier.GP) or not self.policy.can_browse(Collection.DISTRICTS, tier):
            return None
        if not self.selection.move_cursor_district(node):
            return None
        if self._shown[Collection.BLOCKS] != parent_key_for(Collection.BLOCKS, node.id):
            self._clear_columns(Collection.BLOCKS, Collection.GPS)

        def _still_hovered():
            district = self.selection.cursor.district
            return district is not None and district.id == node.id

        return await self._show(Collection.BLOCKS, parent_key_for(Collection.BLOCKS, node.id), _still_hovered)

    async def hover_block(self, node: GeographyNode) -> Optional[LoadResult]:
        """Aim the cursor at a block and prefetch its GPs."""
        tier = self.selection.active_tier
        if tier != ScopeTier.GP or not self.policy.can_browse(Collection.BLOCKS, tier):
            return None
        if not self.selection.move_cursor_block(node):
            return None
        district_id = node.parent_id or self._branch_district_id()
        if district_id is None:
            return None
        parent_key = parent_key_for(Collection.GPS, district_id, node.id)
        if self._shown[Collection.GPS] != parent_key:
            self._clear_columns(Collection.GPS)

        def _still_hovered():
            block = self.selection.cursor.block
            return block is not None and block.id == node.id

        return await self._show(Collection.GPS, parent_key, _still_hovered)

    # ============= CLICK =============

    async def click_district(self, node: GeographyNode) -> bool:
        tier = self.selection.active_tier
        if not self.policy.can_browse(Collection.DISTRICTS, tier):
            logger.warning(f"District column is not browsable at {tier.label} tier")
            return False
        if not self.selection.commit_district(node):
            return False
        if tier == ScopeTier.DISTRICT:
            self.close()
            return True
        self._clear_columns(Collection.BLOCKS, Collection.GPS)
        await self.load_column(Collection.BLOCKS)
        return True

    async def click_block(self, node: GeographyNode) -> bool:
        tier = self.selection.active_tier
        if not self.policy.can_browse(Collection.BLOCKS, tier):
            logger.warning(f"Block column is not browsable at {tier.label} tier")
            return False
        if not self.selection.commit_block(node):
            return False
        if tier == ScopeTier.BLOCK:
            self.close()
            return True
        self._clear_columns(Collection.GPS)
        await self.load_column(Collection.GPS)
        return True

    async def click_gp(self, node: GeographyNode) -> bool:
        tier = self.selection.active_tier
        if not self.policy.can_browse(Collection.GPS, tier):
            logger.warning(f"GP column is not browsable at {tier.label} tier")
            return False
        # ancestors come from the cached lists when the GP's block is listed
        block = self.cache.find(Collection.BLOCKS, node.parent_id) if node.parent_id is not None else None
        district = None
        if block is not None and block.parent_id is not None:
            district = self.cache.find(Collection.DISTRICTS, block.parent_id)
        if not self.selection.commit_gp(node, block=block, district=district):
            return False
        self.close()
        return True
