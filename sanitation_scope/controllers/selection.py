"""Committed scope selection for one dashboard view.

``ScopeSelection`` is the only holder of the active tier and the committed
district / block / GP ids. It has two write paths:

* the hierarchy cursor, moved by hovering dropdown columns. It never affects
  the fetch key and may disagree with the committed fields.
* the committed fields, changed only by tier switches, clicks, fiscal year
  changes, resets and reconciliation. Every such change is recorded in the
  change history and announced to subscribers.

Fields pinned by the role policy are reseeded on every mutation, so no call
sequence can move them.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from sanitation_scope import config
from sanitation_scope.controllers.policy import RoleScopePolicy
from sanitation_scope.models.geography import (
    ChangeType, GeographyNode, HierarchyCursor, LocationChange, LocationSnapshot, ScopeTier,
)

logger = logging.getLogger(__name__)

SelectionListener = Callable[["ScopeSelection"], None]

# Placeholder names the backend uses when an officer's assignment is unnamed
GENERIC_NAMES = {"district", "block", "village", "gp"}


class ScopeSelection:
    def __init__(self, policy: RoleScopePolicy, state_name: Optional[str] = None):
        self.policy = policy
        self.state_name = state_name or config.STATE_NAME
        self.active_tier: ScopeTier = policy.default_tier
        self.district_id: Optional[int] = None
        self.block_id: Optional[int] = None
        self.gp_id: Optional[int] = None
        self.fiscal_year_id: Optional[int] = None
        self.district_name: Optional[str] = None
        self.block_name: Optional[str] = None
        self.gp_name: Optional[str] = None
        self.cursor = HierarchyCursor()
        self.history: List[LocationChange] = []
        self._listeners: List[SelectionListener] = []
        self._fixed_names = {
            ScopeTier.DISTRICT: policy.fixed.district_name,
            ScopeTier.BLOCK: policy.fixed.block_name,
            ScopeTier.GP: policy.fixed.gp_name,
        }
        self._seed_fixed()

    # ============= SUBSCRIPTION & HISTORY =============

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        """Call ``listener`` after every committed change; returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    @property
    def last_change(self) -> Optional[LocationChange]:
        return self.history[-1] if self.history else None

    def clear_history(self) -> None:
        self.history = []
        logger.info("Change history cleared")

    def snapshot(self) -> LocationSnapshot:
        return LocationSnapshot(
            scope=self.active_tier,
            location=self.display_label(),
            district_id=self.district_id,
            block_id=self.block_id,
            gp_id=self.gp_id,
            fiscal_year_id=self.fiscal_year_id,
        )

    @contextmanager
    def _change(self, change_type: ChangeType):
        previous = self.snapshot()
        yield
        self._seed_fixed(reset_cursor=False)
        current = self.snapshot()
        if current == previous and change_type != ChangeType.RESET:
            return
        change = LocationChange(
            timestamp=datetime.now(timezone.utc),
            change_type=change_type,
            previous=previous,
            current=current,
        )
        self.history.append(change)
        logger.info(
            f"Location change ({change_type.value}): {previous.scope.value}/{previous.location} "
            f"-> {current.scope.value}/{current.location}"
        )
        for listener in list(self._listeners):
            listener(self)

    # ============= FIXED FIELDS =============

    def _seed_fixed(self, reset_cursor: bool = True) -> None:
        fixed = self.policy.fixed
        if fixed.district_id is not None:
            self.district_id = fixed.district_id
            self.district_name = self._fixed_names[ScopeTier.DISTRICT] or self.district_name
        if fixed.block_id is not None:
            self.block_id = fixed.block_id
            self.block_name = self._fixed_names[ScopeTier.BLOCK] or self.block_name
        if fixed.gp_id is not None:
            self.gp_id = fixed.gp_id
            self.gp_name = self._fixed_names[ScopeTier.GP] or self.gp_name
        if reset_cursor:
            self.cursor = HierarchyCursor(district=self._fixed_district_node(), block=self._fixed_block_node())

    def _fixed_district_node(self) -> Optional[GeographyNode]:
        fixed = self.policy.fixed
        if fixed.district_id is None:
            return None
        return GeographyNode(id=fixed.district_id, name=self._fixed_names[ScopeTier.DISTRICT] or "")

    def _fixed_block_node(self) -> Optional[GeographyNode]:
        fixed = self.policy.fixed
        if fixed.block_id is None:
            return None
        return GeographyNode(
            id=fixed.block_id,
            name=self._fixed_names[ScopeTier.BLOCK] or "",
            parent_id=fixed.district_id,
        )

    def label_fixed(self, district_name: Optional[str] = None, block_name: Optional[str] = None) -> None:
        """Attach names resolved after start-up to the pinned fields."""
        fixed = self.policy.fixed
        if district_name and fixed.district_id is not None:
            self._fixed_names[ScopeTier.DISTRICT] = district_name
            self.district_name = district_name
            if self.cursor.district is not None and self.cursor.district.id == fixed.district_id:
                self.cursor.district = self._fixed_district_node()
        if block_name and fixed.block_id is not None:
            self._fixed_names[ScopeTier.BLOCK] = block_name
            self.block_name = block_name
            if self.cursor.block is not None and self.cursor.block.id == fixed.block_id:
                self.cursor.block = self._fixed_block_node()

    def _rejects(self, tier: ScopeTier, node_id: Optional[int]) -> bool:
        fixed_id = self.policy.fixed.id_for(tier)
        if fixed_id is not None and node_id is not None and node_id != fixed_id:
            logger.warning(
                f"Rejected {tier.label} {node_id}: {self.policy.role.value} officer is fixed to {fixed_id}"
            )
            return True
        return False

    # ============= TIER =============

    def set_active_tier(self, tier: ScopeTier) -> bool:
        """Switch tabs; clears every non-fixed id and re-aims the cursor."""
        if not self.policy.allows_tier(tier):
            logger.warning(f"Tier {tier.label} is not available to the {self.policy.role.value} role")
            return False
        with self._change(ChangeType.TAB_CHANGE):
            self.active_tier = tier
            self._clear_from(ScopeTier.DISTRICT)
            self._seed_fixed()
        return True

    def _clear_from(self, tier: ScopeTier) -> None:
        """Clear committed ids and names at ``tier`` and below."""
        if tier.depth <= ScopeTier.DISTRICT.depth:
            self.district_id = None
            self.district_name = None
        if tier.depth <= ScopeTier.BLOCK.depth:
            self.block_id = None
            self.block_name = None
        if tier.depth <= ScopeTier.GP.depth:
            self.gp_id = None
            self.gp_name = None

    # ============= CURSOR =============

    def move_cursor_district(self, node: GeographyNode) -> bool:
        if self.policy.is_fixed(ScopeTier.DISTRICT):
            return False
        if self.cursor.district is None or self.cursor.district.id != node.id:
            self.cursor.district = node
            self.cursor.block = None
        return True

    def move_cursor_block(self, node: GeographyNode) -> bool:
        if self.policy.is_fixed(ScopeTier.BLOCK):
            return False
        district = self.cursor.district
        if node.parent_id is not None and district is not None and node.parent_id != district.id:
            logger.warning(f"Block {node.id} is not under cursor district {district.id}")
            return False
        self.cursor.block = node
        return True

    # ============= COMMITS =============

    def commit_district(self, node: GeographyNode) -> bool:
        if self._rejects(ScopeTier.DISTRICT, node.id):
            return False
        with self._change(ChangeType.DROPDOWN_CHANGE):
            self._clear_from(ScopeTier.DISTRICT)
            self.district_id = node.id
            self.district_name = node.name
            self.cursor = HierarchyCursor(district=node)
        return True

    def commit_block(self, node: GeographyNode, district: Optional[GeographyNode] = None) -> bool:
        """Commit a block and its district; the district comes from what is
        known about the block itself, then ``district``, then the cursor."""
        district = district or self.cursor.district
        district_id = self._district_of_block(node.id, node)
        if district_id is None:
            district_id = district.id if district is not None else self.district_id
        if district_id is None:
            logger.warning(f"Cannot commit block {node.id} without a district")
            return False
        if district is not None and district.id != district_id:
            district = None
        if self._rejects(ScopeTier.DISTRICT, district_id) or self._rejects(ScopeTier.BLOCK, node.id):
            return False

        district_name = district.name if district is not None else self._known_district_name(district_id)
        with self._change(ChangeType.DROPDOWN_CHANGE):
            self._clear_from(ScopeTier.DISTRICT)
            self.district_id = district_id
            self.district_name = district_name
            self.block_id = node.id
            self.block_name = node.name
            self.cursor = HierarchyCursor(
                district=district or GeographyNode(id=district_id, name=district_name or ""),
                block=node,
            )
        return True

    def commit_gp(self, node: GeographyNode, block: Optional[GeographyNode] = None,
                  district: Optional[GeographyNode] = None) -> bool:
        """Commit a GP together with the ancestors that produced it."""
        block = block or self.cursor.block
        block_id = node.parent_id
        if block_id is None:
            block_id = block.id if block is not None else self.block_id
        if block is not None and block.id != block_id:
            block = None
        if block_id is None:
            logger.warning(f"Cannot commit GP {node.id} without a block")
            return False

        district = district or self.cursor.district
        district_id = self._district_of_block(block_id, block)
        if district_id is None and district is not None:
            district_id = district.id
        if district is not None and district.id != district_id:
            district = None
        if district_id is None:
            logger.warning(f"Cannot commit GP {node.id} without a district")
            return False

        if (self._rejects(ScopeTier.DISTRICT, district_id)
                or self._rejects(ScopeTier.BLOCK, block_id)
                or self._rejects(ScopeTier.GP, node.id)):
            return False

        district_name = district.name if district is not None else self._known_district_name(district_id)
        block_name = block.name if block is not None else self._known_block_name(block_id)
        with self._change(ChangeType.DROPDOWN_CHANGE):
            self._clear_from(ScopeTier.DISTRICT)
            self.district_id = district_id
            self.district_name = district_name
            self.block_id = block_id
            self.block_name = block_name
            self.gp_id = node.id
            self.gp_name = node.name
            self.cursor = HierarchyCursor(
                district=district or GeographyNode(id=district_id, name=district_name or ""),
                block=block or GeographyNode(id=block_id, name=block_name or "", parent_id=district_id),
            )
        return True

    def _district_of_block(self, block_id: int, block: Optional[GeographyNode] = None) -> Optional[int]:
        """Parent district of a block, or None when nothing about it is known.

        The cursor is not consulted: a hover may have moved it to another
        district since the block was listed.
        """
        if block is not None and block.id == block_id and block.parent_id is not None:
            return block.parent_id
        if block_id == self.block_id and self.district_id is not None:
            return self.district_id
        if block_id == self.policy.fixed.block_id:
            return self.policy.fixed.district_id
        return None

    def _known_district_name(self, district_id: int) -> Optional[str]:
        if self.district_id == district_id:
            return self.district_name
        if self.policy.fixed.district_id == district_id:
            return self._fixed_names[ScopeTier.DISTRICT]
        return None

    def _known_block_name(self, block_id: int) -> Optional[str]:
        if self.block_id == block_id:
            return self.block_name
        if self.policy.fixed.block_id == block_id:
            return self._fixed_names[ScopeTier.BLOCK]
        return None

    # ============= FISCAL YEAR & RESET =============

    def set_fiscal_year(self, fiscal_year_id: Optional[int],
                        change_type: ChangeType = ChangeType.FISCAL_YEAR_CHANGE) -> None:
        with self._change(change_type):
            self.fiscal_year_id = fiscal_year_id

    def reset(self) -> None:
        """Back to the role's default tier with only the fixed fields set."""
        with self._change(ChangeType.RESET):
            self.active_tier = self.policy.default_tier
            self._clear_from(ScopeTier.DISTRICT)
            self._seed_fixed()

    # ============= RECONCILIATION =============

    def reconcile_blocks(self, district_id: int, blocks: Iterable[GeographyNode]) -> bool:
        """Drop a committed block that vanished from its district's list.

        The block's name stays on display until ``release_stale_labels``.
        Returns True when something was cleared.
        """
        if self.district_id != district_id or self.block_id is None:
            return False
        if self.policy.is_fixed(ScopeTier.BLOCK):
            return False
        if any(b.id == self.block_id for b in blocks):
            return False
        logger.warning(f"Committed block {self.block_id} no longer listed under district {district_id}; clearing")
        block_name = self.block_name
        with self._change(ChangeType.RECONCILE):
            self._clear_from(ScopeTier.BLOCK)
            self.block_name = block_name
            if self.cursor.block is not None:
                self.cursor.block = None
        return True

    def reconcile_gps(self, block_id: int, gps: Iterable[GeographyNode]) -> bool:
        """Same as ``reconcile_blocks`` one tier deeper."""
        if self.block_id != block_id or self.gp_id is None:
            return False
        if self.policy.is_fixed(ScopeTier.GP):
            return False
        if any(g.id == self.gp_id for g in gps):
            return False
        logger.warning(f"Committed GP {self.gp_id} no longer listed under block {block_id}; clearing")
        gp_name = self.gp_name
        with self._change(ChangeType.RECONCILE):
            self._clear_from(ScopeTier.GP)
            self.gp_name = gp_name
        return True

    def release_stale_labels(self) -> None:
        """Forget names kept for ids that reconciliation cleared."""
        if self.district_id is None:
            self.district_name = None
        if self.block_id is None:
            self.block_name = None
        if self.gp_id is None:
            self.gp_name = None

    # ============= DISPLAY =============

    def id_for(self, tier: ScopeTier) -> Optional[int]:
        return {
            ScopeTier.STATE: None,
            ScopeTier.DISTRICT: self.district_id,
            ScopeTier.BLOCK: self.block_id,
            ScopeTier.GP: self.gp_id,
        }[tier]

    def name_for(self, tier: ScopeTier) -> Optional[str]:
        return {
            ScopeTier.STATE: self.state_name,
            ScopeTier.DISTRICT: self.district_name,
            ScopeTier.BLOCK: self.block_name,
            ScopeTier.GP: self.gp_name,
        }[tier]

    def display_label(self) -> str:
        """Name shown on the location button: the committed place at the
        active tier, or a prompt for the first tier still missing."""
        if self.active_tier == ScopeTier.STATE:
            return self.state_name
        for tier in (ScopeTier.DISTRICT, ScopeTier.BLOCK, ScopeTier.GP):
            if tier.depth > self.active_tier.depth:
                break
            if self.id_for(tier) is None:
                name = self.name_for(tier)
                return name if name else f"Select {tier.label}"
        return self.name_for(self.active_tier) or f"{self.active_tier.label} {self.id_for(self.active_tier)}"

    def location_path(self, depth: Optional[ScopeTier] = None) -> str:
        """Breadcrumb such as 'Rajasthan / AJMER DISTRICT / Kekri / Bhinai'."""
        depth = depth or self.active_tier
        parts = [self.state_name]
        district = (self.district_name or "").strip()
        if depth.depth >= ScopeTier.DISTRICT.depth and district and district.lower() not in GENERIC_NAMES:
            parts.append(f"{district} DISTRICT")
        block = (self.block_name or "").strip()
        if depth.depth >= ScopeTier.BLOCK.depth and block and block.lower() not in GENERIC_NAMES:
            parts.append(block)
        gp = (self.gp_name or "").strip()
        if depth.depth >= ScopeTier.GP.depth and gp and gp.lower() not in GENERIC_NAMES:
            parts.append(gp)
        return " / ".join(parts)

    def __repr__(self) -> str:
        return (
            f"ScopeSelection(tier={self.active_tier.value}, district={self.district_id}, "
            f"block={self.block_id}, gp={self.gp_id}, fy={self.fiscal_year_id})"
        )
