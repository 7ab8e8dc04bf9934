"""Role-based scope policies.

Each officer role is data, not code: which tiers it may switch to and which
scope fields are pinned to the officer's own assignment.
"""
from pydantic import BaseModel, ConfigDict
from typing import List, Optional

from sanitation_scope.models.geography import TIER_COLLECTIONS, Collection, ScopeTier
from sanitation_scope.models.user import OfficerProfile, UserRole


class PolicyError(ValueError):
    """The officer profile cannot be turned into a scope policy."""


class FixedScope(BaseModel):
    model_config = ConfigDict(frozen=True)

    district_id: Optional[int] = None
    district_name: Optional[str] = None
    block_id: Optional[int] = None
    block_name: Optional[str] = None
    gp_id: Optional[int] = None
    gp_name: Optional[str] = None

    def id_for(self, tier: ScopeTier) -> Optional[int]:
        return {
            ScopeTier.STATE: None,
            ScopeTier.DISTRICT: self.district_id,
            ScopeTier.BLOCK: self.block_id,
            ScopeTier.GP: self.gp_id,
        }[tier]


class RoleScopePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: UserRole
    visible_tiers: List[ScopeTier]
    fixed: FixedScope = FixedScope()
    default_tier: ScopeTier

    def allows_tier(self, tier: ScopeTier) -> bool:
        return tier in self.visible_tiers

    def is_fixed(self, tier: ScopeTier) -> bool:
        return self.fixed.id_for(tier) is not None

    @property
    def has_dropdown(self) -> bool:
        return bool(self.visible_tiers)

    def browsable_columns(self, active_tier: ScopeTier) -> List[Collection]:
        """Dropdown columns shown for a tier, coarsest first."""
        if not self.allows_tier(active_tier):
            return []
        return [
            TIER_COLLECTIONS[tier]
            for tier in (ScopeTier.DISTRICT, ScopeTier.BLOCK, ScopeTier.GP)
            if tier.depth <= active_tier.depth and not self.is_fixed(tier)
        ]

    def can_browse(self, collection: Collection, active_tier: ScopeTier) -> bool:
        return collection in self.browsable_columns(active_tier)


def _require(profile: OfficerProfile, *fields: str) -> None:
    missing = [f for f in fields if getattr(profile, f) is None]
    if missing:
        raise PolicyError(
            f"{profile.role.value} officer profile is missing {', '.join(missing)}"
        )


def policy_for(profile: OfficerProfile) -> RoleScopePolicy:
    """Resolve the scope policy for a signed-in officer."""
    role = profile.role

    if role == UserRole.STATE:
        return RoleScopePolicy(
            role=role,
            visible_tiers=[ScopeTier.STATE, ScopeTier.DISTRICT, ScopeTier.BLOCK, ScopeTier.GP],
            default_tier=ScopeTier.STATE,
        )

    if role == UserRole.DISTRICT:
        _require(profile, "district_id")
        return RoleScopePolicy(
            role=role,
            visible_tiers=[ScopeTier.DISTRICT, ScopeTier.BLOCK, ScopeTier.GP],
            fixed=FixedScope(district_id=profile.district_id, district_name=profile.district_name),
            default_tier=ScopeTier.DISTRICT,
        )

    if role == UserRole.BLOCK:
        _require(profile, "district_id", "block_id")
        return RoleScopePolicy(
            role=role,
            visible_tiers=[ScopeTier.BLOCK, ScopeTier.GP],
            fixed=FixedScope(
                district_id=profile.district_id,
                district_name=profile.district_name,
                block_id=profile.block_id,
                block_name=profile.block_name,
            ),
            default_tier=ScopeTier.BLOCK,
        )

    if role == UserRole.VILLAGE:
        _require(profile, "district_id", "block_id", "gp_id")
        return RoleScopePolicy(
            role=role,
            visible_tiers=[],
            fixed=FixedScope(
                district_id=profile.district_id,
                district_name=profile.district_name,
                block_id=profile.block_id,
                block_name=profile.block_name,
                gp_id=profile.gp_id,
                gp_name=profile.gp_name,
            ),
            default_tier=ScopeTier.GP,
        )

    raise PolicyError(f"No scope policy for role {role}")
