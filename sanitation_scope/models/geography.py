"""Geography, fiscal year and scope key schemas"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


class ScopeTier(str, Enum):
    STATE = "state"
    DISTRICT = "district"
    BLOCK = "block"
    GP = "gp"

    @property
    def depth(self) -> int:
        return TIER_ORDER.index(self)

    @property
    def label(self) -> str:
        return TIER_LABELS[self]


TIER_ORDER = [ScopeTier.STATE, ScopeTier.DISTRICT, ScopeTier.BLOCK, ScopeTier.GP]

TIER_LABELS = {
    ScopeTier.STATE: "State",
    ScopeTier.DISTRICT: "District",
    ScopeTier.BLOCK: "Block",
    ScopeTier.GP: "GP",
}


class Collection(str, Enum):
    DISTRICTS = "districts"
    BLOCKS = "blocks"
    GPS = "gps"

    @property
    def tier(self) -> ScopeTier:
        return COLLECTION_TIERS[self]


COLLECTION_TIERS = {
    Collection.DISTRICTS: ScopeTier.DISTRICT,
    Collection.BLOCKS: ScopeTier.BLOCK,
    Collection.GPS: ScopeTier.GP,
}

TIER_COLLECTIONS = {tier: collection for collection, tier in COLLECTION_TIERS.items()}


class GeographyNode(BaseModel):
    """A district, block or gram panchayat as returned by the backend."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    parent_id: Optional[int] = None


class FiscalYear(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    label: str
    active: bool = True


class HierarchyCursor(BaseModel):
    """Tentative district/block picked while browsing dropdown columns"""
    district: Optional[GeographyNode] = None
    block: Optional[GeographyNode] = None


class FetchKey(BaseModel):
    """Canonical key every analytics/report fetch is issued for."""
    model_config = ConfigDict(frozen=True)

    tier: ScopeTier
    district_id: Optional[int] = None
    block_id: Optional[int] = None
    gp_id: Optional[int] = None
    fiscal_year_id: int

    @property
    def geography_id(self) -> Optional[int]:
        """Id of the place at the key's own tier (None at State)."""
        return {
            ScopeTier.STATE: None,
            ScopeTier.DISTRICT: self.district_id,
            ScopeTier.BLOCK: self.block_id,
            ScopeTier.GP: self.gp_id,
        }[self.tier]


class ProviderResult(BaseModel):
    """Outcome of one provider call: either data or an error message."""
    data: Optional[Any] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LoadResult(BaseModel):
    items: List[GeographyNode] = Field(default_factory=list)
    error: Optional[str] = None


class FetchStatus(str, Enum):
    WAITING = "waiting"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class FetchState(BaseModel):
    status: FetchStatus = FetchStatus.WAITING
    key: Optional[FetchKey] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    generation: int = 0
    scope_label: Optional[str] = None
    can_retry: bool = False


class ChangeType(str, Enum):
    SELECTION = "selection"
    TAB_CHANGE = "tab_change"
    DROPDOWN_CHANGE = "dropdown_change"
    FISCAL_YEAR_CHANGE = "fiscal_year_change"
    RESET = "reset"
    RECONCILE = "reconcile"


class LocationSnapshot(BaseModel):
    scope: ScopeTier
    location: Optional[str] = None
    district_id: Optional[int] = None
    block_id: Optional[int] = None
    gp_id: Optional[int] = None
    fiscal_year_id: Optional[int] = None


class LocationChange(BaseModel):
    timestamp: datetime
    change_type: ChangeType
    previous: LocationSnapshot
    current: LocationSnapshot
