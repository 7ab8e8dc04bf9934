from typing import Any, Dict, Optional, List, Sequence

from sanitation_scope.models.geography import ChangeType, FetchKey, FiscalYear, ScopeTier


def sort_fiscal_years(years: Sequence[FiscalYear]) -> List[FiscalYear]:
    """Most recent first ('2025-26' before '2024-25')."""
    return sorted(years, key=lambda fy: fy.label, reverse=True)


def default_fiscal_year(years: Optional[Sequence[FiscalYear]]) -> Optional[int]:
    if not years:
        return None
    return sort_fiscal_years(years)[0].id


def derive(selection, fiscal_years: Optional[Sequence[FiscalYear]] = None) -> Optional[FetchKey]:
    """
    Map a scope selection to the key analytics and reports are fetched for.

    - ids deeper than the active tier are dropped
    - an unset fiscal year falls back to the most recent one
    - returns None while the active tier still lacks its id (or no fiscal
      year is known); that is the "select a location" state, not an error
    """
    tier = selection.active_tier

    fiscal_year_id = selection.fiscal_year_id
    if fiscal_year_id is None:
        fiscal_year_id = default_fiscal_year(fiscal_years)
    if fiscal_year_id is None:
        return None

    ids: Dict[str, Optional[int]] = {"district_id": None, "block_id": None, "gp_id": None}
    if tier.depth >= ScopeTier.DISTRICT.depth:
        ids["district_id"] = selection.district_id
    if tier.depth >= ScopeTier.BLOCK.depth:
        ids["block_id"] = selection.block_id
    if tier.depth >= ScopeTier.GP.depth:
        ids["gp_id"] = selection.gp_id

    if _missing(tier, ids):
        return None

    return FetchKey(tier=tier, fiscal_year_id=fiscal_year_id, **ids)


def _missing(tier: ScopeTier, ids: Dict[str, Optional[int]]) -> bool:
    required = {
        ScopeTier.STATE: [],
        ScopeTier.DISTRICT: ["district_id"],
        ScopeTier.BLOCK: ["district_id", "block_id"],
        ScopeTier.GP: ["district_id", "block_id", "gp_id"],
    }[tier]
    return any(ids[field] is None for field in required)


def reconcile_fiscal_year(selection, fiscal_years: Sequence[FiscalYear]) -> bool:
    """
    Align the selection's fiscal year with a freshly loaded year list.

    A held id that is no longer listed (or no id at all) is silently replaced
    by the most recent year. Returns True when the selection changed.
    """
    if not fiscal_years:
        return False
    if selection.fiscal_year_id is not None and any(fy.id == selection.fiscal_year_id for fy in fiscal_years):
        return False
    selection.set_fiscal_year(default_fiscal_year(fiscal_years), change_type=ChangeType.RECONCILE)
    return True


def scope_query_params(key: FetchKey) -> Dict[str, Any]:
    """
    Backend query parameters for a key, e.g. survey listings:
    {"district_id": 3, "block_id": 12, "fy_id": 2}.
    Only ids the key carries are included.
    """
    params: Dict[str, Any] = {}
    if key.district_id is not None:
        params["district_id"] = key.district_id
    if key.block_id is not None:
        params["block_id"] = key.block_id
    if key.gp_id is not None:
        params["gp_id"] = key.gp_id
    params["fy_id"] = key.fiscal_year_id
    return params
