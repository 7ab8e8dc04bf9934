"""One dashboard view: the selection, its dropdown and its data refresh.

``ScopeSession`` is created per view mount and handed to whatever renders
the view. It re-derives the fetch key after every committed selection
change and passes it to the fetch controller only when the key's value
actually changed.
"""
import logging
from typing import List, Optional

from sanitation_scope import config
from sanitation_scope.clients.api import AnalyticsProvider, FiscalYearProvider, GeographyProvider, ProfileSource
from sanitation_scope.controllers.dropdown import DropdownInteractionController
from sanitation_scope.controllers.fetch import FetchController
from sanitation_scope.controllers.geography_cache import GeographyCache, parent_key_for
from sanitation_scope.controllers.policy import PolicyError, RoleScopePolicy, policy_for
from sanitation_scope.controllers.selection import ScopeSelection
from sanitation_scope.models.geography import Collection, FetchKey, FetchState, FiscalYear, ScopeTier
from sanitation_scope.models.user import OfficerProfile, UserRole
from sanitation_scope.utils.scope import derive, reconcile_fiscal_year, sort_fiscal_years

logger = logging.getLogger(__name__)


class ScopeSession:
    def __init__(
        self,
        policy: RoleScopePolicy,
        geography: GeographyProvider,
        fiscal_years: FiscalYearProvider,
        analytics: AnalyticsProvider,
        timeout: Optional[float] = None,
        state_name: Optional[str] = None,
    ):
        self.policy = policy
        self._fiscal_year_provider = fiscal_years
        self.fiscal_years: Optional[List[FiscalYear]] = None
        self.fiscal_year_error: Optional[str] = None

        self.selection = ScopeSelection(policy, state_name=state_name or config.STATE_NAME)
        self.cache = GeographyCache(geography)
        self.dropdown = DropdownInteractionController(self.selection, self.cache)
        self.fetcher = FetchController(analytics, timeout=timeout, describe=self.describe)

        self._last_key: Optional[FetchKey] = None
        self._started = False
        self.selection.subscribe(self._on_selection_changed)

    @classmethod
    def for_profile(cls, profile: OfficerProfile, client, **kwargs) -> "ScopeSession":
        """Build a session whose providers are all served by ``client``."""
        return cls(policy_for(profile), client, client, client, **kwargs)

    @classmethod
    async def from_profile_source(cls, source: ProfileSource, client, **kwargs) -> "ScopeSession":
        result = await source.get_profile()
        if not result.ok:
            raise PolicyError(f"Could not load officer profile: {result.error}")
        return cls.for_profile(result.data, client, **kwargs)

    # ============= KEY DERIVATION =============

    @property
    def key(self) -> Optional[FetchKey]:
        return self._last_key

    @property
    def state(self) -> FetchState:
        return self.fetcher.state

    def current_key(self) -> Optional[FetchKey]:
        return derive(self.selection, self.fiscal_years)

    def describe(self, key: FetchKey) -> str:
        """Human-readable scope of a key, e.g. 'Rajasthan / AJMER DISTRICT'."""
        return self.selection.location_path(key.tier)

    def _on_selection_changed(self, selection: ScopeSelection) -> None:
        if not self._started:
            return
        self._refresh()

    def _refresh(self, force: bool = False):
        key = self.current_key()
        if not force and key == self._last_key:
            return None
        self._last_key = key
        return self.fetcher.on_key_change(key)

    # ============= LIFECYCLE =============

    async def start(self):
        """Load fiscal years and fixed labels, then issue the first fetch.

        Returns the first fetch task (None while waiting for a location).
        """
        await self.load_fiscal_years()
        await self._resolve_fixed_labels()
        self._started = True
        return self._refresh(force=True)

    async def load_fiscal_years(self) -> Optional[List[FiscalYear]]:
        result = await self._fiscal_year_provider.list_active_fiscal_years()
        if not result.ok:
            logger.error(f"Failed to load fiscal years: {result.error}")
            self.fiscal_year_error = result.error
            return self.fiscal_years
        self.fiscal_year_error = None
        self.fiscal_years = sort_fiscal_years(result.data or [])
        logger.info(f"Loaded {len(self.fiscal_years)} fiscal years")
        # a reset here notifies the selection listener, which refetches
        reconcile_fiscal_year(self.selection, self.fiscal_years)
        return self.fiscal_years

    async def reload_fiscal_years(self) -> Optional[List[FiscalYear]]:
        """Reload the year list; a key change it causes triggers a fetch."""
        await self.load_fiscal_years()
        if self._started:
            self._refresh()
        return self.fiscal_years

    async def _resolve_fixed_labels(self) -> None:
        fixed = self.policy.fixed
        if self.policy.role == UserRole.DISTRICT and not fixed.district_name:
            result = await self.cache.load(Collection.DISTRICTS)
            match = next((d for d in result.items if d.id == fixed.district_id), None)
            if match is not None:
                self.selection.label_fixed(district_name=match.name)
        elif self.policy.role == UserRole.BLOCK and not fixed.block_name:
            result = await self.cache.load(Collection.BLOCKS, parent_key_for(Collection.BLOCKS, fixed.district_id))
            match = next((b for b in result.items if b.id == fixed.block_id), None)
            if match is not None:
                self.selection.label_fixed(block_name=match.name)

    async def aclose(self) -> None:
        await self.fetcher.aclose()

    # ============= USER ACTIONS =============

    async def set_active_tier(self, tier: ScopeTier) -> bool:
        return await self.dropdown.set_active_tier(tier)

    def set_fiscal_year(self, fiscal_year_id: int) -> bool:
        if self.fiscal_years is not None and not any(fy.id == fiscal_year_id for fy in self.fiscal_years):
            logger.warning(f"Fiscal year {fiscal_year_id} is not in the active list")
            return False
        self.selection.set_fiscal_year(fiscal_year_id)
        return True

    def reset(self) -> None:
        self.dropdown.close()
        self.selection.reset()

    def retry(self):
        """Soft retry of the current key after an error or timeout."""
        return self.fetcher.retry()
