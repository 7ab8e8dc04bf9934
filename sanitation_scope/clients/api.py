"""Backend API client and the provider contracts the controllers depend on.

All network errors stop here: every method returns a ``ProviderResult`` with
either ``data`` or ``error`` set and never raises.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from sanitation_scope import config
from sanitation_scope.models.geography import FiscalYear, GeographyNode, ProviderResult, ScopeTier
from sanitation_scope.models.user import OfficerProfile

logger = logging.getLogger(__name__)


class GeographyProvider(Protocol):
    async def list_districts(self) -> ProviderResult: ...

    async def list_blocks(self, district_id: int) -> ProviderResult: ...

    async def list_gps(self, district_id: int, block_id: int) -> ProviderResult: ...


class FiscalYearProvider(Protocol):
    async def list_active_fiscal_years(self) -> ProviderResult: ...


class AnalyticsProvider(Protocol):
    async def get_coverage(self, tier: ScopeTier, geography_id: Optional[int], fiscal_year_id: int) -> ProviderResult: ...


class ProfileSource(Protocol):
    async def get_profile(self) -> ProviderResult: ...


def _unwrap_list(payload: Any) -> List[Dict[str, Any]]:
    """Accept a bare list or a list wrapped under 'items'/'data'."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("items", "data"):
            if isinstance(payload.get(key), list):
                return payload[key]
    raise ValueError("Expected a list payload")


def _to_nodes(rows: List[Dict[str, Any]], parent_field: Optional[str] = None) -> List[GeographyNode]:
    nodes = []
    for row in rows:
        if not row or row.get("id") is None:
            continue
        nodes.append(GeographyNode(
            id=row["id"],
            name=row.get("name") or "",
            parent_id=row.get(parent_field) if parent_field else None,
        ))
    return nodes


def _to_fiscal_years(rows: List[Dict[str, Any]]) -> List[FiscalYear]:
    years = []
    for row in rows:
        if not row or row.get("id") is None or row.get("fy") is None:
            continue
        years.append(FiscalYear(id=row["id"], label=str(row["fy"]), active=row.get("active", True)))
    return years


def _describe_error(e: Exception) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        detail = None
        try:
            body = e.response.json()
            if isinstance(body, dict):
                detail = body.get("detail") or body.get("message")
        except ValueError:
            pass
        return f"HTTP {e.response.status_code}: {detail or e.response.reason_phrase}"
    return str(e) or e.__class__.__name__


class DashboardApiClient:
    """httpx-backed implementation of every provider contract."""

    def __init__(
        self,
        base_url: str = None,
        token: Optional[str] = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        token = token or config.API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url or config.API_BASE_URL,
            headers=headers,
            timeout=timeout or config.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DashboardApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def _call(self, what: str, path: str, params: Optional[Dict[str, Any]], convert) -> ProviderResult:
        try:
            payload = await self._get(path, params)
            data = convert(payload)
        except httpx.HTTPError as e:
            logger.error(f"Error fetching {what}: {_describe_error(e)}")
            return ProviderResult(error=f"Failed to load {what}: {_describe_error(e)}")
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Malformed {what} response: {str(e)}")
            return ProviderResult(error=f"Failed to load {what}: malformed response")
        return ProviderResult(data=data)

    # ============= GEOGRAPHY =============

    async def list_districts(self) -> ProviderResult:
        params = {"skip": 0, "limit": config.GEOGRAPHY_PAGE_LIMIT}
        return await self._call(
            "districts", "/geography/districts", params,
            lambda payload: _to_nodes(_unwrap_list(payload)),
        )

    async def list_blocks(self, district_id: int) -> ProviderResult:
        params = {"district_id": district_id, "skip": 0, "limit": config.GEOGRAPHY_PAGE_LIMIT}
        return await self._call(
            "blocks", "/geography/blocks", params,
            lambda payload: _to_nodes(_unwrap_list(payload), "district_id"),
        )

    async def list_gps(self, district_id: int, block_id: int) -> ProviderResult:
        params = {
            "district_id": district_id,
            "block_id": block_id,
            "skip": 0,
            "limit": config.GEOGRAPHY_PAGE_LIMIT,
        }
        return await self._call(
            "gram panchayats", "/geography/grampanchayats", params,
            lambda payload: _to_nodes(_unwrap_list(payload), "block_id"),
        )

    # ============= FISCAL YEARS =============

    async def list_active_fiscal_years(self) -> ProviderResult:
        return await self._call(
            "fiscal years", "/annual-surveys/fy/active", None,
            lambda payload: _to_fiscal_years(_unwrap_list(payload)),
        )

    # ============= ANALYTICS =============

    async def get_coverage(self, tier: ScopeTier, geography_id: Optional[int], fiscal_year_id: int) -> ProviderResult:
        if tier == ScopeTier.STATE:
            path = "/annual-surveys/analytics/state"
        else:
            if geography_id is None:
                return ProviderResult(error=f"No {tier.label} selected")
            path = f"/annual-surveys/analytics/{tier.value}/{geography_id}"

        def _as_report(payload):
            if not isinstance(payload, dict):
                raise ValueError("Expected an object payload")
            return payload

        return await self._call(f"{tier.label} analytics", path, {"fy_id": fiscal_year_id}, _as_report)

    # ============= PROFILE =============

    async def get_profile(self) -> ProviderResult:
        return await self._call("profile", "/auth/me", None, OfficerProfile.from_me)
