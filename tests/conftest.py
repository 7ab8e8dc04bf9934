import asyncio
from typing import Dict, List, Tuple

import pytest

from sanitation_scope import config
from sanitation_scope.models.geography import FiscalYear, GeographyNode, ProviderResult, ScopeTier
from sanitation_scope.models.user import OfficerProfile, UserRole

AJMER = GeographyNode(id=3, name="Ajmer")
JAIPUR = GeographyNode(id=5, name="Jaipur")
JODHPUR = GeographyNode(id=7, name="Jodhpur")

KEKRI = GeographyNode(id=31, name="Kekri", parent_id=3)
MASUDA = GeographyNode(id=32, name="Masuda", parent_id=3)
SANGANER = GeographyNode(id=12, name="Sanganer", parent_id=5)
AMBER = GeographyNode(id=13, name="Amber", parent_id=5)
OSIAN = GeographyNode(id=71, name="Osian", parent_id=7)

BHANKROTA = GeographyNode(id=120, name="Bhankrota", parent_id=12)
MUHANA = GeographyNode(id=121, name="Muhana", parent_id=12)
AMER_GP = GeographyNode(id=130, name="Amer", parent_id=13)
BAGHERA = GeographyNode(id=311, name="Baghera", parent_id=31)
TINWARI = GeographyNode(id=711, name="Tinwari", parent_id=71)

FY_2025 = FiscalYear(id=9, label="2025-26")
FY_2024 = FiscalYear(id=8, label="2024-25")
FY_2023 = FiscalYear(id=7, label="2023-24")

config.configure_logging("DEBUG")


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run up to their next blocking await."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeBackend:
    """In-memory geography, fiscal year and analytics provider.

    Every call is recorded in ``calls``. ``gate(*call)`` makes the matching
    call wait until the returned event is set; ``fail`` holds calls that
    should report an error.
    """

    def __init__(self):
        self.districts: List[GeographyNode] = [AJMER, JAIPUR, JODHPUR]
        self.blocks: Dict[int, List[GeographyNode]] = {
            3: [KEKRI, MASUDA],
            5: [SANGANER, AMBER],
            7: [OSIAN],
        }
        self.gps: Dict[Tuple[int, int], List[GeographyNode]] = {
            (5, 12): [BHANKROTA, MUHANA],
            (5, 13): [AMER_GP],
            (3, 31): [BAGHERA],
            (7, 71): [TINWARI],
        }
        self.fiscal_years: List[FiscalYear] = [FY_2024, FY_2025]
        self.calls: List[tuple] = []
        self.gates: Dict[tuple, asyncio.Event] = {}
        self.fail = set()

    def gate(self, *call) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[call] = event
        return event

    def count(self, *call) -> int:
        return self.calls.count(call)

    def coverage_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "coverage"]

    async def _respond(self, call: tuple, data) -> ProviderResult:
        self.calls.append(call)
        event = self.gates.get(call)
        if event is not None:
            await event.wait()
        if call in self.fail:
            return ProviderResult(error=f"{call[0]} unavailable")
        return ProviderResult(data=data)

    async def list_districts(self) -> ProviderResult:
        return await self._respond(("districts",), list(self.districts))

    async def list_blocks(self, district_id: int) -> ProviderResult:
        return await self._respond(("blocks", district_id), list(self.blocks.get(district_id, [])))

    async def list_gps(self, district_id: int, block_id: int) -> ProviderResult:
        return await self._respond(("gps", district_id, block_id), list(self.gps.get((district_id, block_id), [])))

    async def list_active_fiscal_years(self) -> ProviderResult:
        return await self._respond(("fiscal_years",), list(self.fiscal_years))

    async def get_coverage(self, tier: ScopeTier, geography_id, fiscal_year_id) -> ProviderResult:
        call = ("coverage", tier, geography_id, fiscal_year_id)
        return await self._respond(call, {"tier": tier.value, "id": geography_id, "fy_id": fiscal_year_id})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def state_profile():
    return OfficerProfile(role=UserRole.STATE, username="smd")


@pytest.fixture
def district_profile():
    return OfficerProfile(role=UserRole.DISTRICT, district_id=5, district_name="Jaipur")


@pytest.fixture
def block_profile():
    return OfficerProfile(
        role=UserRole.BLOCK,
        district_id=5,
        district_name="Jaipur",
        block_id=12,
        block_name="Sanganer",
    )


@pytest.fixture
def village_profile():
    return OfficerProfile(
        role=UserRole.VILLAGE,
        district_id=5,
        district_name="Jaipur",
        block_id=12,
        block_name="Sanganer",
        gp_id=120,
        gp_name="Bhankrota",
    )
