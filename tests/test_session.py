import pytest

from sanitation_scope.controllers.policy import PolicyError
from sanitation_scope.models.geography import FetchKey, FetchStatus, ProviderResult, ScopeTier
from sanitation_scope.models.user import OfficerProfile, UserRole
from sanitation_scope.session import ScopeSession

from conftest import AJMER, BHANKROTA, FY_2023, FY_2024, JAIPUR, SANGANER


async def started(profile, backend, **kwargs):
    session = ScopeSession.for_profile(profile, backend, state_name="Rajasthan", **kwargs)
    await session.start()
    await session.fetcher.wait_idle()
    return session


async def test_village_officer_gets_their_gp_without_browsing(village_profile, backend):
    session = await started(village_profile, backend)

    assert session.key == FetchKey(tier=ScopeTier.GP, district_id=5, block_id=12, gp_id=120, fiscal_year_id=9)
    assert session.state.status == FetchStatus.READY
    assert backend.calls == [("fiscal_years",), ("coverage", ScopeTier.GP, 120, 9)]
    assert not await session.dropdown.open()


async def test_state_officer_starts_with_state_analytics(state_profile, backend):
    session = await started(state_profile, backend)

    assert session.selection.fiscal_year_id == 9
    assert session.state.data == {"tier": "state", "id": None, "fy_id": 9}
    assert session.state.scope_label == "Rajasthan"


async def test_unchanged_key_is_not_refetched(state_profile, backend):
    session = await started(state_profile, backend)
    generation = session.fetcher.generation

    # a district commit at State scope leaves the key untouched
    session.selection.commit_district(JAIPUR)
    await session.fetcher.wait_idle()

    assert session.fetcher.generation == generation
    assert len(backend.coverage_calls()) == 1


async def test_tier_switch_waits_for_a_location(state_profile, backend):
    session = await started(state_profile, backend)

    await session.set_active_tier(ScopeTier.DISTRICT)
    assert session.key is None
    assert session.state.status == FetchStatus.WAITING

    await session.dropdown.open()
    await session.dropdown.click_district(AJMER)
    await session.fetcher.wait_idle()

    assert session.key == FetchKey(tier=ScopeTier.DISTRICT, district_id=3, fiscal_year_id=9)
    assert session.state.status == FetchStatus.READY
    assert session.state.scope_label == "Rajasthan / Ajmer DISTRICT"


async def test_browsing_to_a_gp_fetches_once(district_profile, backend):
    session = await started(district_profile, backend)
    await session.set_active_tier(ScopeTier.GP)
    await session.dropdown.open()

    await session.dropdown.hover_block(SANGANER)
    await session.dropdown.click_gp(BHANKROTA)
    await session.fetcher.wait_idle()

    assert backend.coverage_calls() == [
        ("coverage", ScopeTier.DISTRICT, 5, 9),
        ("coverage", ScopeTier.GP, 120, 9),
    ]
    assert session.state.scope_label == "Rajasthan / Jaipur DISTRICT / Sanganer / Bhankrota"


async def test_fiscal_year_recovery(state_profile, backend):
    backend.fail.add(("fiscal_years",))
    session = await started(state_profile, backend)

    assert session.fiscal_years is None
    assert "unavailable" in session.fiscal_year_error
    assert session.state.status == FetchStatus.WAITING
    assert backend.coverage_calls() == []

    assert session.set_fiscal_year(9)
    await session.fetcher.wait_idle()
    assert backend.coverage_calls() == [("coverage", ScopeTier.STATE, None, 9)]

    backend.fail.clear()
    backend.fiscal_years = [FY_2023, FY_2024]
    years = await session.reload_fiscal_years()
    await session.fetcher.wait_idle()

    assert years == [FY_2024, FY_2023]
    assert session.fiscal_year_error is None
    assert session.selection.fiscal_year_id == 8
    assert backend.coverage_calls() == [
        ("coverage", ScopeTier.STATE, None, 9),
        ("coverage", ScopeTier.STATE, None, 8),
    ]


async def test_unknown_fiscal_year_is_refused(state_profile, backend):
    session = await started(state_profile, backend)

    assert not session.set_fiscal_year(42)
    assert session.selection.fiscal_year_id == 9


async def test_district_label_is_resolved_from_the_district_list(backend):
    profile = OfficerProfile(role=UserRole.DISTRICT, district_id=5)
    backend.fail.add(("coverage", ScopeTier.DISTRICT, 5, 9))

    session = await started(profile, backend)

    assert session.selection.display_label() == "Jaipur"
    assert session.state.status == FetchStatus.ERROR
    assert session.state.can_retry
    assert "Rajasthan / Jaipur DISTRICT" in session.state.error


async def test_retry_after_failure(district_profile, backend):
    backend.fail.add(("coverage", ScopeTier.DISTRICT, 5, 9))
    session = await started(district_profile, backend)
    assert session.state.status == FetchStatus.ERROR

    backend.fail.clear()
    await session.retry()

    assert session.state.status == FetchStatus.READY


async def test_reset_goes_back_to_role_default(district_profile, backend):
    session = await started(district_profile, backend)
    await session.set_active_tier(ScopeTier.BLOCK)
    await session.dropdown.open()
    await session.dropdown.click_block(SANGANER)
    await session.fetcher.wait_idle()
    assert session.key.tier == ScopeTier.BLOCK

    session.reset()
    await session.fetcher.wait_idle()

    assert session.key == FetchKey(tier=ScopeTier.DISTRICT, district_id=5, fiscal_year_id=9)
    assert not session.dropdown.is_open
    assert backend.count("coverage", ScopeTier.DISTRICT, 5, 9) == 2


async def test_profile_source_failure_raises(backend):
    class Offline:
        async def get_profile(self):
            return ProviderResult(error="HTTP 401: Not authenticated")

    with pytest.raises(PolicyError):
        await ScopeSession.from_profile_source(Offline(), backend)


async def test_session_from_profile_source(village_profile, backend):
    class Signed:
        async def get_profile(self):
            return ProviderResult(data=village_profile)

    session = await ScopeSession.from_profile_source(Signed(), backend)

    assert session.policy.role == UserRole.VILLAGE
    assert session.selection.gp_id == 120
    await session.aclose()
