import pytest

from sanitation_scope.controllers.fetch import FetchController
from sanitation_scope.models.geography import FetchKey, FetchStatus, ScopeTier

from conftest import settle

KEY_A = FetchKey(tier=ScopeTier.DISTRICT, district_id=3, fiscal_year_id=9)
KEY_B = FetchKey(tier=ScopeTier.DISTRICT, district_id=5, fiscal_year_id=9)
KEY_C = FetchKey(tier=ScopeTier.DISTRICT, district_id=7, fiscal_year_id=9)


def coverage_call(key):
    return ("coverage", key.tier, key.geography_id, key.fiscal_year_id)


@pytest.fixture
def recorded(backend):
    controller = FetchController(backend)
    states = []
    controller.subscribe(states.append)
    return controller, states


@pytest.mark.parametrize("release_order", [
    (KEY_C, KEY_B, KEY_A),
    (KEY_A, KEY_B, KEY_C),
    (KEY_B, KEY_C, KEY_A),
])
async def test_only_the_latest_key_is_rendered(backend, recorded, release_order):
    controller, states = recorded
    gates = {key: backend.gate(*coverage_call(key)) for key in (KEY_A, KEY_B, KEY_C)}

    for key in (KEY_A, KEY_B, KEY_C):
        controller.on_key_change(key)
    await settle()

    for key in release_order:
        gates[key].set()
        await settle()
    await controller.wait_idle()

    ready = [s for s in states if s.status == FetchStatus.READY]
    assert len(ready) == 1
    assert ready[0].data["id"] == 7
    assert controller.state.key == KEY_C
    assert controller.state.generation == 3
    # superseded requests still went out; they were not aborted
    assert len(backend.coverage_calls()) == 3


async def test_stale_error_is_not_shown(backend, recorded):
    controller, states = recorded
    gate = backend.gate(*coverage_call(KEY_A))
    backend.fail.add(coverage_call(KEY_A))

    controller.on_key_change(KEY_A)
    await controller.on_key_change(KEY_B)
    gate.set()
    await controller.wait_idle()

    assert controller.state.status == FetchStatus.READY
    assert controller.state.key == KEY_B
    assert not any(s.status == FetchStatus.ERROR for s in states)


async def test_loading_state_precedes_result(backend, recorded):
    controller, states = recorded

    await controller.on_key_change(KEY_B)

    assert [s.status for s in states] == [FetchStatus.LOADING, FetchStatus.READY]
    assert states[0].scope_label == "District 5"


async def test_no_key_means_waiting(backend, recorded):
    controller, states = recorded

    assert controller.on_key_change(None) is None

    assert controller.state.status == FetchStatus.WAITING
    assert controller.state.data is None
    assert backend.coverage_calls() == []


async def test_clearing_the_key_drops_the_pending_result(backend, recorded):
    controller, states = recorded
    gate = backend.gate(*coverage_call(KEY_A))

    controller.on_key_change(KEY_A)
    await settle()
    controller.on_key_change(None)
    gate.set()
    await controller.wait_idle()

    assert controller.state.status == FetchStatus.WAITING


async def test_failure_offers_retry(backend, recorded):
    controller, states = recorded
    backend.fail.add(coverage_call(KEY_B))

    await controller.on_key_change(KEY_B)

    assert controller.state.status == FetchStatus.ERROR
    assert controller.state.can_retry
    assert "District 5" in controller.state.error

    backend.fail.clear()
    await controller.retry()

    assert controller.state.status == FetchStatus.READY
    assert backend.count(*coverage_call(KEY_B)) == 2


async def test_slow_request_times_out(backend):
    controller = FetchController(backend, timeout=0.05)
    gate = backend.gate(*coverage_call(KEY_A))

    await controller.on_key_change(KEY_A)

    assert controller.state.status == FetchStatus.ERROR
    assert "took too long" in controller.state.error
    assert controller.state.can_retry

    gate.set()
    await controller.retry()
    assert controller.state.status == FetchStatus.READY


async def test_provider_exception_is_reported():
    class Broken:
        async def get_coverage(self, tier, geography_id, fiscal_year_id):
            raise ConnectionError("reset by peer")

    controller = FetchController(Broken(), describe=lambda key: "Ajmer")

    await controller.on_key_change(KEY_A)

    assert controller.state.status == FetchStatus.ERROR
    assert controller.state.error == "Could not load data for Ajmer: reset by peer"


async def test_close_abandons_requests(backend, recorded):
    controller, states = recorded
    backend.gate(*coverage_call(KEY_A))

    task = controller.on_key_change(KEY_A)
    await settle()
    await controller.aclose()

    assert task.cancelled()
    assert controller.state.status == FetchStatus.LOADING
