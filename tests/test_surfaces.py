import pytest

from models import PolicyError
from services.surfaces import (
    SURFACE_POLICY,
    SURFACE_POPUP,
    SURFACE_TAB,
    POPUP_WIDTH,
    POPUP_HEIGHT,
    surface_for,
)


@pytest.mark.parametrize("kind", ["connection", "view", "call"])
def test_every_request_kind_opens_the_popup(policy, host, kind):
    surface_id = policy.open_surface(kind, request_id="req-1")

    assert (surface_id, host.last()[1].surface_type) == (host.last()[0], SURFACE_POPUP)
    spec = host.last()[1]
    assert (spec.width, spec.height) == (POPUP_WIDTH, POPUP_HEIGHT)
    assert spec.request_id == "req-1"


def test_no_policy_entry_maps_to_the_tab():
    assert SURFACE_TAB not in SURFACE_POLICY.values()


def test_unknown_kind_is_an_error_and_opens_nothing(policy, host):
    with pytest.raises(PolicyError):
        policy.open_surface("sign_typed_data")
    assert host.opened == []


def test_surface_for_unknown_kind():
    with pytest.raises(PolicyError):
        surface_for("")


def test_expanded_view_is_the_only_way_to_a_tab(policy, host):
    policy.open_expanded_view()
    spec = host.last()[1]
    assert spec.surface_type == SURFACE_TAB
    assert spec.request_id is None


@pytest.mark.parametrize("job, expected", [
    (lambda: {"txHash": "0x1"}, ({"txHash": "0x1"}, None)),
    (lambda: 1 // 0, (None, ZeroDivisionError)),
])
def test_execution_thread_reports_back(qapp, job, expected):
    from PyQt6.QtCore import QCoreApplication
    from ui.surfaces import ExecutionThread

    outcomes = []
    thread = ExecutionThread(job)
    thread.completed.connect(lambda result, error: outcomes.append((result, type(error) if error else None)))
    thread.start()
    assert thread.wait(5000)
    QCoreApplication.processEvents()

    assert outcomes == [expected]
