import pytest

from models import AuthError, ValidationError, TAG_CONNECTION, TAG_CONTRACT
from services.controller import (
    RequestLifecycleController,
    SurfaceContext,
    STALE_DECISION_NOTICE,
    run_inline,
    SCREEN_CONNECTION_APPROVAL,
    SCREEN_CONTRACT_APPROVAL,
    SCREEN_UNLOCK,
    SCREEN_WELCOME,
    SCREEN_DASHBOARD,
)
from services.messages import CONNECTION_RESULT, CONTRACT_RESULT
from services.surfaces import SURFACE_POPUP, SURFACE_TAB

from conftest import PASSWORD, ORIGIN

CLAIM = {
    "origin": ORIGIN,
    "contractAddress": "0x1234567890abcdef1234567890abcdef12345678",
    "methodName": "claimToken",
    "kind": "call",
}


class Window:
    """Records what the controller sends and whether it closed the window."""

    def __init__(self):
        self.sent = []
        self.closed = 0

    def close(self):
        self.closed += 1


def make_controller(store, access, registry, surface_type=SURFACE_POPUP,
                    request_id=None, executor=None):
    window = Window()
    context = SurfaceContext(
        surface_id=f"{surface_type}-1",
        surface_type=surface_type,
        request_id=request_id,
        close=window.close,
    )
    controller = RequestLifecycleController(
        store, access, registry, window.sent.append, context, executor=executor
    )
    return controller, window


# ============================================
# Screen resolution
# ============================================

def test_fresh_install_shows_welcome(store, access, registry):
    controller, _ = make_controller(store, access, registry)
    assert controller.mount().screen == SCREEN_WELCOME


def test_unlocked_with_wallet_shows_dashboard(store, access, registry, setup_wallets):
    controller, _ = make_controller(store, access, registry)
    state = controller.mount()
    assert state.screen == SCREEN_DASHBOARD
    assert state.active_wallet.address == setup_wallets[0].address
    assert len(state.wallets) == 2


def test_locked_without_request_shows_unlock(store, access, registry, locked_wallets):
    controller, _ = make_controller(store, access, registry)
    state = controller.mount()
    assert state.screen == SCREEN_UNLOCK
    assert state.wallets == []


def test_locked_with_request_embeds_unlock(store, access, registry, locked_wallets):
    registry.submit(TAG_CONTRACT, CLAIM)
    controller, _ = make_controller(store, access, registry)
    state = controller.mount()
    assert state.screen == SCREEN_CONTRACT_APPROVAL
    assert state.requires_unlock


def test_connection_outranks_contract(store, access, registry, setup_wallets):
    registry.submit(TAG_CONTRACT, CLAIM)
    registry.submit(TAG_CONNECTION, {"origin": "https://other.example"})
    controller, _ = make_controller(store, access, registry)
    assert controller.mount().screen == SCREEN_CONNECTION_APPROVAL


@pytest.mark.parametrize("surface_type", [SURFACE_POPUP, SURFACE_TAB])
def test_unlock_lands_on_pending_approval_in_any_surface(store, access, registry,
                                                         locked_wallets, surface_type):
    registry.submit(TAG_CONTRACT, CLAIM)
    controller, _ = make_controller(store, access, registry, surface_type=surface_type)
    controller.mount()

    state = controller.unlock(PASSWORD)
    assert state.screen == SCREEN_CONTRACT_APPROVAL
    assert not state.requires_unlock
    assert state.request.method_name == "claimToken"


def test_wrong_password_keeps_gate_with_notice(store, access, registry, locked_wallets):
    controller, _ = make_controller(store, access, registry)
    state = controller.unlock("wrong")
    assert state.screen == SCREEN_UNLOCK
    assert state.notice == "Invalid password"
    assert controller.dismiss_notice().notice is None


def test_store_changes_rerender_mounted_surface(store, access, registry, setup_wallets):
    renders = []
    controller, _ = make_controller(store, access, registry)
    controller._on_change = renders.append
    controller.mount()

    access.lock()
    assert renders[-1].screen == SCREEN_UNLOCK

    controller.unmount()
    renders.clear()
    access.unlock(PASSWORD)
    assert renders == []


def test_corrupt_wallets_unlock_to_onboarding(store, access, registry, locked_wallets):
    from models.store import KEY_ENCRYPTED_WALLETS
    store.set(KEY_ENCRYPTED_WALLETS, 17)
    controller, _ = make_controller(store, access, registry)
    assert controller.unlock(PASSWORD).screen == SCREEN_WELCOME


def test_switch_wallet(store, access, registry, setup_wallets):
    controller, _ = make_controller(store, access, registry)
    state = controller.switch_wallet(setup_wallets[1].address)
    assert state.active_wallet.address == setup_wallets[1].address

    state = controller.switch_wallet("0xnot-loaded")
    assert state.active_wallet.address == setup_wallets[1].address
    assert state.notice


# ============================================
# Decisions
# ============================================

def test_approve_connection_sends_active_address(store, access, registry, setup_wallets):
    request_id = registry.submit(TAG_CONNECTION, {"origin": ORIGIN})
    controller, window = make_controller(store, access, registry, request_id=request_id)
    controller.mount()

    state = controller.approve(request_id)

    assert window.sent == [{
        "type": CONNECTION_RESULT,
        "request_id": request_id,
        "origin": ORIGIN,
        "approved": True,
        "address": setup_wallets[0].address,
    }]
    assert registry.peek(TAG_CONNECTION) is None
    assert window.closed == 1
    assert state.screen == SCREEN_DASHBOARD


def test_approve_while_gated_is_refused(store, access, registry, locked_wallets):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry)
    with pytest.raises(AuthError):
        controller.approve(request_id, result={"txHash": "0x1"})
    assert window.sent == []
    assert registry.peek(TAG_CONTRACT) is not None


def test_reject_works_while_gated(store, access, registry, locked_wallets):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry, request_id=request_id)

    controller.reject(request_id)

    assert window.sent[0]["type"] == CONTRACT_RESULT
    assert window.sent[0]["approved"] is False
    assert window.sent[0]["error"] == "User rejected the request"
    assert registry.peek(TAG_CONTRACT) is None
    assert window.closed == 1


def test_approve_contract_with_result(store, access, registry, setup_wallets):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry, request_id=request_id)

    controller.approve(request_id, result={"txHash": "abc123"})

    assert window.sent[0]["result"] == {"txHash": "abc123"}
    assert window.sent[0]["approved"] is True


def test_approve_contract_runs_executor(store, access, registry, setup_wallets, chain):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry, executor=chain)

    controller.approve(request_id)

    request, wallet = chain.executed[0]
    assert request.method_name == "claimToken"
    assert wallet.address == setup_wallets[0].address
    assert window.sent[0]["result"] == {"txHash": "0xfeed"}


def test_executor_failure_becomes_rejection(store, access, registry, setup_wallets):
    class Failing:
        def execute(self, request, wallet):
            raise RuntimeError("execution reverted")

    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry, executor=Failing())

    state = controller.approve(request_id)

    assert window.sent[0]["approved"] is False
    assert "execution reverted" in window.sent[0]["error"]
    assert "execution reverted" in state.notice
    assert registry.peek(TAG_CONTRACT) is None


def test_approve_contract_without_result_or_executor(store, access, registry, setup_wallets):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry)
    with pytest.raises(ValidationError):
        controller.approve(request_id)
    assert window.sent == []


def test_surface_not_opened_for_request_stays_open(store, access, registry, setup_wallets):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry,
                                         surface_type=SURFACE_TAB, request_id=None)
    controller.mount()
    controller.reject(request_id)
    assert window.closed == 0


def test_decision_without_pending_request_is_ignored(store, access, registry, setup_wallets):
    controller, window = make_controller(store, access, registry)
    assert controller.approve("gone").screen == SCREEN_DASHBOARD
    assert controller.reject("gone").screen == SCREEN_DASHBOARD
    assert window.sent == []


# ============================================
# Decisions bound to the rendered request
# ============================================

def test_decision_for_a_replaced_request_sends_nothing(store, access, registry, setup_wallets):
    seen_id = registry.submit(TAG_CONNECTION, {"origin": "https://seen.example"})
    controller, window = make_controller(store, access, registry)
    assert controller.mount().request.id == seen_id

    # Settled elsewhere, then a new request takes the slot before the click lands
    registry.resolve(seen_id, "abandoned")
    new_id = registry.submit(TAG_CONNECTION, {"origin": "https://evil.example"})

    state = controller.approve(seen_id)

    assert window.sent == []
    assert registry.peek(TAG_CONNECTION).id == new_id
    assert state.request.id == new_id
    assert state.notice == STALE_DECISION_NOTICE

    controller.reject(seen_id)
    assert window.sent == []
    assert registry.peek(TAG_CONNECTION).id == new_id


def test_outranking_request_does_not_take_a_contract_decision(store, access, registry, setup_wallets):
    contract_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window = make_controller(store, access, registry)
    controller.mount()
    registry.submit(TAG_CONNECTION, {"origin": "https://other.example"})

    controller.approve(contract_id, result={"txHash": "0x1"})

    assert window.sent == []
    assert registry.peek(TAG_CONTRACT).id == contract_id


# ============================================
# Deferred execution
# ============================================

class DeferredRunner:
    """Holds executor jobs until the test releases them."""

    def __init__(self):
        self.jobs = []

    def __call__(self, job, on_done):
        self.jobs.append((job, on_done))

    def release(self):
        job, on_done = self.jobs.pop(0)
        run_inline(job, on_done)


def deferred_controller(store, access, registry, chain, request_id):
    runner = DeferredRunner()
    renders = []
    window = Window()
    context = SurfaceContext("popup-1", SURFACE_POPUP, request_id, close=window.close)
    controller = RequestLifecycleController(
        store, access, registry, window.sent.append, context,
        executor=chain, on_change=renders.append, runner=runner,
    )
    controller.mount()
    return controller, window, runner, renders


def test_executor_runs_through_the_runner(store, access, registry, setup_wallets, chain):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window, runner, renders = deferred_controller(store, access, registry, chain, request_id)

    state = controller.approve(request_id)

    assert state.busy
    assert state.request.id == request_id
    assert chain.executed == []
    assert window.sent == []
    assert window.closed == 0

    # A second click while the call runs is ignored
    controller.approve(request_id)
    controller.reject(request_id)
    assert len(runner.jobs) == 1
    assert window.sent == []

    runner.release()

    assert [m["result"] for m in window.sent] == [{"txHash": "0xfeed"}]
    assert registry.peek(TAG_CONTRACT) is None
    assert window.closed == 1
    assert not controller.state.busy


def test_outcome_dropped_when_request_settles_during_execution(store, access, registry,
                                                               setup_wallets, chain):
    request_id = registry.submit(TAG_CONTRACT, CLAIM)
    controller, window, runner, renders = deferred_controller(store, access, registry, chain, request_id)
    controller.approve(request_id)

    registry.resolve(request_id, "abandoned")
    runner.release()

    assert window.sent == []
    assert not controller.state.busy
    assert renders[-1].screen == SCREEN_DASHBOARD
