import http.client
import io
import json
import threading
import urllib.error
import urllib.parse
import urllib.request
import uuid

import pytest

from bridge import Bridge, HttpTransport
from models import Abandoned, NotConnectedError, ProviderUnavailableError, RequestConflict, TAG_CONNECTION
from services.controller import RequestLifecycleController, SurfaceContext
from services.server import BridgeServer, get_http_status_for_error, RateLimiter

from conftest import ORIGIN, connect_origin

CONTRACT = "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def server(background):
    server = BridgeServer(background)
    assert server.start(port=0)
    yield server
    server.stop()


@pytest.fixture
def base_url(server):
    return f"http://127.0.0.1:{server.port}"


@pytest.fixture
def transport(base_url):
    return HttpTransport(base_url, poll_interval=0.05, timeout=5)


def fetch(url, method="GET", body=None):
    data = json.dumps(body).encode() if body is not None else None
    req = urllib.request.Request(url, data=data, method=method,
                                 headers={"Content-Type": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            return resp.status, json.loads(resp.read().decode())
    except urllib.error.HTTPError as e:
        return e.code, json.loads(e.read().decode())


def approve_last(background, host, **kwargs):
    surface_id, spec = host.last()
    context = SurfaceContext(surface_id, spec.surface_type, spec.request_id)
    controller = RequestLifecycleController(
        background.store, background.access, background.registry,
        background.handle_surface_message, context,
    )
    return controller.approve(spec.request_id, **kwargs)


def test_health_and_status(base_url):
    assert fetch(f"{base_url}/health") == (200, {"status": "ok"})
    status, body = fetch(f"{base_url}/status")
    assert status == 200
    assert body["status"] == "ready"


def test_wrong_methods_and_paths(base_url):
    assert fetch(f"{base_url}/request")[0] == 405
    assert fetch(f"{base_url}/health", method="POST", body={})[0] == 405
    assert fetch(f"{base_url}/nowhere")[0] == 404


def test_status_of_unknown_request(base_url):
    status, body = fetch(f"{base_url}/request/status/{uuid.uuid4()}")
    assert status == 404
    assert body["code"] == "REQUEST_NOT_FOUND"
    assert fetch(f"{base_url}/request/status/not-a-uuid")[0] == 400


def test_error_codes_map_to_http_statuses(base_url, background):
    status, body = fetch(f"{base_url}/request", method="POST", body={
        "type": "CONTRACT_REQUEST", "origin": ORIGIN,
        "contractAddress": CONTRACT, "methodName": "claimToken",
    })
    assert (status, body["code"]) == (403, "NOT_CONNECTED")

    status, body = fetch(f"{base_url}/request", method="POST", body={"type": "BOGUS"})
    assert (status, body["code"]) == (400, "INVALID_REQUEST")


def test_origin_header_wins_over_body(transport, registry):
    ack = transport._request("POST", "/request",
                             {"type": "CONNECT_REQUEST", "origin": "https://spoofed.example"},
                             origin=ORIGIN)
    assert ack["status"] == "pending"
    assert registry.peek(TAG_CONNECTION).origin == ORIGIN


def test_pending_then_done(base_url, background, host):
    connect_origin(background)
    status, ack = fetch(f"{base_url}/request", method="POST", body={
        "type": "CONTRACT_REQUEST", "origin": ORIGIN,
        "contractAddress": CONTRACT, "methodName": "claimToken",
    })
    assert status == 202
    poll_url = f"{base_url}/request/status/{ack['request_id']}"
    assert fetch(poll_url)[0] == 202

    approve_last(background, host, result={"txHash": "abc123"})

    status, body = fetch(poll_url)
    assert status == 200
    assert body["result"]["result"] == {"txHash": "abc123"}


def test_bridge_over_http(transport, background, host, setup_wallets):
    bridge = Bridge(transport, ORIGIN)
    assert bridge.is_available()

    connecting = bridge.connect()
    approve_last(background, host)
    assert connecting.result(timeout=5)["address"] == setup_wallets[0].address

    calling = bridge.call_contract(CONTRACT, "claimToken")
    with pytest.raises(RequestConflict):
        bridge.call_contract(CONTRACT, "claimToken").result(timeout=5)
    approve_last(background, host, result={"txHash": "abc123"})
    assert calling.result(timeout=5) == {"success": True, "txHash": "abc123", "type": "call"}

    assert bridge.get_balance().result(timeout=5) == "1.5"


def test_http_abandon_reaches_the_page(transport, background, host, setup_wallets):
    connect_origin(background, address=setup_wallets[0].address)
    bridge = Bridge(transport, ORIGIN)
    bridge.connected_address = setup_wallets[0].address

    future = bridge.call_contract(CONTRACT, "claimToken")
    background.surface_closed(host.last()[0])

    with pytest.raises(Abandoned):
        future.result(timeout=5)


def test_not_connected_over_http(transport, background):
    bridge = Bridge(transport, ORIGIN)
    bridge.connected_address = "0xabc"   # the wallet has never seen this origin
    with pytest.raises(NotConnectedError):
        bridge.get_balance().result(timeout=5)


def test_unreachable_listener():
    transport = HttpTransport("http://127.0.0.1:9", timeout=0.5)
    assert not transport.is_available()
    with pytest.raises(ProviderUnavailableError):
        transport.send({"type": "NETWORK_REQUEST"}, lambda result: None)


def test_rate_limiter():
    limiter = RateLimiter(requests_per_minute=2)
    assert not limiter.is_rate_limited("1.2.3.4")
    assert not limiter.is_rate_limited("1.2.3.4")
    assert limiter.is_rate_limited("1.2.3.4")
    assert not limiter.is_rate_limited("5.6.7.8")


def test_unknown_codes_are_bad_requests():
    assert get_http_status_for_error("SOMETHING_NEW") == 400
    assert get_http_status_for_error("PROVIDER_UNAVAILABLE") == 503


def scripted_opener(reply_for_path):
    """urlopen stand-in answering each path with fixed bytes."""
    def opener(req, timeout=None):
        return io.BytesIO(reply_for_path(urllib.parse.urlsplit(req.full_url).path))
    return opener


def test_non_wallet_listener_fails_the_future():
    transport = HttpTransport(opener=scripted_opener(lambda path: b"<html>not the wallet</html>"))
    bridge = Bridge(transport, ORIGIN)

    assert not transport.is_available()
    future = bridge.connect()
    with pytest.raises(ProviderUnavailableError):
        future.result(timeout=1)
    with pytest.raises(ProviderUnavailableError):
        transport.send({"type": "NETWORK_REQUEST"}, lambda result: None)


def test_non_object_json_is_not_the_wallet():
    transport = HttpTransport(opener=scripted_opener(lambda path: b"[1, 2, 3]"))
    with pytest.raises(ProviderUnavailableError):
        transport.send({"type": "NETWORK_REQUEST"}, lambda result: None)


def test_garbled_status_replies_still_settle_the_request():
    def reply(path):
        if path == "/request":
            return json.dumps({"status": "pending", "request_id": "r1"}).encode()
        return b"<html>not the wallet</html>"

    transport = HttpTransport(poll_interval=0.01, max_poll_failures=3, opener=scripted_opener(reply))
    results = []
    settled = threading.Event()

    def on_result(result):
        results.append(result)
        settled.set()

    ack = transport.send({"type": "CONNECT_REQUEST", "origin": ORIGIN}, on_result)
    assert ack["status"] == "pending"
    assert settled.wait(timeout=5)
    assert len(results) == 1
    assert results[0]["approved"] is False
    assert results[0]["code"] == "PROVIDER_UNAVAILABLE"


@pytest.mark.parametrize("length", ["abc", "-1"])
def test_bad_content_length_is_rejected(server, length):
    conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=5)
    try:
        conn.putrequest("POST", "/request")
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", length)
        conn.endheaders()
        resp = conn.getresponse()
        assert resp.status == 400
        assert json.loads(resp.read().decode())["code"] == "INVALID_REQUEST"
    finally:
        conn.close()


def test_undecodable_body_is_invalid_json(base_url):
    req = urllib.request.Request(f"{base_url}/request", data=b"\xff\xfe\xfd", method="POST",
                                 headers={"Content-Type": "application/json"})
    with pytest.raises(urllib.error.HTTPError) as excinfo:
        urllib.request.urlopen(req, timeout=5)
    assert excinfo.value.code == 400
    assert json.loads(excinfo.value.read().decode())["code"] == "INVALID_JSON"
