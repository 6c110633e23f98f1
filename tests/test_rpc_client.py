from __future__ import annotations

import base64

import pytest
import requests

from ingestion.rpc.client import RpcError, SolanaRpcClient, decode_account_data, sanitize_rpc_url


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    """Replays canned responses in order and records posted payloads."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.posted = []
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.posted.append(json)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


def _client(responses, retries=3):
    session = FakeSession(responses)
    client = SolanaRpcClient("http://rpc", max_retries=retries, initial_delay_ms=0, session=session)
    return client, session


def _ok(result):
    return FakeResponse(200, {"jsonrpc": "2.0", "id": 1, "result": result})


def test_call_returns_result():
    client, session = _client([_ok(42)])

    assert client.call("getBlockHeight") == 42
    assert session.posted[0]["method"] == "getBlockHeight"
    assert session.posted[0]["jsonrpc"] == "2.0"


def test_retries_on_rate_limit_then_succeeds():
    client, session = _client([FakeResponse(429), FakeResponse(500), _ok("ok")])

    assert client.call("getHealth") == "ok"
    assert len(session.posted) == 3
    assert client.get_metrics()["retries"] == 2


def test_retries_on_json_rpc_429_code():
    limited = FakeResponse(200, {"error": {"code": 429, "message": "slow down"}})
    client, _ = _client([limited, _ok(1)])

    assert client.call("getBalance") == 1


def test_gives_up_after_max_retries():
    client, session = _client([FakeResponse(429)] * 3, retries=2)

    with pytest.raises(RpcError):
        client.call("getBalance")
    assert len(session.posted) == 3


def test_transport_error_retried():
    client, _ = _client([requests.ConnectionError("reset"), _ok(7)])

    assert client.call("getBlockHeight") == 7


def test_json_rpc_error_message_passed_through():
    error = FakeResponse(200, {"error": {"code": -32602, "message": "Invalid param: WrongSize"}})
    client, _ = _client([error])

    with pytest.raises(RpcError) as exc:
        client.call("getBalance")
    assert str(exc.value) == "Invalid param: WrongSize"
    assert exc.value.code == -32602


def test_non_json_response():
    client, _ = _client([FakeResponse(502, None)], retries=0)

    with pytest.raises(RpcError) as exc:
        client.call("getBalance")
    assert exc.value.code == 502


def test_get_balance_unwraps_value():
    client, session = _client([_ok({"context": {"slot": 1}, "value": 999})])

    assert client.get_balance("key", commitment="finalized") == 999
    assert session.posted[0]["params"] == ["key", {"commitment": "finalized"}]


def test_get_account_bytes():
    payload = base64.b64encode(b"\x00\x01\x02").decode()
    client, session = _client([_ok({"value": {"data": [payload, "base64"]}})])

    assert client.get_account_bytes("key") == b"\x00\x01\x02"
    assert session.posted[0]["params"][1]["encoding"] == "base64"


def test_get_account_bytes_missing_account():
    client, _ = _client([_ok({"value": None})])

    assert client.get_account_bytes("key") is None


def test_get_health_false_on_error():
    error = FakeResponse(200, {"error": {"code": -32005, "message": "Node is behind"}})
    client, _ = _client([error])

    assert client.get_health() is False


def test_close_closes_session():
    client, session = _client([])
    client.close()

    assert session.closed is True


def test_decode_account_data_rejects_other_encodings():
    with pytest.raises(RpcError):
        decode_account_data(["abc", "base58"])
    with pytest.raises(RpcError):
        decode_account_data(None)


def test_sanitize_rpc_url():
    assert sanitize_rpc_url("https://node.example.com/abc123/") == "https://node.example.com/***"
    assert sanitize_rpc_url("http://localhost:8899") == "http://localhost:8899"
