import json

import pytest
import requests
from requests.adapters import BaseAdapter

from tokenpool import AsyncTokenPool, TokenConfig, TokenPool


class _FakeAdapter(BaseAdapter):
    def __init__(self, total=4, error=None, redirects=0):
        super().__init__()
        self.total = total
        self.error = error
        self.redirects = redirects
        self.sent = []

    def send(self, request, **kwargs):
        self.sent.append(request)
        if self.error is not None:
            raise self.error
        resp = requests.Response()
        resp._content_consumed = True
        if self.redirects:
            self.redirects -= 1
            resp.status_code = 302
            resp.headers["Location"] = "https://api.example.com/v2"
        else:
            resp.status_code = 200
        resp._content = json.dumps({"usage": {"total_tokens": self.total}}).encode()
        resp.request = request
        resp.url = request.url
        return resp

    def close(self):
        pass


def _session(adapter):
    sess = requests.Session()
    sess.mount("https://", adapter)
    return sess


def test_requests_header_injection_and_charges():
    pool = TokenPool("k1", tokens=[TokenConfig("k2")])
    adapter = _FakeAdapter(total=6)
    auth = pool.auth(
        request_cost=lambda prep: 2,
        response_cost=lambda resp: resp.json()["usage"]["total_tokens"],
    )
    with _session(adapter) as sess:
        for _ in range(3):
            r = sess.post("https://api.example.com/v1", json={"prompt": "hi"}, auth=auth)
            assert r.status_code == 200  # noqa: PLR2004

    assert [p.headers["Authorization"] for p in adapter.sent] == [
        "Bearer k1",
        "Bearer k2",
        "Bearer k1",
    ]
    assert pool.get_token(1).usage == 16  # noqa: PLR2004
    assert pool.get_token(2).usage == 8  # noqa: PLR2004


def test_requests_query_injection():
    pool = TokenPool("k1", auth_in="query", auth_query_param="key")
    adapter = _FakeAdapter()
    with _session(adapter) as sess:
        sess.get("https://api.example.com/v1?model=m", auth=pool.auth())
    url = adapter.sent[0].url
    assert "key=k1" in url
    assert "model=m" in url
    assert "Authorization" not in adapter.sent[0].headers


def test_requests_connection_error_skips_response_cost():
    pool = TokenPool("k1")
    adapter = _FakeAdapter(error=requests.ConnectionError("down"))
    auth = pool.auth(request_cost=lambda prep: 5, response_cost=lambda resp: 100)
    with _session(adapter) as sess, pytest.raises(requests.ConnectionError):
        sess.get("https://api.example.com/v1", auth=auth)
    assert pool.get_token(1).usage == 5  # noqa: PLR2004


def test_requests_rejects_async_pool():
    pool = AsyncTokenPool("k1")
    with _session(_FakeAdapter()) as sess, pytest.raises(RuntimeError):
        sess.get("https://api.example.com/v1", auth=pool.auth())


def test_requests_connection_error_leaves_dispatch_unreachable(monkeypatch):
    pool = TokenPool("k1")
    opened = []
    begin = pool.begin_dispatch

    def _spy():
        call = begin()
        opened.append(call)
        return call

    monkeypatch.setattr(pool, "begin_dispatch", _spy)
    adapter = _FakeAdapter(error=requests.ConnectionError("down"))
    auth = pool.auth(request_cost=lambda prep: 1, response_cost=lambda resp: 100)
    with _session(adapter) as sess, pytest.raises(requests.ConnectionError):
        sess.get("https://api.example.com/v1", auth=auth)
    # no response hook ever fires, so the response cost can never be charged
    assert not opened[0].closed
    assert pool.get_token(1).usage == 1


def test_requests_failing_request_cost_cancels_dispatch(monkeypatch):
    pool = TokenPool("k1")
    opened = []
    begin = pool.begin_dispatch

    def _spy():
        call = begin()
        opened.append(call)
        return call

    def _bad_cost(prep):
        raise KeyError("prompt")

    monkeypatch.setattr(pool, "begin_dispatch", _spy)
    adapter = _FakeAdapter()
    with _session(adapter) as sess, pytest.raises(KeyError):
        sess.get("https://api.example.com/v1", auth=pool.auth(request_cost=_bad_cost))
    assert opened[0].closed
    assert opened[0].cancelled
    assert adapter.sent == []
    assert pool.get_token(1).usage is None


def test_requests_redirect_charges_final_response_only():
    pool = TokenPool("k1", tokens=[TokenConfig("k2")])
    adapter = _FakeAdapter(total=6, redirects=1)
    auth = pool.auth(
        request_cost=lambda prep: 2,
        response_cost=lambda resp: resp.json()["usage"]["total_tokens"],
    )
    with _session(adapter) as sess:
        r = sess.get("https://api.example.com/v1", auth=auth)
    assert r.status_code == 200  # noqa: PLR2004
    assert [p.url for p in adapter.sent] == [
        "https://api.example.com/v1",
        "https://api.example.com/v2",
    ]
    assert adapter.sent[1].headers["Authorization"] == "Bearer k1"
    assert pool.get_token(1).usage == 8  # noqa: PLR2004
    assert pool.get_token(2).usage is None
