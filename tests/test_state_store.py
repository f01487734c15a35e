import state_store
from state_store import CookieStateStore, MemoryStateStore
from starlette.requests import Request
from starlette.responses import Response


def _request(cookie_header: str = "") -> Request:
    headers = [(b"cookie", cookie_header.encode())] if cookie_header else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def test_memory_store_returns_value_until_ttl(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(state_store.time, "monotonic", lambda: clock[0])
    store = MemoryStateStore()
    store.put("oauth_state", "abc", ttl=600)

    clock[0] += 599
    assert store.get("oauth_state") == "abc"
    clock[0] += 1
    assert store.get("oauth_state") is None


def test_memory_store_missing_key():
    assert MemoryStateStore().get("redirect_port") is None


def test_cookie_store_reads_request_cookies():
    store = CookieStateStore(_request("oauth_state=abc; redirect_port=4567"))
    assert store.get("oauth_state") == "abc"
    assert store.get("redirect_port") == "4567"
    assert store.get("missing") is None


def test_cookie_store_empty_cookie_counts_as_missing():
    store = CookieStateStore(_request("redirect_port="))
    assert store.get("redirect_port") is None


def test_cookie_store_writes_on_commit():
    store = CookieStateStore(_request(), secure=True)
    store.put("redirect_port", "4567", 600)
    response = store.commit(Response())

    cookies = response.headers.getlist("set-cookie")
    assert len(cookies) == 1
    assert cookies[0].startswith("redirect_port=4567;")
    assert "Max-Age=600" in cookies[0]
    assert "HttpOnly" in cookies[0]
    assert "Secure" in cookies[0]


def test_cookie_store_commit_is_not_repeated():
    store = CookieStateStore(_request())
    store.put("oauth_state", "abc", 600)
    store.commit(Response())
    assert store.commit(Response()).headers.getlist("set-cookie") == []
