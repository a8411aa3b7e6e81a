import asyncio
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from starlette.requests import Request
from starlette.responses import Response

from storefront.utils.rate_limit import optional_rate_limit, rate_limit_key


def _request(app, token=None) -> Request:
    headers = [(b"authorization", f"Bearer {token}".encode())] if token else []
    return Request({
        "type": "http", "method": "POST", "path": "/api/v1/checkout/session",
        "headers": headers, "query_string": b"", "client": ("10.0.0.1", 1234), "app": app,
    })


def _app(enabled=None):
    return SimpleNamespace(state=SimpleNamespace(rate_limit_enabled=enabled))


def test_key_uses_hashed_token_then_ip():
    app = _app()
    assert rate_limit_key(_request(app, "tok")).startswith("user:")
    assert "tok" not in rate_limit_key(_request(app, "tok"))
    assert rate_limit_key(_request(app)) == "ip:10.0.0.1:/api/v1/checkout/session"


def test_local_fallback_limits(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    app = _app(enabled=True)
    dep = optional_rate_limit(times=2, seconds=60)

    asyncio.run(dep(_request(app, "tok"), Response()))
    asyncio.run(dep(_request(app, "tok"), Response()))
    with pytest.raises(HTTPException) as exc:
        asyncio.run(dep(_request(app, "tok"), Response()))
    assert exc.value.status_code == 429
    # autre utilisateur: compteur distinct
    asyncio.run(dep(_request(app, "other"), Response()))


def test_disabled_limiter_is_noop(monkeypatch):
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    app = _app(enabled=False)
    dep = optional_rate_limit(times=1, seconds=60)
    for _ in range(3):
        assert asyncio.run(dep(_request(app), Response())) is None
