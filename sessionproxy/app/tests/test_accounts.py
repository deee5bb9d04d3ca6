"""
Unit Tests for Account Resolvers
================================

Tests for sessionproxy/app/accounts/resolvers.py

Test Coverage:
--------------
1. Static table lookups and account file loading
2. Remote lookup: success, bearer auth, non-2xx, malformed body, transport errors
3. Backend selection from settings

Run tests:
----------
    pytest sessionproxy/app/tests/test_accounts.py -v
"""

import json
import logging

import httpx
import pytest

from sessionproxy.app.accounts import (
    AccountFileError,
    RemoteAccountResolver,
    StaticAccountResolver,
    build_account_resolver,
    load_account_file,
)
from sessionproxy.app.config import Settings
from sessionproxy.app.main import setup_logging


ENDPOINT = "https://accounts.example.com/lookup"


def make_resolver(handler, secret=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteAccountResolver(ENDPOINT, secret=secret, client=client)


# ============================================================================
# Static Backend
# ============================================================================

@pytest.mark.asyncio
async def test_static_resolver_exact_match():
    resolver = StaticAccountResolver({"token-bob": "Bob"})

    assert await resolver.resolve("token-bob") == "Bob"
    assert await resolver.resolve("TOKEN-BOB") is None
    assert await resolver.resolve("unknown") is None


def test_load_account_file(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps({"token-bob": "Bob", "token-carol": "Carol"}), encoding="utf-8")

    assert load_account_file(str(path)) == {"token-bob": "Bob", "token-carol": "Carol"}


def test_load_account_file_missing(tmp_path):
    with pytest.raises(AccountFileError):
        load_account_file(str(tmp_path / "missing.json"))


def test_load_account_file_invalid_json(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text("token-bob=Bob", encoding="utf-8")

    with pytest.raises(AccountFileError):
        load_account_file(str(path))


@pytest.mark.parametrize("document", [["Bob"], {"token-bob": 42}, "Bob"])
def test_load_account_file_wrong_shape(tmp_path, document):
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps(document), encoding="utf-8")

    with pytest.raises(AccountFileError):
        load_account_file(str(path))


# ============================================================================
# Remote Backend
# ============================================================================

@pytest.mark.asyncio
async def test_remote_resolver_success():
    """Credential is sent as ?token= and the username field is returned"""
    seen = {}

    def handler(request):
        seen["token"] = request.url.params.get("token")
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"username": "Bob", "extra": True})

    resolver = make_resolver(handler)

    assert await resolver.resolve("token-bob") == "Bob"
    assert seen == {"token": "token-bob", "authorization": None}


@pytest.mark.asyncio
async def test_remote_resolver_sends_bearer_secret():
    seen = {}

    def handler(request):
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"username": "Bob"})

    resolver = make_resolver(handler, secret="s3cret")

    await resolver.resolve("token-bob")

    assert seen["authorization"] == "Bearer s3cret"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 404, 500])
async def test_remote_resolver_non_2xx_is_not_found(status_code):
    resolver = make_resolver(lambda request: httpx.Response(status_code, json={"username": "Bob"}))

    assert await resolver.resolve("token-bob") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"not json", b"{}", b'{"username": 7}', b"[]"])
async def test_remote_resolver_malformed_body_is_not_found(body):
    resolver = make_resolver(lambda request: httpx.Response(200, content=body))

    assert await resolver.resolve("token-bob") is None


@pytest.mark.asyncio
async def test_remote_resolver_transport_error_is_not_found():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    resolver = make_resolver(handler)

    assert await resolver.resolve("token-bob") is None


# ============================================================================
# Backend Selection
# ============================================================================

def test_build_file_backend(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps({"token-bob": "Bob"}), encoding="utf-8")

    resolver = build_account_resolver(Settings(_env_file=None, ACCOUNTS_FILE=str(path)))

    assert isinstance(resolver, StaticAccountResolver)
    assert len(resolver) == 1


def test_build_file_backend_bad_file_is_fatal(tmp_path):
    with pytest.raises(AccountFileError):
        build_account_resolver(
            Settings(_env_file=None, ACCOUNTS_FILE=str(tmp_path / "missing.json"))
        )


@pytest.mark.asyncio
async def test_build_api_backend():
    resolver = build_account_resolver(
        Settings(_env_file=None, ACCOUNT_BACKEND="api", ACCOUNTS_ENDPOINT=ENDPOINT)
    )

    assert isinstance(resolver, RemoteAccountResolver)
    assert resolver.backend_name == "api"
    await resolver.aclose()


# ============================================================================
# Credential Hygiene
# ============================================================================

@pytest.mark.asyncio
async def test_remote_lookup_never_logs_credential(caplog):
    """httpx request logging would otherwise print ?token=<credential>"""
    caplog.set_level(logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.NOTSET)
    setup_logging("INFO")

    resolver = make_resolver(lambda request: httpx.Response(200, json={"username": "Bob"}))
    failing = make_resolver(lambda request: httpx.Response(500))

    assert await resolver.resolve("SUPERSECRETCRED") == "Bob"
    assert await failing.resolve("SUPERSECRETCRED") is None

    assert caplog.records
    for record in caplog.records:
        assert "SUPERSECRETCRED" not in record.getMessage()
        assert "SUPERSECRETCRED" not in str(record.__dict__)


def test_setup_logging_quiets_http_client_loggers():
    logging.getLogger("httpx").setLevel(logging.NOTSET)

    setup_logging("DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING
