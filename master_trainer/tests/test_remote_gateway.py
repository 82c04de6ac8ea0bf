# tests/test_remote_gateway.py
import json

import httpx
import pytest

from master_trainer.config.gateway import CredentialStore, GatewayConnection
from master_trainer.services.remote_gateway import AuthorizationError, GatewayError, RemoteGateway


def _gateway(handler, token=None):
    conn = GatewayConnection(
        base_url="http://backend.test/api",
        credentials=CredentialStore(token),
        transport=httpx.MockTransport(handler),
    )
    return RemoteGateway(conn), conn


@pytest.mark.asyncio
async def test_login_stores_token_and_sends_it_afterwards():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        if request.url.path == "/api/auth/login":
            assert json.loads(request.content) == {"email": "rep@example.com", "password": "secret"}
            return httpx.Response(200, json={"success": True, "data": {"token": "tok-1", "user": {"id": "u-1"}}})
        return httpx.Response(200, json={"success": True, "data": {"id": "u-1"}})

    gw, conn = _gateway(handler)
    await gw.login("rep@example.com", "secret")
    assert conn.credentials.token == "tok-1"

    await gw.get_me()
    assert "authorization" not in seen[0].headers
    assert seen[1].headers["authorization"] == "Bearer tok-1"
    await conn.aclose()


@pytest.mark.asyncio
async def test_401_clears_credentials_and_raises():
    def handler(request):
        return httpx.Response(401, json={"success": False, "message": "Token expired"})

    gw, conn = _gateway(handler, token="stale")
    with pytest.raises(AuthorizationError) as exc:
        await gw.get_scenario("1")
    assert exc.value.status_code == 401
    assert exc.value.message == "Token expired"
    assert conn.credentials.token is None
    await conn.aclose()


@pytest.mark.asyncio
async def test_error_status_raises_gateway_error_with_backend_message():
    def handler(request):
        return httpx.Response(500, json={"error": "Database unavailable"})

    gw, conn = _gateway(handler, token="tok")
    with pytest.raises(GatewayError) as exc:
        await gw.start_roleplay("scn-1")
    assert not isinstance(exc.value, AuthorizationError)
    assert exc.value.status_code == 500
    assert exc.value.message == "Database unavailable"
    assert conn.credentials.token == "tok"
    await conn.aclose()


@pytest.mark.asyncio
async def test_network_failure_raises_gateway_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    gw, conn = _gateway(handler)
    with pytest.raises(GatewayError) as exc:
        await gw.send_roleplay_message("s-1", "Hello there, how are you?")
    assert exc.value.status_code is None
    assert "connection refused" in exc.value.message
    await conn.aclose()


@pytest.mark.asyncio
async def test_non_envelope_body_is_rejected():
    def handler(request):
        return httpx.Response(200, text="<html>proxy error</html>")

    gw, conn = _gateway(handler)
    with pytest.raises(GatewayError):
        await gw.get_recommended_scenarios()
    await conn.aclose()


@pytest.mark.asyncio
async def test_list_scenarios_sends_camel_case_query_and_drops_empty_values():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": {"items": [], "total": 0}})

    gw, conn = _gateway(handler)
    await gw.list_scenarios(page=2, page_size=5, category=None, difficulty="hard", search="")
    assert dict(seen[0].url.params) == {"page": "2", "pageSize": "5", "difficulty": "hard"}
    await conn.aclose()


@pytest.mark.asyncio
async def test_roleplay_requests_use_expected_paths_and_bodies():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content) if request.content else None))
        return httpx.Response(200, json={"success": True, "data": {}})

    gw, conn = _gateway(handler)
    await gw.start_roleplay("scn-1")
    await gw.send_roleplay_message("s-1", "Tell me about your budget.")
    await gw.end_roleplay("s-1")
    await gw.update_email("e-1", {"subject": "Next steps"})
    assert seen == [
        ("POST", "/api/roleplay/start", {"scenarioId": "scn-1"}),
        ("POST", "/api/roleplay/message", {"sessionId": "s-1", "content": "Tell me about your budget."}),
        ("POST", "/api/roleplay/end", {"sessionId": "s-1"}),
        ("PUT", "/api/email/e-1", {"subject": "Next steps"}),
    ]
    await conn.aclose()


@pytest.mark.asyncio
async def test_logout_clears_credentials_even_on_failure():
    def handler(request):
        return httpx.Response(503, json={"message": "down"})

    gw, conn = _gateway(handler, token="tok")
    with pytest.raises(GatewayError):
        await gw.logout()
    assert conn.credentials.token is None
    await conn.aclose()


@pytest.mark.asyncio
async def test_health_check_and_diagnostics():
    def handler(request):
        assert request.url.path == "/api/health"
        return httpx.Response(200, json={"status": "ok"})

    gw, conn = _gateway(handler, token="tok")
    assert await conn.health_check() is True
    diag = conn.diagnostics()
    assert diag["configured"] is True
    assert diag["authenticated"] is True
    assert diag["host"] == "backend.test"
    assert "tok" not in json.dumps(diag)
    await conn.aclose()
    assert conn.diagnostics()["client_present"] is False


@pytest.mark.asyncio
async def test_health_check_reports_unreachable_backend():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    _, conn = _gateway(handler)
    assert await conn.health_check(timeout_seconds=0.1) is False
    await conn.aclose()
