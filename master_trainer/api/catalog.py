# master_trainer/api/catalog.py
"""
Read-only catalog views (scenarios, history, dashboards) plus login/logout and
scenario authoring.

Every view is served through a FallbackDataLoader, so an unreachable backend
yields the sample datasets (flagged with `used_fallback`) instead of an error.
An expired login is never masked: it returns 401.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query
from pydantic import ValidationError

from master_trainer.api.responses import result_response
from master_trainer.models import (
    AdminStatistics,
    Scenario,
    ScenarioListItem,
    UserStatistics,
    WireModel,
)
from master_trainer.services import fallbacks
from master_trainer.services.data_loader import FallbackDataLoader
from master_trainer.services.remote_gateway import (
    AuthorizationError,
    GatewayError,
    RemoteGateway,
)
from master_trainer.services.results import error_result, ok_result

logger = logging.getLogger(__name__)
router = APIRouter()

gateway = RemoteGateway()
fallback_provider = fallbacks.default_fallbacks()


class LoginRequest(WireModel):
    email: str
    password: str


def _normalize(payload: Any, model) -> Any:
    """Validate backend payloads through the wire models; pass through what does not fit."""
    if isinstance(payload, list):
        return [_normalize(item, model) for item in payload]
    if not isinstance(payload, dict):
        return payload
    try:
        return model.model_validate(payload).to_wire()
    except ValidationError as exc:
        logger.debug("Payload did not match %s: %s", model.__name__, exc)
        return payload


async def _serve(
    fetch,
    resource: str,
    params: Optional[Dict[str, Any]] = None,
    model=None,
    empty: Any = None,
):
    kwargs = {"fallbacks": fallback_provider}
    if empty is not None:
        kwargs["empty"] = empty
    loader = FallbackDataLoader(fetch, resource, params=params, **kwargs)
    state = await loader.load()

    if state["auth_required"]:
        return result_response(error_result("authorization_required", state["error"], resource=resource))
    if state["error"] is not None and not state["data"]:
        return result_response(error_result("gateway_error", state["error"], resource=resource))

    data = _normalize(state["data"], model) if model is not None else state["data"]
    return result_response(
        ok_result(
            data,
            resource=resource,
            total=state["total"],
            page_info=state["page_info"],
            used_fallback=state["used_fallback"],
            error=state["error"],
        )
    )


# -------------------------
# Scenarios
# -------------------------
@router.get("/scenarios")
async def list_scenarios(
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    search: Optional[str] = None,
):
    params = {
        "page": page,
        "page_size": page_size,
        "category": category,
        "difficulty": difficulty,
        "search": search,
    }
    return await _serve(gateway.list_scenarios, fallbacks.SCENARIOS, params, ScenarioListItem)


@router.get("/scenarios/recommended")
async def recommended_scenarios():
    return await _serve(
        gateway.get_recommended_scenarios, fallbacks.RECOMMENDED_SCENARIOS, model=ScenarioListItem
    )


@router.get("/scenarios/{scenario_id}")
async def get_scenario(scenario_id: str):
    return await _serve(
        gateway.get_scenario,
        fallbacks.SCENARIO_DETAIL,
        {"scenario_id": scenario_id},
        Scenario,
        empty={},
    )


# -------------------------
# History / dashboards
# -------------------------
@router.get("/history")
async def session_history(
    page: Optional[int] = Query(None, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
):
    return await _serve(
        gateway.get_roleplay_history,
        fallbacks.SESSION_HISTORY,
        {"page": page, "page_size": page_size},
    )


@router.get("/statistics/user")
async def user_statistics():
    return await _serve(
        gateway.get_user_statistics, fallbacks.USER_STATISTICS, model=UserStatistics, empty={}
    )


@router.get("/statistics/admin")
async def admin_statistics():
    return await _serve(
        gateway.get_admin_statistics, fallbacks.ADMIN_STATISTICS, model=AdminStatistics, empty={}
    )


# -------------------------
# Auth
# -------------------------
@router.post("/auth/login")
async def login(req: LoginRequest):
    try:
        envelope = await gateway.login(req.email, req.password)
    except AuthorizationError as exc:
        return result_response(error_result("authorization_required", exc.message))
    except GatewayError as exc:
        return result_response(error_result("gateway_error", exc.message, status_code=exc.status_code))
    if not envelope.get("success"):
        return result_response(
            error_result("authorization_required", envelope.get("message") or "Login failed")
        )
    user = (envelope.get("data") or {}).get("user")
    return result_response(ok_result({"user": user, "authenticated": True}))


@router.post("/auth/logout")
async def logout():
    try:
        await gateway.logout()
    except GatewayError as exc:
        # credentials are cleared locally either way
        logger.warning("Backend logout failed: %s", exc.message)
    return result_response(ok_result({"authenticated": False}))


# -------------------------
# Admin
# -------------------------
@router.post("/admin/scenarios")
async def create_scenario(scenario: Dict[str, Any] = Body(...)):
    """Success is reported only when the backend explicitly confirms it."""
    try:
        envelope = await gateway.create_scenario(scenario)
    except AuthorizationError as exc:
        return result_response(error_result("authorization_required", exc.message))
    except GatewayError as exc:
        return result_response(error_result("gateway_error", exc.message, status_code=exc.status_code))
    if envelope.get("success") is not True:
        return result_response(
            error_result("backend_rejected", envelope.get("message") or "Failed to create scenario")
        )
    return result_response(ok_result(_normalize(envelope.get("data"), Scenario)))
