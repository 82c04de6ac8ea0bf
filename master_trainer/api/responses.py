# master_trainer/api/responses.py
"""
Turn service result dicts into HTTP responses.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from master_trainer.models import WireModel

# error code -> HTTP status; unknown codes map to 500
ERROR_STATUS: Dict[str, int] = {
    # local validation
    "message_too_short": 400,
    "message_too_long": 400,
    "nothing_to_update": 400,
    # authorization
    "authorization_required": 401,
    # lookup
    "session_not_found": 404,
    # state
    "confirmation_required": 409,
    "send_in_progress": 409,
    "turn_limit_reached": 409,
    "session_already_ended": 409,
    "end_in_progress": 409,
    "no_active_session": 409,
    "busy": 409,
    "controller_closed": 409,
    # backend
    "gateway_error": 502,
    "backend_rejected": 502,
    "invalid_response": 502,
}


def to_jsonable(obj: Any) -> Any:
    """JSON-safe primitives; backend models keep their camelCase wire names."""
    if isinstance(obj, WireModel):
        return obj.to_wire()
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return jsonable_encoder(obj)


def status_for(result: Dict[str, Any]) -> int:
    if result.get("ok"):
        return 200
    return ERROR_STATUS.get(result.get("error") or "", 500)


def result_response(result: Dict[str, Any], status_code: Optional[int] = None) -> JSONResponse:
    return JSONResponse(to_jsonable(result), status_code=status_code or status_for(result))
