"""
Normalized result shape shared by every service:

    {"ok": True, "data": ..., "diagnostics": {...}}
    {"ok": False, "error": "<code>", "message": "<human readable>", "diagnostics": {...}}

This makes composition and testing predictable and lets the HTTP layer map
error codes to status codes in one place.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


def make_result(
    ok: bool,
    data: Any = None,
    error: Optional[str] = None,
    message: Optional[str] = None,
    diagnostics: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    res: Dict[str, Any] = {"ok": ok}
    if ok:
        res["data"] = data
    else:
        res["error"] = error or "unknown_error"
        res["message"] = message or res["error"].replace("_", " ")
    res["diagnostics"] = diagnostics or {}
    return res


def ok_result(data: Any = None, **diagnostics: Any) -> Dict[str, Any]:
    return make_result(True, data=data, diagnostics=diagnostics)


def error_result(error: str, message: Optional[str] = None, **diagnostics: Any) -> Dict[str, Any]:
    return make_result(False, error=error, message=message, diagnostics=diagnostics)
