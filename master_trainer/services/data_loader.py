# master_trainer/services/data_loader.py
"""
Fetch-with-fallback loader behind every list/detail view.

A loader wraps one remote fetch (a coroutine function returning the backend
envelope {success, data, message}) plus its parameters, and keeps a stable
view state for the caller:

    data / total / is_loading / error / used_fallback

Outcomes of a fetch:
  - success with data: data replaced, error cleared.
  - success == False: previous data kept (or the empty value), error = message.
  - GatewayError raised: a warning is logged and the resource's sample payload
    from the FallbackProvider is substituted with error = None. When fallbacks
    are disabled or the provider has no entry, the error is surfaced instead.
  - AuthorizationError raised: never masked by sample data; error is set and
    `auth_required` flags that the caller must log in again.

Parameters are compared by value: `set_params` only re-fetches when a value
actually changed. There is no caching across parameter changes.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from master_trainer.config.settings import settings
from master_trainer.services.fallbacks import FallbackProvider, default_fallbacks
from master_trainer.services.remote_gateway import AuthorizationError, GatewayError

logger = logging.getLogger(__name__)

FetchFn = Callable[..., Awaitable[Dict[str, Any]]]

_LIST = object()


def _normalize_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (params or {}).items() if v is not None}


class FallbackDataLoader:

    def __init__(
        self,
        fetch: FetchFn,
        resource: str,
        params: Optional[Dict[str, Any]] = None,
        fallbacks: Optional[FallbackProvider] = None,
        use_fallback: Optional[bool] = None,
        empty: Any = _LIST,
    ) -> None:
        """
        fetch: coroutine function called as `fetch(**params)`.
        resource: fallback key, e.g. "scenarios".
        fallbacks: provider of sample payloads; defaults to the demo datasets.
        use_fallback: override settings.use_fallback_data.
        empty: value of `data` before anything was loaded (a list by default,
               pass None for detail views).
        """
        self._fetch = fetch
        self.resource = resource
        self._params = _normalize_params(params)
        self._fallbacks = fallbacks if fallbacks is not None else default_fallbacks()
        self._use_fallback = settings.use_fallback_data if use_fallback is None else use_fallback
        self._empty = [] if empty is _LIST else empty

        self.data: Any = copy.copy(self._empty)
        self.total: int = 0
        self.page_info: Dict[str, Any] = {}
        self.is_loading: bool = False
        self.error: Optional[str] = None
        self.used_fallback: bool = False
        self.auth_required: bool = False

        self._generation = 0
        self._closed = False

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self._params)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach: responses resolving after this no longer touch the state."""
        self._closed = True

    def snapshot(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "total": self.total,
            "page_info": dict(self.page_info),
            "is_loading": self.is_loading,
            "error": self.error,
            "used_fallback": self.used_fallback,
            "auth_required": self.auth_required,
        }

    # -----------------------
    # Fetching
    # -----------------------
    async def load(self) -> Dict[str, Any]:
        """Run the fetch with the current parameters and return the new snapshot."""
        if self._closed:
            logger.debug("load() on closed loader resource=%s ignored", self.resource)
            return self.snapshot()

        self._generation += 1
        generation = self._generation
        params = dict(self._params)
        self.is_loading = True
        self.error = None
        self.auth_required = False

        try:
            envelope = await self._fetch(**params)
        except AuthorizationError as exc:
            if self._is_current(generation):
                self.error = exc.message
                self.auth_required = True
                self.is_loading = False
            return self.snapshot()
        except GatewayError as exc:
            if self._is_current(generation):
                self._apply_failure(exc.message, params)
            return self.snapshot()
        except Exception as exc:
            logger.exception("Unexpected error fetching resource=%s: %s", self.resource, exc)
            if self._is_current(generation):
                self._apply_failure(str(exc) or exc.__class__.__name__, params)
            return self.snapshot()

        if not self._is_current(generation):
            logger.debug("Discarding stale response for resource=%s", self.resource)
            return self.snapshot()

        envelope = envelope or {}
        if envelope.get("success") and envelope.get("data") is not None:
            self._apply_data(envelope["data"])
            self.used_fallback = False
        else:
            self.error = envelope.get("message") or envelope.get("error") or f"Failed to fetch {self.resource}"
            logger.info("Backend declined %s: %s", self.resource, self.error)
        self.is_loading = False
        return self.snapshot()

    async def refetch(self) -> Dict[str, Any]:
        """Re-run the same fetch with the same parameters."""
        return await self.load()

    async def set_params(self, **params: Any) -> bool:
        """
        Replace the parameters; re-fetches only if a value changed.
        Returns True when a fetch was issued.
        """
        new_params = _normalize_params(params)
        if new_params == self._params:
            return False
        self._params = new_params
        await self.load()
        return True

    # -----------------------
    # Internal helpers
    # -----------------------
    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _apply_data(self, data: Any) -> None:
        if isinstance(data, dict) and "items" in data and "total" in data:
            self.data = data.get("items") or []
            self.total = int(data.get("total") or 0)
            self.page_info = {
                "page": data.get("page"),
                "page_size": data.get("pageSize"),
                "total_pages": data.get("totalPages"),
            }
        else:
            self.data = data
            self.total = len(data) if isinstance(data, list) else (1 if data else 0)
            self.page_info = {}

    def _apply_failure(self, message: str, params: Dict[str, Any]) -> None:
        if self._use_fallback and self._fallbacks.has(self.resource):
            logger.warning(
                "Using fallback %s data after fetch failure: %s", self.resource, message
            )
            self._apply_data(self._fallbacks.get(self.resource, params))
            self.used_fallback = True
            self.error = None
        else:
            logger.warning("Fetching %s failed: %s", self.resource, message)
            self.error = message
        self.is_loading = False
