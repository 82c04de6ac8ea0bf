# main.py
"""
FastAPI entry point for the Master Trainer practice console.

Startup/readiness probe the remote backend, a request-id middleware logs every
request, and the shared backend client is closed on shutdown.
"""
import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from master_trainer import __version__
from master_trainer.api.catalog import router as catalog_router
from master_trainer.api.practice import registry
from master_trainer.api.practice import router as practice_router
from master_trainer.config.gateway import gateway_connection
from master_trainer.config.settings import settings

logger = logging.getLogger("uvicorn.error")


async def _gateway_healthy(timeout: float) -> bool:
    try:
        return await asyncio.wait_for(gateway_connection.health_check(timeout), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("⚠️ Backend health_check timed out after %.1fs", timeout)
        return False
    except Exception as exc:
        logger.exception("❌ Unexpected error calling backend health_check: %s", exc)
        return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting Master Trainer console...")

    try:
        app.state.gateway_healthy = await _gateway_healthy(settings.health_check_timeout)
        logger.info("Backend health: %s diagnostics=%s", app.state.gateway_healthy, gateway_connection.diagnostics())

        if not app.state.gateway_healthy and settings.fail_on_gateway_startup:
            logger.error("FAIL_ON_GATEWAY_STARTUP enabled and backend unhealthy. Aborting startup.")
            raise RuntimeError("Backend unhealthy on startup")
    except Exception:
        logger.exception("Critical startup error")
        raise

    try:
        yield
    finally:
        logger.info("Shutting down Master Trainer console...")
        registry.clear()
        try:
            await gateway_connection.aclose()
        except Exception:
            logger.exception("Error while closing backend client during shutdown")


app = FastAPI(
    title="Master Trainer",
    description="Sales roleplay practice console backed by the Master Trainer API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # you can lock this down in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id_and_log(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id
    logger.info("→ Incoming request %s %s id=%s from=%s", request.method, request.url.path, request_id, request.client)
    try:
        response: Response = await call_next(request)
    except Exception as exc:
        logger.exception("Handler error for request id=%s: %s", request_id, exc)
        return JSONResponse(
            {"ok": False, "status": 500, "message": "Internal server error", "diagnostics": {"error": str(exc)}},
            status_code=500,
        )
    logger.info("← Completed request id=%s status=%s", request_id, getattr(response, "status_code", None))
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(catalog_router, prefix="/catalog", tags=["catalog"])
app.include_router(practice_router, prefix="/practice", tags=["practice"])


@app.get("/")
async def root() -> Dict[str, str]:
    return {"message": "Master Trainer console is running!", "status": "healthy"}


@app.get("/health")
async def health_check():
    """
    Liveness: the process is up. Reports degraded (503) when the backend is
    unreachable; the catalog still serves sample data in that case.
    """
    backend_ok = await _gateway_healthy(settings.health_check_timeout)
    return JSONResponse(
        {
            "status": "healthy" if backend_ok else "degraded",
            "service": "master-trainer",
            "backend": "connected" if backend_ok else "disconnected",
            "open_sessions": registry.count(),
        },
        status_code=200 if backend_ok else 503,
    )


@app.get("/ready")
async def readiness_check():
    """Readiness from the cached startup probe, or one bounded probe if it never ran."""
    backend_state: Optional[bool] = getattr(app.state, "gateway_healthy", None)
    if backend_state is None:
        backend_state = await _gateway_healthy(2.0)

    if backend_state:
        return JSONResponse({"ready": True, "backend": "connected"}, status_code=200)
    return JSONResponse({"ready": False, "backend": "disconnected"}, status_code=503)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", 5000)), reload=True)
