"""
Health check endpoints for monitoring and diagnostics.
"""

import time
from os import getenv
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..models.common import HealthStatus
from ..dependencies.session import get_session_manager, get_model_manager, SessionManager
from storygen.models.manager import ModelManager

router = APIRouter()

API_VERSION = "1.0.0"

# Track server start time for uptime calculation
_server_start_time = time.time()

@router.get("/", response_model=HealthStatus)
async def health_check(
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager)
):
    """
    Basic health check endpoint.

    Reports credential presence per provider without calling any remote API,
    so it stays cheap enough for load balancer probes.
    """
    uptime = time.time() - _server_start_time
    dependencies = {}

    stats = session_manager.get_stats()
    dependencies["session_manager"] = f"active ({stats['active_sessions']} sessions)"

    for name, status in model_manager.provider_status().items():
        dependencies[f"provider:{name}"] = status

    dependencies["openai_api_key"] = "configured" if getenv("OPENAI_API_KEY") else "missing"

    return HealthStatus(
        status="healthy",
        version=API_VERSION,
        uptime=uptime,
        dependencies=dependencies
    )

@router.get("/ready")
async def readiness_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Readiness probe. Ready means every provider a task runs on has credentials.
    """
    statuses = model_manager.provider_status(used_only=True)
    missing = [name for name, status in statuses.items() if status != "configured"]
    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "reason": f"Missing credentials for: {', '.join(missing)}"},
        )
    return {"ready": True, "message": "Service ready to handle requests"}
