"""Health check endpoint.

Returns service status including database connectivity, scheduler state,
and the number of open discussions.
"""

import logging
from typing import Any

from fastapi import APIRouter
from starlette.responses import JSONResponse

from kaen.core.constants import COMMENTS_TABLE
from kaen.db.supabase import get_supabase
from kaen.scheduler.jobs import is_scheduler_running
from kaen.services.discussion import registry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> Any:
    """Return health status including a real Supabase connectivity test.

    Returns 200 OK when healthy, 503 when the database is down.
    """
    db_status = "disconnected"

    try:
        client = get_supabase()
        result = client.table(COMMENTS_TABLE).select("id").limit(1).execute()
        if result is not None:
            db_status = "connected"
    except Exception:
        logger.warning("Health check: Supabase connection failed", exc_info=True)

    scheduler_status = "running" if is_scheduler_running() else "stopped"

    payload: dict[str, Any] = {
        "status": "ok" if db_status == "connected" else "degraded",
        "database": db_status,
        "scheduler": scheduler_status,
        "open_discussions": len(registry),
    }

    if db_status != "connected":
        return JSONResponse(status_code=503, content=payload)

    return payload
