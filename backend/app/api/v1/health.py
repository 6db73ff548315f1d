r"""backend\app\api\v1\health.py

Health check endpoints.

These endpoints can be used by orchestrators and load balancers to verify
that the service is running.  A simple GET request to `/api/v1/health`
returns a JSON payload with status, version and uptime.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter

from ...core.config import APP_VERSION

router = APIRouter()

_STARTED = time.monotonic()


@router.get("/health")
async def health_check() -> dict[str, object]:
    """Return a basic health indicator."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
        "uptime": round(time.monotonic() - _STARTED, 3),
    }
