"""Health check endpoints for MediTrap.

- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (database and key-value store reachable?)
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from meditrap import __version__
from meditrap.api.deps import get_db, get_kv_store
from meditrap.core.kv_store import KeyValueStore

router = APIRouter(tags=["health"])


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


def check_kv_store(store: KeyValueStore) -> Dict[str, Any]:
    """Check key-value store connectivity."""
    try:
        store.exists("health:probe")
        return {"status": "healthy", "backend": store.__class__.__name__}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}


@router.get("/health/ready")
def readiness_probe(
    db: Session = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    """
    Readiness probe.

    Returns 503 if the database or the key-value store is unreachable.
    """
    checks = {
        "database": check_database(db),
        "kv_store": check_kv_store(store),
    }
    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if unhealthy else status.HTTP_200_OK,
        content={
            "status": "not_ready" if unhealthy else "ready",
            "checks": checks,
            "failed": unhealthy,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
