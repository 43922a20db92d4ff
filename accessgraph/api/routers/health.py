"""Health check endpoints for AccessGraph.

- /health: Basic health check
- /health/live: Liveness probe
- /health/ready: Readiness probe (relationship store and broker reachable)
"""

from typing import Dict, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
import redis

from accessgraph import __version__
from accessgraph.api.deps import get_db
from accessgraph.core.clock import utcnow
from accessgraph.core.config import get_settings

router = APIRouter(tags=["health"])
settings = get_settings()


def check_database(db: Session) -> Dict[str, Any]:
    """Check relationship store connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy"}
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


def check_redis() -> Dict[str, Any]:
    """Check connectivity to the broker that carries audit retries."""
    try:
        r = redis.from_url(
            settings.celery_broker,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        r.ping()
        info = r.info("server")
        r.close()
        return {
            "status": "healthy",
            "version": info.get("redis_version", "unknown"),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "alive",
            "timestamp": utcnow().isoformat(),
        },
    )


@router.get("/health/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """
    Readiness probe.

    Evaluation cannot proceed without the relationship store, so a store
    failure means traffic should not be routed here. A broker failure
    only degrades audit retries and is reported without failing.
    """
    checks = {
        "database": check_database(db),
        "redis": check_redis(),
    }

    if checks["database"]["status"] == "unhealthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "checks": checks,
                "timestamp": utcnow().isoformat(),
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready" if checks["redis"]["status"] == "healthy" else "degraded",
            "checks": checks,
            "timestamp": utcnow().isoformat(),
        },
    )
