# backend/cadence/routes/v1/health.py
"""
Health and metrics endpoints.

Both are public, following standard Prometheus practice for /metrics.
"""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Response

from ...core.config import settings
from ...monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> Dict[str, str]:
    return {
        "status": "healthy",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus exposition of service and domain metrics."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
