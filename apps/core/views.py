"""Health endpoints for load balancers and operators."""

from __future__ import annotations

import logging

from django.db import connection  # type: ignore
from django.db.utils import DatabaseError  # type: ignore
from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from .container import get_container
from .health import queue_status
from .rate_limit import SlidingWindowThrottle

logger = logging.getLogger(__name__)


class HealthView(APIView):
    permission_classes = [permissions.AllowAny]
    throttle_classes = [SlidingWindowThrottle]
    throttle_scope = "health"

    def get(self, request):  # type: ignore
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
        except DatabaseError as e:
            logger.error(f"Database health check failed: {e}")
            return Response({"status": "unhealthy", "database": "down"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response({"status": "ok", "database": "up"})


class QueueHealthView(APIView):
    """Per-queue readiness and job counts; 503 when any queue is unreachable."""

    permission_classes = [permissions.AllowAny]
    throttle_classes = [SlidingWindowThrottle]
    throttle_scope = "health"

    def get(self, request):  # type: ignore
        report = queue_status(get_container().queue)
        healthy = all(entry["ready"] for entry in report.values())
        return Response(
            {"status": "ok" if healthy else "degraded", "queues": report},
            status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        )
