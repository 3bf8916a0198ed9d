"""
Infrastructure endpoints that sit outside the chat domain.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _check_database() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        return True
    except DatabaseError as e:
        logger.warning(f"Health check: database unreachable: {e}")
        return False


def _check_cache() -> bool:
    try:
        cache.set("health_check", "ok", timeout=1)
        return cache.get("health_check") == "ok"
    except Exception as e:
        logger.warning(f"Health check: cache unreachable: {e}")
        return False


def _check_channel_layer() -> bool:
    layer = get_channel_layer()
    if layer is None:
        return False
    try:
        channel = async_to_sync(layer.new_channel)()
        async_to_sync(layer.send)(channel, {"type": "health.ping"})
        return True
    except Exception as e:
        logger.warning(f"Health check: channel layer unreachable: {e}")
        return False


def health_check(request):
    """
    Health check endpoint for load balancers and orchestration.

    The database is critical; the cache (typing state) and channel
    layer (live subscriptions) degrade the service but don't fail it.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
            "channel_layer": "connected"
        }
    """
    database_ok = _check_database()
    health_status = {
        "status": "healthy" if database_ok else "unhealthy",
        "database": "connected" if database_ok else "disconnected",
        "cache": "connected" if _check_cache() else "disconnected",
        "channel_layer": "connected" if _check_channel_layer() else "disconnected",
    }
    return JsonResponse(health_status, status=200 if database_ok else 503)
