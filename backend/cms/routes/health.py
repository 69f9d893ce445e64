"""
Cordova CMS Backend - Health Check Route
==========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Pings MongoDB through the database handle stored on app.state.
       The service is "healthy" only when the store answers.
"""

import logging
import time

from fastapi import APIRouter, Request, Response

from cms import __version__
from cms.database import check_db_connection
from cms.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "MongoDB unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """Report service status; 503 when MongoDB does not answer a ping."""
    connected = await check_db_connection(request.app.state.database)

    if not connected:
        response.status_code = 503
        logger.warning("Health check: MongoDB unreachable")

    return HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        database="connected" if connected else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
