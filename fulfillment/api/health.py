"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fulfillment.api.dependencies import ContainerDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ContainerDep) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="fulfillment",
        version=container.settings.api_version,
    )


@router.get("/ready")
async def readiness_check(container: ContainerDep) -> JSONResponse:
    """Check if service is ready to accept requests.

    Returns:
        Readiness status per dependency; 503 if any is unavailable.
    """
    checks = await container.check_ready()
    ready = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
