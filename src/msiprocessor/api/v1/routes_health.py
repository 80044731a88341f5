"""Health check endpoint for the MSI Processor."""

from fastapi import APIRouter

from msiprocessor.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns service status, name, and version information, plus whether the
    configuration needed to process uploads is present.

    Returns:
        dict: Health status response with status, service, version and configured fields
    """
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "configured": not settings.missing_required(),
    }
