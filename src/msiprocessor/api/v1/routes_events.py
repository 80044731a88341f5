"""HTTP delivery of upload notifications.

Accepts the same payloads as the Lambda handler, for deployments that
forward S3 notifications over HTTP (SNS subscriptions, EventBridge API
destinations) to a container instead of invoking Lambda.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from msiprocessor.core.config import Settings, settings
from msiprocessor.services.processor.exceptions import ConfigurationError
from msiprocessor.services.processor.service import BatchProcessor, get_batch_processor

logger = logging.getLogger(__name__)

router = APIRouter()


def get_settings() -> Settings:
    return settings


@router.post("/events")
async def handle_upload_event(
    request: Request,
    app_settings: Settings = Depends(get_settings),
    processor: BatchProcessor = Depends(get_batch_processor),
) -> dict:
    """
    Process a batch of upload notifications.

    Returns:
        200: Batch aggregate (per-record message ids and errors)
        400: Body is not valid JSON
        503: Required configuration is missing; nothing was processed
    """
    try:
        event = await request.json()
    except ValueError as e:
        logger.warning(
            "Failed to parse event request body",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid request: {str(e)}",
        )

    try:
        app_settings.require_processing_config()
    except ConfigurationError as e:
        logger.error("Configuration check failed, no records processed", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )

    result = await processor.process_event(event)
    return result.to_dict()
