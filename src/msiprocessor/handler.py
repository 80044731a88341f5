"""
AWS Lambda entry point.

Invoked by S3 event notifications (or EventBridge) for uploads to the
bucket. Returns the batch aggregate as the invocation result.
"""

import asyncio
import logging
from typing import Any, Dict

from msiprocessor.core.config import settings
from msiprocessor.core.logging import setup_logging
from msiprocessor.services.processor.exceptions import ConfigurationError
from msiprocessor.services.processor.service import get_batch_processor

setup_logging(settings.ENV, settings.LOG_LEVEL)

logger = logging.getLogger(__name__)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Process a batch of upload notifications.

    Missing configuration stops the invocation before any record is touched.

    Args:
        event: S3 event notification or EventBridge event
        context: Lambda context object

    Returns:
        BatchResult as a dict, or a failed status when configuration is missing
    """
    request_id = getattr(context, "aws_request_id", "unknown")

    try:
        settings.require_processing_config()
    except ConfigurationError as e:
        logger.error(
            "Configuration check failed, no records processed",
            extra={"request_id": request_id, "error": str(e)},
        )
        return {"status": "failed", "message": str(e), "message_ids": [], "records": []}

    result = asyncio.run(get_batch_processor().process_event(event))

    logger.info(
        "Invocation complete",
        extra={"request_id": request_id, "status": result.status},
    )
    return result.to_dict()
