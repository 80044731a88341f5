"""Amazon SES dispatch of composed notification e-mails."""

import asyncio
import logging
from email.utils import getaddresses, parseaddr
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from msiprocessor.services.processor.exceptions import DispatchError, ValidationError
from msiprocessor.services.processor.models import RecordStage, UploadRecord

logger = logging.getLogger(__name__)


class SESDispatcher:
    """Sends raw MIME messages through SES."""

    def __init__(self, region_name: Optional[str] = None, client: Any = None):
        """Initialize dispatcher.

        Args:
            region_name: AWS region for the boto3 client
            client: Pre-built boto3 SES client (used by tests)
        """
        self.client = client if client is not None else boto3.client("ses", region_name=region_name)

    async def send(self, record: UploadRecord) -> UploadRecord:
        """Send the record's composed message and attach the SES message id.

        Not retried: a rejection (unverified sender, throttling) fails the record.

        Raises:
            ValidationError: If no message has been composed or it has no addresses
            DispatchError: If SES rejects the message
        """
        message = record.message
        if message is None:
            raise ValidationError(f"No composed message for {record.key}")

        destinations = [addr for _, addr in getaddresses(message.get_all("To", [])) if addr]
        source = parseaddr(message.get("From", ""))[1]
        if not destinations or not source:
            raise ValidationError(f"Message for {record.key} is missing sender or recipients")

        try:
            response = await asyncio.to_thread(
                self.client.send_raw_email,
                Source=source,
                Destinations=destinations,
                RawMessage={"Data": message.as_bytes()},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"SES rejected message for {record.key}: {e}",
                extra={"object_key": record.key, "source": source, "error": str(e)}
            )
            raise DispatchError(f"Failed to send message for {record.key}: {e}") from e

        record.message_id = response["MessageId"]
        record.stage = RecordStage.DISPATCHED
        logger.info(
            "Notification sent",
            extra={"object_key": record.key, "message_id": record.message_id, "destinations": destinations}
        )
        return record
