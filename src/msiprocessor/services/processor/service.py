"""
Upload processor service implementation.

Parses upload notifications, drops the events our own checksum backfill
produces, validates and classifies each record, and runs the pipeline for
its file type. Records run concurrently; each record's failure is kept to
its own outcome.
"""

import asyncio
import json
import logging
import time
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional

from msiprocessor.core.config import Settings, settings as default_settings
from msiprocessor.core.logging import object_uri_context
from msiprocessor.services.processor.checksum import ChecksumResolver
from msiprocessor.services.processor.classifier import FileType, classify_object_key
from msiprocessor.services.processor.composer import MessageComposer
from msiprocessor.services.processor.dispatcher import SESDispatcher
from msiprocessor.services.processor.exceptions import ValidationError
from msiprocessor.services.processor.materializer import LocalMaterializer
from msiprocessor.services.processor.metadata import ExifToolClient, RevisionExtractor
from msiprocessor.services.processor.models import (
    DEFAULT_SELF_COPY_EVENT_NAMES,
    BatchResult,
    ObjectRef,
    RecordOutcome,
    UploadEvent,
    UploadRecord,
)
from msiprocessor.services.processor.pipeline import PipelineStage, RecordPipeline
from msiprocessor.services.processor.s3_client import S3Client
from msiprocessor.services.processor.signer import LinkSigner

logger = logging.getLogger(__name__)


def parse_event(event: Mapping[str, Any]) -> List[UploadEvent]:
    """
    Normalize a trigger payload into UploadEvents.

    Accepts an S3 event notification ({"Records": [...]}) or a single
    EventBridge "Object Created" event.

    Args:
        event: Raw invocation payload

    Returns:
        One UploadEvent per notification entry, in delivery order

    Raises:
        ValidationError: If the payload matches neither format
    """
    if not isinstance(event, Mapping):
        raise ValidationError(f"Event must be a JSON object, got {type(event).__name__}")

    if "Records" in event:
        records = event["Records"]
        if not isinstance(records, list):
            raise ValidationError("Event 'Records' must be a list")
        return [
            UploadEvent.from_s3_record(record) if isinstance(record, Mapping) else UploadEvent()
            for record in records
        ]

    if "detail" in event and event.get("source") == "aws.s3":
        return [UploadEvent.from_eventbridge(event)]

    raise ValidationError("Unrecognized event format: expected S3 'Records' or an EventBridge S3 event")


def is_self_copy(upload_event: UploadEvent, self_copy_event_names: Iterable[str]) -> bool:
    """True when the event was produced by our own in-place checksum copy."""
    event_name = upload_event.event_name
    if event_name.startswith("s3:"):
        event_name = event_name[3:]
    return event_name in self_copy_event_names


def validate_record(upload_event: UploadEvent) -> UploadRecord:
    """
    Turn an UploadEvent into an UploadRecord.

    Raises:
        ValidationError: If bucket name or key is not a non-empty string
    """
    for field_name, value in (("bucket", upload_event.bucket), ("key", upload_event.key)):
        if not isinstance(value, str) or not value:
            raise ValidationError(f"Missing Required Variable: {field_name}")
    return UploadRecord(
        ref=ObjectRef(bucket=upload_event.bucket, key=upload_event.key),
        event_name=upload_event.event_name,
        object_size=upload_event.size,
    )


class BatchProcessor:
    """Runs the per-file-type pipelines for every record of a batch."""

    def __init__(
        self,
        pipelines: Mapping[FileType, RecordPipeline],
        self_copy_event_names: Iterable[str] = DEFAULT_SELF_COPY_EVENT_NAMES,
    ) -> None:
        missing = set(FileType) - set(pipelines)
        if missing:
            raise ValueError(f"No pipeline for file types: {sorted(t.value for t in missing)}")
        self.pipelines = dict(pipelines)
        self.self_copy_event_names = frozenset(self_copy_event_names)

    async def process_event(self, event: Mapping[str, Any]) -> BatchResult:
        """
        Process one invocation's worth of upload notifications.

        Never raises for record-level problems: malformed entries and failed
        pipelines become failed outcomes. An event made up only of our own
        copy events yields an empty ("nothing to do") result.

        Args:
            event: Raw invocation payload

        Returns:
            BatchResult with one outcome per non-filtered entry
        """
        start_time = time.time()

        logger.info(
            "Received event",
            extra={"event": json.dumps(event, default=str)},
        )

        try:
            upload_events = parse_event(event)
        except ValidationError as e:
            logger.error(
                "Invalid event payload",
                extra={"error": str(e), "error_type": "validation_error"},
            )
            return BatchResult(outcomes=[RecordOutcome(bucket=None, key=None, error=e)])

        remaining = [
            e for e in upload_events if not is_self_copy(e, self.self_copy_event_names)
        ]
        filtered = len(upload_events) - len(remaining)

        if not remaining:
            logger.info(
                "No valid events remained.",
                extra={"records_received": len(upload_events), "records_filtered": filtered},
            )
            return BatchResult()

        result = BatchResult(
            outcomes=list(await asyncio.gather(*(self._process_entry(e) for e in remaining)))
        )

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Batch processed",
            extra={
                "records_received": len(upload_events),
                "records_filtered": filtered,
                "records_dispatched": len(result.message_ids),
                "records_failed": len(result.errors),
                "status": result.status,
                "processing_time_ms": processing_time_ms,
                "outcomes": [o.to_dict() for o in result.outcomes],
            },
        )
        return result

    async def _process_entry(self, upload_event: UploadEvent) -> RecordOutcome:
        try:
            record = validate_record(upload_event)
        except ValidationError as e:
            logger.error(
                "Invalid upload record",
                extra={
                    "bucket": str(upload_event.bucket),
                    "object_key": str(upload_event.key),
                    "error": str(e),
                    "error_type": "validation_error",
                },
            )
            return RecordOutcome(
                bucket=upload_event.bucket if isinstance(upload_event.bucket, str) else None,
                key=upload_event.key if isinstance(upload_event.key, str) else None,
                error=e,
            )

        return await self.process_record(record)

    async def process_record(self, record: UploadRecord) -> RecordOutcome:
        """Classify a validated record and run its pipeline."""
        object_uri_context.set(record.ref.s3_uri)
        start_time = time.time()

        record.file_type = classify_object_key(record.key)
        pipeline = self.pipelines[record.file_type]

        logger.info(
            "Record classified",
            extra={
                "object_key": record.key,
                "file_type": record.file_type.value,
                "stages": pipeline.stage_names,
            },
        )

        try:
            await pipeline.run(record)
        except Exception as e:
            logger.error(
                f"{record.file_type.value} pipeline failed: {e}",
                extra={
                    "object_key": record.key,
                    "file_type": record.file_type.value,
                    "failed_stage": record.failed_stage,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "processing_time_ms": int((time.time() - start_time) * 1000),
                    "outcome": "failed",
                },
                exc_info=True,
            )
            return RecordOutcome.from_record(record, error=e)

        logger.info(
            "Record processed successfully",
            extra={
                "object_key": record.key,
                "file_type": record.file_type.value,
                "message_id": record.message_id,
                "processing_time_ms": int((time.time() - start_time) * 1000),
                "outcome": "success",
            },
        )
        return RecordOutcome.from_record(record)


def build_pipelines(
    checksum_resolver: ChecksumResolver,
    materializer: LocalMaterializer,
    revision_extractor: RevisionExtractor,
    link_signer: LinkSigner,
    composer: MessageComposer,
    dispatcher: SESDispatcher,
) -> Dict[FileType, RecordPipeline]:
    """Wire the stage sequence for every file type."""
    compose = PipelineStage("compose_message", composer.compose)
    dispatch = PipelineStage("dispatch", dispatcher.send)
    sign = PipelineStage("sign_link", link_signer.sign_link)

    return {
        FileType.MSI: RecordPipeline(
            FileType.MSI,
            [
                PipelineStage("resolve_checksum", checksum_resolver.resolve_checksum),
                PipelineStage("materialize", materializer.materialize),
                PipelineStage("extract_revision", revision_extractor.extract_revision),
                sign,
                compose,
                dispatch,
            ],
            finalizers=[materializer.cleanup],
        ),
        FileType.ZIP: RecordPipeline(FileType.ZIP, [sign, compose, dispatch]),
        FileType.UNKNOWN: RecordPipeline(FileType.UNKNOWN, [compose, dispatch]),
    }


def build_batch_processor(
    settings: Settings,
    s3_client: Optional[S3Client] = None,
    dispatcher: Optional[SESDispatcher] = None,
) -> BatchProcessor:
    """Build a BatchProcessor with all required adapters.

    Args:
        settings: Validated process configuration
        s3_client: Override for the S3 adapter
        dispatcher: Override for the SES adapter
    """
    s3_client = s3_client or S3Client(region_name=settings.AWS_REGION)
    dispatcher = dispatcher or SESDispatcher(region_name=settings.AWS_REGION)

    pipelines = build_pipelines(
        checksum_resolver=ChecksumResolver(s3_client),
        materializer=LocalMaterializer(
            s3_client,
            storage_dir=settings.LOCAL_STORAGE_DIR,
            keep_files=settings.KEEP_LOCAL_FILES,
        ),
        revision_extractor=RevisionExtractor(
            ExifToolClient(
                executable=settings.EXIFTOOL_PATH,
                timeout_seconds=settings.EXIFTOOL_TIMEOUT_SECONDS,
            )
        ),
        link_signer=LinkSigner(
            key_pair_id=settings.KEYPAIRID,
            private_key_pem=settings.private_key_pem,
            expiration_years=settings.EXPDN,
            link_domain=settings.LINK_DOMAIN,
        ),
        composer=MessageComposer(sender=settings.SENDER, receiver=settings.RECEIVER),
        dispatcher=dispatcher,
    )
    return BatchProcessor(pipelines, self_copy_event_names=settings.self_copy_event_names)


@lru_cache(maxsize=1)
def get_batch_processor() -> BatchProcessor:
    """Process-wide BatchProcessor built from the environment settings."""
    return build_batch_processor(default_settings)
