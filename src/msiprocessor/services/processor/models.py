"""
Event and record models for the upload processor.

Incoming notifications (S3 event notifications or EventBridge "Object Created"
events) are normalized into UploadEvent. Each validated event becomes an
UploadRecord that the pipeline for its file type enriches stage by stage.
"""

from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote_plus

from pydantic import BaseModel, Field

from msiprocessor.services.processor.classifier import FileType

# Event kinds produced by our own in-place checksum copy (S3 notification, EventBridge)
DEFAULT_SELF_COPY_EVENT_NAMES = ("ObjectCreated:Copy", "CopyObject")


def _decode_key(key: Any) -> Any:
    # Keys arrive URL-encoded, with '+' standing in for spaces
    if isinstance(key, str):
        return unquote_plus(key)
    return key


class UploadEvent(BaseModel):
    """
    Upload notification normalized from the delivery format.

    bucket and key are left untyped here; validation into an UploadRecord
    decides whether the entry is usable.
    """

    bucket: Optional[Any] = Field(None, description="Bucket name from the notification")
    key: Optional[Any] = Field(None, description="Decoded object key")
    event_name: str = Field("", description="Event kind, e.g. 'ObjectCreated:Put'")
    size: Optional[int] = Field(None, description="Object size in bytes, when reported")
    event_time: Optional[str] = Field(None, description="ISO timestamp of the event, as delivered")

    @classmethod
    def from_s3_record(cls, record: Dict[str, Any]) -> "UploadEvent":
        """
        Build an UploadEvent from one entry of an S3 event notification.

        Args:
            record: One item of the notification's "Records" list

        Returns:
            UploadEvent with missing fields left as None
        """
        s3 = record.get("s3") or {}
        bucket = (s3.get("bucket") or {}).get("name")
        obj = s3.get("object") or {}
        size = obj.get("size")
        return cls(
            bucket=bucket,
            key=_decode_key(obj.get("key")),
            event_name=str(record.get("eventName") or ""),
            size=size if isinstance(size, int) else None,
            event_time=str(record["eventTime"]) if record.get("eventTime") else None,
        )

    @classmethod
    def from_eventbridge(cls, event: Dict[str, Any]) -> "UploadEvent":
        """
        Build an UploadEvent from an EventBridge "Object Created" event.

        The detail's "reason" (PutObject, CopyObject, ...) becomes the event name.

        Args:
            event: The EventBridge event

        Returns:
            UploadEvent with missing fields left as None
        """
        detail = event.get("detail") or {}
        obj = detail.get("object") or {}
        size = obj.get("size")
        return cls(
            bucket=(detail.get("bucket") or {}).get("name"),
            key=_decode_key(obj.get("key")),
            event_name=str(detail.get("reason") or ""),
            size=size if isinstance(size, int) else None,
            event_time=str(event["time"]) if event.get("time") else None,
        )


class RecordStage(str, Enum):
    """Pipeline states a record moves through."""

    VALIDATED = "VALIDATED"
    CHECKSUM_RESOLVED = "CHECKSUM_RESOLVED"
    MATERIALIZED = "MATERIALIZED"
    METADATA_EXTRACTED = "METADATA_EXTRACTED"
    LINK_SIGNED = "LINK_SIGNED"
    MESSAGE_COMPOSED = "MESSAGE_COMPOSED"
    DISPATCHED = "DISPATCHED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ObjectRef:
    """Identity of an uploaded object."""

    bucket: str
    key: str

    @property
    def s3_uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class SignedLink:
    """A CloudFront signed URL and the instant it stops working."""

    url: str
    expires_at: datetime


@dataclass
class UploadRecord:
    """Accumulates derived attributes as the object moves through its pipeline."""

    ref: ObjectRef
    event_name: str = ""
    file_type: FileType = FileType.UNKNOWN
    stage: RecordStage = RecordStage.VALIDATED
    checksum_sha256: Optional[str] = None
    object_size: Optional[int] = None
    work_dir: Optional[Path] = None
    local_path: Optional[Path] = None
    revision_number: Optional[str] = None
    signed_link: Optional[SignedLink] = None
    message: Optional[EmailMessage] = None
    message_id: Optional[str] = None
    failed_stage: Optional[str] = None

    @property
    def bucket(self) -> str:
        return self.ref.bucket

    @property
    def key(self) -> str:
        return self.ref.key


@dataclass
class RecordOutcome:
    """Final result of one record's pipeline."""

    bucket: Optional[str]
    key: Optional[str]
    file_type: Optional[FileType] = None
    stage: RecordStage = RecordStage.FAILED
    message_id: Optional[str] = None
    failed_stage: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.message_id is not None

    @classmethod
    def from_record(cls, record: UploadRecord, error: Optional[Exception] = None) -> "RecordOutcome":
        return cls(
            bucket=record.bucket,
            key=record.key,
            file_type=record.file_type,
            stage=record.stage,
            message_id=record.message_id,
            failed_stage=record.failed_stage,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "bucket": self.bucket,
            "key": self.key,
            "file_type": self.file_type.value if self.file_type else None,
            "stage": self.stage.value,
        }
        if self.succeeded:
            result["message_id"] = self.message_id
        else:
            if self.failed_stage:
                result["failed_stage"] = self.failed_stage
            result["error_type"] = type(self.error).__name__ if self.error else "UnknownError"
            result["error"] = str(self.error) if self.error else "Record did not produce a message"
        return result


@dataclass
class BatchResult:
    """Ordered per-record outcomes for one invocation."""

    outcomes: List[RecordOutcome] = field(default_factory=list)

    @property
    def message_ids(self) -> List[str]:
        return [o.message_id for o in self.outcomes if o.succeeded and o.message_id]

    @property
    def errors(self) -> List[RecordOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def status(self) -> str:
        if not self.outcomes:
            return "nothing_to_do"
        if not self.errors:
            return "success"
        if not self.message_ids:
            return "failed"
        return "partial"

    def to_dict(self) -> Dict[str, Any]:
        if self.status == "nothing_to_do":
            message = "Nothing to do."
        else:
            message = f"{len(self.message_ids)} of {len(self.outcomes)} records dispatched"
        return {
            "status": self.status,
            "message": message,
            "message_ids": self.message_ids,
            "records": [o.to_dict() for o in self.outcomes],
        }
