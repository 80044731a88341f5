"""Tests for upload event and result models."""

from dataclasses import FrozenInstanceError

import pytest

from msiprocessor.services.processor.classifier import FileType
from msiprocessor.services.processor.exceptions import DispatchError, ValidationError
from msiprocessor.services.processor.models import (
    BatchResult,
    ObjectRef,
    RecordOutcome,
    RecordStage,
    UploadEvent,
)


def test_from_s3_record():
    record = {
        "eventVersion": "2.1",
        "eventSource": "aws:s3",
        "eventTime": "2025-11-13T20:23:47.000Z",
        "eventName": "ObjectCreated:Put",
        "s3": {
            "bucket": {"name": "uploads-bucket"},
            "object": {"key": "installers/My+App+%281%29.msi", "size": 2048},
        },
    }

    event = UploadEvent.from_s3_record(record)

    assert event.bucket == "uploads-bucket"
    assert event.key == "installers/My App (1).msi"
    assert event.event_name == "ObjectCreated:Put"
    assert event.size == 2048
    assert event.event_time == "2025-11-13T20:23:47.000Z"


def test_from_s3_record_missing_fields():
    event = UploadEvent.from_s3_record({"eventName": "ObjectCreated:Put"})

    assert event.bucket is None
    assert event.key is None
    assert event.size is None


def test_from_eventbridge():
    eventbridge_event = {
        "version": "0",
        "detail-type": "Object Created",
        "source": "aws.s3",
        "time": "2025-11-13T20:23:47Z",
        "detail": {
            "bucket": {"name": "uploads-bucket"},
            "object": {"key": "bundle.zip", "size": 10},
            "reason": "PutObject",
        },
    }

    event = UploadEvent.from_eventbridge(eventbridge_event)

    assert event.bucket == "uploads-bucket"
    assert event.key == "bundle.zip"
    assert event.event_name == "PutObject"
    assert event.size == 10


def test_object_ref_is_immutable():
    ref = ObjectRef(bucket="b", key="k.msi")
    assert ref.s3_uri == "s3://b/k.msi"

    with pytest.raises(FrozenInstanceError):
        ref.key = "other"


def test_outcome_from_successful_record(make_record):
    record = make_record(file_type=FileType.ZIP, stage=RecordStage.DISPATCHED, message_id="msg-1")

    outcome = RecordOutcome.from_record(record)

    assert outcome.succeeded
    assert outcome.to_dict() == {
        "bucket": "uploads-bucket",
        "key": "installers/app.msi",
        "file_type": "ZIP",
        "stage": "DISPATCHED",
        "message_id": "msg-1",
    }


def test_outcome_from_failed_record(make_record):
    record = make_record(file_type=FileType.MSI, stage=RecordStage.FAILED, failed_stage="dispatch")

    outcome = RecordOutcome.from_record(record, error=DispatchError("throttled"))
    data = outcome.to_dict()

    assert not outcome.succeeded
    assert data["error_type"] == "DispatchError"
    assert data["error"] == "throttled"
    assert data["failed_stage"] == "dispatch"
    assert "message_id" not in data


def test_batch_result_statuses():
    ok = RecordOutcome(bucket="b", key="a.zip", message_id="m1", stage=RecordStage.DISPATCHED)
    bad = RecordOutcome(bucket="b", key=None, error=ValidationError("Missing Required Variable: key"))

    assert BatchResult().status == "nothing_to_do"
    assert BatchResult(outcomes=[ok]).status == "success"
    assert BatchResult(outcomes=[bad]).status == "failed"
    assert BatchResult(outcomes=[ok, bad]).status == "partial"


def test_batch_result_to_dict():
    ok = RecordOutcome(bucket="b", key="a.zip", message_id="m1", stage=RecordStage.DISPATCHED)
    bad = RecordOutcome(bucket="b", key="c.msi", error=DispatchError("rejected"))

    data = BatchResult(outcomes=[ok, bad]).to_dict()

    assert data["status"] == "partial"
    assert data["message_ids"] == ["m1"]
    assert data["message"] == "1 of 2 records dispatched"
    assert [r["key"] for r in data["records"]] == ["a.zip", "c.msi"]


def test_nothing_to_do_to_dict():
    data = BatchResult().to_dict()

    assert data["status"] == "nothing_to_do"
    assert data["message"] == "Nothing to do."
    assert data["records"] == []
