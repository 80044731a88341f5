"""Tests for checksum resolution and backfill."""

import base64
import hashlib

import pytest
from unittest.mock import AsyncMock, Mock
from botocore.exceptions import ClientError

from msiprocessor.services.processor.checksum import ChecksumResolver, base64_checksum_to_hex
from msiprocessor.services.processor.exceptions import ChecksumUnavailableError
from msiprocessor.services.processor.models import RecordStage
from msiprocessor.services.processor.s3_client import ChecksumAttributes

CONTENT = b"MSI installer bytes"
DIGEST = hashlib.sha256(CONTENT).digest()
DIGEST_B64 = base64.b64encode(DIGEST).decode("ascii")
DIGEST_HEX = DIGEST.hex()


@pytest.fixture
def s3_client():
    client = Mock()
    client.get_checksum_attributes = AsyncMock()
    client.copy_with_checksum = AsyncMock()
    return client


@pytest.fixture
def resolver(s3_client):
    return ChecksumResolver(s3_client)


@pytest.mark.parametrize("content", [b"", b"a", CONTENT, bytes(range(256))])
def test_base64_checksum_to_hex(content):
    digest = hashlib.sha256(content).digest()

    result = base64_checksum_to_hex(base64.b64encode(digest).decode("ascii"))

    assert result == digest.hex()
    assert result == result.lower()


def test_base64_checksum_to_hex_rejects_malformed_value():
    with pytest.raises(ChecksumUnavailableError, match="Malformed"):
        base64_checksum_to_hex("not base64!")


def test_base64_checksum_to_hex_rejects_wrong_length():
    with pytest.raises(ChecksumUnavailableError, match="expected 32"):
        base64_checksum_to_hex(base64.b64encode(b"short").decode("ascii"))


@pytest.mark.asyncio
async def test_resolve_uses_stored_checksum(resolver, s3_client, make_record):
    s3_client.get_checksum_attributes.return_value = ChecksumAttributes(
        checksum_sha256=DIGEST_B64, checksum_type="FULL_OBJECT", size=len(CONTENT)
    )
    record = make_record()

    await resolver.resolve_checksum(record)

    assert record.checksum_sha256 == DIGEST_HEX
    assert record.object_size == len(CONTENT)
    assert record.stage == RecordStage.CHECKSUM_RESOLVED
    s3_client.copy_with_checksum.assert_not_called()


@pytest.mark.asyncio
async def test_resolve_backfills_when_checksum_missing(resolver, s3_client, make_record):
    s3_client.get_checksum_attributes.return_value = ChecksumAttributes(
        checksum_sha256=None, checksum_type=None, size=len(CONTENT)
    )
    s3_client.copy_with_checksum.return_value = DIGEST_B64
    record = make_record(key="dir/app.msi")

    await resolver.resolve_checksum(record)

    assert record.checksum_sha256 == DIGEST_HEX
    assert record.stage == RecordStage.CHECKSUM_RESOLVED
    s3_client.copy_with_checksum.assert_awaited_once_with("uploads-bucket", "dir/app.msi")


@pytest.mark.asyncio
async def test_resolve_backfills_when_checksum_is_composite(resolver, s3_client, make_record):
    s3_client.get_checksum_attributes.return_value = ChecksumAttributes(
        checksum_sha256=DIGEST_B64, checksum_type="COMPOSITE", size=len(CONTENT)
    )
    s3_client.copy_with_checksum.return_value = DIGEST_B64
    record = make_record()

    await resolver.resolve_checksum(record)

    s3_client.copy_with_checksum.assert_awaited_once()
    assert record.checksum_sha256 == DIGEST_HEX


@pytest.mark.asyncio
async def test_backfill_without_checksum_in_response_fails(resolver, s3_client, make_record):
    s3_client.get_checksum_attributes.return_value = ChecksumAttributes(None, None, 10)
    s3_client.copy_with_checksum.return_value = None
    record = make_record()

    with pytest.raises(ChecksumUnavailableError, match="Checksum not calculated"):
        await resolver.resolve_checksum(record)

    assert record.checksum_sha256 is None
    s3_client.copy_with_checksum.assert_awaited_once()


@pytest.mark.asyncio
async def test_attribute_fetch_error_is_wrapped(resolver, s3_client, make_record):
    s3_client.get_checksum_attributes.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetObjectAttributes"
    )

    with pytest.raises(ChecksumUnavailableError, match="Unable to read attributes"):
        await resolver.resolve_checksum(make_record())


@pytest.mark.asyncio
async def test_copy_error_is_wrapped(resolver, s3_client, make_record):
    s3_client.copy_with_checksum.side_effect = ClientError(
        {"Error": {"Code": "InvalidRequest", "Message": "illegal copy"}}, "CopyObject"
    )

    with pytest.raises(ChecksumUnavailableError, match="backfill copy failed"):
        await resolver.copy_for_checksum(make_record())


@pytest.mark.asyncio
async def test_backfill_twice_yields_same_checksum(resolver, s3_client, make_record):
    s3_client.copy_with_checksum.return_value = DIGEST_B64
    first = make_record()
    second = make_record()

    await resolver.copy_for_checksum(first)
    await resolver.copy_for_checksum(second)

    assert first.checksum_sha256 == second.checksum_sha256 == DIGEST_HEX
    assert s3_client.copy_with_checksum.await_count == 2
