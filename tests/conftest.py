"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from msiprocessor.core.config import Settings
from msiprocessor.services.processor.classifier import FileType
from msiprocessor.services.processor.models import ObjectRef, SignedLink, UploadRecord


@pytest.fixture(scope="session")
def rsa_private_key():
    """Throwaway RSA key for CloudFront signing tests."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key):
    """PEM bytes of the throwaway RSA key."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture
def test_settings(private_key_pem, tmp_path):
    """Fully configured settings that ignore the environment's .env file."""
    return Settings(
        _env_file=None,
        KEYPAIRID="K2JCJMDEHXQW5F",
        PRIVATEKEY=private_key_pem.decode("utf-8"),
        SENDER="msi-processor@example.com",
        RECEIVER="it-support@example.com",
        LOCAL_STORAGE_DIR=str(tmp_path / "materialized"),
        LINK_DOMAIN="downloads.example.com",
    )


@pytest.fixture
def make_record():
    """Factory for UploadRecords."""
    def _make(key: str = "installers/app.msi", bucket: str = "uploads-bucket", **kwargs) -> UploadRecord:
        return UploadRecord(ref=ObjectRef(bucket=bucket, key=key), **kwargs)
    return _make


@pytest.fixture
def msi_record(make_record):
    """An MSI record with every attribute the composer needs."""
    return make_record(
        key="installers/Agent-Setup.MSI",
        file_type=FileType.MSI,
        checksum_sha256="abc123",
        revision_number="{1234-5678}",
        signed_link=SignedLink(
            url="https://downloads.example.com/installers/Agent-Setup.MSI?Expires=1&Signature=sig&Key-Pair-Id=K2",
            expires_at=datetime(2029, 1, 1, tzinfo=timezone.utc),
        ),
    )
