"""CloudFront signed URL generation."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

from botocore.signers import CloudFrontSigner
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from msiprocessor.services.processor.exceptions import SigningError
from msiprocessor.services.processor.models import RecordStage, SignedLink, UploadRecord

logger = logging.getLogger(__name__)


def add_years(moment: datetime, years: int) -> datetime:
    """Shift a datetime by whole calendar years, clamping Feb 29 to Feb 28."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def load_rsa_signer(private_key_pem: bytes) -> Callable[[bytes], bytes]:
    """Build the RSA-SHA1 signing callable CloudFront canned policies require.

    Raises:
        SigningError: If the key is missing, malformed, or not an RSA key
    """
    if not private_key_pem.strip():
        raise SigningError("Signing private key is not configured")
    try:
        private_key = serialization.load_pem_private_key(private_key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"Malformed signing private key: {e}") from e
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise SigningError("Signing private key must be an RSA key")

    def rsa_signer(message: bytes) -> bytes:
        return private_key.sign(message, padding.PKCS1v15(), hashes.SHA1())

    return rsa_signer


class LinkSigner:
    """Signs time-limited CloudFront URLs for uploaded objects."""

    def __init__(
        self,
        key_pair_id: str,
        private_key_pem: bytes,
        expiration_years: int = 3,
        link_domain: str = "",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize signer.

        Key material is parsed on first use so a bad key fails the record,
        not the process.

        Args:
            key_pair_id: CloudFront public key / key-pair id
            private_key_pem: PEM-encoded RSA private key
            expiration_years: Link lifetime in years
            link_domain: CloudFront host; the bucket name is used when empty
            clock: Returns the current UTC time (overridden in tests)
        """
        self.key_pair_id = key_pair_id
        self.private_key_pem = private_key_pem
        self.expiration_years = expiration_years
        self.link_domain = link_domain
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._signer: Optional[CloudFrontSigner] = None

    def _get_signer(self) -> CloudFrontSigner:
        if self._signer is None:
            if not self.key_pair_id:
                raise SigningError("Signing key-pair id is not configured")
            self._signer = CloudFrontSigner(self.key_pair_id, load_rsa_signer(self.private_key_pem))
        return self._signer

    def build_url(self, record: UploadRecord) -> str:
        """Canonical https URL for the record's object."""
        host = self.link_domain or record.bucket
        return f"https://{host}/{quote(record.key, safe='/~')}"

    def sign(self, url: str) -> SignedLink:
        """Sign a URL with a canned policy expiring expiration_years from now.

        Raises:
            SigningError: If key material is missing or malformed
        """
        now = self.clock()
        expires_at = add_years(now, self.expiration_years)
        if expires_at <= now:
            raise SigningError(f"Link expiration {expires_at.isoformat()} is not in the future")

        signer = self._get_signer()
        try:
            signed_url = signer.generate_presigned_url(url, date_less_than=expires_at)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Failed to sign URL: {e}") from e
        return SignedLink(url=signed_url, expires_at=expires_at)

    async def sign_link(self, record: UploadRecord) -> UploadRecord:
        """Attach a signed link for the record's object.

        Raises:
            SigningError: If key material is missing or malformed
        """
        record.signed_link = self.sign(self.build_url(record))
        record.stage = RecordStage.LINK_SIGNED
        logger.info(
            "Signed link generated",
            extra={"object_key": record.key, "expires_at": record.signed_link.expires_at.isoformat()},
        )
        return record
