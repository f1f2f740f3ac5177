"""
Envelope Encryption Service
Per-document AES-256-GCM encryption with KMS-wrapped data keys and SHA-256 verification
"""

import asyncio
import base64
import hashlib
import hmac
import os
from typing import Awaitable, Optional, TypeVar

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.config import settings
from docvault.core.exceptions import (
    CiphertextAuthenticationException,
    ConflictException,
    EncryptionMetadataMissingException,
    IntegrityViolationException,
    KeyServiceUnavailableException,
)
from docvault.core.logging import get_logger
from docvault.models.encryption import EncryptionMetadata, EncryptionResult, FileChecksum, VerificationStatus
from docvault.services.encryption.kms import KeyManagementService, zero_key

logger = get_logger(__name__)

T = TypeVar("T")

TAG_BYTES = 16


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class EncryptionService:
    """Encrypt and decrypt document bodies; performs no authorization"""

    def __init__(
        self,
        kms: KeyManagementService,
        key_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.kms = kms
        self.key_id = key_id or settings.KMS_KEY_ID
        self.timeout = timeout if timeout is not None else settings.KMS_TIMEOUT_SECONDS

    async def _call_kms(self, operation: str, call: Awaitable[T]) -> T:
        """Bound a key-service call by the configured timeout"""
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Key service {operation} timed out after {self.timeout}s")
            raise KeyServiceUnavailableException(
                message="Key management service timed out",
                operation=operation,
                details={"timeout_seconds": self.timeout},
            )
        except (ConnectionError, OSError) as e:
            logger.error(f"Key service {operation} failed: {e}")
            raise KeyServiceUnavailableException(operation=operation, details={"error": str(e)})

    async def get_metadata(self, db: AsyncSession, document_id: int) -> Optional[EncryptionMetadata]:
        result = await db.execute(
            select(EncryptionMetadata).where(EncryptionMetadata.document_id == document_id)
        )
        return result.scalar_one_or_none()

    async def get_checksum(self, db: AsyncSession, document_id: int) -> Optional[FileChecksum]:
        result = await db.execute(select(FileChecksum).where(FileChecksum.document_id == document_id))
        return result.scalar_one_or_none()

    async def encrypt(self, db: AsyncSession, document_id: int, plaintext: bytes) -> EncryptionResult:
        """
        Encrypt a document body and persist its key material and checksum

        Args:
            db: Database session
            document_id: Document the body belongs to
            plaintext: Raw file bytes

        Returns:
            Ciphertext (without tag) and the stored parameters

        Raises:
            ConflictException: Document is already encrypted
            KeyServiceUnavailableException: Key service timed out or is unreachable
        """
        if await self.get_metadata(db, document_id) is not None:
            raise ConflictException(
                "Document is already encrypted",
                details={"document_id": document_id},
            )

        digest = sha256_hex(plaintext)

        data_key = await self._call_kms("generate_data_key", self.kms.generate_data_key(self.key_id))
        try:
            iv = os.urandom(settings.DATA_KEY_IV_BYTES)
            sealed = AESGCM(data_key.plaintext).encrypt(iv, plaintext, None)
        finally:
            zero_key(data_key.plaintext)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]

        result = EncryptionResult(
            document_id=document_id,
            ciphertext=ciphertext,
            iv=base64.b64encode(iv).decode("ascii"),
            auth_tag=base64.b64encode(tag).decode("ascii"),
            encrypted_data_key=base64.b64encode(data_key.ciphertext).decode("ascii"),
            kms_key_id=data_key.key_id,
            sha256_hash=digest,
            algorithm=settings.ENCRYPTION_ALGORITHM,
        )

        db.add(
            EncryptionMetadata(
                document_id=document_id,
                encryption_algorithm=result.algorithm,
                kms_key_id=result.kms_key_id,
                encrypted_data_key=result.encrypted_data_key,
                iv=result.iv,
                auth_tag=result.auth_tag,
                key_version=result.key_version,
            )
        )
        db.add(
            FileChecksum(
                document_id=document_id,
                sha256_hash=digest,
                algorithm=settings.CHECKSUM_ALGORITHM,
                verification_status=VerificationStatus.PENDING,
            )
        )
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException(
                "Document is already encrypted",
                details={"document_id": document_id},
            )
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Encrypted document {document_id} ({len(plaintext)} bytes) with key {result.kms_key_id}")
        return result

    async def decrypt(self, db: AsyncSession, document_id: int, ciphertext: bytes) -> bytes:
        """
        Decrypt a document body and verify it against the stored checksum

        Raises:
            EncryptionMetadataMissingException: Document was never encrypted
            KeyServiceUnavailableException: Key service timed out or is unreachable
            CiphertextAuthenticationException: Ciphertext or tag was altered
            IntegrityViolationException: Plaintext does not match the stored checksum
        """
        metadata = await self.get_metadata(db, document_id)
        if metadata is None:
            raise EncryptionMetadataMissingException(document_id)

        data_key = await self._call_kms(
            "decrypt_data_key",
            self.kms.decrypt_data_key(base64.b64decode(metadata.encrypted_data_key), metadata.kms_key_id),
        )
        try:
            iv = base64.b64decode(metadata.iv)
            tag = base64.b64decode(metadata.auth_tag)
            plaintext = AESGCM(data_key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            logger.error(f"Ciphertext authentication failed for document {document_id}")
            raise CiphertextAuthenticationException(document_id)
        finally:
            zero_key(data_key)

        checksum = await self.get_checksum(db, document_id)
        if checksum is None:
            logger.warning(f"No checksum stored for document {document_id}; skipping verification")
            return plaintext

        if not hmac.compare_digest(sha256_hex(plaintext), checksum.sha256_hash):
            checksum.mark_failed()
            await db.commit()
            logger.error(f"Integrity check failed for document {document_id}")
            raise IntegrityViolationException(
                document_id,
                details={"expected": checksum.sha256_hash},
            )

        checksum.mark_verified()
        await db.commit()
        logger.debug(f"Decrypted and verified document {document_id}")
        return plaintext

    async def verify_integrity(self, db: AsyncSession, document_id: int, plaintext: bytes) -> bool:
        """Check plaintext against the stored checksum; False when none exists"""
        checksum = await self.get_checksum(db, document_id)
        if checksum is None:
            return False

        matches = hmac.compare_digest(sha256_hex(plaintext), checksum.sha256_hash)
        if matches:
            checksum.mark_verified()
        else:
            checksum.mark_failed()
            logger.error(f"Integrity check failed for document {document_id}")
        await db.commit()
        return matches

    async def purge(self, db: AsyncSession, document_id: int) -> None:
        """Delete encryption metadata and checksum rows (caller commits)"""
        await db.execute(delete(EncryptionMetadata).where(EncryptionMetadata.document_id == document_id))
        await db.execute(delete(FileChecksum).where(FileChecksum.document_id == document_id))
