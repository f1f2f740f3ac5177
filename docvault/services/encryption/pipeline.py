"""
Encrypted Write Pipeline
Encrypt, store, and roll back all traces of a document when any step fails
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.config import settings
from docvault.core.exceptions import ConflictException, StorageException
from docvault.core.logging import get_logger
from docvault.db.models import Document
from docvault.models.encryption import EncryptionResult
from docvault.services.encryption.service import EncryptionService
from docvault.storage.client import delete_file, upload_file

logger = get_logger(__name__)


def object_name_for(document: Document) -> str:
    return f"documents/{document.id}/v{document.current_version}.enc"


@dataclass
class EncryptedWrite:
    """State of an in-flight encrypted write, enough to undo it"""

    db: AsyncSession
    service: EncryptionService
    document_id: int
    bucket: str
    result: Optional[EncryptionResult] = None
    object_name: Optional[str] = None
    cleaned_up: bool = field(default=False, init=False)

    async def cleanup(self) -> None:
        """Remove the stored object, the encryption rows and the document record"""
        if self.cleaned_up:
            return
        self.cleaned_up = True

        await self.db.rollback()

        if self.object_name is not None:
            try:
                await delete_file(self.bucket, self.object_name)
            except StorageException as e:
                logger.error(f"Orphaned object {self.bucket}/{self.object_name} after failed write: {e.message}")

        await self.service.purge(self.db, self.document_id)
        await self.db.execute(delete(Document).where(Document.id == self.document_id))
        await self.db.commit()

        logger.warning(f"Rolled back encrypted write for document {self.document_id}")


@asynccontextmanager
async def encrypted_write(
    db: AsyncSession,
    service: EncryptionService,
    document: Document,
    plaintext: bytes,
    bucket: Optional[str] = None,
) -> AsyncIterator[EncryptedWrite]:
    """
    Encrypt ``plaintext`` for a persisted document and upload the ciphertext

    Usage:
        async with encrypted_write(db, service, document, data) as write:
            ...  # any exception here also undoes the write

    On failure of encryption, upload, or the caller's block the object, the
    encryption rows and the document record are deleted and the error re-raised.
    A document that is already encrypted is left untouched: the
    ConflictException propagates without any cleanup.
    """
    write = EncryptedWrite(
        db=db,
        service=service,
        document_id=document.id,
        bucket=bucket or settings.STORAGE_BUCKET,
    )
    try:
        write.result = await service.encrypt(db, document.id, plaintext)
    except ConflictException:
        logger.warning(f"Document {document.id} is already encrypted; write skipped")
        raise
    except Exception:
        await write.cleanup()
        raise

    try:
        write.object_name = object_name_for(document)
        await upload_file(write.bucket, write.object_name, write.result.ciphertext)

        document.storage_locator = write.object_name
        document.file_size = len(plaintext)
        await db.commit()

        yield write
    except Exception:
        await write.cleanup()
        raise
