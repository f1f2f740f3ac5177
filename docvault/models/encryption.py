"""
Encryption Models
Per-document envelope encryption metadata and plaintext checksums
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from docvault.db.base import Base, IntIdMixin, TimestampMixin, enum_column, utcnow


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class EncryptionMetadata(IntIdMixin, TimestampMixin, Base):
    """Wrapped data key and cipher parameters for one document"""

    __tablename__ = "encryption_metadata"

    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    encryption_algorithm: Mapped[str] = mapped_column(String(50), nullable=False, default="AES-256-GCM")
    kms_key_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    encrypted_data_key: Mapped[str] = mapped_column(Text, nullable=False)  # base64
    iv: Mapped[str] = mapped_column(String(255), nullable=False)  # base64
    auth_tag: Mapped[str] = mapped_column(String(255), nullable=False)  # base64
    encrypted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    key_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class FileChecksum(IntIdMixin, TimestampMixin, Base):
    """SHA-256 of a document's plaintext with its last verification outcome"""

    __tablename__ = "file_checksums"

    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    sha256_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(50), nullable=False, default="SHA-256")
    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        enum_column(VerificationStatus), nullable=False, default=VerificationStatus.PENDING, index=True
    )

    def mark_verified(self) -> None:
        self.verification_status = VerificationStatus.VERIFIED
        self.verified_at = utcnow()

    def mark_failed(self) -> None:
        self.verification_status = VerificationStatus.FAILED
        self.verified_at = utcnow()


class EncryptionResult(BaseModel):
    """Ciphertext plus the parameters persisted for it"""

    document_id: int
    ciphertext: bytes
    iv: str
    auth_tag: str
    encrypted_data_key: str
    kms_key_id: str
    sha256_hash: str
    key_version: int = 1
    algorithm: str = "AES-256-GCM"
