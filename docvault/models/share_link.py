"""
Share Link Model
Anonymous capability tokens bound to a single document, and their API schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from docvault.core.access import AccessLevel
from docvault.db.base import Base, IntIdMixin, TimestampMixin, enum_column, utcnow


class ShareLink(IntIdMixin, TimestampMixin, Base):
    """Share link SQLAlchemy model"""

    __tablename__ = "share_links"

    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    access_level: Mapped[AccessLevel] = mapped_column(
        enum_column(AccessLevel), nullable=False, default=AccessLevel.VIEWER
    )
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allow_download: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now) and not self.is_exhausted()


class SharedDocument(BaseModel):
    """Document fields disclosed to a share-link holder"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    file_name: Optional[str] = None
    file_size: int
    mime_type: str
    current_version: int


class RedeemedShareLink(BaseModel):
    """Result of a successful share-link redemption"""

    document: SharedDocument
    access_level: AccessLevel
    allow_download: bool


class ShareLinkInfo(BaseModel):
    """Share link as listed to document editors (never carries the password hash)"""

    id: int
    document_id: int
    token: str
    access_level: AccessLevel
    has_password: bool
    max_uses: Optional[int] = None
    current_uses: int
    allow_download: bool
    created_by: int
    expires_at: datetime
    is_active: bool
    created_at: datetime

    @classmethod
    def from_db_model(cls, link: ShareLink) -> "ShareLinkInfo":
        return cls(
            id=link.id,
            document_id=link.document_id,
            token=link.token,
            access_level=link.access_level,
            has_password=link.password_hash is not None,
            max_uses=link.max_uses,
            current_uses=link.current_uses,
            allow_download=link.allow_download,
            created_by=link.created_by,
            expires_at=link.expires_at,
            is_active=link.is_active,
            created_at=link.created_at,
        )
