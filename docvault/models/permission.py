"""
Permission Models
Database models for document and folder grants (ACL)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from docvault.core.access import AccessLevel, PrincipalType
from docvault.db.base import Base, IntIdMixin, TimestampMixin, enum_column, utcnow


class DocumentGrant(IntIdMixin, TimestampMixin, Base):
    """Document-level grant; revoked in place, never deleted"""

    __tablename__ = "document_permissions"
    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "permission_type",
            "permission_target_id",
            name="uq_document_permissions_target",
        ),
    )

    # Resource
    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Principal
    permission_type: Mapped[PrincipalType] = mapped_column(enum_column(PrincipalType), nullable=False)
    permission_target_id: Mapped[str] = mapped_column(String(100), nullable=False)

    access_level: Mapped[AccessLevel] = mapped_column(enum_column(AccessLevel), nullable=False)

    granted_by: Mapped[int] = mapped_column(Integer, nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    # Revocation
    is_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    revoked_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.is_revoked:
            return False
        return self.expires_at is None or self.expires_at > now


class FolderGrant(IntIdMixin, TimestampMixin, Base):
    """Folder-level grant; has no revoke fields and is hard-deleted"""

    __tablename__ = "folder_permissions"
    __table_args__ = (
        UniqueConstraint(
            "folder_id",
            "permission_type",
            "permission_target_id",
            name="uq_folder_permissions_target",
        ),
    )

    folder_id: Mapped[int] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    permission_type: Mapped[PrincipalType] = mapped_column(enum_column(PrincipalType), nullable=False)
    permission_target_id: Mapped[str] = mapped_column(String(100), nullable=False)

    access_level: Mapped[AccessLevel] = mapped_column(enum_column(AccessLevel), nullable=False)
    inherit_to_children: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    granted_by: Mapped[int] = mapped_column(Integer, nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.expires_at is None or self.expires_at > now
