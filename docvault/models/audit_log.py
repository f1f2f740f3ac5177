"""
Audit Log Model
Append-only trail of sharing and access-request actions
"""

from typing import Any, Dict, Optional

from sqlalchemy import JSON, ForeignKey, Integer, String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from docvault.db.base import Base, IntIdMixin, TimestampMixin


class AuditLog(IntIdMixin, TimestampMixin, Base):
    """Audit log SQLAlchemy model"""

    __tablename__ = "audit_logs"

    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    document_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)


def record_audit(
    db: AsyncSession,
    action: str,
    user_id: Optional[int] = None,
    document_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction"""
    entry = AuditLog(
        user_id=user_id,
        document_id=document_id,
        action=action,
        details=details,
    )
    db.add(entry)
    return entry
