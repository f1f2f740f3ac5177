"""
Access Request Model
Pending / approved / denied requests for elevated document access
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from docvault.core.access import AccessLevel
from docvault.db.base import Base, IntIdMixin, TimestampMixin, enum_column


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class AccessRequest(IntIdMixin, TimestampMixin, Base):
    """Access request SQLAlchemy model"""

    __tablename__ = "access_requests"
    __table_args__ = (
        # One pending request per (document, requester)
        Index(
            "uq_access_requests_pending",
            "document_id",
            "requester_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    requester_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    requested_access: Mapped[AccessLevel] = mapped_column(enum_column(AccessLevel), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[RequestStatus] = mapped_column(
        enum_column(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True
    )
    granted_access: Mapped[Optional[AccessLevel]] = mapped_column(enum_column(AccessLevel), nullable=True)
    reviewed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    response_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING
