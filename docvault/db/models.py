"""
SQLAlchemy Database Models
Subjects and resources owned by the surrounding CRUD layer
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docvault.core.access import Role
from docvault.db.base import Base, IntIdMixin, TimestampMixin, enum_column


class User(IntIdMixin, TimestampMixin, Base):
    """User SQLAlchemy model"""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(enum_column(Role), nullable=False, default=Role.USER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    memberships: Mapped[list["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class Group(IntIdMixin, TimestampMixin, Base):
    """Group SQLAlchemy model"""

    __tablename__ = "groups"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    members: Mapped[list["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )


class GroupMember(IntIdMixin, TimestampMixin, Base):
    """Group membership SQLAlchemy model"""

    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),)

    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    group: Mapped["Group"] = relationship("Group", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships")


class Folder(IntIdMixin, TimestampMixin, Base):
    """Folder SQLAlchemy model"""

    __tablename__ = "folders"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Document(IntIdMixin, TimestampMixin, Base):
    """Document SQLAlchemy model"""

    __tablename__ = "documents"

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    file_name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False, default="application/octet-stream")
    storage_locator: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    folder_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True, index=True)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
