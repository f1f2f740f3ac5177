"""
Subject Directory and Resource Store
Lookups of users, documents and folders consumed by the access-control engine
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from docvault.core.access import ResourceKind
from docvault.core.config import settings
from docvault.core.exceptions import NotFoundException, ValidationException
from docvault.core.logging import get_logger
from docvault.db.models import Document, Folder, User
from docvault.models.subject import Subject

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResourceRef:
    """Owner and parent links of a document or folder"""

    id: int
    kind: ResourceKind
    owner_id: int
    parent_folder_id: Optional[int]
    is_deleted: bool


class SubjectDirectory:
    """Resolve subject ids to roles and group memberships"""

    @staticmethod
    async def get_subject(db: AsyncSession, subject_id: int) -> Optional[Subject]:
        result = await db.execute(
            select(User)
            .options(selectinload(User.memberships))
            .where(User.id == subject_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return Subject.from_db_model(user)


class ResourceStore:
    """Document and folder lookups"""

    @staticmethod
    async def get_document(db: AsyncSession, document_id: int) -> Optional[Document]:
        return await db.get(Document, document_id)

    @staticmethod
    async def get_live_document(db: AsyncSession, document_id: int) -> Document:
        """Fetch a document that exists and is not soft-deleted"""
        document = await db.get(Document, document_id)
        if document is None or document.is_deleted:
            raise NotFoundException("Document")
        return document

    @staticmethod
    async def get_folder(db: AsyncSession, folder_id: int) -> Optional[Folder]:
        return await db.get(Folder, folder_id)

    @staticmethod
    async def get_resource(
        db: AsyncSession,
        resource_id: int,
        kind: ResourceKind,
    ) -> Optional[ResourceRef]:
        if kind == ResourceKind.DOCUMENT:
            result = await db.execute(
                select(Document.uploaded_by, Document.folder_id, Document.is_deleted).where(
                    Document.id == resource_id
                )
            )
        else:
            result = await db.execute(
                select(Folder.created_by, Folder.parent_id, Folder.is_deleted).where(
                    Folder.id == resource_id
                )
            )
        row = result.one_or_none()
        if row is None:
            return None
        owner_id, parent_id, is_deleted = row
        return ResourceRef(
            id=resource_id,
            kind=kind,
            owner_id=owner_id,
            parent_folder_id=parent_id,
            is_deleted=is_deleted,
        )


async def validate_folder_parent(
    db: AsyncSession,
    folder_id: int,
    new_parent_id: Optional[int],
) -> None:
    """
    Ensure moving ``folder_id`` under ``new_parent_id`` keeps the folder tree acyclic

    Raises:
        NotFoundException: If the proposed parent does not exist
        ValidationException: If the parent is the folder itself or one of its descendants
    """
    if new_parent_id is None:
        return

    if new_parent_id == folder_id:
        raise ValidationException(
            "A folder cannot be its own parent",
            details={"folder_id": folder_id},
        )

    current: Optional[int] = new_parent_id
    depth = 0
    while current is not None:
        result = await db.execute(select(Folder.parent_id).where(Folder.id == current))
        row = result.one_or_none()
        if row is None:
            raise NotFoundException("Folder", details={"folder_id": current})
        if current == folder_id:
            raise ValidationException(
                "A folder cannot be moved into one of its descendants",
                details={"folder_id": folder_id, "parent_id": new_parent_id},
            )
        depth += 1
        if depth > settings.MAX_FOLDER_DEPTH:
            raise ValidationException(
                "Folder nesting exceeds maximum depth",
                details={"max_depth": settings.MAX_FOLDER_DEPTH},
            )
        current = row[0]

    logger.debug(f"Folder {folder_id} may be placed under {new_parent_id}")
