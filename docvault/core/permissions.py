"""
Permission Service
Resolve the effective access level of a subject on a document or folder
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.access import AccessLevel, ResourceKind, Role, at_least, highest
from docvault.core.config import settings
from docvault.core.exceptions import AuthenticationException, AuthorizationException
from docvault.core.logging import get_logger
from docvault.db.models import Document
from docvault.models.subject import Subject
from docvault.services.directory import ResourceStore, SubjectDirectory
from docvault.services.grants.store import GrantStore, subject_principals

logger = get_logger(__name__)


class PermissionResolver:
    """Merge ownership, privileged roles, grants and folder inheritance into one level"""

    @staticmethod
    async def get_active_subject(db: AsyncSession, subject_id: int) -> Optional[Subject]:
        """Subject if it exists and is active, else None"""
        subject = await SubjectDirectory.get_subject(db, subject_id)
        if subject is None or not subject.is_active:
            logger.debug(f"Subject {subject_id} is unknown or inactive")
            return None
        return subject

    @staticmethod
    async def resolve(
        db: AsyncSession,
        subject_id: int,
        resource_id: int,
        kind: ResourceKind = ResourceKind.DOCUMENT,
    ) -> Optional[AccessLevel]:
        """
        Highest access level ``subject_id`` holds on the resource

        Returns:
            The access level, or None for no access (including unknown or
            inactive subjects and missing resources)
        """
        subject = await PermissionResolver.get_active_subject(db, subject_id)
        if subject is None:
            return None
        return await PermissionResolver.resolve_for_subject(db, subject, resource_id, kind)

    @staticmethod
    async def resolve_for_subject(
        db: AsyncSession,
        subject: Subject,
        resource_id: int,
        kind: ResourceKind = ResourceKind.DOCUMENT,
        depth: int = 0,
    ) -> Optional[AccessLevel]:
        resource = await ResourceStore.get_resource(db, resource_id, kind)
        if resource is None:
            return None

        if resource.owner_id == subject.id:
            logger.debug(f"Owner {subject.id} resolved owner on {kind.value} {resource_id}")
            return AccessLevel.OWNER

        if subject.is_privileged:
            logger.debug(f"{subject.role.value.capitalize()} {subject.id} resolved owner on {kind.value} {resource_id}")
            return AccessLevel.OWNER

        principals = subject_principals(subject)
        if kind == ResourceKind.DOCUMENT:
            grants = await GrantStore.active_document_grants(db, resource_id, principals)
        else:
            grants = await GrantStore.active_folder_grants(db, resource_id, principals)
        candidates = [grant.access_level for grant in grants]

        if resource.parent_folder_id is not None:
            if depth >= settings.MAX_FOLDER_DEPTH:
                logger.error(
                    f"Folder chain above {kind.value} {resource_id} exceeds depth "
                    f"{settings.MAX_FOLDER_DEPTH}; ignoring further inheritance"
                )
            else:
                inherited = await PermissionResolver.resolve_for_subject(
                    db, subject, resource.parent_folder_id, ResourceKind.FOLDER, depth + 1
                )
                if inherited is not None:
                    candidates.append(inherited)

        level = highest(candidates)
        logger.debug(
            f"User {subject.id} resolved {level.value if level else 'none'} on {kind.value} {resource_id}"
        )
        return level

    @staticmethod
    async def check(
        db: AsyncSession,
        subject_id: int,
        resource_id: int,
        kind: ResourceKind,
        required: AccessLevel,
    ) -> bool:
        """True if the subject holds at least ``required`` on the resource"""
        level = await PermissionResolver.resolve(db, subject_id, resource_id, kind)
        return at_least(level, required)

    @staticmethod
    async def require(
        db: AsyncSession,
        subject_id: int,
        resource_id: int,
        kind: ResourceKind,
        required: AccessLevel,
    ) -> AccessLevel:
        """
        Require an access level or raise exception

        Raises:
            AuthenticationException: Unknown or inactive subject
            AuthorizationException: Subject lacks the required level
        """
        subject = await PermissionResolver.get_active_subject(db, subject_id)
        if subject is None:
            raise AuthenticationException(details={"subject_id": subject_id})

        level = await PermissionResolver.resolve_for_subject(db, subject, resource_id, kind)
        if not at_least(level, required):
            raise AuthorizationException(
                message=f"Access denied: '{required.value}' access required",
                details={
                    "resource_id": resource_id,
                    "resource_kind": kind.value,
                    "required_level": required.value,
                },
            )
        return level

    @staticmethod
    async def list_accessible_documents(
        db: AsyncSession,
        subject_id: int,
        folder_id: Optional[int] = None,
        min_level: AccessLevel = AccessLevel.VIEWER,
    ) -> List[Document]:
        """
        Non-deleted documents the subject can access at ``min_level``

        Scoped to the subject's organization unless the subject is an admin
        or belongs to none. Every candidate is checked individually.
        """
        subject = await PermissionResolver.get_active_subject(db, subject_id)
        if subject is None:
            return []

        stmt = select(Document).where(Document.is_deleted.is_(False))
        if folder_id is not None:
            stmt = stmt.where(Document.folder_id == folder_id)
        if subject.role != Role.ADMIN and subject.organization_id is not None:
            stmt = stmt.where(Document.organization_id == subject.organization_id)
        stmt = stmt.order_by(Document.created_at.desc(), Document.id.desc())

        documents = (await db.execute(stmt)).scalars().all()

        accessible = []
        for document in documents:
            level = await PermissionResolver.resolve_for_subject(db, subject, document.id)
            if at_least(level, min_level):
                accessible.append(document)

        logger.debug(f"User {subject_id} can access {len(accessible)} of {len(documents)} documents")
        return accessible
