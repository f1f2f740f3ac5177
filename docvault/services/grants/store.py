"""
Grant Store
Persistence of document and folder grants (ACL rows)

Write operations flush but never commit; the caller owns the transaction so
that a grant can be written atomically with other state (e.g. request approval).
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.access import AccessLevel, PrincipalType, Role
from docvault.core.exceptions import ValidationException
from docvault.core.logging import get_logger
from docvault.db.base import utcnow
from docvault.models.permission import DocumentGrant, FolderGrant
from docvault.models.subject import Subject

logger = get_logger(__name__)

GrantT = TypeVar("GrantT", DocumentGrant, FolderGrant)

Principal = Tuple[PrincipalType, str]


def normalize_principal(
    principal_type: Union[PrincipalType, str],
    principal_id: Union[int, str, Role],
) -> Principal:
    """
    Canonical (type, id) pair as stored in ``permission_target_id``

    Raises:
        ValidationException: Unknown principal type, unknown role, or non-numeric user/group id
    """
    try:
        ptype = PrincipalType(principal_type)
    except ValueError:
        raise ValidationException(
            "Invalid target type. Must be user, group, or role",
            details={"principal_type": str(principal_type)},
        )

    if ptype == PrincipalType.ROLE:
        try:
            return ptype, Role(principal_id).value
        except ValueError:
            raise ValidationException(
                f"Unknown role: {principal_id}",
                details={"allowed": [r.value for r in Role]},
            )

    target = str(principal_id)
    if not target.isdigit():
        raise ValidationException(
            f"Invalid {ptype.value} id: {principal_id}",
            details={"principal_type": ptype.value},
        )
    return ptype, target


def subject_principals(subject: Subject) -> List[Principal]:
    """Every principal a subject acts as: itself, its groups and its role"""
    principals: List[Principal] = [(PrincipalType.USER, str(subject.id))]
    principals.extend((PrincipalType.GROUP, str(gid)) for gid in subject.group_ids)
    principals.append((PrincipalType.ROLE, subject.role.value))
    return principals


def _principal_filter(model: Type[GrantT], principals: Iterable[Principal]):
    return or_(
        *(
            and_(model.permission_type == ptype, model.permission_target_id == target)
            for ptype, target in principals
        )
    )


async def _upsert(
    db: AsyncSession,
    model: Type[GrantT],
    keys: Dict[str, Any],
    values: Dict[str, Any],
) -> GrantT:
    """Update the row matching ``keys`` or insert it; concurrent inserts fall back to update"""
    stmt = select(model).filter_by(**keys)
    existing = (await db.execute(stmt)).scalar_one_or_none()

    if existing is None:
        try:
            async with db.begin_nested():
                grant = model(**keys, **values)
                db.add(grant)
            return grant
        except IntegrityError:
            logger.debug(f"Concurrent insert on {model.__tablename__} {keys}, updating instead")
            existing = (await db.execute(stmt)).scalar_one()

    for field, value in values.items():
        setattr(existing, field, value)
    await db.flush()
    return existing


class GrantStore:
    """Document and folder grant persistence"""

    @staticmethod
    async def grant_document(
        db: AsyncSession,
        document_id: int,
        principal_type: Union[PrincipalType, str],
        principal_id: Union[int, str, Role],
        level: AccessLevel,
        granted_by: int,
        expires_at: Optional[datetime] = None,
    ) -> DocumentGrant:
        """Create or replace the grant; a revoked grant is reinstated"""
        ptype, target = normalize_principal(principal_type, principal_id)
        grant = await _upsert(
            db,
            DocumentGrant,
            keys={
                "document_id": document_id,
                "permission_type": ptype,
                "permission_target_id": target,
            },
            values={
                "access_level": AccessLevel(level),
                "granted_by": granted_by,
                "granted_at": utcnow(),
                "expires_at": expires_at,
                "is_revoked": False,
                "revoked_at": None,
                "revoked_by": None,
            },
        )
        logger.info(f"Granted {grant.access_level.value} on document {document_id} to {ptype.value}:{target}")
        return grant

    @staticmethod
    async def grant_folder(
        db: AsyncSession,
        folder_id: int,
        principal_type: Union[PrincipalType, str],
        principal_id: Union[int, str, Role],
        level: AccessLevel,
        granted_by: int,
        expires_at: Optional[datetime] = None,
        inherit_to_children: bool = True,
    ) -> FolderGrant:
        ptype, target = normalize_principal(principal_type, principal_id)
        grant = await _upsert(
            db,
            FolderGrant,
            keys={
                "folder_id": folder_id,
                "permission_type": ptype,
                "permission_target_id": target,
            },
            values={
                "access_level": AccessLevel(level),
                "granted_by": granted_by,
                "granted_at": utcnow(),
                "expires_at": expires_at,
                "inherit_to_children": inherit_to_children,
            },
        )
        logger.info(f"Granted {grant.access_level.value} on folder {folder_id} to {ptype.value}:{target}")
        return grant

    @staticmethod
    async def get_document_grant(db: AsyncSession, grant_id: int) -> Optional[DocumentGrant]:
        return await db.get(DocumentGrant, grant_id)

    @staticmethod
    async def get_folder_grant(db: AsyncSession, grant_id: int) -> Optional[FolderGrant]:
        return await db.get(FolderGrant, grant_id)

    @staticmethod
    async def revoke_document_grant(db: AsyncSession, grant_id: int, revoked_by: int) -> bool:
        """Soft-revoke; returns False if the grant does not exist"""
        grant = await db.get(DocumentGrant, grant_id)
        if grant is None:
            return False

        grant.is_revoked = True
        grant.revoked_at = utcnow()
        grant.revoked_by = revoked_by
        await db.flush()
        logger.info(f"Revoked document grant {grant_id} by user {revoked_by}")
        return True

    @staticmethod
    async def delete_folder_grant(db: AsyncSession, grant_id: int) -> bool:
        """Hard-delete; returns False if the grant does not exist"""
        grant = await db.get(FolderGrant, grant_id)
        if grant is None:
            return False

        await db.delete(grant)
        await db.flush()
        logger.info(f"Deleted folder grant {grant_id}")
        return True

    @staticmethod
    async def active_document_grants(
        db: AsyncSession,
        document_id: int,
        principals: Iterable[Principal],
        now: Optional[datetime] = None,
    ) -> List[DocumentGrant]:
        principals = list(principals)
        if not principals:
            return []
        now = now or utcnow()
        result = await db.execute(
            select(DocumentGrant).where(
                DocumentGrant.document_id == document_id,
                DocumentGrant.is_revoked.is_(False),
                or_(DocumentGrant.expires_at.is_(None), DocumentGrant.expires_at > now),
                _principal_filter(DocumentGrant, principals),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def active_folder_grants(
        db: AsyncSession,
        folder_id: int,
        principals: Iterable[Principal],
        now: Optional[datetime] = None,
    ) -> List[FolderGrant]:
        principals = list(principals)
        if not principals:
            return []
        now = now or utcnow()
        result = await db.execute(
            select(FolderGrant).where(
                FolderGrant.folder_id == folder_id,
                or_(FolderGrant.expires_at.is_(None), FolderGrant.expires_at > now),
                _principal_filter(FolderGrant, principals),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_document_grants(db: AsyncSession, document_id: int) -> List[DocumentGrant]:
        """Non-revoked grants on a document, newest first"""
        result = await db.execute(
            select(DocumentGrant)
            .where(
                DocumentGrant.document_id == document_id,
                DocumentGrant.is_revoked.is_(False),
            )
            .order_by(DocumentGrant.created_at.desc(), DocumentGrant.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_folder_grants(db: AsyncSession, folder_id: int) -> List[FolderGrant]:
        result = await db.execute(
            select(FolderGrant)
            .where(FolderGrant.folder_id == folder_id)
            .order_by(FolderGrant.created_at.desc(), FolderGrant.id.desc())
        )
        return list(result.scalars().all())
