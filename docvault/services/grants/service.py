"""
Sharing Service
Authorization-checked document and folder sharing with audit trail
"""

from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.access import AccessLevel, PrincipalType, ResourceKind, Role
from docvault.core.exceptions import NotFoundException
from docvault.core.logging import get_logger
from docvault.core.permissions import PermissionResolver
from docvault.db.models import Folder
from docvault.models.audit_log import record_audit
from docvault.models.permission import DocumentGrant, FolderGrant
from docvault.services.directory import ResourceStore
from docvault.services.grants.store import GrantStore

logger = get_logger(__name__)


async def _get_live_folder(db: AsyncSession, folder_id: int) -> Folder:
    folder = await ResourceStore.get_folder(db, folder_id)
    if folder is None or folder.is_deleted:
        raise NotFoundException("Folder")
    return folder


class SharingService:
    """Grant management on behalf of an acting user (editor access required)"""

    @staticmethod
    async def share_document(
        db: AsyncSession,
        actor_id: int,
        document_id: int,
        principal_type: Union[PrincipalType, str],
        principal_id: Union[int, str, Role],
        level: AccessLevel,
        expires_at: Optional[datetime] = None,
    ) -> DocumentGrant:
        await ResourceStore.get_live_document(db, document_id)
        await PermissionResolver.require(db, actor_id, document_id, ResourceKind.DOCUMENT, AccessLevel.EDITOR)

        grant = await GrantStore.grant_document(
            db, document_id, principal_type, principal_id, level, actor_id, expires_at
        )
        record_audit(
            db,
            "DOCUMENT_SHARED",
            user_id=actor_id,
            document_id=document_id,
            details={
                "target_type": grant.permission_type.value,
                "target_id": grant.permission_target_id,
                "access_level": grant.access_level.value,
            },
        )
        await db.commit()
        await db.refresh(grant)
        return grant

    @staticmethod
    async def revoke_document_share(db: AsyncSession, actor_id: int, grant_id: int) -> DocumentGrant:
        grant = await GrantStore.get_document_grant(db, grant_id)
        if grant is None:
            raise NotFoundException("Permission")

        await PermissionResolver.require(
            db, actor_id, grant.document_id, ResourceKind.DOCUMENT, AccessLevel.EDITOR
        )

        await GrantStore.revoke_document_grant(db, grant_id, actor_id)
        record_audit(
            db,
            "DOCUMENT_SHARE_REVOKED",
            user_id=actor_id,
            document_id=grant.document_id,
            details={
                "permission_id": grant.id,
                "target_type": grant.permission_type.value,
                "target_id": grant.permission_target_id,
            },
        )
        await db.commit()
        await db.refresh(grant)
        return grant

    @staticmethod
    async def list_document_shares(db: AsyncSession, actor_id: int, document_id: int) -> List[DocumentGrant]:
        await PermissionResolver.require(db, actor_id, document_id, ResourceKind.DOCUMENT, AccessLevel.EDITOR)
        return await GrantStore.list_document_grants(db, document_id)

    @staticmethod
    async def share_folder(
        db: AsyncSession,
        actor_id: int,
        folder_id: int,
        principal_type: Union[PrincipalType, str],
        principal_id: Union[int, str, Role],
        level: AccessLevel,
        expires_at: Optional[datetime] = None,
        inherit_to_children: bool = True,
    ) -> FolderGrant:
        await _get_live_folder(db, folder_id)
        await PermissionResolver.require(db, actor_id, folder_id, ResourceKind.FOLDER, AccessLevel.EDITOR)

        grant = await GrantStore.grant_folder(
            db,
            folder_id,
            principal_type,
            principal_id,
            level,
            actor_id,
            expires_at,
            inherit_to_children,
        )
        record_audit(
            db,
            "FOLDER_SHARED",
            user_id=actor_id,
            details={
                "folder_id": folder_id,
                "target_type": grant.permission_type.value,
                "target_id": grant.permission_target_id,
                "access_level": grant.access_level.value,
            },
        )
        await db.commit()
        await db.refresh(grant)
        return grant

    @staticmethod
    async def remove_folder_share(db: AsyncSession, actor_id: int, grant_id: int) -> None:
        grant = await GrantStore.get_folder_grant(db, grant_id)
        if grant is None:
            raise NotFoundException("Permission")

        folder_id = grant.folder_id
        await PermissionResolver.require(db, actor_id, folder_id, ResourceKind.FOLDER, AccessLevel.EDITOR)

        await GrantStore.delete_folder_grant(db, grant_id)
        record_audit(
            db,
            "FOLDER_SHARE_REMOVED",
            user_id=actor_id,
            details={"folder_id": folder_id, "permission_id": grant_id},
        )
        await db.commit()

    @staticmethod
    async def list_folder_shares(db: AsyncSession, actor_id: int, folder_id: int) -> List[FolderGrant]:
        await PermissionResolver.require(db, actor_id, folder_id, ResourceKind.FOLDER, AccessLevel.EDITOR)
        return await GrantStore.list_folder_grants(db, folder_id)
