#!/usr/bin/env python3
"""
Unit Tests for Permission Resolution
Tests for docvault/core/permissions.py
"""

from datetime import timedelta

import pytest

from docvault.core.access import AccessLevel, PrincipalType, ResourceKind, Role
from docvault.core.config import settings
from docvault.core.exceptions import (
    AuthenticationException,
    AuthorizationException,
    NotFoundException,
    ValidationException,
)
from docvault.core.permissions import PermissionResolver
from docvault.db.base import utcnow
from docvault.services.directory import validate_folder_parent
from docvault.services.grants.store import GrantStore


@pytest.mark.unit
class TestOwnershipAndRoles:
    """Test owner and privileged role short-circuits"""

    @pytest.mark.asyncio
    async def test_owner_resolves_owner(self, db, factory):
        """Test uploader gets owner on their document"""
        owner = await factory.user()
        doc = await factory.document(owner)

        level = await PermissionResolver.resolve(db, owner.id, doc.id, ResourceKind.DOCUMENT)

        assert level == AccessLevel.OWNER

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [Role.ADMIN, Role.MANAGER])
    async def test_privileged_roles_resolve_owner(self, db, factory, role):
        """Test admin and manager get owner on any document"""
        owner = await factory.user()
        privileged = await factory.user(role=role)
        doc = await factory.document(owner)

        assert await PermissionResolver.resolve(db, privileged.id, doc.id) == AccessLevel.OWNER

    @pytest.mark.asyncio
    async def test_folder_creator_owns_folder(self, db, factory):
        """Test folder creator gets owner on the folder"""
        owner = await factory.user()
        folder = await factory.folder(owner)

        assert await PermissionResolver.resolve(db, owner.id, folder.id, ResourceKind.FOLDER) == AccessLevel.OWNER

    @pytest.mark.asyncio
    async def test_unknown_subject_has_no_access(self, db, factory):
        """Test unknown subject resolves to None"""
        owner = await factory.user()
        doc = await factory.document(owner)

        assert await PermissionResolver.resolve(db, 9999, doc.id) is None

    @pytest.mark.asyncio
    async def test_inactive_owner_has_no_access(self, db, factory):
        """Test inactive subject loses even ownership"""
        owner = await factory.user(is_active=False)
        doc = await factory.document(owner)

        assert await PermissionResolver.resolve(db, owner.id, doc.id) is None

    @pytest.mark.asyncio
    async def test_missing_resource(self, db, factory):
        """Test missing resource resolves to None"""
        admin = await factory.user(role=Role.ADMIN)

        assert await PermissionResolver.resolve(db, admin.id, 12345) is None


@pytest.mark.unit
class TestGrantSources:
    """Test user, group and role grants"""

    @pytest.mark.asyncio
    async def test_no_grant_no_access(self, db, factory):
        """Test stranger has no access"""
        owner = await factory.user()
        stranger = await factory.user()
        doc = await factory.document(owner)

        assert await PermissionResolver.resolve(db, stranger.id, doc.id) is None
        assert await PermissionResolver.check(
            db, stranger.id, doc.id, ResourceKind.DOCUMENT, AccessLevel.VIEWER
        ) is False

    @pytest.mark.asyncio
    async def test_direct_user_grant(self, db, factory):
        """Test direct user grant"""
        owner = await factory.user()
        reader = await factory.user()
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.COMMENTER, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, doc.id) == AccessLevel.COMMENTER

    @pytest.mark.asyncio
    async def test_group_grant(self, db, factory):
        """Test grant through group membership"""
        owner = await factory.user()
        team = await factory.group()
        member = await factory.user(groups=[team])
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.GROUP, team.id, AccessLevel.EDITOR, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, member.id, doc.id) == AccessLevel.EDITOR

    @pytest.mark.asyncio
    async def test_role_grant(self, db, factory):
        """Test grant to the user role applies to every regular user"""
        owner = await factory.user()
        someone = await factory.user()
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.ROLE, Role.USER, AccessLevel.VIEWER, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, someone.id, doc.id) == AccessLevel.VIEWER

    @pytest.mark.asyncio
    async def test_highest_source_wins(self, db, factory):
        """Test viewer (user) + editor (group) merges to editor"""
        owner = await factory.user()
        team = await factory.group()
        member = await factory.user(groups=[team])
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.USER, member.id, AccessLevel.VIEWER, owner.id)
        await GrantStore.grant_document(db, doc.id, PrincipalType.GROUP, team.id, AccessLevel.EDITOR, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, member.id, doc.id) == AccessLevel.EDITOR

    @pytest.mark.asyncio
    async def test_expired_grant_ignored(self, db, factory):
        """Test expired grant contributes nothing"""
        owner = await factory.user()
        reader = await factory.user()
        doc = await factory.document(owner)
        await GrantStore.grant_document(
            db, doc.id, PrincipalType.USER, reader.id, AccessLevel.EDITOR, owner.id,
            expires_at=utcnow() - timedelta(minutes=1),
        )
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, doc.id) is None

    @pytest.mark.asyncio
    async def test_revoked_grant_ignored_and_regrant_restores(self, db, factory):
        """Test revocation removes access and re-granting reinstates it"""
        owner = await factory.user()
        reader = await factory.user()
        doc = await factory.document(owner)
        grant = await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.VIEWER, owner.id)
        await db.commit()

        assert await GrantStore.revoke_document_grant(db, grant.id, owner.id) is True
        await db.commit()
        assert await PermissionResolver.resolve(db, reader.id, doc.id) is None

        regrant = await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.EDITOR, owner.id)
        await db.commit()
        assert regrant.id == grant.id
        assert regrant.is_revoked is False
        assert await PermissionResolver.resolve(db, reader.id, doc.id) == AccessLevel.EDITOR


@pytest.mark.unit
class TestFolderInheritance:
    """Test recursive folder inheritance"""

    @pytest.mark.asyncio
    async def test_grant_on_ancestor_folder(self, db, factory):
        """Test grant two folders up reaches the document"""
        owner = await factory.user()
        reader = await factory.user()
        top = await factory.folder(owner)
        middle = await factory.folder(owner, parent=top)
        doc = await factory.document(owner, folder=middle)
        await GrantStore.grant_folder(db, top.id, PrincipalType.USER, reader.id, AccessLevel.COMMENTER, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, doc.id) == AccessLevel.COMMENTER
        assert await PermissionResolver.resolve(db, reader.id, middle.id, ResourceKind.FOLDER) == AccessLevel.COMMENTER

    @pytest.mark.asyncio
    async def test_folder_owner_inherits_owner(self, db, factory):
        """Test owning a parent folder yields owner on contained documents"""
        folder_owner = await factory.user()
        uploader = await factory.user()
        folder = await factory.folder(folder_owner)
        doc = await factory.document(uploader, folder=folder)

        assert await PermissionResolver.resolve(db, folder_owner.id, doc.id) == AccessLevel.OWNER

    @pytest.mark.asyncio
    async def test_document_grant_beats_weaker_folder_grant(self, db, factory):
        """Test merge across document and folder grants"""
        owner = await factory.user()
        reader = await factory.user()
        folder = await factory.folder(owner)
        doc = await factory.document(owner, folder=folder)
        await GrantStore.grant_folder(db, folder.id, PrincipalType.USER, reader.id, AccessLevel.VIEWER, owner.id)
        await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.EDITOR, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, doc.id) == AccessLevel.EDITOR

    @pytest.mark.asyncio
    async def test_deleted_folder_grant_stops_inheritance(self, db, factory):
        """Test removing a folder grant removes inherited access"""
        owner = await factory.user()
        reader = await factory.user()
        folder = await factory.folder(owner)
        doc = await factory.document(owner, folder=folder)
        grant = await GrantStore.grant_folder(db, folder.id, PrincipalType.USER, reader.id, AccessLevel.VIEWER, owner.id)
        await db.commit()

        assert await GrantStore.delete_folder_grant(db, grant.id) is True
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, doc.id) is None
        assert await GrantStore.list_folder_grants(db, folder.id) == []

    @pytest.mark.asyncio
    async def test_depth_cap(self, db, factory, monkeypatch):
        """Test inheritance stops at MAX_FOLDER_DEPTH"""
        monkeypatch.setattr(settings, "MAX_FOLDER_DEPTH", 2)
        owner = await factory.user()
        reader = await factory.user()
        f3 = await factory.folder(owner)
        f2 = await factory.folder(owner, parent=f3)
        f1 = await factory.folder(owner, parent=f2)
        doc = await factory.document(owner, folder=f1)
        await GrantStore.grant_folder(db, f3.id, PrincipalType.USER, reader.id, AccessLevel.EDITOR, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, doc.id) is None
        assert await PermissionResolver.resolve(db, reader.id, f1.id, ResourceKind.FOLDER) == AccessLevel.EDITOR

    @pytest.mark.asyncio
    async def test_cyclic_folders_terminate(self, db, factory):
        """Test a corrupted parent cycle does not recurse forever"""
        owner = await factory.user()
        reader = await factory.user()
        folder_a = await factory.folder(owner)
        folder_b = await factory.folder(owner, parent=folder_a)
        folder_a.parent_id = folder_b.id
        await db.commit()
        doc = await factory.document(owner, folder=folder_a)

        assert await PermissionResolver.resolve(db, reader.id, doc.id) is None


@pytest.mark.unit
class TestRequire:
    """Test require()"""

    @pytest.mark.asyncio
    async def test_returns_level(self, db, factory):
        """Test satisfied requirement returns the resolved level"""
        owner = await factory.user()
        doc = await factory.document(owner)

        level = await PermissionResolver.require(db, owner.id, doc.id, ResourceKind.DOCUMENT, AccessLevel.EDITOR)

        assert level == AccessLevel.OWNER

    @pytest.mark.asyncio
    async def test_insufficient_level_is_forbidden(self, db, factory):
        """Test commenter cannot pass an editor requirement"""
        owner = await factory.user()
        reader = await factory.user()
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.COMMENTER, owner.id)
        await db.commit()

        with pytest.raises(AuthorizationException) as exc_info:
            await PermissionResolver.require(db, reader.id, doc.id, ResourceKind.DOCUMENT, AccessLevel.EDITOR)

        assert exc_info.value.details["required_level"] == "editor"

    @pytest.mark.asyncio
    async def test_inactive_subject_is_unauthenticated(self, db, factory):
        """Test inactive subject raises AuthenticationException"""
        owner = await factory.user()
        inactive = await factory.user(is_active=False)
        doc = await factory.document(owner)

        with pytest.raises(AuthenticationException):
            await PermissionResolver.require(db, inactive.id, doc.id, ResourceKind.DOCUMENT, AccessLevel.VIEWER)


@pytest.mark.unit
class TestListAccessibleDocuments:
    """Test list_accessible_documents()"""

    @pytest.mark.asyncio
    async def test_filters_by_access_and_deletion(self, db, factory):
        """Test only granted, live documents are listed"""
        owner = await factory.user(organization_id=1)
        reader = await factory.user(organization_id=1)
        shared = await factory.document(owner)
        await factory.document(owner)
        deleted = await factory.document(owner, is_deleted=True)
        own = await factory.document(reader)
        for doc in (shared, deleted):
            await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.VIEWER, owner.id)
        await db.commit()

        docs = await PermissionResolver.list_accessible_documents(db, reader.id)

        assert {d.id for d in docs} == {shared.id, own.id}

    @pytest.mark.asyncio
    async def test_min_level(self, db, factory):
        """Test min_level excludes weaker grants"""
        owner = await factory.user()
        reader = await factory.user()
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.USER, reader.id, AccessLevel.VIEWER, owner.id)
        await db.commit()

        assert await PermissionResolver.list_accessible_documents(db, reader.id, min_level=AccessLevel.EDITOR) == []

    @pytest.mark.asyncio
    async def test_organization_scope(self, db, factory):
        """Test managers are scoped to their organization, admins are not"""
        other_org_owner = await factory.user(organization_id=2)
        foreign = await factory.document(other_org_owner)
        manager = await factory.user(role=Role.MANAGER, organization_id=1)
        admin = await factory.user(role=Role.ADMIN, organization_id=1)

        manager_docs = await PermissionResolver.list_accessible_documents(db, manager.id)
        admin_docs = await PermissionResolver.list_accessible_documents(db, admin.id)

        assert foreign.id not in {d.id for d in manager_docs}
        assert foreign.id in {d.id for d in admin_docs}

    @pytest.mark.asyncio
    async def test_folder_filter(self, db, factory):
        """Test listing restricted to one folder"""
        owner = await factory.user()
        folder = await factory.folder(owner)
        inside = await factory.document(owner, folder=folder)
        await factory.document(owner)

        docs = await PermissionResolver.list_accessible_documents(db, owner.id, folder_id=folder.id)

        assert [d.id for d in docs] == [inside.id]


@pytest.mark.unit
class TestValidateFolderParent:
    """Test folder tree integrity checks"""

    @pytest.mark.asyncio
    async def test_rejects_self(self, db, factory):
        """Test a folder cannot be its own parent"""
        owner = await factory.user()
        folder = await factory.folder(owner)

        with pytest.raises(ValidationException):
            await validate_folder_parent(db, folder.id, folder.id)

    @pytest.mark.asyncio
    async def test_rejects_descendant(self, db, factory):
        """Test a folder cannot move under its own child"""
        owner = await factory.user()
        parent = await factory.folder(owner)
        child = await factory.folder(owner, parent=parent)
        grandchild = await factory.folder(owner, parent=child)

        with pytest.raises(ValidationException):
            await validate_folder_parent(db, parent.id, grandchild.id)

    @pytest.mark.asyncio
    async def test_rejects_missing_parent(self, db, factory):
        """Test unknown parent raises NotFoundException"""
        owner = await factory.user()
        folder = await factory.folder(owner)

        with pytest.raises(NotFoundException):
            await validate_folder_parent(db, folder.id, 4242)

    @pytest.mark.asyncio
    async def test_accepts_sibling_and_root(self, db, factory):
        """Test valid moves pass"""
        owner = await factory.user()
        a = await factory.folder(owner)
        b = await factory.folder(owner)

        await validate_folder_parent(db, a.id, b.id)
        await validate_folder_parent(db, a.id, None)


@pytest.mark.unit
class TestResolutionProperties:
    """Test merge, ownership and inheritance guarantees"""

    @pytest.mark.asyncio
    async def test_ownership_not_diluted_by_viewer_grant(self, db, factory):
        """Test a viewer grant to the owner leaves them owner"""
        owner = await factory.user()
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.USER, owner.id, AccessLevel.VIEWER, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, owner.id, doc.id) == AccessLevel.OWNER

    @pytest.mark.asyncio
    async def test_group_editor_check(self, db, factory):
        """Test a group editor grant passes editor checks but not owner"""
        owner = await factory.user()
        team = await factory.group()
        member = await factory.user(role=Role.USER, groups=[team])
        doc = await factory.document(owner)
        await GrantStore.grant_document(db, doc.id, PrincipalType.GROUP, team.id, AccessLevel.EDITOR, owner.id)
        await db.commit()

        assert await PermissionResolver.check(db, member.id, doc.id, ResourceKind.DOCUMENT, AccessLevel.EDITOR)
        assert not await PermissionResolver.check(db, member.id, doc.id, ResourceKind.DOCUMENT, AccessLevel.OWNER)

    @pytest.mark.asyncio
    async def test_folder_chain_inherits_editor(self, db, factory):
        """Test editor on the top of A -> B -> C reaches C and is not lowered by a closer viewer grant"""
        owner = await factory.user()
        reader = await factory.user()
        a = await factory.folder(owner)
        b = await factory.folder(owner, parent=a)
        c = await factory.folder(owner, parent=b)
        await GrantStore.grant_folder(db, a.id, PrincipalType.USER, reader.id, AccessLevel.EDITOR, owner.id)
        await db.commit()

        assert await PermissionResolver.check(db, reader.id, c.id, ResourceKind.FOLDER, AccessLevel.EDITOR)

        await GrantStore.grant_folder(db, b.id, PrincipalType.USER, reader.id, AccessLevel.VIEWER, owner.id)
        await db.commit()

        assert await PermissionResolver.resolve(db, reader.id, c.id, ResourceKind.FOLDER) == AccessLevel.EDITOR

    @pytest.mark.asyncio
    async def test_revoking_top_source_falls_back(self, db, factory):
        """Test revoking the strongest grant drops to the next source, then to none"""
        owner = await factory.user()
        team = await factory.group()
        member = await factory.user(groups=[team])
        doc = await factory.document(owner)
        direct = await GrantStore.grant_document(
            db, doc.id, PrincipalType.USER, member.id, AccessLevel.EDITOR, owner.id
        )
        via_group = await GrantStore.grant_document(
            db, doc.id, PrincipalType.GROUP, team.id, AccessLevel.VIEWER, owner.id
        )
        await db.commit()
        assert await PermissionResolver.resolve(db, member.id, doc.id) == AccessLevel.EDITOR

        await GrantStore.revoke_document_grant(db, direct.id, owner.id)
        await db.commit()
        assert await PermissionResolver.resolve(db, member.id, doc.id) == AccessLevel.VIEWER

        await GrantStore.revoke_document_grant(db, via_group.id, owner.id)
        await db.commit()
        assert await PermissionResolver.resolve(db, member.id, doc.id) is None
