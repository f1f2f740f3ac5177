"""
Pytest Configuration and Fixtures
Shared fixtures and configuration for all tests
"""

import asyncio
import itertools
import os
from typing import AsyncGenerator, Iterable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from docvault.core.access import Role
from docvault.db.base import Base, utcnow
from docvault.db.models import Document, Folder, Group, GroupMember, User
from docvault.db.session import register_models
from docvault.services.encryption.kms import LocalKeyManagementService
from docvault.services.encryption.service import EncryptionService


# ============================================
# PYTEST CONFIGURATION
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (medium speed)"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add default markers"""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================
# DATABASE FIXTURES
# ============================================

@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Throw-away SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'docvault.db'}",
        poolclass=NullPool,
    )
    register_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================
# ENTITY FACTORIES
# ============================================

class EntityFactory:
    """Create and commit users, groups, folders and documents"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = itertools.count(1)

    async def _save(self, entity):
        self.session.add(entity)
        await self.session.commit()
        await self.session.refresh(entity)
        return entity

    async def user(
        self,
        role: Role = Role.USER,
        is_active: bool = True,
        organization_id: Optional[int] = None,
        groups: Iterable[Group] = (),
    ) -> User:
        n = next(self._seq)
        user = await self._save(
            User(
                username=f"user{n}",
                email=f"user{n}@example.com",
                full_name=f"Test User {n}",
                role=role,
                is_active=is_active,
                organization_id=organization_id,
            )
        )
        for group in groups:
            await self.add_member(group, user)
        return user

    async def group(self, name: Optional[str] = None, organization_id: Optional[int] = None) -> Group:
        return await self._save(
            Group(name=name or f"group{next(self._seq)}", organization_id=organization_id)
        )

    async def add_member(self, group: Group, user: User) -> GroupMember:
        return await self._save(GroupMember(group_id=group.id, user_id=user.id))

    async def folder(
        self,
        owner: User,
        parent: Optional[Folder] = None,
        name: Optional[str] = None,
        is_deleted: bool = False,
    ) -> Folder:
        return await self._save(
            Folder(
                name=name or f"folder{next(self._seq)}",
                parent_id=parent.id if parent else None,
                created_by=owner.id,
                organization_id=owner.organization_id,
                is_deleted=is_deleted,
            )
        )

    async def document(
        self,
        owner: User,
        folder: Optional[Folder] = None,
        title: Optional[str] = None,
        organization_id: Optional[int] = None,
        is_deleted: bool = False,
    ) -> Document:
        n = next(self._seq)
        return await self._save(
            Document(
                title=title or f"Document {n}",
                file_name=f"document{n}.pdf",
                file_size=0,
                mime_type="application/pdf",
                folder_id=folder.id if folder else None,
                uploaded_by=owner.id,
                organization_id=organization_id if organization_id is not None else owner.organization_id,
                is_deleted=is_deleted,
                deleted_at=utcnow() if is_deleted else None,
            )
        )


@pytest.fixture
def factory(db) -> EntityFactory:
    return EntityFactory(db)


# ============================================
# ENCRYPTION FIXTURES
# ============================================

@pytest.fixture
def kms() -> LocalKeyManagementService:
    return LocalKeyManagementService(master_key=os.urandom(32), key_id="test/master")


@pytest.fixture
def encryption_service(kms) -> EncryptionService:
    return EncryptionService(kms, key_id="test/master", timeout=1.0)


class SlowKeyService:
    """Key service that never answers in time"""

    async def generate_data_key(self, key_id: str):
        await asyncio.sleep(5)
        raise AssertionError("unreachable")

    async def decrypt_data_key(self, encrypted_key: bytes, key_id: str):
        await asyncio.sleep(5)
        raise AssertionError("unreachable")


@pytest.fixture
def slow_encryption_service() -> EncryptionService:
    return EncryptionService(SlowKeyService(), key_id="test/master", timeout=0.05)
