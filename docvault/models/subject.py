"""
Subject Pydantic Models
Read-only view of a user as seen by the access-control engine
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from docvault.core.access import Role
from docvault.db.models import User as UserSQLModel


class Subject(BaseModel):
    """Authenticated principal with its role and group memberships"""

    model_config = ConfigDict(frozen=True)

    id: int
    role: Role = Role.USER
    is_active: bool = True
    group_ids: List[int] = Field(default_factory=list)
    organization_id: Optional[int] = None

    @property
    def is_privileged(self) -> bool:
        return self.role.is_privileged

    @classmethod
    def from_db_model(cls, user: UserSQLModel) -> "Subject":
        """Create Subject from database model (memberships must be loaded)"""
        return cls(
            id=user.id,
            role=user.role,
            is_active=user.is_active,
            group_ids=sorted(m.group_id for m in user.memberships),
            organization_id=user.organization_id,
        )
