"""
Access Levels
Ordered permission levels and the principal vocabulary shared by grants and subjects
"""

from enum import Enum
from typing import Iterable, Optional


class AccessLevel(str, Enum):
    """Totally ordered access level: viewer < commenter < editor < owner"""

    VIEWER = "viewer"
    COMMENTER = "commenter"
    EDITOR = "editor"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, required: "AccessLevel") -> bool:
        return self.rank >= required.rank


_RANKS = {
    AccessLevel.VIEWER: 1,
    AccessLevel.COMMENTER: 2,
    AccessLevel.EDITOR: 3,
    AccessLevel.OWNER: 4,
}

# Levels an access request may ask for or be approved at
REQUESTABLE_LEVELS = frozenset(
    {AccessLevel.VIEWER, AccessLevel.COMMENTER, AccessLevel.EDITOR}
)

# Levels an anonymous share link may carry
SHARE_LINK_LEVELS = frozenset({AccessLevel.VIEWER, AccessLevel.COMMENTER})


class PrincipalType(str, Enum):
    """What a grant targets"""

    USER = "user"
    GROUP = "group"
    ROLE = "role"


class Role(str, Enum):
    """Closed set of subject roles, also usable as grant principals"""

    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"

    @property
    def is_privileged(self) -> bool:
        return self in (Role.ADMIN, Role.MANAGER)


class ResourceKind(str, Enum):
    DOCUMENT = "document"
    FOLDER = "folder"


def at_least(have: Optional[AccessLevel], want: AccessLevel) -> bool:
    """True if ``have`` satisfies ``want``; no access never does"""
    if have is None:
        return False
    return have.at_least(want)


def highest(levels: Iterable[AccessLevel]) -> Optional[AccessLevel]:
    """Highest level in ``levels``, or None when there are none"""
    best: Optional[AccessLevel] = None
    for level in levels:
        if best is None or level.rank > best.rank:
            best = level
    return best
