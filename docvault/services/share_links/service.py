"""
Share Link Service
Issue, redeem and deactivate anonymous share links
"""

from datetime import datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.access import SHARE_LINK_LEVELS, AccessLevel, ResourceKind
from docvault.core.config import settings
from docvault.core.exceptions import (
    InvalidPasswordException,
    NotFoundException,
    PasswordRequiredException,
    ShareLinkExhaustedException,
    ShareLinkExpiredException,
    ValidationException,
)
from docvault.core.logging import get_logger
from docvault.core.permissions import PermissionResolver
from docvault.core.security import generate_token, get_password_hash, verify_password
from docvault.db.base import utcnow
from docvault.db.models import Document
from docvault.models.audit_log import record_audit
from docvault.models.share_link import RedeemedShareLink, SharedDocument, ShareLink, ShareLinkInfo
from docvault.services.directory import ResourceStore

logger = get_logger(__name__)


def _raise_if_unusable(link: ShareLink, now: datetime) -> None:
    """Expiry is checked before exhaustion"""
    if link.is_expired(now):
        raise ShareLinkExpiredException(details={"expires_at": link.expires_at.isoformat()})
    if link.is_exhausted():
        raise ShareLinkExhaustedException(details={"max_uses": link.max_uses})


class ShareLinkService:
    """Anonymous, optionally password-protected document links"""

    @staticmethod
    async def issue(
        db: AsyncSession,
        issuer_id: int,
        document_id: int,
        level: Union[AccessLevel, str] = AccessLevel.VIEWER,
        password: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        max_uses: Optional[int] = None,
        allow_download: bool = True,
    ) -> ShareLink:
        """
        Create a share link for a document

        Args:
            db: Database session
            issuer_id: Acting user; needs editor access
            document_id: Document to share
            level: viewer or commenter
            password: Optional password, stored as a bcrypt hash
            expires_at: Expiry; defaults to now + SHARE_LINK_DEFAULT_TTL_DAYS
            max_uses: Optional cap on redemptions (>= 1)
            allow_download: Whether holders may download the file

        Returns:
            The persisted share link, including its token
        """
        try:
            level = AccessLevel(level)
        except ValueError:
            level = None
        if level not in SHARE_LINK_LEVELS:
            raise ValidationException(
                "Invalid share link access level",
                details={"allowed": sorted(lvl.value for lvl in SHARE_LINK_LEVELS)},
            )
        if max_uses is not None and max_uses < 1:
            raise ValidationException("max_uses must be at least 1", details={"max_uses": max_uses})

        # A past expiry is stored as given; redeem reports it as expired
        if expires_at is None:
            expires_at = utcnow() + timedelta(days=settings.SHARE_LINK_DEFAULT_TTL_DAYS)

        await ResourceStore.get_live_document(db, document_id)
        await PermissionResolver.require(db, issuer_id, document_id, ResourceKind.DOCUMENT, AccessLevel.EDITOR)

        link = ShareLink(
            document_id=document_id,
            token=generate_token(),
            password_hash=get_password_hash(password) if password else None,
            access_level=level,
            max_uses=max_uses,
            current_uses=0,
            allow_download=allow_download,
            created_by=issuer_id,
            expires_at=expires_at,
            is_active=True,
        )
        db.add(link)
        await db.flush()

        record_audit(
            db,
            "SHARE_LINK_CREATED",
            user_id=issuer_id,
            document_id=document_id,
            details={
                "share_link_id": link.id,
                "access_level": level.value,
                "has_password": link.password_hash is not None,
                "max_uses": max_uses,
                "expires_at": expires_at.isoformat(),
            },
        )
        await db.commit()
        await db.refresh(link)

        logger.info(f"User {issuer_id} created share link {link.id} for document {document_id}")
        return link

    @staticmethod
    async def redeem(
        db: AsyncSession,
        token: str,
        password: Optional[str] = None,
    ) -> RedeemedShareLink:
        """
        Redeem a share link, consuming one use

        Raises:
            NotFoundException: Unknown or inactive token, or document deleted
            ShareLinkExpiredException: Link is past its expiry
            ShareLinkExhaustedException: Link has no uses left
            PasswordRequiredException: Link has a password and none was given
            InvalidPasswordException: Password does not match
        """
        result = await db.execute(
            select(ShareLink, Document)
            .join(Document, Document.id == ShareLink.document_id)
            .where(
                ShareLink.token == token,
                ShareLink.is_active.is_(True),
                Document.is_deleted.is_(False),
            )
            .execution_options(populate_existing=True)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundException("Share link")
        link, document = row

        now = utcnow()
        _raise_if_unusable(link, now)

        if link.password_hash:
            if not password:
                raise PasswordRequiredException(details={"requires_password": True})
            if not verify_password(password, link.password_hash):
                logger.warning(f"Invalid password for share link {link.id}")
                raise InvalidPasswordException()

        # Validity is re-checked by the UPDATE itself so concurrent redemptions
        # cannot exceed max_uses
        consumed = await db.execute(
            update(ShareLink)
            .where(
                ShareLink.id == link.id,
                ShareLink.is_active.is_(True),
                ShareLink.expires_at >= now,
                or_(ShareLink.max_uses.is_(None), ShareLink.current_uses < ShareLink.max_uses),
            )
            .values(current_uses=ShareLink.current_uses + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            await db.rollback()
            await db.refresh(link)
            logger.info(f"Share link {link.id} became unusable during redemption")
            if not link.is_active:
                raise NotFoundException("Share link")
            _raise_if_unusable(link, now)
            raise ShareLinkExhaustedException(details={"max_uses": link.max_uses})

        record_audit(
            db,
            "SHARE_LINK_REDEEMED",
            document_id=document.id,
            details={"share_link_id": link.id},
        )
        await db.commit()

        logger.debug(f"Share link {link.id} redeemed for document {document.id}")
        return RedeemedShareLink(
            document=SharedDocument.model_validate(document),
            access_level=link.access_level,
            allow_download=link.allow_download,
        )

    @staticmethod
    async def deactivate(db: AsyncSession, actor_id: int, token: str) -> ShareLink:
        """Deactivate a share link; deactivating twice is a no-op"""
        result = await db.execute(select(ShareLink).where(ShareLink.token == token))
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFoundException("Share link")

        await PermissionResolver.require(
            db, actor_id, link.document_id, ResourceKind.DOCUMENT, AccessLevel.EDITOR
        )

        if not link.is_active:
            return link

        link.is_active = False
        record_audit(
            db,
            "SHARE_LINK_DEACTIVATED",
            user_id=actor_id,
            document_id=link.document_id,
            details={"share_link_id": link.id},
        )
        await db.commit()
        await db.refresh(link)

        logger.info(f"User {actor_id} deactivated share link {link.id}")
        return link

    @staticmethod
    async def list_for_document(db: AsyncSession, actor_id: int, document_id: int) -> List[ShareLinkInfo]:
        """Share links of a document, newest first"""
        await PermissionResolver.require(db, actor_id, document_id, ResourceKind.DOCUMENT, AccessLevel.VIEWER)

        result = await db.execute(
            select(ShareLink)
            .where(ShareLink.document_id == document_id)
            .order_by(ShareLink.created_at.desc(), ShareLink.id.desc())
        )
        return [ShareLinkInfo.from_db_model(link) for link in result.scalars().all()]
