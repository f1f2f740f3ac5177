"""
Access Request Service
Request, approve and deny elevated access to a document
"""

from typing import List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.access import REQUESTABLE_LEVELS, AccessLevel, PrincipalType, ResourceKind, at_least
from docvault.core.exceptions import (
    AuthenticationException,
    ConflictException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from docvault.core.logging import get_logger
from docvault.core.permissions import PermissionResolver
from docvault.db.base import utcnow
from docvault.db.models import Document
from docvault.models.access_request import AccessRequest, RequestStatus
from docvault.models.audit_log import record_audit
from docvault.services.directory import ResourceStore
from docvault.services.grants.store import GrantStore

logger = get_logger(__name__)


def _requestable_level(level: Union[AccessLevel, str]) -> AccessLevel:
    try:
        level = AccessLevel(level)
    except ValueError:
        level = None
    if level not in REQUESTABLE_LEVELS:
        raise ValidationException(
            "Invalid access level",
            details={"allowed": sorted(lvl.value for lvl in REQUESTABLE_LEVELS)},
        )
    return level


class AccessRequestService:
    """Pending -> approved | denied state machine for access requests"""

    @staticmethod
    async def submit(
        db: AsyncSession,
        requester_id: int,
        document_id: int,
        level: Union[AccessLevel, str],
        message: Optional[str] = None,
    ) -> AccessRequest:
        """
        Submit a request for access to a document

        Raises:
            ValidationException: Level is not viewer, commenter or editor
            NotFoundException: Document missing or deleted
            ConflictException: Requester already has access or a pending request
        """
        level = _requestable_level(level)

        subject = await PermissionResolver.get_active_subject(db, requester_id)
        if subject is None:
            raise AuthenticationException(details={"subject_id": requester_id})

        await ResourceStore.get_live_document(db, document_id)

        current = await PermissionResolver.resolve_for_subject(db, subject, document_id)
        if at_least(current, AccessLevel.VIEWER):
            raise ConflictException(
                "You already have access to this document",
                details={"access_level": current.value},
            )

        result = await db.execute(
            select(AccessRequest.id).where(
                AccessRequest.document_id == document_id,
                AccessRequest.requester_id == requester_id,
                AccessRequest.status == RequestStatus.PENDING,
            )
        )
        if result.first() is not None:
            raise ConflictException("You already have a pending request for this document")

        request = AccessRequest(
            document_id=document_id,
            requester_id=requester_id,
            requested_access=level,
            message=message,
            status=RequestStatus.PENDING,
        )
        db.add(request)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictException("You already have a pending request for this document")

        record_audit(
            db,
            "ACCESS_REQUEST_SUBMITTED",
            user_id=requester_id,
            document_id=document_id,
            details={"request_id": request.id, "requested_access": level.value},
        )
        await db.commit()
        await db.refresh(request)

        logger.info(f"User {requester_id} requested {level.value} on document {document_id}")
        return request

    @staticmethod
    async def _load_for_review(
        db: AsyncSession,
        reviewer_id: int,
        request_id: int,
    ) -> AccessRequest:
        request = await db.get(AccessRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundException("Access request")
        if not request.is_pending:
            raise InvalidStateException(
                "Access request has already been processed",
                details={"status": request.status.value},
            )
        await PermissionResolver.require(
            db, reviewer_id, request.document_id, ResourceKind.DOCUMENT, AccessLevel.EDITOR
        )
        return request

    @staticmethod
    async def _transition(
        db: AsyncSession,
        request: AccessRequest,
        status: RequestStatus,
        reviewer_id: int,
        response: Optional[str],
        granted_level: Optional[AccessLevel] = None,
    ) -> None:
        """Move a pending request to ``status``; loses cleanly to a concurrent reviewer"""
        result = await db.execute(
            update(AccessRequest)
            .where(
                AccessRequest.id == request.id,
                AccessRequest.status == RequestStatus.PENDING,
            )
            .values(
                status=status,
                granted_access=granted_level,
                reviewed_by=reviewer_id,
                reviewed_at=utcnow(),
                response_message=response,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateException("Access request has already been processed")

    @staticmethod
    async def approve(
        db: AsyncSession,
        reviewer_id: int,
        request_id: int,
        granted_level: Union[AccessLevel, str],
        response: Optional[str] = None,
    ) -> AccessRequest:
        """
        Approve a pending request and grant the requester direct access

        The status change and the grant are committed together.

        Raises:
            ValidationException: Level is not viewer, commenter or editor
            NotFoundException: Unknown request
            InvalidStateException: Request is not pending
            AuthorizationException: Reviewer lacks editor access on the document
        """
        granted_level = _requestable_level(granted_level)
        request = await AccessRequestService._load_for_review(db, reviewer_id, request_id)

        await AccessRequestService._transition(
            db, request, RequestStatus.APPROVED, reviewer_id, response, granted_level
        )
        await GrantStore.grant_document(
            db,
            request.document_id,
            PrincipalType.USER,
            request.requester_id,
            granted_level,
            reviewer_id,
        )
        record_audit(
            db,
            "ACCESS_REQUEST_APPROVED",
            user_id=reviewer_id,
            document_id=request.document_id,
            details={
                "request_id": request.id,
                "requester_id": request.requester_id,
                "access_level": granted_level.value,
            },
        )
        await db.commit()
        await db.refresh(request)

        logger.info(
            f"User {reviewer_id} approved request {request_id} at {granted_level.value} "
            f"for user {request.requester_id}"
        )
        return request

    @staticmethod
    async def deny(
        db: AsyncSession,
        reviewer_id: int,
        request_id: int,
        response: Optional[str] = None,
    ) -> AccessRequest:
        """Deny a pending request; grants are left untouched"""
        request = await AccessRequestService._load_for_review(db, reviewer_id, request_id)

        await AccessRequestService._transition(db, request, RequestStatus.DENIED, reviewer_id, response)
        record_audit(
            db,
            "ACCESS_REQUEST_DENIED",
            user_id=reviewer_id,
            document_id=request.document_id,
            details={"request_id": request.id, "requester_id": request.requester_id},
        )
        await db.commit()
        await db.refresh(request)

        logger.info(f"User {reviewer_id} denied request {request_id}")
        return request

    @staticmethod
    async def list_pending_for(db: AsyncSession, reviewer_id: int) -> List[AccessRequest]:
        """Pending requests on live documents the reviewer can act on"""
        subject = await PermissionResolver.get_active_subject(db, reviewer_id)
        if subject is None:
            return []

        result = await db.execute(
            select(AccessRequest)
            .join(Document, Document.id == AccessRequest.document_id)
            .where(
                AccessRequest.status == RequestStatus.PENDING,
                Document.is_deleted.is_(False),
            )
            .order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())
        )

        manageable = []
        for request in result.scalars().all():
            level = await PermissionResolver.resolve_for_subject(db, subject, request.document_id)
            if at_least(level, AccessLevel.EDITOR):
                manageable.append(request)
        return manageable

    @staticmethod
    async def list_mine(db: AsyncSession, requester_id: int) -> List[AccessRequest]:
        """Requester's own requests on live documents, newest first"""
        result = await db.execute(
            select(AccessRequest)
            .join(Document, Document.id == AccessRequest.document_id)
            .where(
                AccessRequest.requester_id == requester_id,
                Document.is_deleted.is_(False),
            )
            .order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())
        )
        return list(result.scalars().all())
