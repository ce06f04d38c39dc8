"""
Role Request Workflow Service.

State machine for an UNASSIGNED user's request for a scoped role:

    PENDING → APPROVED   (requester's role/partner/center updated)
    PENDING → REJECTED   (requester untouched, comment required)

Both resolved states are terminal.

Design decisions:
    - Every operation takes the resolved Actor explicitly and returns
      ``(value, None)`` or ``(None, ServiceError)``.  Nothing is raised for
      expected conditions.
    - Each transition is one transaction: the request row, its
      notification(s) and its audit row commit together or not at all.
    - Resolution is a single conditional UPDATE guarded by
      ``status = 'PENDING'``; the affected-row count picks the winner of
      concurrent resolutions, the loser gets INVALID_STATE.
    - The requester row is updated with the same guard on
      ``role = 'UNASSIGNED'`` so two different approved requests can never
      both assign a role.
    - "One PENDING per tuple" is checked here and backed by the unique
      ``pending_key`` column; an IntegrityError on insert becomes
      ALREADY_EXISTS.
    - AuditWriteError rolls back and propagates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from dseme.core.exceptions import AuditWriteError, ErrorKind, ServiceError
from dseme.models import db
from dseme.models.audit import (
    ACTION_APPROVE_ROLE_REQUEST,
    ACTION_REJECT_ROLE_REQUEST,
    ACTION_REQUEST_ROLE,
)
from dseme.models.auth import REQUESTABLE_ROLES, Center, Partner, Role, User, parse_role
from dseme.models.notification import Notification, NotificationType, Priority
from dseme.models.role_request import RequestStatus, RoleRequest, build_pending_key
from dseme.services import audit_trail
from dseme.services.notification import NotificationService
from dseme.services.tenant_scope import (
    RESOLVER_ROLES,
    approver_roles_for,
    authorize,
    can_resolve_requests,
    select_approver,
)

logger = logging.getLogger(__name__)

ENTITY_ROLE_REQUEST = "ROLE_REQUEST"

_FORBIDDEN_RESOLVE = "You are not permitted to resolve this request"


# ── Private helpers ────────────────────────────────────────────────────────────


def _find_pending(pending_key: str) -> RoleRequest | None:
    return RoleRequest.query.filter_by(pending_key=pending_key).first()


def _coerce_center_id(center_id):
    if center_id is None or center_id == "":
        return None, None
    if isinstance(center_id, bool):
        return None, ServiceError(ErrorKind.INVALID_INPUT, "centerId must be an integer")
    try:
        return int(center_id), None
    except (TypeError, ValueError):
        return None, ServiceError(ErrorKind.INVALID_INPUT, "centerId must be an integer")


def _scope_label(partner_id, center_id) -> str:
    if center_id is None:
        return f"partner {partner_id}"
    return f"partner {partner_id}, center {center_id}"


def _check_resolver(actor, role_request: RoleRequest) -> ServiceError | None:
    """Role, scope and addressed-approver checks shared by approve/reject."""
    if not can_resolve_requests(actor):
        return ServiceError(ErrorKind.PERMISSION_DENIED, _FORBIDDEN_RESOLVE)

    decision = authorize(
        actor,
        approver_roles_for(role_request.requested_role),
        role_request.partner_id,
    )
    if not decision.allowed:
        logger.info(
            "Resolve denied for request %s: %s", role_request.id, decision.reason,
            extra={"actor_id": actor.user_id},
        )
        return ServiceError(ErrorKind.PERMISSION_DENIED, _FORBIDDEN_RESOLVE)

    if actor.user_id not in NotificationService.addressed_approver_ids(role_request.id):
        logger.info(
            "Resolve denied for request %s: actor %s is not the addressed approver",
            role_request.id, actor.user_id,
        )
        return ServiceError(ErrorKind.PERMISSION_DENIED, _FORBIDDEN_RESOLVE)

    return None


def _transition(request_id: int, new_status: RequestStatus, approver_id: int, comment=None) -> bool:
    """Compare-and-set PENDING → ``new_status``.

    Returns True if this call performed the transition, False if the row
    was no longer PENDING.
    """
    result = db.session.execute(
        update(RoleRequest)
        .where(RoleRequest.id == request_id, RoleRequest.status == RequestStatus.PENDING)
        .values(
            status=new_status,
            approver_id=approver_id,
            resolved_at=datetime.now(timezone.utc),
            pending_key=None,
            comment=comment,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _assign_role(role_request: RoleRequest) -> bool:
    """Apply the approved scope to the requester, only while still UNASSIGNED."""
    result = db.session.execute(
        update(User)
        .where(User.id == role_request.requester_id, User.role == Role.UNASSIGNED)
        .values(
            role=role_request.requested_role,
            partner_id=role_request.partner_id,
            center_id=role_request.center_id,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _load_for_resolution(actor, request_id):
    role_request = db.session.get(RoleRequest, request_id)
    if role_request is None:
        return None, ServiceError(ErrorKind.NOT_FOUND, "Role request not found")
    if not actor.is_active:
        return None, ServiceError(ErrorKind.ACCOUNT_INACTIVE, "Your account is not active")
    err = _check_resolver(actor, role_request)
    if err:
        return None, err
    if not role_request.is_pending:
        return None, ServiceError(
            ErrorKind.INVALID_STATE,
            f"Role request is already {role_request.status.value}",
        )
    return role_request, None


def _abort(error: ServiceError):
    db.session.rollback()
    return None, error


def _visible_requests_query(actor):
    """Requests the actor may list: addressed ones for resolvers, own otherwise."""
    if can_resolve_requests(actor):
        addressed = (
            select(Notification.role_request_id)
            .where(
                Notification.recipient_id == actor.user_id,
                Notification.notification_type == NotificationType.APPROVAL_REQUEST,
                Notification.role_request_id.is_not(None),
            )
        )
        return RoleRequest.query.filter(RoleRequest.id.in_(addressed))
    return RoleRequest.query.filter(RoleRequest.requester_id == actor.user_id)


# ═══════════════════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════════════════


def create_request(actor, partner_id, center_id, requested_role):
    """
    Submit a role request for ``actor``.

    Args:
        actor: The resolved requester.
        partner_id: Target partner code, e.g. ``"DSE201"``.
        center_id: Optional target center id (must belong to the partner).
        requested_role: FACILITATOR, ME_OFFICER or DONOR.

    Returns:
        (RoleRequest, None) on success.
        (None, ServiceError) with INVALID_INPUT, ACCOUNT_INACTIVE,
        PERMISSION_DENIED, NOT_FOUND, ALREADY_EXISTS or CONFIGURATION.
    """
    requester = db.session.get(User, actor.user_id)
    if requester is None:
        return None, ServiceError(ErrorKind.NOT_FOUND, "User not found")
    if not requester.is_active:
        return None, ServiceError(ErrorKind.ACCOUNT_INACTIVE, "Your account is not active")
    if requester.role != Role.UNASSIGNED:
        return None, ServiceError(ErrorKind.PERMISSION_DENIED, "You already have an approved role")

    role = parse_role(requested_role)
    if role not in REQUESTABLE_ROLES:
        return None, ServiceError(
            ErrorKind.INVALID_INPUT,
            "requestedRole must be one of: " + ", ".join(sorted(r.value for r in REQUESTABLE_ROLES)),
        )
    if not partner_id or not str(partner_id).strip():
        return None, ServiceError(ErrorKind.INVALID_INPUT, "partnerId is required")
    partner_id = str(partner_id).strip()
    center_id, err = _coerce_center_id(center_id)
    if err:
        return None, err

    partner = db.session.get(Partner, partner_id)
    if partner is None or not partner.is_active:
        return None, ServiceError(ErrorKind.NOT_FOUND, "Partner not found")
    if center_id is not None:
        center = db.session.get(Center, center_id)
        if center is None or center.partner_id != partner_id or not center.is_active:
            return None, ServiceError(ErrorKind.NOT_FOUND, "Center not found")

    pending_key = build_pending_key(requester.id, role, partner_id, center_id)
    if _find_pending(pending_key) is not None:
        return None, ServiceError(
            ErrorKind.ALREADY_EXISTS, "A pending request already exists for this role and scope",
        )

    approver, err = select_approver(partner_id, center_id, role)
    if err:
        return None, err

    role_request = RoleRequest(
        requester_id=requester.id,
        partner_id=partner_id,
        center_id=center_id,
        requested_role=role,
        status=RequestStatus.PENDING,
        pending_key=pending_key,
    )
    try:
        db.session.add(role_request)
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info("Concurrent duplicate role request rejected: %s", pending_key)
        return None, ServiceError(
            ErrorKind.ALREADY_EXISTS, "A pending request already exists for this role and scope",
        )

    try:
        _, err = NotificationService.notify(
            approver.id,
            NotificationType.APPROVAL_REQUEST,
            "New Role Request",
            f"{requester.full_name} requested the {role.value} role for "
            f"{_scope_label(partner_id, center_id)}.",
            priority=Priority.HIGH,
            role_request_id=role_request.id,
        )
        if err:
            return _abort(err)

        audit_trail.record(
            actor,
            ACTION_REQUEST_ROLE,
            ENTITY_ROLE_REQUEST,
            role_request.id,
            f"Requested {role.value} for {_scope_label(partner_id, center_id)}",
            partner_id=partner_id,
        )
        db.session.commit()
    except AuditWriteError:
        db.session.rollback()
        raise

    logger.info(
        "Role request %s created: %s for %s, approver=%s",
        role_request.id, role.value, partner_id, approver.id,
        extra={"event_type": ACTION_REQUEST_ROLE, "actor_id": actor.user_id},
    )
    return role_request, None


# ═══════════════════════════════════════════════════════════════════════════
# Resolve
# ═══════════════════════════════════════════════════════════════════════════


def approve_request(actor, request_id):
    """
    Approve a PENDING request as its addressed approver.

    Returns:
        (RoleRequest, None) on success.
        (None, ServiceError) with NOT_FOUND, ACCOUNT_INACTIVE,
        PERMISSION_DENIED or INVALID_STATE (already resolved, lost a
        concurrent resolution, or the requester already holds a role).
    """
    role_request, err = _load_for_resolution(actor, request_id)
    if err:
        return None, err

    requester = role_request.requester
    if requester.role != Role.UNASSIGNED:
        return None, ServiceError(ErrorKind.INVALID_STATE, "Requester already holds a role")
    if not requester.is_active:
        return None, ServiceError(ErrorKind.INVALID_STATE, "Requester account is not active")

    try:
        if not _transition(role_request.id, RequestStatus.APPROVED, actor.user_id):
            return _abort(ServiceError(ErrorKind.INVALID_STATE, "Role request is no longer pending"))
        if not _assign_role(role_request):
            return _abort(ServiceError(ErrorKind.INVALID_STATE, "Requester already holds a role"))
        db.session.expire(role_request)
        db.session.expire(requester)

        NotificationService.mark_read_for_request(role_request.id)
        _, err = NotificationService.notify(
            role_request.requester_id,
            NotificationType.INFO,
            "Role Request Approved",
            f"Your request for the {role_request.requested_role.value} role at "
            f"{_scope_label(role_request.partner_id, role_request.center_id)} has been approved.",
            priority=Priority.LOW,
            role_request_id=role_request.id,
        )
        if err:
            return _abort(err)

        audit_trail.record(
            actor,
            ACTION_APPROVE_ROLE_REQUEST,
            ENTITY_ROLE_REQUEST,
            role_request.id,
            f"Approved {role_request.requested_role.value} for user {role_request.requester_id}",
            partner_id=role_request.partner_id,
        )
        db.session.commit()
    except AuditWriteError:
        db.session.rollback()
        raise

    logger.info(
        "Role request %s approved by %s", role_request.id, actor.user_id,
        extra={"event_type": ACTION_APPROVE_ROLE_REQUEST, "actor_id": actor.user_id},
    )
    return role_request, None


def reject_request(actor, request_id, comment):
    """
    Reject a PENDING request with a mandatory reason.

    Returns:
        (RoleRequest, None) on success.
        (None, ServiceError) with INVALID_INPUT (blank comment), NOT_FOUND,
        ACCOUNT_INACTIVE, PERMISSION_DENIED or INVALID_STATE.
    """
    comment = comment.strip() if isinstance(comment, str) else ""
    if not comment:
        return None, ServiceError(ErrorKind.INVALID_INPUT, "A rejection comment is required")

    role_request, err = _load_for_resolution(actor, request_id)
    if err:
        return None, err

    try:
        if not _transition(role_request.id, RequestStatus.REJECTED, actor.user_id, comment=comment):
            return _abort(ServiceError(ErrorKind.INVALID_STATE, "Role request is no longer pending"))
        db.session.expire(role_request)

        NotificationService.mark_read_for_request(role_request.id)
        _, err = NotificationService.notify(
            role_request.requester_id,
            NotificationType.INFO,
            "Role Request Rejected",
            f"Your request for the {role_request.requested_role.value} role at "
            f"{_scope_label(role_request.partner_id, role_request.center_id)} was rejected. "
            f"Reason: {comment}",
            priority=Priority.HIGH,
            role_request_id=role_request.id,
        )
        if err:
            return _abort(err)

        audit_trail.record(
            actor,
            ACTION_REJECT_ROLE_REQUEST,
            ENTITY_ROLE_REQUEST,
            role_request.id,
            f"Rejected {role_request.requested_role.value} for user {role_request.requester_id}: {comment}",
            partner_id=role_request.partner_id,
        )
        db.session.commit()
    except AuditWriteError:
        db.session.rollback()
        raise

    logger.info(
        "Role request %s rejected by %s", role_request.id, actor.user_id,
        extra={"event_type": ACTION_REJECT_ROLE_REQUEST, "actor_id": actor.user_id},
    )
    return role_request, None


# ═══════════════════════════════════════════════════════════════════════════
# Read
# ═══════════════════════════════════════════════════════════════════════════


def get_request(actor, request_id):
    """Single request, visible to its requester, its addressed approver, or
    an in-scope resolver.  Cross-tenant reads are PERMISSION_DENIED."""
    role_request = db.session.get(RoleRequest, request_id)
    if role_request is None:
        return None, ServiceError(ErrorKind.NOT_FOUND, "Role request not found")
    if not actor.is_active:
        return None, ServiceError(ErrorKind.ACCOUNT_INACTIVE, "Your account is not active")

    if actor.user_id == role_request.requester_id:
        return role_request, None
    if can_resolve_requests(actor):
        if authorize(actor, RESOLVER_ROLES, role_request.partner_id).allowed:
            return role_request, None
    return None, ServiceError(ErrorKind.PERMISSION_DENIED, "You are not permitted to view this request")


def list_requests_for_actor(actor, status=None, limit=50, offset=0):
    """Requests visible to ``actor``, newest first.

    Args:
        status: Optional RequestStatus filter.

    Returns:
        (items, total)
    """
    q = _visible_requests_query(actor)
    if status is not None:
        q = q.filter(RoleRequest.status == status)
    total = q.count()
    items = (
        q.order_by(RoleRequest.requested_at.desc(), RoleRequest.id.desc())
        .offset(offset).limit(limit).all()
    )
    return items, total


def count_by_status(actor) -> dict:
    """Per-status counts over the requests visible to ``actor``."""
    counts = {s.value: 0 for s in RequestStatus}
    visible = _visible_requests_query(actor).with_entities(RoleRequest.id).subquery()
    rows = (
        db.session.query(RoleRequest.status, func.count(RoleRequest.id))
        .filter(RoleRequest.id.in_(select(visible.c.id)))
        .group_by(RoleRequest.status)
        .all()
    )
    for status, n in rows:
        counts[status.value] = n
    return counts
