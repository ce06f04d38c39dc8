"""
Tenant Scope Guard: partner/center isolation and approver selection.

Evaluation is deterministic and deny-by-default:
  - inactive actors are denied
  - ADMIN bypasses role gate and scope
  - every other role must be in ``required_roles``
  - DONOR is portfolio-wide (no partner check)
  - ME_OFFICER must match the resource partner
  - FACILITATOR must match the resource partner, and the resource center
    when one is supplied
  - UNASSIGNED has no affiliation and is denied

Denial reasons are for logs and tests.  Clients only ever get a generic
Forbidden; the resource's owning partner is never echoed back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, false

from dseme.core.exceptions import ErrorKind, ServiceError
from dseme.models.auth import Role, User

logger = logging.getLogger(__name__)

REASON_INACTIVE = "account inactive"
REASON_ROLE = "role not permitted"
REASON_CROSS_TENANT = "cross-tenant access"

SUPERUSER_ROLES = frozenset({Role.ADMIN})
PORTFOLIO_ROLES = frozenset({Role.DONOR})

# Roles that may ever resolve a role request.
RESOLVER_ROLES = frozenset({Role.ME_OFFICER, Role.DONOR, Role.ADMIN})

_APPROVER_ROLES = {
    Role.FACILITATOR: (Role.ME_OFFICER, Role.DONOR),
    Role.ME_OFFICER: (Role.ADMIN,),
    Role.DONOR: (Role.ADMIN,),
}


@dataclass(frozen=True)
class ScopeDecision:
    allowed: bool
    reason: str | None = None

    def __bool__(self):
        return self.allowed


_ALLOW = ScopeDecision(True)


def authorize(actor, required_roles, resource_partner_id, resource_center_id=None) -> ScopeDecision:
    """Decide whether ``actor`` may act on a resource owned by a partner/center.

    Args:
        actor: The resolved Actor.
        required_roles: Iterable of Role values allowed for the operation.
            ADMIN is always allowed.
        resource_partner_id: Owning partner of the target resource.
        resource_center_id: Owning center, checked for FACILITATOR only.
    """
    if not actor.is_active:
        return ScopeDecision(False, REASON_INACTIVE)

    if actor.role in SUPERUSER_ROLES:
        return _ALLOW

    if actor.role not in set(required_roles):
        return ScopeDecision(False, REASON_ROLE)

    if actor.role in PORTFOLIO_ROLES:
        return _ALLOW

    if actor.role == Role.ME_OFFICER:
        if actor.partner_id is not None and actor.partner_id == resource_partner_id:
            return _ALLOW
        return _deny_cross_tenant(actor, resource_partner_id)

    if actor.role == Role.FACILITATOR:
        if actor.partner_id is None or actor.partner_id != resource_partner_id:
            return _deny_cross_tenant(actor, resource_partner_id)
        if resource_center_id is not None and actor.center_id != resource_center_id:
            return _deny_cross_tenant(actor, resource_partner_id)
        return _ALLOW

    return _deny_cross_tenant(actor, resource_partner_id)


def _deny_cross_tenant(actor, resource_partner_id) -> ScopeDecision:
    logger.info(
        "Cross-tenant access denied: user=%s role=%s actor_partner=%s resource_partner=%s",
        actor.user_id, actor.role.value, actor.partner_id, resource_partner_id,
    )
    return ScopeDecision(False, REASON_CROSS_TENANT)


def can_resolve_requests(actor) -> bool:
    """FACILITATOR and UNASSIGNED are never eligible approvers."""
    return actor.role in RESOLVER_ROLES


def approver_roles_for(requested_role) -> tuple:
    """Roles eligible to approve a request for ``requested_role``."""
    return _APPROVER_ROLES.get(requested_role, ())


def select_approver(partner_id, center_id, requested_role):
    """Pick the single addressed approver for a new role request.

    FACILITATOR requests go to an active ME_OFFICER (preferred) or DONOR of
    the same partner; the center is carried on the request but selection is
    partner-level.  ME_OFFICER and DONOR requests go to an active ADMIN.
    Ties break on the lowest user id.

    Returns:
        (User, None) or (None, ServiceError) with CONFIGURATION when nobody
        is eligible.
    """
    roles = approver_roles_for(requested_role)
    if not roles:
        return None, ServiceError(
            ErrorKind.INVALID_INPUT, f"Role {getattr(requested_role, 'value', requested_role)} cannot be requested",
        )

    q = User.query.filter(User.is_active.is_(True), User.role.in_(roles))
    if requested_role == Role.FACILITATOR:
        q = q.filter(User.partner_id == partner_id)

    preference = case(
        *[(User.role == role, rank) for rank, role in enumerate(roles)],
        else_=len(roles),
    )
    approver = q.order_by(preference, User.id).first()

    if approver is None:
        logger.warning(
            "No eligible approver for %s request (partner=%s center=%s)",
            requested_role.value, partner_id, center_id,
        )
        return None, ServiceError(
            ErrorKind.CONFIGURATION,
            "No eligible approver is configured for this partner",
        )
    return approver, None


def scope_query(query, actor, partner_column, center_column=None):
    """Restrict ``query`` to rows visible to ``actor``.

    ADMIN and DONOR are unfiltered; ME_OFFICER is filtered by partner;
    FACILITATOR by partner and (when ``center_column`` is given) center;
    everyone else, and inactive actors, see nothing.
    """
    if not actor.is_active:
        return query.filter(false())
    if actor.role in SUPERUSER_ROLES or actor.role in PORTFOLIO_ROLES:
        return query
    if actor.role == Role.ME_OFFICER and actor.partner_id is not None:
        return query.filter(partner_column == actor.partner_id)
    if actor.role == Role.FACILITATOR and actor.partner_id is not None:
        query = query.filter(partner_column == actor.partner_id)
        if center_column is not None:
            query = query.filter(center_column == actor.center_id)
        return query
    return query.filter(false())
