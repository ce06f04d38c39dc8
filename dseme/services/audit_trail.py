"""
Audit Trail: append-only record of mutating actions.

``record`` uses ``flush`` so callers keep transaction control: the audit row
commits or rolls back together with the action it documents.  A row that
cannot be written raises ``AuditWriteError``; an action that cannot be
audited must not be committed.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from dseme.core.exceptions import AuditWriteError
from dseme.models import db
from dseme.models.audit import AuditLog
from dseme.services.tenant_scope import scope_query

logger = logging.getLogger(__name__)


def record(actor, action, entity_type, entity_id=None, description="", partner_id=None) -> AuditLog:
    """
    Append a single audit row for ``actor``.

    Args:
        actor: The resolved Actor performing the action.
        action: Action code (``ACTION_*`` constants).
        entity_type: Type of the affected entity, e.g. ``"ROLE_REQUEST"``.
        entity_id: Id of the affected entity.
        description: Free-text summary.
        partner_id: Tenant of the affected entity; drives scoped reads.

    Returns:
        The flushed AuditLog instance.

    Raises:
        AuditWriteError: the row could not be persisted.
    """
    entry = AuditLog(
        actor_id=actor.user_id,
        actor_role=actor.role.value,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        partner_id=partner_id,
        description=description or "",
    )
    try:
        db.session.add(entry)
        db.session.flush()
    except SQLAlchemyError as exc:
        logger.error(
            "Audit write failed: %s %s/%s", action, entity_type, entity_id,
            extra={"actor_id": actor.user_id},
        )
        raise AuditWriteError(action, entity_type, entry.entity_id) from exc
    return entry


def list_entries(actor, action=None, entity_type=None, limit=50, offset=0):
    """Audit entries visible to ``actor``, newest first.

    Returns:
        (items, total)
    """
    q = scope_query(AuditLog.query, actor, AuditLog.partner_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    total = q.count()
    items = (
        q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset).limit(limit).all()
    )
    return items, total
