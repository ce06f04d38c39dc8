"""
Role request workflow: service-level tests.

Tests cover:
  - create: preconditions, approver selection, notification + audit in one unit
  - approve: addressed approver only, requester role/partner/center update
  - reject: mandatory comment, requester untouched
  - terminal states: second resolution is INVALID_STATE and changes nothing
  - reads: get_request visibility, listing, per-status counts
"""
import pytest

from dseme.core.exceptions import AuditWriteError, ErrorKind
from dseme.models import db
from dseme.models.audit import (
    ACTION_APPROVE_ROLE_REQUEST,
    ACTION_REJECT_ROLE_REQUEST,
    ACTION_REQUEST_ROLE,
    AuditLog,
)
from dseme.models.auth import Role, User
from dseme.models.notification import Notification, NotificationType, Priority
from dseme.models.role_request import RequestStatus, RoleRequest
from dseme.services import audit_trail, role_request_service as svc


@pytest.fixture()
def pending(u1, m1, center_c1, actor_for):
    """u1 → FACILITATOR @ DSE201/C1, addressed to m1."""
    rr, err = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
    assert err is None
    return rr


def _audit_actions():
    return [a.action for a in AuditLog.query.order_by(AuditLog.id).all()]


# ═════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════

class TestCreateRequest:
    def test_creates_pending_request_notification_and_audit(self, u1, m1, center_c1, actor_for):
        rr, err = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
        assert err is None
        assert rr.status == RequestStatus.PENDING
        assert rr.requester_id == u1.id
        assert rr.partner_id == "DSE201"
        assert rr.center_id == center_c1.id
        assert rr.approver_id is None
        assert rr.resolved_at is None

        notifs = Notification.query.filter_by(role_request_id=rr.id).all()
        assert len(notifs) == 1
        assert notifs[0].recipient_id == m1.id
        assert notifs[0].notification_type == NotificationType.APPROVAL_REQUEST
        assert notifs[0].priority == Priority.HIGH
        assert notifs[0].is_read is False

        assert _audit_actions() == [ACTION_REQUEST_ROLE]
        entry = AuditLog.query.first()
        assert entry.actor_id == u1.id
        assert entry.actor_role == "UNASSIGNED"
        assert entry.entity_type == "ROLE_REQUEST"
        assert entry.entity_id == str(rr.id)
        assert entry.partner_id == "DSE201"

    def test_role_is_case_insensitive(self, u1, m1, partner_a, actor_for):
        rr, err = svc.create_request(actor_for(u1), "DSE201", None, "facilitator")
        assert err is None
        assert rr.requested_role == Role.FACILITATOR

    @pytest.mark.parametrize("role", ["ADMIN", "UNASSIGNED", "SUPERVISOR", None])
    def test_disallowed_role_is_invalid_input(self, u1, m1, partner_a, actor_for, role):
        rr, err = svc.create_request(actor_for(u1), "DSE201", None, role)
        assert rr is None
        assert err.kind == ErrorKind.INVALID_INPUT
        assert RoleRequest.query.count() == 0

    def test_missing_partner_is_invalid_input(self, u1, actor_for):
        _, err = svc.create_request(actor_for(u1), "", None, "FACILITATOR")
        assert err.kind == ErrorKind.INVALID_INPUT

    def test_non_integer_center_is_invalid_input(self, u1, m1, partner_a, actor_for):
        _, err = svc.create_request(actor_for(u1), "DSE201", "abc", "FACILITATOR")
        assert err.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.parametrize("requested", ["DONOR", "ADMIN", "BOGUS", None])
    @pytest.mark.parametrize("role", [Role.FACILITATOR, Role.ME_OFFICER, Role.DONOR, Role.ADMIN])
    def test_only_unassigned_users_may_request(self, make_user, partner_a, m1, admin, actor_for,
                                               role, requested):
        user = make_user("holder@dseme.org", role, partner_id="DSE201")
        rr, err = svc.create_request(actor_for(user), "DSE201", None, requested)
        assert rr is None
        assert err.kind == ErrorKind.PERMISSION_DENIED
        assert err.message == "You already have an approved role"
        assert RoleRequest.query.count() == 0

    def test_role_holder_without_partner_is_permission_denied(self, f1, actor_for):
        _, err = svc.create_request(actor_for(f1), "", None, "ADMIN")
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_inactive_requester(self, make_user, m1, actor_for):
        user = make_user("gone@dseme.org", is_active=False)
        _, err = svc.create_request(actor_for(user), "DSE201", None, "FACILITATOR")
        assert err.kind == ErrorKind.ACCOUNT_INACTIVE

    def test_unknown_partner_is_not_found(self, u1, m1, actor_for):
        _, err = svc.create_request(actor_for(u1), "NOPE99", None, "FACILITATOR")
        assert err.kind == ErrorKind.NOT_FOUND

    def test_center_of_other_partner_is_not_found(self, u1, m1, center_c2, actor_for):
        _, err = svc.create_request(actor_for(u1), "DSE201", center_c2.id, "FACILITATOR")
        assert err.kind == ErrorKind.NOT_FOUND

    def test_duplicate_pending_is_already_exists(self, pending, u1, center_c1, actor_for):
        rr, err = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
        assert rr is None
        assert err.kind == ErrorKind.ALREADY_EXISTS
        assert RoleRequest.query.filter_by(status=RequestStatus.PENDING).count() == 1

    def test_different_tuple_is_allowed(self, pending, u1, admin, actor_for):
        # Same requester, different role and no center
        rr, err = svc.create_request(actor_for(u1), "DSE201", None, "DONOR")
        assert err is None
        assert rr.status == RequestStatus.PENDING

    def test_new_request_allowed_after_rejection(self, pending, u1, m1, center_c1, actor_for):
        _, err = svc.reject_request(actor_for(m1), pending.id, "Incomplete profile")
        assert err is None
        rr, err = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
        assert err is None
        assert rr.id != pending.id

    def test_storage_constraint_backstops_app_check(self, pending, u1, center_c1, actor_for, monkeypatch):
        # Simulate the loser of a creation race: the application-level
        # check misses the row committed by the winner.
        monkeypatch.setattr(svc, "_find_pending", lambda key: None)
        rr, err = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
        assert rr is None
        assert err.kind == ErrorKind.ALREADY_EXISTS
        assert RoleRequest.query.count() == 1
        assert Notification.query.count() == 1
        assert _audit_actions() == [ACTION_REQUEST_ROLE]

    def test_no_approver_is_configuration_error(self, u1, partner_a, actor_for):
        rr, err = svc.create_request(actor_for(u1), "DSE201", None, "FACILITATOR")
        assert rr is None
        assert err.kind == ErrorKind.CONFIGURATION
        assert RoleRequest.query.count() == 0
        assert Notification.query.count() == 0

    def test_me_officer_request_goes_to_admin(self, u1, m1, admin, partner_a, actor_for):
        rr, err = svc.create_request(actor_for(u1), "DSE201", None, "ME_OFFICER")
        assert err is None
        notif = Notification.query.filter_by(role_request_id=rr.id).one()
        assert notif.recipient_id == admin.id

    def test_audit_failure_rolls_back_everything(self, u1, m1, partner_a, actor_for, monkeypatch):
        def _fail(*args, **kwargs):
            raise AuditWriteError("REQUEST_ROLE", "ROLE_REQUEST")

        monkeypatch.setattr(audit_trail, "record", _fail)
        with pytest.raises(AuditWriteError):
            svc.create_request(actor_for(u1), "DSE201", None, "FACILITATOR")
        assert RoleRequest.query.count() == 0
        assert Notification.query.count() == 0
        assert AuditLog.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════
# APPROVE
# ═════════════════════════════════════════════════════════════════════════

class TestApprove:
    def test_addressed_approver_approves(self, pending, u1, m1, center_c1, actor_for):
        rr, err = svc.approve_request(actor_for(m1), pending.id)
        assert err is None
        assert rr.status == RequestStatus.APPROVED
        assert rr.approver_id == m1.id
        assert rr.resolved_at is not None
        assert rr.comment is None
        assert rr.pending_key is None

        user = db.session.get(User, u1.id)
        assert user.role == Role.FACILITATOR
        assert user.partner_id == "DSE201"
        assert user.center_id == center_c1.id

        assert _audit_actions() == [ACTION_REQUEST_ROLE, ACTION_APPROVE_ROLE_REQUEST]

    def test_approval_notifications(self, pending, u1, m1, actor_for):
        svc.approve_request(actor_for(m1), pending.id)

        original = Notification.query.filter_by(
            role_request_id=pending.id, notification_type=NotificationType.APPROVAL_REQUEST,
        ).one()
        assert original.is_read is True
        assert original.read_at is not None

        info = Notification.query.filter_by(
            recipient_id=u1.id, notification_type=NotificationType.INFO,
        ).one()
        assert info.title == "Role Request Approved"
        assert info.priority == Priority.LOW
        assert info.is_read is False

    def test_non_addressed_facilitator_is_denied(self, pending, u1, f1, actor_for):
        rr, err = svc.approve_request(actor_for(f1), pending.id)
        assert rr is None
        assert err.kind == ErrorKind.PERMISSION_DENIED
        db.session.expire_all()
        assert db.session.get(RoleRequest, pending.id).status == RequestStatus.PENDING
        assert db.session.get(User, u1.id).role == Role.UNASSIGNED

    def test_in_scope_resolver_who_is_not_addressed_is_denied(self, pending, make_user, actor_for):
        other = make_user("m1b@dseme.org", Role.ME_OFFICER, partner_id="DSE201")
        _, err = svc.approve_request(actor_for(other), pending.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_cross_tenant_officer_is_denied(self, pending, m2, actor_for):
        _, err = svc.approve_request(actor_for(m2), pending.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED
        assert "DSE201" not in err.message

    def test_unassigned_actor_is_denied(self, pending, make_user, actor_for):
        other = make_user("nobody@dseme.org")
        _, err = svc.approve_request(actor_for(other), pending.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_requester_cannot_approve_own_request(self, pending, u1, actor_for):
        _, err = svc.approve_request(actor_for(u1), pending.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_unknown_request_is_not_found(self, m1, actor_for):
        _, err = svc.approve_request(actor_for(m1), 9999)
        assert err.kind == ErrorKind.NOT_FOUND

    def test_inactive_approver(self, pending, m1, actor_for):
        actor = actor_for(m1)
        m1.is_active = False
        db.session.commit()
        _, err = svc.approve_request(actor_for(m1), pending.id)
        assert err.kind == ErrorKind.ACCOUNT_INACTIVE
        assert actor.is_active is True  # value object is a snapshot

    def test_second_approve_is_invalid_state(self, pending, u1, m1, actor_for):
        _, err = svc.approve_request(actor_for(m1), pending.id)
        assert err is None
        resolved_at = db.session.get(RoleRequest, pending.id).resolved_at

        rr, err = svc.approve_request(actor_for(m1), pending.id)
        assert rr is None
        assert err.kind == ErrorKind.INVALID_STATE
        db.session.expire_all()
        assert db.session.get(RoleRequest, pending.id).resolved_at == resolved_at
        assert _audit_actions().count(ACTION_APPROVE_ROLE_REQUEST) == 1

    def test_reject_after_approve_is_invalid_state(self, pending, u1, m1, actor_for):
        svc.approve_request(actor_for(m1), pending.id)
        _, err = svc.reject_request(actor_for(m1), pending.id, "Changed my mind")
        assert err.kind == ErrorKind.INVALID_STATE
        db.session.expire_all()
        assert db.session.get(RoleRequest, pending.id).status == RequestStatus.APPROVED
        assert db.session.get(User, u1.id).role == Role.FACILITATOR

    def test_conditional_transition_reports_loser(self, pending, m1):
        assert svc._transition(pending.id, RequestStatus.APPROVED, m1.id) is True
        assert svc._transition(pending.id, RequestStatus.REJECTED, m1.id, comment="x") is False
        db.session.rollback()

    def test_requester_already_holding_role_is_invalid_state(self, u1, m1, admin, center_c1, actor_for):
        fac, _ = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
        don, _ = svc.create_request(actor_for(u1), "DSE201", None, "DONOR")
        _, err = svc.approve_request(actor_for(m1), fac.id)
        assert err is None

        _, err = svc.approve_request(actor_for(admin), don.id)
        assert err.kind == ErrorKind.INVALID_STATE
        db.session.expire_all()
        assert db.session.get(RoleRequest, don.id).status == RequestStatus.PENDING
        assert db.session.get(User, u1.id).role == Role.FACILITATOR

    def test_admin_resolves_me_officer_request(self, u1, m1, admin, partner_a, actor_for):
        rr, _ = svc.create_request(actor_for(u1), "DSE201", None, "ME_OFFICER")
        _, err = svc.approve_request(actor_for(m1), rr.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED

        _, err = svc.approve_request(actor_for(admin), rr.id)
        assert err is None
        assert db.session.get(User, u1.id).role == Role.ME_OFFICER

    def test_audit_failure_leaves_request_pending(self, pending, u1, m1, actor_for, monkeypatch):
        def _fail(*args, **kwargs):
            raise AuditWriteError("APPROVE_ROLE_REQUEST", "ROLE_REQUEST", str(pending.id))

        monkeypatch.setattr(audit_trail, "record", _fail)
        with pytest.raises(AuditWriteError):
            svc.approve_request(actor_for(m1), pending.id)
        db.session.expire_all()
        assert db.session.get(RoleRequest, pending.id).status == RequestStatus.PENDING
        assert db.session.get(User, u1.id).role == Role.UNASSIGNED
        assert Notification.query.filter_by(notification_type=NotificationType.INFO).count() == 0


# ═════════════════════════════════════════════════════════════════════════
# REJECT
# ═════════════════════════════════════════════════════════════════════════

class TestReject:
    def test_reject_with_comment(self, pending, u1, m1, actor_for):
        rr, err = svc.reject_request(actor_for(m1), pending.id, "  Missing documents  ")
        assert err is None
        assert rr.status == RequestStatus.REJECTED
        assert rr.comment == "Missing documents"
        assert rr.approver_id == m1.id
        assert rr.resolved_at is not None

        user = db.session.get(User, u1.id)
        assert user.role == Role.UNASSIGNED
        assert user.partner_id is None
        assert user.center_id is None

        info = Notification.query.filter_by(
            recipient_id=u1.id, notification_type=NotificationType.INFO,
        ).one()
        assert info.title == "Role Request Rejected"
        assert "Reason: Missing documents" in info.message
        assert info.priority == Priority.HIGH
        assert _audit_actions() == [ACTION_REQUEST_ROLE, ACTION_REJECT_ROLE_REQUEST]

    @pytest.mark.parametrize("comment", ["", "   ", None])
    def test_blank_comment_is_invalid_input(self, pending, m1, actor_for, comment):
        rr, err = svc.reject_request(actor_for(m1), pending.id, comment)
        assert rr is None
        assert err.kind == ErrorKind.INVALID_INPUT
        db.session.expire_all()
        assert db.session.get(RoleRequest, pending.id).status == RequestStatus.PENDING

    def test_blank_comment_checked_before_permission(self, pending, f1, actor_for):
        _, err = svc.reject_request(actor_for(f1), pending.id, "")
        assert err.kind == ErrorKind.INVALID_INPUT

    def test_wrong_approver_cannot_reject(self, pending, f1, actor_for):
        _, err = svc.reject_request(actor_for(f1), pending.id, "No")
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_second_reject_is_invalid_state(self, pending, m1, actor_for):
        svc.reject_request(actor_for(m1), pending.id, "No")
        _, err = svc.reject_request(actor_for(m1), pending.id, "Still no")
        assert err.kind == ErrorKind.INVALID_STATE
        db.session.expire_all()
        assert db.session.get(RoleRequest, pending.id).comment == "No"


# ═════════════════════════════════════════════════════════════════════════
# SCENARIO
# ═════════════════════════════════════════════════════════════════════════

class TestEndToEndScenario:
    def test_facilitator_request_approved_by_me_officer(self, u1, m1, center_c1, actor_for):
        rr, err = svc.create_request(actor_for(u1), "DSE201", center_c1.id, "FACILITATOR")
        assert err is None
        assert rr.status == RequestStatus.PENDING
        notif = Notification.query.filter_by(
            role_request_id=rr.id, notification_type=NotificationType.APPROVAL_REQUEST,
        ).one()
        assert notif.recipient_id == m1.id

        _, err = svc.approve_request(actor_for(m1), rr.id)
        assert err is None

        db.session.expire_all()
        assert db.session.get(RoleRequest, rr.id).status == RequestStatus.APPROVED
        user = db.session.get(User, u1.id)
        assert user.role == Role.FACILITATOR
        assert user.partner_id == "DSE201"
        assert sorted(_audit_actions()) == sorted([ACTION_REQUEST_ROLE, ACTION_APPROVE_ROLE_REQUEST])


# ═════════════════════════════════════════════════════════════════════════
# READS
# ═════════════════════════════════════════════════════════════════════════

class TestReads:
    def test_requester_sees_own_request(self, pending, u1, actor_for):
        rr, err = svc.get_request(actor_for(u1), pending.id)
        assert err is None
        assert rr.id == pending.id

    def test_in_scope_resolver_sees_request(self, pending, m1, donor, admin, actor_for):
        for user in (m1, donor, admin):
            _, err = svc.get_request(actor_for(user), pending.id)
            assert err is None

    def test_cross_tenant_officer_cannot_view(self, pending, m2, actor_for):
        rr, err = svc.get_request(actor_for(m2), pending.id)
        assert rr is None
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_facilitator_cannot_view(self, pending, f1, actor_for):
        _, err = svc.get_request(actor_for(f1), pending.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_other_unassigned_user_cannot_view(self, pending, make_user, actor_for):
        other = make_user("other@dseme.org")
        _, err = svc.get_request(actor_for(other), pending.id)
        assert err.kind == ErrorKind.PERMISSION_DENIED

    def test_get_unknown_request(self, m1, actor_for):
        _, err = svc.get_request(actor_for(m1), 12345)
        assert err.kind == ErrorKind.NOT_FOUND

    def test_list_for_requester_and_approver(self, pending, u1, m1, m2, actor_for):
        items, total = svc.list_requests_for_actor(actor_for(u1))
        assert total == 1 and items[0].id == pending.id

        items, total = svc.list_requests_for_actor(actor_for(m1))
        assert total == 1 and items[0].id == pending.id

        items, total = svc.list_requests_for_actor(actor_for(m2))
        assert total == 0

    def test_list_status_filter(self, pending, m1, actor_for):
        _, total = svc.list_requests_for_actor(actor_for(m1), status=RequestStatus.APPROVED)
        assert total == 0
        svc.approve_request(actor_for(m1), pending.id)
        _, total = svc.list_requests_for_actor(actor_for(m1), status=RequestStatus.APPROVED)
        assert total == 1

    def test_count_by_status(self, pending, u1, m1, admin, actor_for):
        svc.create_request(actor_for(u1), "DSE201", None, "DONOR")
        assert svc.count_by_status(actor_for(m1)) == {"PENDING": 1, "APPROVED": 0, "REJECTED": 0}
        svc.reject_request(actor_for(m1), pending.id, "No")
        assert svc.count_by_status(actor_for(m1)) == {"PENDING": 0, "APPROVED": 0, "REJECTED": 1}
        assert svc.count_by_status(actor_for(u1)) == {"PENDING": 1, "APPROVED": 0, "REJECTED": 1}
