"""
Tests for NotificationService.

Covers:
- Who may address which audience (institute admin, branch admin, others)
- Input validation and unknown target references
- First-view read receipts
- Audit trail and immutability of sent notifications
"""

from uuid import uuid4

import pytest

from institute_kernel.domain.identity import Role
from institute_kernel.domain.targeting import NotificationKind, NotificationTarget, TargetType
from institute_kernel.exceptions import (
    AccountNotFoundError,
    BranchNotFoundError,
    ImmutabilityViolationError,
    NotificationNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from institute_kernel.models.audit_event import AuditAction
from institute_kernel.models.notification import NotificationModel


def _send(services, actor, target, **kwargs):
    kwargs.setdefault("title", "Holiday")
    kwargs.setdefault("message", "The institute is closed on Monday.")
    return services.notifications.send(actor, target=target, **kwargs)


class TestInstituteAdminSends:

    @pytest.mark.parametrize("make_target", [
        lambda ctx: NotificationTarget.everyone(),
        lambda ctx: NotificationTarget.for_branch(ctx["branch"]),
        lambda ctx: NotificationTarget.for_role(Role.TEACHER),
        lambda ctx: NotificationTarget.for_department("Teaching"),
        lambda ctx: NotificationTarget.for_user(ctx["user"]),
    ])
    def test_any_target(self, services, admin_actor, branch_x, teacher_x, make_target):
        target = make_target({"branch": branch_x.branch_id, "user": teacher_x.account_id})
        outcome = _send(services, admin_actor, target)
        assert outcome.ok
        assert outcome.value.target == target
        assert outcome.value.sent_by == admin_actor.account_id

    def test_record_contents(self, services, admin_actor):
        outcome = _send(
            services,
            admin_actor,
            NotificationTarget.everyone(),
            title="  Fees due  ",
            message="  Pay by the 10th.  ",
            kind="warning",
        )
        record = outcome.value
        assert record.title == "Fees due"
        assert record.message == "Pay by the 10th."
        assert record.kind == NotificationKind.WARNING
        assert record.created_at == services.clock.now()

    def test_default_kind_is_general(self, services, admin_actor):
        outcome = _send(services, admin_actor, NotificationTarget.everyone())
        assert outcome.value.kind == NotificationKind.GENERAL


class TestBranchAdminSends:

    def test_own_branch(self, services, branch_admin_x, branch_x):
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_branch(branch_x.branch_id))
        assert outcome.ok

    def test_other_branch_is_unauthorized(self, services, branch_admin_x, branch_y):
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_branch(branch_y.branch_id))
        assert isinstance(outcome.error, UnauthorizedError)

    @pytest.mark.parametrize("target", [
        NotificationTarget.everyone(),
        NotificationTarget.for_role(Role.TEACHER),
        NotificationTarget.for_department("Teaching"),
    ])
    def test_institute_wide_targets_are_unauthorized(self, services, branch_admin_x, target):
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, target)
        assert isinstance(outcome.error, UnauthorizedError)

    def test_user_in_own_branch_is_unauthorized(self, services, branch_admin_x, teacher_x):
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_user(teacher_x.account_id))
        assert isinstance(outcome.error, UnauthorizedError)
        assert outcome.error.resource == "user notification"
        assert services.session.query(NotificationModel).count() == 0

    def test_user_in_other_branch(self, services, branch_admin_x, provision, branch_y):
        teacher_y = provision(Role.TEACHER, branch_y.branch_id)
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_user(teacher_y.account_id))
        assert isinstance(outcome.error, UnauthorizedError)

    def test_student_without_branch(self, services, branch_admin_x, provision):
        student = provision(Role.STUDENT)
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_user(student.account_id))
        assert isinstance(outcome.error, UnauthorizedError)


class TestOtherSenders:

    def test_teacher_cannot_send(self, services, teacher_x, branch_x):
        actor = services.actor(teacher_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_branch(branch_x.branch_id))
        assert isinstance(outcome.error, UnauthorizedError)

    def test_student_cannot_send(self, services, provision):
        student = provision(Role.STUDENT)
        outcome = _send(services, services.actor(student.account_id), NotificationTarget.everyone())
        assert isinstance(outcome.error, UnauthorizedError)

    def test_blocked_branch_admin_cannot_send(self, services, admin_actor, branch_admin_x, branch_x):
        services.identity.block_account(admin_actor, branch_admin_x.account_id)
        actor = services.actor(branch_admin_x.account_id)
        outcome = _send(services, actor, NotificationTarget.for_branch(branch_x.branch_id))
        assert isinstance(outcome.error, UnauthorizedError)


class TestSendValidation:

    @pytest.mark.parametrize("title,message,kind,field", [
        ("  ", "Body", "info", "title"),
        ("Title", "", "info", "message"),
        ("Title", "Body", "urgent", "kind"),
    ])
    def test_invalid_input(self, services, admin_actor, title, message, kind, field):
        outcome = _send(
            services, admin_actor, NotificationTarget.everyone(),
            title=title, message=message, kind=kind,
        )
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.field == field

    def test_unknown_user(self, services, admin_actor):
        outcome = _send(services, admin_actor, NotificationTarget.for_user(uuid4()))
        assert isinstance(outcome.error, AccountNotFoundError)

    def test_unknown_branch(self, services, admin_actor):
        outcome = _send(services, admin_actor, NotificationTarget.for_branch(uuid4()))
        assert isinstance(outcome.error, BranchNotFoundError)

    def test_nothing_is_stored_on_decline(self, services, teacher_x, branch_x):
        _send(services, services.actor(teacher_x.account_id), NotificationTarget.for_branch(branch_x.branch_id))
        assert services.session.query(NotificationModel).count() == 0


class TestMarkRead:

    def test_first_view_then_repeat(self, services, admin_actor, teacher_x):
        record = _send(services, admin_actor, NotificationTarget.everyone()).unwrap()
        reader = services.actor(teacher_x.account_id)

        first = services.notifications.mark_read(reader, record.notification_id)
        assert first.ok and first.changed
        assert first.value == services.clock.now()

        services.clock.advance(3600)
        again = services.notifications.mark_read(reader, record.notification_id)
        assert again.ok
        assert not again.changed
        assert again.value == first.value

    def test_unknown_notification(self, services, teacher_x):
        outcome = services.notifications.mark_read(services.actor(teacher_x.account_id), uuid4())
        assert isinstance(outcome.error, NotificationNotFoundError)

    def test_blocked_reader(self, services, admin_actor, teacher_x):
        record = _send(services, admin_actor, NotificationTarget.everyone()).unwrap()
        services.identity.block_account(admin_actor, teacher_x.account_id)
        outcome = services.notifications.mark_read(services.actor(teacher_x.account_id), record.notification_id)
        assert isinstance(outcome.error, UnauthorizedError)

    def test_non_recipient_may_record_a_view(self, services, admin_actor, teacher_x, provision, branch_x):
        sales = provision(Role.SALES, branch_x.branch_id)
        record = _send(services, admin_actor, NotificationTarget.for_user(teacher_x.account_id)).unwrap()
        outcome = services.notifications.mark_read(services.actor(sales.account_id), record.notification_id)
        assert outcome.ok

    def test_receipts_are_per_reader(self, services, admin_actor, teacher_x, branch_admin_x):
        record = _send(services, admin_actor, NotificationTarget.everyone()).unwrap()
        services.notifications.mark_read(services.actor(teacher_x.account_id), record.notification_id)

        other = services.notifications.mark_read(
            services.actor(branch_admin_x.account_id), record.notification_id
        )
        assert other.changed


class TestNotificationTrail:

    def test_send_is_audited(self, services, admin_actor, branch_x):
        record = _send(services, admin_actor, NotificationTarget.for_branch(branch_x.branch_id)).unwrap()
        trace = services.auditor.get_trace("Notification", record.notification_id)
        assert trace.actions == (AuditAction.NOTIFICATION_SENT,)
        assert trace.entries[0].payload == {"target_type": TargetType.BRANCH.value}

    def test_sent_notification_is_immutable(self, services, admin_actor):
        record = _send(services, admin_actor, NotificationTarget.everyone()).unwrap()
        row = services.session.get(NotificationModel, record.notification_id)
        row.title = "Edited"
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_send_is_logged(self, services, admin_actor, captured_logs):
        record = _send(services, admin_actor, NotificationTarget.everyone()).unwrap()
        sent = [r for r in captured_logs() if r["message"] == "notification_sent"]
        assert sent[-1]["notification_id"] == str(record.notification_id)
        assert sent[-1]["target_type"] == "all"
        assert sent[-1]["actor_id"] == str(admin_actor.account_id)
