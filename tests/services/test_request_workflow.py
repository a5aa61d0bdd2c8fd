"""
Tests for RequestWorkflowService.

Covers:
- Submission rules (employees only, closed types, branch snapshot)
- The two-tier approval scenario end to end
- Idempotent re-approval, terminal requests, mandatory rejection reason
- Cross-branch isolation for approvers
- Audit trail and ORM immutability of finalized requests
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from institute_kernel.domain.identity import Role
from institute_kernel.domain.requests import RequestStatus, RequestType
from institute_kernel.exceptions import (
    BranchRequiredError,
    ImmutabilityViolationError,
    InactiveBranchError,
    InvalidTransitionError,
    MissingRejectionReasonError,
    RequestAlreadyFinalizedError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from institute_kernel.models.account import EmploymentModel
from institute_kernel.models.audit_event import AuditAction
from institute_kernel.models.request import RequestModel


class TestSubmit:

    def test_employee_submits_pending_request(self, services, teacher_x, branch_x):
        outcome = services.requests.submit(
            services.actor(teacher_x.account_id),
            "leave",
            "  Leave on Friday  ",
            "  Family function\nout of town.",
        )
        assert outcome.ok
        assert outcome.changed
        request = outcome.value
        assert request.status == RequestStatus.PENDING
        assert request.request_type == RequestType.LEAVE
        assert request.requester_id == teacher_x.account_id
        assert request.branch_id == branch_x.branch_id
        assert request.subject == "Leave on Friday"
        assert request.description == "  Family function\nout of town."
        assert request.created_at == services.clock.now()

    def test_every_employee_role_may_submit(self, services, provision, branch_x):
        for role in (Role.BRANCH_ADMIN, Role.TEACHER, Role.SALES, Role.SUPPORT):
            account = provision(role, branch_x.branch_id)
            outcome = services.requests.submit(
                services.actor(account.account_id), RequestType.RESOURCE, "Projector", "Room 4"
            )
            assert outcome.ok, role

    def test_student_cannot_submit(self, services, provision, branch_x):
        student = provision(Role.STUDENT, branch_x.branch_id)
        outcome = services.requests.submit(
            services.actor(student.account_id), "problem", "Fan broken", "Room 2"
        )
        assert isinstance(outcome.error, UnauthorizedError)

    def test_institute_admin_cannot_submit(self, services, admin_actor):
        outcome = services.requests.submit(admin_actor, "other", "Subject", "Body")
        assert isinstance(outcome.error, UnauthorizedError)

    def test_blocked_employee_cannot_submit(self, services, admin_actor, teacher_x):
        services.identity.block_account(admin_actor, teacher_x.account_id)
        outcome = services.requests.submit(
            services.actor(teacher_x.account_id), "leave", "Leave", "Please"
        )
        assert isinstance(outcome.error, UnauthorizedError)

    @pytest.mark.parametrize("request_type,subject,description,field", [
        ("vacation", "Leave", "Two days", "request_type"),
        ("leave", "   ", "Two days", "subject"),
        ("leave", "Leave", "", "description"),
    ])
    def test_invalid_input(self, services, teacher_x, request_type, subject, description, field):
        outcome = services.requests.submit(
            services.actor(teacher_x.account_id), request_type, subject, description
        )
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.field == field
        assert outcome.code == "VALIDATION_ERROR"

    def test_inactive_branch_refuses_requests(self, services, admin_actor, teacher_x, branch_x):
        services.identity.set_branch_active(admin_actor, branch_x.branch_id, False)
        outcome = services.requests.submit(
            services.actor(teacher_x.account_id), "leave", "Leave", "Please"
        )
        assert isinstance(outcome.error, InactiveBranchError)

    def test_employee_without_employment_record(self, services, teacher_x):
        # Resolve the actor while the record still exists, then remove it.
        actor = services.actor(teacher_x.account_id)
        employment = services.session.execute(
            select(EmploymentModel).where(EmploymentModel.account_id == teacher_x.account_id)
        ).scalar_one()
        services.session.delete(employment)
        services.session.flush()

        outcome = services.requests.submit(actor, "leave", "Leave", "Please")
        assert isinstance(outcome.error, BranchRequiredError)

    def test_submission_is_audited_and_logged(self, services, teacher_x, captured_logs):
        request = services.requests.submit(
            services.actor(teacher_x.account_id), "problem", "Wi-Fi", "Down since noon"
        ).unwrap()
        trace = services.auditor.get_trace("Request", request.request_id)
        assert trace.actions == (AuditAction.REQUEST_SUBMITTED,)
        assert trace.entries[0].payload["request_type"] == "problem"

        submitted = [r for r in captured_logs() if r["message"] == "request_submitted"]
        assert submitted[-1]["request_id"] == str(request.request_id)
        assert submitted[-1]["actor_id"] == str(teacher_x.account_id)


class TestTwoTierApproval:

    def test_branch_then_institute_approval(
        self, services, admin, admin_actor, branch_admin_x, teacher_x, submit_request, provision
    ):
        request = submit_request(teacher_x.account_id)

        services.clock.advance(60)
        approved = services.requests.branch_approve(
            services.actor(branch_admin_x.account_id), request.request_id
        )
        assert approved.ok and approved.changed
        assert approved.value.status == RequestStatus.BRANCH_APPROVED
        assert approved.value.branch_approved_by == branch_admin_x.account_id
        assert approved.value.branch_approved_at == services.clock.now()

        services.clock.advance(60)
        final = services.requests.admin_approve(admin_actor, request.request_id)
        assert final.ok and final.changed
        assert final.value.status == RequestStatus.ADMIN_APPROVED
        assert final.value.admin_approved_by == admin.account_id
        assert final.value.is_terminal

        # A second institute admin repeating the final approval is a no-op.
        second_admin = provision(Role.INSTITUTE_ADMIN)
        services.clock.advance(60)
        again = services.requests.admin_approve(
            services.actor(second_admin.account_id), request.request_id
        )
        assert again.ok
        assert not again.changed
        assert again.value.admin_approved_by == admin.account_id
        assert again.value.admin_approved_at == final.value.admin_approved_at

        trace = services.auditor.get_trace("Request", request.request_id)
        assert trace.actions == (
            AuditAction.REQUEST_SUBMITTED,
            AuditAction.REQUEST_BRANCH_APPROVED,
            AuditAction.REQUEST_ADMIN_APPROVED,
        )
        assert services.auditor.validate_chain()

    def test_admin_cannot_skip_branch_tier(self, services, admin_actor, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        outcome = services.requests.admin_approve(admin_actor, request.request_id)
        assert isinstance(outcome.error, InvalidTransitionError)
        assert not isinstance(outcome.error, RequestAlreadyFinalizedError)
        assert outcome.code == "INVALID_TRANSITION"

    def test_branch_approval_twice_keeps_first_approver(
        self, services, provision, branch_x, branch_admin_x, teacher_x, submit_request
    ):
        request = submit_request(teacher_x.account_id)
        first = services.requests.branch_approve(
            services.actor(branch_admin_x.account_id), request.request_id
        ).unwrap()

        other_admin = provision(Role.BRANCH_ADMIN, branch_x.branch_id)
        services.clock.advance(300)
        again = services.requests.branch_approve(
            services.actor(other_admin.account_id), request.request_id
        )
        assert again.ok
        assert not again.changed
        assert again.value == first

        trace = services.auditor.get_trace("Request", request.request_id)
        assert trace.actions.count(AuditAction.REQUEST_BRANCH_APPROVED) == 1

    def test_institute_admin_may_act_as_branch_tier(self, services, admin_actor, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        outcome = services.requests.branch_approve(admin_actor, request.request_id)
        assert outcome.value.status == RequestStatus.BRANCH_APPROVED

    def test_branch_admin_may_approve_own_request(self, services, branch_admin_x, submit_request):
        request = submit_request(branch_admin_x.account_id)
        outcome = services.requests.branch_approve(
            services.actor(branch_admin_x.account_id), request.request_id
        )
        assert outcome.ok
        assert outcome.value.branch_approved_by == branch_admin_x.account_id


class TestApprovalAuthority:

    def test_other_branch_admin_is_unauthorized(
        self, services, branch_admin_y, teacher_x, submit_request
    ):
        request = submit_request(teacher_x.account_id)
        outcome = services.requests.branch_approve(
            services.actor(branch_admin_y.account_id), request.request_id
        )
        assert isinstance(outcome.error, UnauthorizedError)
        assert outcome.user_message == "You don't have permission to perform this action."

        current = services.request_reads.get(services.actor(teacher_x.account_id), request.request_id)
        assert current.value.status == RequestStatus.PENDING

    def test_requester_cannot_approve(self, services, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        outcome = services.requests.branch_approve(
            services.actor(teacher_x.account_id), request.request_id
        )
        assert isinstance(outcome.error, UnauthorizedError)

    def test_branch_admin_cannot_give_final_approval(
        self, services, branch_admin_x, teacher_x, submit_request
    ):
        request = submit_request(teacher_x.account_id)
        approver = services.actor(branch_admin_x.account_id)
        services.requests.branch_approve(approver, request.request_id).unwrap()

        outcome = services.requests.admin_approve(approver, request.request_id)
        assert isinstance(outcome.error, UnauthorizedError)

    def test_blocked_approver(self, services, admin_actor, branch_admin_x, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        services.identity.block_account(admin_actor, branch_admin_x.account_id)
        outcome = services.requests.branch_approve(
            services.actor(branch_admin_x.account_id), request.request_id
        )
        assert isinstance(outcome.error, UnauthorizedError)

    def test_unknown_request(self, services, admin_actor):
        outcome = services.requests.branch_approve(admin_actor, uuid4())
        assert isinstance(outcome.error, RequestNotFoundError)
        with pytest.raises(RequestNotFoundError):
            outcome.unwrap()

    def test_request_keeps_submission_branch_after_move(
        self, services, admin_actor, branch_admin_x, branch_admin_y, teacher_x, branch_y, submit_request
    ):
        request = submit_request(teacher_x.account_id)
        services.identity.assign_employment(admin_actor, teacher_x.account_id, branch_id=branch_y.branch_id)

        denied = services.requests.branch_approve(
            services.actor(branch_admin_y.account_id), request.request_id
        )
        assert isinstance(denied.error, UnauthorizedError)

        approved = services.requests.branch_approve(
            services.actor(branch_admin_x.account_id), request.request_id
        )
        assert approved.ok


class TestReject:

    def test_rejection_requires_reason(self, services, branch_admin_x, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        for reason in ("", "   ", None):
            outcome = services.requests.reject(
                services.actor(branch_admin_x.account_id), request.request_id, reason
            )
            assert isinstance(outcome.error, MissingRejectionReasonError)
            assert isinstance(outcome.error, ValidationError)
            assert outcome.user_message == "Please provide a reason for rejecting this request."

    def test_reason_is_stored_verbatim(self, services, branch_admin_x, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        reason = "  Exams that week.\nPlease pick another date. "
        outcome = services.requests.reject(
            services.actor(branch_admin_x.account_id), request.request_id, reason
        )
        assert outcome.value.status == RequestStatus.REJECTED
        assert outcome.value.rejection_reason == reason
        assert outcome.value.rejected_by == branch_admin_x.account_id

        trace = services.auditor.get_trace("Request", request.request_id)
        assert trace.last_action == AuditAction.REQUEST_REJECTED
        assert trace.entries[-1].payload["reason"] == reason

    def test_institute_admin_rejects_after_branch_approval(
        self, services, admin_actor, branch_admin_x, teacher_x, submit_request
    ):
        request = submit_request(teacher_x.account_id)
        services.requests.branch_approve(
            services.actor(branch_admin_x.account_id), request.request_id
        ).unwrap()
        outcome = services.requests.reject(admin_actor, request.request_id, "Budget freeze")
        assert outcome.value.status == RequestStatus.REJECTED
        assert outcome.value.branch_approved_by == branch_admin_x.account_id

    def test_rejected_request_is_final(self, services, admin_actor, branch_admin_x, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        approver = services.actor(branch_admin_x.account_id)
        services.requests.reject(approver, request.request_id, "No").unwrap()

        again = services.requests.reject(approver, request.request_id, "Still no")
        assert isinstance(again.error, RequestAlreadyFinalizedError)
        assert again.user_message == "This request was already finalized."

        approve = services.requests.branch_approve(approver, request.request_id)
        assert isinstance(approve.error, RequestAlreadyFinalizedError)

        final = services.requests.admin_approve(admin_actor, request.request_id)
        assert isinstance(final.error, RequestAlreadyFinalizedError)

    def test_admin_approved_request_cannot_be_rejected(
        self, services, admin_actor, branch_admin_x, teacher_x, submit_request
    ):
        request = submit_request(teacher_x.account_id)
        services.requests.branch_approve(services.actor(branch_admin_x.account_id), request.request_id).unwrap()
        services.requests.admin_approve(admin_actor, request.request_id).unwrap()

        outcome = services.requests.reject(admin_actor, request.request_id, "Changed my mind")
        assert isinstance(outcome.error, RequestAlreadyFinalizedError)

    def test_declines_are_logged_as_warnings(self, services, branch_admin_x, teacher_x, submit_request, captured_logs):
        request = submit_request(teacher_x.account_id)
        services.requests.reject(services.actor(branch_admin_x.account_id), request.request_id, "")
        declined = [r for r in captured_logs() if r["message"] == "request_action_declined"]
        assert declined[-1]["level"] == "WARNING"
        assert declined[-1]["error_code"] == "MISSING_REJECTION_REASON"
        assert declined[-1]["request_id"] == str(request.request_id)


class TestFinalizedRequestImmutability:

    def _finalized_row(self, services, branch_admin_x, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        services.requests.reject(services.actor(branch_admin_x.account_id), request.request_id, "No")
        return services.session.get(RequestModel, request.request_id)

    def test_orm_update_of_finalized_request_is_blocked(
        self, services, branch_admin_x, teacher_x, submit_request
    ):
        row = self._finalized_row(services, branch_admin_x, teacher_x, submit_request)
        row.subject = "Rewritten"
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()

    def test_requests_cannot_be_deleted(self, services, teacher_x, submit_request):
        request = submit_request(teacher_x.account_id)
        row = services.session.get(RequestModel, request.request_id)
        services.session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            services.session.flush()
