"""
Tests for notification targeting (``institute_kernel.domain.targeting``).

Invariants tested:
- Each target type matches exactly the accounts its rule describes,
  evaluated against the reader's live attributes.
- A target carries exactly the qualifier its type requires.
"""

from uuid import uuid4

import pytest

from institute_kernel.domain.identity import Role
from institute_kernel.domain.targeting import (
    AudienceMember,
    NotificationKind,
    NotificationRecord,
    NotificationTarget,
    TargetType,
    is_recipient,
    parse_target,
    recipients_of,
)
from institute_kernel.exceptions import InvalidTargetError

BRANCH_X = uuid4()
BRANCH_Y = uuid4()

# A: student in X, B: teacher in X, C: teacher in Y
A = AudienceMember(uuid4(), frozenset({Role.STUDENT}), branch_id=BRANCH_X)
B = AudienceMember(uuid4(), frozenset({Role.TEACHER}), branch_id=BRANCH_X, department="Teaching")
C = AudienceMember(uuid4(), frozenset({Role.TEACHER}), branch_id=BRANCH_Y, department="Teaching")
EVERYONE = (A, B, C)


def audience(target: NotificationTarget) -> set:
    matches = recipients_of(target)
    return {m.account_id for m in EVERYONE if matches(m)}


class TestTargetRules:

    def test_branch_target_matches_members_of_that_branch(self):
        assert audience(NotificationTarget.for_branch(BRANCH_X)) == {A.account_id, B.account_id}

    def test_role_target_matches_current_role_holders(self):
        assert audience(NotificationTarget.for_role(Role.TEACHER)) == {B.account_id, C.account_id}

    def test_all_target_matches_everyone(self):
        assert audience(NotificationTarget.everyone()) == {m.account_id for m in EVERYONE}

    def test_department_target_is_case_sensitive(self):
        assert audience(NotificationTarget.for_department("Teaching")) == {B.account_id, C.account_id}
        assert audience(NotificationTarget.for_department("teaching")) == set()

    def test_user_target_matches_exactly_one_account(self):
        assert audience(NotificationTarget.for_user(C.account_id)) == {C.account_id}

    def test_member_without_branch_never_matches_branch_target(self):
        loose = AudienceMember(uuid4(), frozenset({Role.STUDENT}))
        assert not is_recipient(NotificationTarget.for_branch(BRANCH_X), loose)

    def test_role_change_is_seen_at_read_time(self):
        target = NotificationTarget.for_role(Role.SALES)
        before = AudienceMember(B.account_id, frozenset({Role.TEACHER}), branch_id=BRANCH_X)
        after = AudienceMember(B.account_id, frozenset({Role.TEACHER, Role.SALES}), branch_id=BRANCH_X)
        assert not is_recipient(target, before)
        assert is_recipient(target, after)

    def test_recipients_of_accepts_a_record(self):
        record = NotificationRecord(
            notification_id=uuid4(),
            title="Holiday",
            message="Closed on Monday",
            kind=NotificationKind.INFO,
            target=NotificationTarget.for_branch(BRANCH_Y),
        )
        assert recipients_of(record)(C)
        assert not recipients_of(record)(A)


class TestTargetValidation:

    def test_branch_target_requires_branch(self):
        with pytest.raises(InvalidTargetError):
            NotificationTarget(TargetType.BRANCH)

    def test_blank_department_is_rejected(self):
        with pytest.raises(InvalidTargetError):
            NotificationTarget.for_department("   ")

    def test_extra_qualifier_is_rejected(self):
        with pytest.raises(InvalidTargetError):
            NotificationTarget(TargetType.ALL, branch_id=BRANCH_X)

    def test_mismatched_qualifier_is_rejected(self):
        with pytest.raises(InvalidTargetError):
            NotificationTarget(TargetType.ROLE, role=Role.TEACHER, user_id=uuid4())

    def test_parse_target_builds_role_target(self):
        target = parse_target("role", role="support")
        assert target.target_type == TargetType.ROLE
        assert target.role == Role.SUPPORT

    def test_parse_target_rejects_unknown_type(self):
        with pytest.raises(InvalidTargetError) as exc_info:
            parse_target("everyone")
        assert exc_info.value.code == "INVALID_TARGET"

    def test_parse_target_rejects_unknown_role(self):
        with pytest.raises(InvalidTargetError):
            parse_target("role", role="principal")
