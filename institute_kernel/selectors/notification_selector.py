"""
Module: institute_kernel.selectors.notification_selector
Responsibility: Per-account notification inbox and unread counts.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - The audience is evaluated at read time against the reader's *current*
      roles, branch and department.  The SQL predicate built here encodes
      the same rules as ``domain.targeting.is_recipient``.
    - Read flags come from the reader's own receipt rows only.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from institute_kernel.domain.scope import Actor
from institute_kernel.domain.targeting import AudienceMember, NotificationRecord, TargetType
from institute_kernel.exceptions import NotificationNotFoundError
from institute_kernel.models.notification import NotificationModel, NotificationReadModel
from institute_kernel.selectors.account_selector import AccountSelector
from institute_kernel.selectors.base import BaseSelector

DEFAULT_INBOX_LIMIT = 20


@dataclass(frozen=True)
class InboxEntry:
    """A notification as seen by one reader."""

    notification: NotificationRecord
    is_read: bool
    read_at: datetime | None = None


def audience_predicate(member: AudienceMember) -> ColumnElement[bool]:
    """SQL form of ``is_recipient`` for one reader."""
    clauses = [
        NotificationModel.target_type == TargetType.ALL.value,
        and_(
            NotificationModel.target_type == TargetType.USER.value,
            NotificationModel.target_user_id == member.account_id,
        ),
    ]
    if member.branch_id is not None:
        clauses.append(and_(
            NotificationModel.target_type == TargetType.BRANCH.value,
            NotificationModel.target_branch_id == member.branch_id,
        ))
    if member.department is not None:
        clauses.append(and_(
            NotificationModel.target_type == TargetType.DEPARTMENT.value,
            NotificationModel.target_department == member.department,
        ))
    if member.roles:
        clauses.append(and_(
            NotificationModel.target_type == TargetType.ROLE.value,
            NotificationModel.target_role.in_(sorted(r.value for r in member.roles)),
        ))
    return or_(*clauses)


class NotificationSelector(BaseSelector[NotificationModel]):
    """Reads notifications for the calling account."""

    def __init__(self, session):
        super().__init__(session)
        self._accounts = AccountSelector(session)

    def get(self, notification_id: UUID) -> NotificationRecord:
        row = self.session.get(NotificationModel, notification_id)
        if row is None:
            raise NotificationNotFoundError(str(notification_id))
        return row.to_dto()

    def inbox_for(self, actor: Actor, limit: int = DEFAULT_INBOX_LIMIT) -> list[InboxEntry]:
        """
        Notifications addressed to the actor, newest first.

        Blocked accounts have an empty inbox.
        """
        if actor.is_blocked:
            return []
        member = self._accounts.audience_member(actor.account_id)

        receipt = (
            select(NotificationReadModel)
            .where(NotificationReadModel.account_id == actor.account_id)
            .subquery()
        )
        rows = self.session.execute(
            select(NotificationModel, receipt.c.read_at)
            .outerjoin(receipt, receipt.c.notification_id == NotificationModel.id)
            .where(audience_predicate(member))
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id)
            .limit(limit)
        ).all()

        return [
            InboxEntry(
                notification=notification.to_dto(),
                is_read=read_at is not None,
                read_at=read_at,
            )
            for notification, read_at in rows
        ]

    def unread_count(self, actor: Actor) -> int:
        if actor.is_blocked:
            return 0
        member = self._accounts.audience_member(actor.account_id)
        already_read = (
            select(NotificationReadModel.notification_id)
            .where(NotificationReadModel.account_id == actor.account_id)
        )
        return self.session.execute(
            select(func.count(NotificationModel.id))
            .where(audience_predicate(member))
            .where(NotificationModel.id.not_in(already_read))
        ).scalar_one()
