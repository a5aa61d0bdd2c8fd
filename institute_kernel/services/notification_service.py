"""
NotificationService -- sending targeted notifications and recording reads.

Responsibility:
    Persists a notification with its declarative target after checking
    that the sender may address that audience, and records per-account
    first-view receipts.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - The audience is never materialized; only the target is stored.
    - Only an institute admin may use a target other than ``branch``.
    - SEND is decided by ``AccessGuard`` against a resource whose branch is
      the target branch, or none for every other target type. A branch
      admin can therefore only reach its own branch.
    - A receipt records the first view; later views are no-ops.

Failure modes:
    Business declines are returned as ``Outcome.failure``:
    UnauthorizedError, ValidationError, InvalidTargetError,
    AccountNotFoundError, BranchNotFoundError, NotificationNotFoundError.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from institute_kernel.domain.access import AccessGuard, Action, Resource, ResourceKind
from institute_kernel.domain.clock import Clock, SystemClock
from institute_kernel.domain.identity import Role
from institute_kernel.domain.outcomes import Outcome
from institute_kernel.domain.scope import Actor
from institute_kernel.domain.targeting import (
    NotificationKind,
    NotificationRecord,
    NotificationTarget,
    TargetType,
)
from institute_kernel.exceptions import (
    AccountNotFoundError,
    BranchNotFoundError,
    InstituteKernelError,
    NotificationNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from institute_kernel.logging_config import LogContext, get_logger
from institute_kernel.models.branch import BranchModel
from institute_kernel.models.notification import NotificationModel, NotificationReadModel
from institute_kernel.selectors.account_selector import AccountSelector
from institute_kernel.services.auditor_service import AuditorService
from institute_kernel.services.base import BaseService

logger = get_logger("services.notifications")


class NotificationService(BaseService[NotificationModel]):
    """Sends notifications and records read receipts."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        guard: AccessGuard | None = None,
        clock: Clock | None = None,
        kinds: Collection[NotificationKind] | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._kinds = frozenset(kinds) if kinds is not None else frozenset(NotificationKind)
        self._guard = guard if guard is not None else AccessGuard()
        self._clock = clock or SystemClock()
        self._accounts = AccountSelector(session, self._guard)

    def send(
        self,
        actor: Actor,
        *,
        title: str,
        message: str,
        target: NotificationTarget,
        kind: NotificationKind | str = NotificationKind.GENERAL,
    ) -> Outcome[NotificationRecord]:
        with LogContext.bind(actor_id=str(actor.account_id)):
            if not title or not title.strip():
                return self._decline(ValidationError("title", "must not be blank"))
            if not message or not message.strip():
                return self._decline(ValidationError("message", "must not be blank"))
            try:
                parsed_kind = NotificationKind(kind)
            except ValueError:
                parsed_kind = None
            if parsed_kind not in self._kinds:
                return self._decline(ValidationError("kind", f"unknown or disabled kind {kind!r}"))

            if target.target_type != TargetType.BRANCH and not actor.has_role(Role.INSTITUTE_ADMIN):
                return self._decline(UnauthorizedError(
                    str(actor.account_id),
                    "send",
                    f"{target.target_type.value} notification",
                    "branch senders may only target their own branch",
                ))

            try:
                audience_branch = self._audience_branch(target)
            except (AccountNotFoundError, BranchNotFoundError) as exc:
                return self._decline(exc)

            denied = self._guard.check(
                actor,
                Action.SEND,
                Resource(ResourceKind.NOTIFICATION, branch_id=audience_branch),
            )
            if denied is not None:
                return self._decline(denied)

            row = NotificationModel.from_target(
                target,
                title=title.strip(),
                message=message.strip(),
                kind=parsed_kind.value,
                sent_by=actor.account_id,
                created_at=self._clock.now(),
            )
            self.session.add(row)
            self.session.flush()

            self._auditor.record_notification_sent(
                row.id, target.target_type.value, actor.account_id
            )
            logger.info(
                "notification_sent",
                extra={
                    "notification_id": str(row.id),
                    "target_type": target.target_type.value,
                    "kind": parsed_kind.value,
                },
            )
            return Outcome.success(row.to_dto())

    def mark_read(self, actor: Actor, notification_id: UUID) -> Outcome[datetime]:
        """
        Record the actor's first view of a notification.

        Returns the receipt time; ``changed`` is False when the notification
        had already been read.  Recipient membership is not required.
        """
        with LogContext.bind(actor_id=str(actor.account_id)):
            if actor.is_blocked:
                return self._decline(UnauthorizedError(
                    str(actor.account_id), "read", "notification", "account is blocked"
                ))
            if self.session.get(NotificationModel, notification_id) is None:
                return self._decline(NotificationNotFoundError(str(notification_id)))

            existing = self._receipt(notification_id, actor.account_id)
            if existing is not None:
                return Outcome.success(existing.read_at, changed=False)

            savepoint = self.session.begin_nested()
            try:
                receipt = NotificationReadModel(
                    notification_id=notification_id,
                    account_id=actor.account_id,
                    read_at=self._clock.now(),
                )
                self.session.add(receipt)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                # Another session recorded the first view concurrently.
                savepoint.rollback()
                existing = self._receipt(notification_id, actor.account_id)
                if existing is None:
                    raise
                return Outcome.success(existing.read_at, changed=False)

            logger.debug(
                "notification_read",
                extra={"notification_id": str(notification_id)},
            )
            return Outcome.success(receipt.read_at)

    def _receipt(self, notification_id: UUID, account_id: UUID) -> NotificationReadModel | None:
        return self.session.execute(
            select(NotificationReadModel).where(
                NotificationReadModel.notification_id == notification_id,
                NotificationReadModel.account_id == account_id,
            )
        ).scalar_one_or_none()

    def _audience_branch(self, target: NotificationTarget) -> UUID | None:
        match target.target_type:
            case TargetType.BRANCH:
                if self.session.get(BranchModel, target.branch_id) is None:
                    raise BranchNotFoundError(str(target.branch_id))
                return target.branch_id
            case TargetType.USER:
                if not self._accounts.exists(target.user_id):
                    raise AccountNotFoundError(str(target.user_id))
        return None

    def _decline(self, error: InstituteKernelError) -> Outcome:
        logger.warning(
            "notification_action_declined",
            extra={"error_code": error.code, "detail": str(error)},
        )
        return Outcome.failure(error)
