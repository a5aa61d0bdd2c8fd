"""ORM models for the institute kernel."""

from institute_kernel.models.account import (
    AccountModel,
    EmploymentModel,
    RoleAssignmentModel,
    StudentRecordModel,
)
from institute_kernel.models.audit_event import AuditAction, AuditEvent
from institute_kernel.models.branch import BranchModel
from institute_kernel.models.notification import NotificationModel, NotificationReadModel
from institute_kernel.models.request import RequestModel
from institute_kernel.models.sequence import SequenceCounter

__all__ = [
    "AccountModel",
    "AuditAction",
    "AuditEvent",
    "BranchModel",
    "EmploymentModel",
    "NotificationModel",
    "NotificationReadModel",
    "RequestModel",
    "RoleAssignmentModel",
    "SequenceCounter",
    "StudentRecordModel",
]
