"""Kernel services: the write side.  Services flush, callers commit."""

from institute_kernel.services.auditor_service import AuditorService, AuditTrace
from institute_kernel.services.container import KernelServices
from institute_kernel.services.identity_service import IdentityService
from institute_kernel.services.notification_service import NotificationService
from institute_kernel.services.request_workflow import RequestWorkflowService
from institute_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditTrace",
    "AuditorService",
    "IdentityService",
    "KernelServices",
    "NotificationService",
    "RequestWorkflowService",
    "SequenceService",
]
