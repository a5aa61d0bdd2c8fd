"""Read-only query selectors."""

from institute_kernel.selectors.account_selector import AccountSelector
from institute_kernel.selectors.base import BaseSelector
from institute_kernel.selectors.notification_selector import (
    InboxEntry,
    NotificationSelector,
    audience_predicate,
)
from institute_kernel.selectors.request_selector import RequestSelector, request_resource
from institute_kernel.selectors.scope_resolver import ScopeResolver

__all__ = [
    "AccountSelector",
    "BaseSelector",
    "InboxEntry",
    "NotificationSelector",
    "RequestSelector",
    "ScopeResolver",
    "audience_predicate",
    "request_resource",
]
