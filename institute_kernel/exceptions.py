"""
Typed Exception Hierarchy for the Institute Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (web handlers, background jobs, admin scripts) must be
able to tell "you may not do this" apart from "this request is already
closed" apart from "the database is down" without parsing message strings.

Every error therefore:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)
  4. Has a USER_MESSAGE suitable for showing to an end user verbatim

Example:
    outcome = workflow.branch_approve(actor, request_id)
    if not outcome.ok:
        if isinstance(outcome.error, UnauthorizedError):
            flash(outcome.error.user_message)     # "You don't have permission..."
        api_response(code=outcome.error.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InstituteKernelError:

    InstituteKernelError (base)
    |
    +-- UnauthorizedError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- BranchNotFoundError
    |   +-- RequestNotFoundError
    |   +-- NotificationNotFoundError
    |
    +-- InvalidTransitionError
    |   +-- RequestAlreadyFinalizedError
    |
    +-- ValidationError
    |   +-- MissingRejectionReasonError
    |   +-- InvalidTargetError
    |   +-- BranchRequiredError
    |   +-- InvalidRoleError
    |   +-- InactiveBranchError
    |
    +-- ConflictError
    |
    +-- ImmutabilityViolationError
    +-- AuditChainBrokenError

===============================================================================
RAISED vs RETURNED
===============================================================================

The guard and the request workflow never raise for ordinary business
outcomes.  A denied action or an illegal transition is returned inside an
``Outcome`` whose ``error`` attribute holds one of these instances, so the
decline path cannot be forgotten.  ``Outcome.unwrap()`` raises the carried
error for callers that prefer exceptions.

Programming and environment faults (store unreachable, schema mismatch)
propagate as the underlying SQLAlchemy exceptions and are never wrapped.
"""


class InstituteKernelError(Exception):
    """
    Base exception for all institute kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INSTITUTE_KERNEL_ERROR"
    user_message: str = "Something went wrong. Please try again."


# Access


class UnauthorizedError(InstituteKernelError):
    """The access guard denied the action."""

    code: str = "UNAUTHORIZED"
    user_message: str = "You don't have permission to perform this action."

    def __init__(self, actor_id: str, action: str, resource: str, reason: str = ""):
        self.actor_id = actor_id
        self.action = action
        self.resource = resource
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Actor {actor_id} may not {action} {resource}{detail}"
        )


# Lookup


class NotFoundError(InstituteKernelError):
    """
    A referenced entity does not exist.

    Fail-closed: callers must treat this as "no access", never as
    "full access by default".
    """

    code: str = "NOT_FOUND"
    user_message: str = "The requested record could not be found."


class AccountNotFoundError(NotFoundError):
    """Account with given ID was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class BranchNotFoundError(NotFoundError):
    """Branch with given ID or code was not found."""

    code: str = "BRANCH_NOT_FOUND"

    def __init__(self, branch_ref: str):
        self.branch_ref = branch_ref
        super().__init__(f"Branch not found: {branch_ref}")


class RequestNotFoundError(NotFoundError):
    """Request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request not found: {request_id}")


class NotificationNotFoundError(NotFoundError):
    """Notification with given ID was not found."""

    code: str = "NOTIFICATION_NOT_FOUND"

    def __init__(self, notification_id: str):
        self.notification_id = notification_id
        super().__init__(f"Notification not found: {notification_id}")


# Workflow


class InvalidTransitionError(InstituteKernelError):
    """A request status change is not an edge of the approval state machine."""

    code: str = "INVALID_TRANSITION"
    user_message: str = "This action is not allowed for the request in its current state."

    def __init__(self, request_id: str, from_status: str, to_status: str):
        self.request_id = request_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for request {request_id}: "
            f"{from_status} -> {to_status}"
        )


class RequestAlreadyFinalizedError(InvalidTransitionError):
    """
    The request is in a terminal status (admin_approved or rejected).

    Terminal requests are never silently re-transitioned; a rejected
    request cannot be resubmitted, the requester must create a new one.
    """

    code: str = "REQUEST_ALREADY_FINALIZED"
    user_message: str = "This request was already finalized."


# Validation


class ValidationError(InstituteKernelError):
    """Input failed validation before any state was touched."""

    code: str = "VALIDATION_ERROR"
    user_message: str = "Some of the information provided is invalid."

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class MissingRejectionReasonError(ValidationError):
    """Rejecting a request requires a non-blank reason."""

    code: str = "MISSING_REJECTION_REASON"
    user_message: str = "Please provide a reason for rejecting this request."

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__("reason", f"a rejection reason is required for request {request_id}")


class InvalidTargetError(ValidationError):
    """Notification target specification is malformed."""

    code: str = "INVALID_TARGET"

    def __init__(self, target_type: str, reason: str):
        self.target_type = target_type
        super().__init__("target", f"{target_type}: {reason}")


class BranchRequiredError(ValidationError):
    """An employee-class role was assigned to an account without a branch."""

    code: str = "BRANCH_REQUIRED"
    user_message: str = "Branch is required for this role."

    def __init__(self, account_id: str, roles: tuple[str, ...]):
        self.account_id = account_id
        self.roles = roles
        super().__init__(
            "branch",
            f"account {account_id} holds employee roles {list(roles)} but has no branch",
        )


class InvalidRoleError(ValidationError):
    """A role name outside the closed role set."""

    code: str = "INVALID_ROLE"

    def __init__(self, role: str):
        self.role = role
        super().__init__("role", f"unknown role {role!r}")


class InactiveBranchError(ValidationError):
    """The branch is inactive and cannot take new employees or requests."""

    code: str = "INACTIVE_BRANCH"

    def __init__(self, branch_id: str):
        self.branch_id = branch_id
        super().__init__("branch", f"branch {branch_id} is inactive")


# Concurrency


class ConflictError(InstituteKernelError):
    """
    A concurrent status mutation won the race.

    Callers should re-read the request and retry once; never blindly
    resubmit the same mutation.
    """

    code: str = "CONFLICT"
    user_message: str = "This request was changed by someone else. Please refresh and try again."

    def __init__(self, request_id: str, expected_status: str, actual_status: str):
        self.request_id = request_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Request {request_id} changed concurrently: "
            f"expected {expected_status}, found {actual_status}"
        )


# Audit


class ImmutabilityViolationError(InstituteKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(InstituteKernelError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
