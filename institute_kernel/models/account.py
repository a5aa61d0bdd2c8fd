"""
Module: institute_kernel.models.account
Responsibility: ORM persistence for accounts, their role assignments, and the
    employment/student records that carry branch and department membership.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - An account holds each role at most once: UNIQUE(account_id, role).
    - Role values are limited to the closed role set by a check constraint.
    - One employment record and one student record per account at most.
    - Zero role rows means the account is blocked; there is no separate flag.

Failure modes:
    - IntegrityError on a duplicate email, role, or employee/student code.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from institute_kernel.db.base import Base, TrackedBase, UUIDString
from institute_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from institute_kernel.domain.identity import (
        EmploymentRecord,
        Profile,
        StudentRecord,
    )


class AccountModel(TrackedBase):
    """An authenticated principal and its profile."""

    __tablename__ = "accounts"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Account {self.email}>"

    def to_dto(self) -> Profile:
        from institute_kernel.domain.identity import Profile

        return Profile(
            account_id=self.id,
            full_name=self.full_name,
            email=self.email,
            phone=self.phone,
            city=self.city,
        )


class RoleAssignmentModel(Base):
    """One held role.  The set of rows for an account is its role set."""

    __tablename__ = "role_assignments"

    __table_args__ = (
        UniqueConstraint("account_id", "role", name="uq_role_assignments_account_role"),
        CheckConstraint(
            "role IN ('institute_admin', 'branch_admin', 'teacher', "
            "'sales', 'support', 'student')",
            name="ck_role_assignments_valid_role",
        ),
        Index("idx_role_assignments_role", "role"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    assigned_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<RoleAssignment {self.account_id}:{self.role}>"


class EmploymentModel(TrackedBase):
    """Employment record: the branch and department of an employee-class account."""

    __tablename__ = "employment_records"

    __table_args__ = (
        Index("idx_employment_branch", "branch_id"),
        Index("idx_employment_department", "department"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
        unique=True,
    )
    employee_code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    designation: Mapped[str | None] = mapped_column(String(100), nullable=True)
    salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Employment {self.employee_code} branch={self.branch_id}>"

    def to_dto(self) -> EmploymentRecord:
        from institute_kernel.domain.identity import EmploymentRecord

        return EmploymentRecord(
            account_id=self.account_id,
            employee_code=self.employee_code,
            branch_id=self.branch_id,
            department=self.department,
            designation=self.designation,
            is_active=self.is_active,
        )


class StudentRecordModel(TrackedBase):
    """Student enrollment record.  Branch is optional."""

    __tablename__ = "student_records"

    __table_args__ = (
        Index("idx_student_records_branch", "branch_id"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
        unique=True,
    )
    student_code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<StudentRecord {self.student_code}>"

    def to_dto(self) -> StudentRecord:
        from institute_kernel.domain.identity import StudentRecord

        return StudentRecord(
            account_id=self.account_id,
            student_code=self.student_code,
            branch_id=self.branch_id,
        )
