"""
Role-based access.

Two tables drive every decision:
- ROLE_CAPABILITIES: what each role may do.
- STUDENT_SCOPES: which students each role may see (staff: any in tenant,
  parent: linked children, student: self).
Handlers depend on capabilities, never on role names.
"""

from typing import Awaitable, Callable, Dict, FrozenSet

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import Role
from app.core.exceptions import PermissionDeniedError
from app.core.models import Parent, ParentStudent, Student


class Capability:
    FEES_MANAGE = "fees:manage"
    FEES_READ = "fees:read"
    FEES_OPT_IN = "fees:opt_in"
    PAYMENTS_RECORD = "payments:record"
    PAYMENTS_PAY_ONLINE = "payments:pay_online"
    PAYMENTS_REVERSE = "payments:reverse"
    LEDGER_READ = "ledger:read"
    LEDGER_WRITE = "ledger:write"
    PAYROLL_MANAGE = "payroll:manage"
    PAYROLL_READ = "payroll:read"
    REMINDERS_SEND = "reminders:send"


_ADMIN_CAPABILITIES = frozenset(
    {
        Capability.FEES_MANAGE,
        Capability.FEES_READ,
        Capability.FEES_OPT_IN,
        Capability.PAYMENTS_RECORD,
        Capability.PAYMENTS_PAY_ONLINE,
        Capability.PAYMENTS_REVERSE,
        Capability.LEDGER_READ,
        Capability.LEDGER_WRITE,
        Capability.PAYROLL_MANAGE,
        Capability.PAYROLL_READ,
        Capability.REMINDERS_SEND,
    }
)

ROLE_CAPABILITIES: Dict[Role, FrozenSet[str]] = {
    Role.SUPER_ADMIN: _ADMIN_CAPABILITIES,
    Role.ADMIN: _ADMIN_CAPABILITIES,
    Role.TEACHER: frozenset({Capability.FEES_READ, Capability.PAYROLL_READ}),
    Role.PARENT: frozenset({Capability.FEES_READ, Capability.FEES_OPT_IN, Capability.PAYMENTS_PAY_ONLINE}),
    Role.STUDENT: frozenset({Capability.FEES_READ, Capability.PAYMENTS_PAY_ONLINE}),
}


def capabilities_for(role: Role) -> FrozenSet[str]:
    return ROLE_CAPABILITIES.get(role, frozenset())


def require_capability(capability: str):
    """
    Dependency factory to enforce a capability.

    Example:
        Depends(require_capability(Capability.FEES_MANAGE))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if capability not in capabilities_for(current_user.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker


# --- Student visibility ---
StudentScope = Callable[[AsyncSession, CurrentUser, Student], Awaitable[bool]]


async def _any_student_in_tenant(db: AsyncSession, user: CurrentUser, student: Student) -> bool:
    return student.tenant_id == user.tenant_id


async def _linked_children(db: AsyncSession, user: CurrentUser, student: Student) -> bool:
    link = (
        await db.execute(
            select(ParentStudent.id)
            .join(Parent, ParentStudent.parent_id == Parent.id)
            .where(
                Parent.user_id == user.id,
                Parent.tenant_id == user.tenant_id,
                ParentStudent.student_id == student.id,
            )
        )
    ).first()
    return link is not None


async def _self_only(db: AsyncSession, user: CurrentUser, student: Student) -> bool:
    return student.tenant_id == user.tenant_id and student.user_id == user.id


STUDENT_SCOPES: Dict[Role, StudentScope] = {
    Role.SUPER_ADMIN: _any_student_in_tenant,
    Role.ADMIN: _any_student_in_tenant,
    Role.TEACHER: _any_student_in_tenant,
    Role.PARENT: _linked_children,
    Role.STUDENT: _self_only,
}


async def ensure_student_access(db: AsyncSession, user: CurrentUser, student: Student) -> None:
    """Raise PermissionDeniedError unless the caller's role scope covers this student."""
    scope = STUDENT_SCOPES.get(user.role)
    if scope is None or not await scope(db, user, student):
        raise PermissionDeniedError("You do not have access to this student's records")


def sees_all_payroll(user: CurrentUser) -> bool:
    """Payroll managers see every salary payment; everyone else only their own."""
    return Capability.PAYROLL_MANAGE in capabilities_for(user.role)
