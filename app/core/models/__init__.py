from app.core.models.tenant import Tenant
from app.core.models.class_model import SchoolClass
from app.core.models.student import Parent, ParentStudent, Student
from app.core.models.teacher import Teacher
from app.core.models.fee_type import FeeType
from app.core.models.fee import Fee
from app.core.models.fee_eligibility import FeeEligibility
from app.core.models.fee_payment import FeePayment
from app.core.models.account import Account
from app.core.models.ledger_transaction import LedgerTransaction
from app.core.models.salary_payment import SalaryPayment
from app.core.models.fee_reminder import FeeReminder
from app.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Tenant",
    "SchoolClass",
    "Student",
    "Parent",
    "ParentStudent",
    "Teacher",
    "FeeType",
    "Fee",
    "FeeEligibility",
    "FeePayment",
    "Account",
    "LedgerTransaction",
    "SalaryPayment",
    "FeeReminder",
    "FeeAuditLog",
]
