from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    PARENT = "PARENT"
    STUDENT = "STUDENT"


class FeeScope(str, Enum):
    CLASS_WIDE = "CLASS_WIDE"
    INDIVIDUAL = "INDIVIDUAL"


class FeeStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"
    PAYSTACK = "PAYSTACK"


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class LedgerEntryType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class LedgerSource(str, Enum):
    FEE_PAYMENT = "FEE_PAYMENT"
    SALARY_PAYMENT = "SALARY_PAYMENT"
    MANUAL = "MANUAL"


class SalaryPaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class ReminderType(str, Enum):
    UPCOMING = "UPCOMING"
    OVERDUE = "OVERDUE"
