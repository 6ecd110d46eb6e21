"""Ledger service: chart of accounts and the accounting mirror of fee and salary payments.

write_transaction and the record_* helpers only add rows to the session; the
caller owns the commit so a payment and its mirror land in one transaction.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import AccountType, LedgerEntryType, LedgerSource
from app.core.exceptions import ConflictError, NotFoundError
from app.core.models import Account, FeePayment, LedgerTransaction, SalaryPayment
from app.db.session import utcnow

from .schemas import (
    AccountCreate,
    AccountResponse,
    LedgerSummary,
    LedgerTransactionResponse,
    ManualTransactionCreate,
)

CASH_ACCOUNT = "1001"
BANK_ACCOUNT = "1002"
STUDENT_FEE_INCOME = "4001"
SALARY_EXPENSE = "5001"

DEFAULT_ACCOUNTS = [
    (CASH_ACCOUNT, "Cash", AccountType.ASSET, "Cash on hand"),
    (BANK_ACCOUNT, "Bank Account", AccountType.ASSET, "Bank account balance"),
    (STUDENT_FEE_INCOME, "Student Fee Income", AccountType.INCOME, "Income from student fees and tuition"),
    (SALARY_EXPENSE, "Salary Expense", AccountType.EXPENSE, "Staff salary payments"),
]

REFERENCE_PREFIXES = {
    LedgerSource.FEE_PAYMENT: "FEE",
    LedgerSource.SALARY_PAYMENT: "SAL",
    LedgerSource.MANUAL: "TXN",
}


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return (val if isinstance(val, Decimal) else Decimal(str(val))).quantize(Decimal("0.01"))


def _account_to_response(acc: Account) -> AccountResponse:
    return AccountResponse(
        id=acc.id,
        tenant_id=acc.tenant_id,
        code=acc.code,
        name=acc.name,
        account_type=acc.account_type,
        description=acc.description,
        created_at=acc.created_at,
    )


def _txn_to_response(txn: LedgerTransaction, account_code: Optional[str] = None) -> LedgerTransactionResponse:
    return LedgerTransactionResponse(
        id=txn.id,
        tenant_id=txn.tenant_id,
        account_id=txn.account_id,
        account_code=account_code,
        reference=txn.reference,
        transaction_type=txn.transaction_type,
        amount=_to_decimal(txn.amount),
        payment_method=txn.payment_method,
        description=txn.description,
        notes=txn.notes,
        transaction_date=txn.transaction_date,
        source_type=txn.source_type,
        source_id=txn.source_id,
        created_at=txn.created_at,
    )


# --- Accounts ---
async def ensure_default_accounts(db: AsyncSession, tenant_id: UUID) -> Dict[str, Account]:
    """Create the default accounts that are missing for this tenant. Returns all of them by code."""
    codes = [code for code, _, _, _ in DEFAULT_ACCOUNTS]
    existing = (
        await db.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code.in_(codes))
        )
    ).scalars().all()
    by_code = {a.code: a for a in existing}
    for code, name, account_type, description in DEFAULT_ACCOUNTS:
        if code in by_code:
            continue
        acc = Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=account_type.value,
            description=description,
        )
        db.add(acc)
        by_code[code] = acc
    await db.flush()
    return by_code


async def _get_account_by_code(db: AsyncSession, tenant_id: UUID, code: str) -> Account:
    acc = (
        await db.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        )
    ).scalar_one_or_none()
    if not acc:
        raise NotFoundError(f"Account {code} not found")
    return acc


async def list_accounts(db: AsyncSession, tenant_id: UUID) -> List[AccountResponse]:
    await ensure_default_accounts(db, tenant_id)
    await db.commit()
    result = await db.execute(
        select(Account).where(Account.tenant_id == tenant_id).order_by(Account.code)
    )
    return [_account_to_response(a) for a in result.scalars().all()]


async def create_account(db: AsyncSession, tenant_id: UUID, payload: AccountCreate) -> AccountResponse:
    try:
        acc = Account(
            tenant_id=tenant_id,
            code=payload.code.strip(),
            name=payload.name.strip(),
            account_type=payload.account_type.value,
            description=(payload.description or "").strip() or None,
        )
        db.add(acc)
        await db.commit()
        await db.refresh(acc)
        return _account_to_response(acc)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Account code already exists for this school")


# --- Transactions ---
async def _next_reference(db: AsyncSession, tenant_id: UUID, prefix: str, on: date) -> str:
    stem = f"{prefix}-{on.year}-"
    count = (
        await db.execute(
            select(func.count(LedgerTransaction.id)).where(
                LedgerTransaction.tenant_id == tenant_id,
                LedgerTransaction.reference.like(f"{stem}%"),
            )
        )
    ).scalar() or 0
    return f"{stem}{count + 1:04d}"


async def write_transaction(
    db: AsyncSession,
    tenant_id: UUID,
    *,
    account_code: str,
    amount: Decimal,
    transaction_type: LedgerEntryType,
    description: str,
    source_type: LedgerSource,
    source_id: Optional[UUID] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    transaction_date: Optional[date] = None,
) -> LedgerTransaction:
    """Add one ledger row to the session. Caller must commit."""
    await ensure_default_accounts(db, tenant_id)
    account = await _get_account_by_code(db, tenant_id, account_code)
    on = transaction_date or utcnow().date()
    txn = LedgerTransaction(
        tenant_id=tenant_id,
        account_id=account.id,
        reference=await _next_reference(db, tenant_id, REFERENCE_PREFIXES[source_type], on),
        transaction_type=transaction_type.value,
        amount=_to_decimal(amount),
        payment_method=payment_method,
        description=description[:255],
        notes=notes,
        transaction_date=on,
        source_type=source_type.value,
        source_id=source_id,
    )
    db.add(txn)
    await db.flush()
    return txn


async def record_fee_income(
    db: AsyncSession,
    tenant_id: UUID,
    payment: FeePayment,
    student_name: str,
    fee_name: str,
) -> LedgerTransaction:
    return await write_transaction(
        db,
        tenant_id,
        account_code=STUDENT_FEE_INCOME,
        amount=payment.amount,
        transaction_type=LedgerEntryType.INCOME,
        description=f"Student fee payment - {student_name} ({fee_name})",
        payment_method=payment.payment_method,
        notes=f"Automatic entry from student fee payment ID: {payment.id}",
        source_type=LedgerSource.FEE_PAYMENT,
        source_id=payment.id,
        transaction_date=payment.paid_at.date() if payment.paid_at else None,
    )


async def record_salary_expense(
    db: AsyncSession,
    tenant_id: UUID,
    salary_payment: SalaryPayment,
    teacher_name: str,
) -> LedgerTransaction:
    period = f"{salary_payment.pay_period_start:%d/%m/%Y} - {salary_payment.pay_period_end:%d/%m/%Y}"
    return await write_transaction(
        db,
        tenant_id,
        account_code=SALARY_EXPENSE,
        amount=salary_payment.amount,
        transaction_type=LedgerEntryType.EXPENSE,
        description=f"Salary payment - {teacher_name} ({period})",
        payment_method="BANK_TRANSFER",
        notes=f"Automatic entry from salary payment ID: {salary_payment.id}",
        source_type=LedgerSource.SALARY_PAYMENT,
        source_id=salary_payment.id,
        transaction_date=salary_payment.paid_at.date() if salary_payment.paid_at else None,
    )


async def create_manual_transaction(
    db: AsyncSession,
    tenant_id: UUID,
    payload: ManualTransactionCreate,
) -> LedgerTransactionResponse:
    try:
        txn = await write_transaction(
            db,
            tenant_id,
            account_code=payload.account_code.strip(),
            amount=payload.amount,
            transaction_type=payload.transaction_type,
            description=payload.description.strip(),
            payment_method=payload.payment_method.value if payload.payment_method else None,
            notes=(payload.notes or "").strip() or None,
            source_type=LedgerSource.MANUAL,
            transaction_date=payload.transaction_date,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(txn)
    return _txn_to_response(txn, payload.account_code.strip())


async def list_transactions(
    db: AsyncSession,
    tenant_id: UUID,
    transaction_type: Optional[LedgerEntryType] = None,
    source_type: Optional[LedgerSource] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[LedgerTransactionResponse]:
    stmt = (
        select(LedgerTransaction, Account.code)
        .join(Account, LedgerTransaction.account_id == Account.id)
        .where(LedgerTransaction.tenant_id == tenant_id)
    )
    if transaction_type is not None:
        stmt = stmt.where(LedgerTransaction.transaction_type == transaction_type.value)
    if source_type is not None:
        stmt = stmt.where(LedgerTransaction.source_type == source_type.value)
    if start_date is not None:
        stmt = stmt.where(LedgerTransaction.transaction_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(LedgerTransaction.transaction_date <= end_date)
    stmt = stmt.order_by(LedgerTransaction.transaction_date.desc(), LedgerTransaction.reference.desc())
    result = await db.execute(stmt)
    return [_txn_to_response(txn, code) for txn, code in result.all()]


async def get_ledger_summary(
    db: AsyncSession,
    tenant_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> LedgerSummary:
    stmt = (
        select(
            LedgerTransaction.transaction_type,
            func.coalesce(func.sum(LedgerTransaction.amount), 0),
        )
        .where(LedgerTransaction.tenant_id == tenant_id)
        .group_by(LedgerTransaction.transaction_type)
    )
    if start_date is not None:
        stmt = stmt.where(LedgerTransaction.transaction_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(LedgerTransaction.transaction_date <= end_date)
    totals = {t: _to_decimal(v) for t, v in (await db.execute(stmt)).all()}
    income = totals.get(LedgerEntryType.INCOME.value, Decimal("0.00"))
    expense = totals.get(LedgerEntryType.EXPENSE.value, Decimal("0.00"))
    return LedgerSummary(
        start_date=start_date,
        end_date=end_date,
        total_income=income,
        total_expense=expense,
        net_income=income - expense,
    )
