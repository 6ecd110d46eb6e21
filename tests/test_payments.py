from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fees_service
from app.api.v1.fees.schemas import FeeCreate
from app.api.v1.ledger import service as ledger_service
from app.api.v1.payments import service as payments_service
from app.core.enums import FeeScope, FeeStatus, LedgerSource, Role
from app.core.exceptions import NotFoundError, ValidationError
from app.core.models import FeeAuditLog, FeePayment, LedgerTransaction


async def _class_fee(db_session: AsyncSession, school, amount: str = "500.00"):
    return await fees_service.create_fee(
        db_session,
        school.tenant_id,
        FeeCreate(
            fee_type_id=school.fee_type_id,
            scope=FeeScope.CLASS_WIDE,
            class_id=school.class_id,
            amount=Decimal(amount),
            due_date=date.today() + timedelta(days=14),
        ),
        created_by="admin-1",
    )


async def _payment_count(db_session: AsyncSession) -> int:
    return (await db_session.execute(select(func.count(FeePayment.id)))).scalar()


@pytest.mark.asyncio
async def test_pay_in_full_then_cap_is_enforced(db_session, school) -> None:
    fee = await _class_fee(db_session, school)

    receipt = await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "300")
    assert receipt.balance.total_paid == Decimal("300.00")
    assert receipt.balance.remaining == Decimal("200.00")
    assert receipt.balance.is_paid is False

    receipt = await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "200")
    assert receipt.balance.remaining == Decimal("0.00")
    assert receipt.balance.is_paid is True
    assert receipt.balance.status == FeeStatus.PAID

    with pytest.raises(ValidationError):
        await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "1")

    balance = await fees_service.get_balance(db_session, school.tenant_id, school.ama_id, fee.id)
    assert balance.total_paid == Decimal("500.00")
    assert await _payment_count(db_session) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5.00"])
async def test_non_positive_amount_is_rejected(db_session, school, amount) -> None:
    fee = await _class_fee(db_session, school)
    with pytest.raises(ValidationError):
        await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, amount)
    assert await _payment_count(db_session) == 0


@pytest.mark.asyncio
async def test_overpayment_is_refused_not_clamped(db_session, school) -> None:
    fee = await _class_fee(db_session, school)
    await payments_service.record_payment(db_session, school.tenant_id, school.kofi_id, fee.id, "450")

    with pytest.raises(ValidationError):
        await payments_service.record_payment(db_session, school.tenant_id, school.kofi_id, fee.id, "60")

    balance = await fees_service.get_balance(db_session, school.tenant_id, school.kofi_id, fee.id)
    assert balance.total_paid == Decimal("450.00")


@pytest.mark.asyncio
async def test_payment_requires_eligibility(db_session, school) -> None:
    fee = await _class_fee(db_session, school)
    with pytest.raises(NotFoundError):
        await payments_service.record_payment(db_session, school.tenant_id, school.yaa_id, fee.id, "10")
    with pytest.raises(NotFoundError):
        await payments_service.record_payment(db_session, school.tenant_id, school.outsider_id, fee.id, "10")


@pytest.mark.asyncio
async def test_identical_manual_payments_are_both_recorded(db_session, school) -> None:
    fee = await _class_fee(db_session, school)
    await payments_service.record_payment(db_session, school.tenant_id, school.esi_id, fee.id, "100")
    await payments_service.record_payment(db_session, school.tenant_id, school.esi_id, fee.id, "100")

    assert await _payment_count(db_session) == 2
    balance = await fees_service.get_balance(db_session, school.tenant_id, school.esi_id, fee.id)
    assert balance.total_paid == Decimal("200.00")


@pytest.mark.asyncio
async def test_payment_writes_ledger_mirror_and_audit(db_session, school) -> None:
    fee = await _class_fee(db_session, school)
    receipt = await payments_service.record_payment(
        db_session, school.tenant_id, school.ama_id, fee.id, "120.50", recorded_by="admin-1"
    )

    txn = (
        await db_session.execute(
            select(LedgerTransaction).where(LedgerTransaction.source_id == receipt.payment.id)
        )
    ).scalar_one()
    assert txn.source_type == LedgerSource.FEE_PAYMENT.value
    assert txn.transaction_type == "INCOME"
    assert Decimal(str(txn.amount)) == Decimal("120.50")
    assert txn.reference == f"FEE-{txn.transaction_date.year}-0001"
    assert "Ama Mensah" in txn.description

    audit = (
        await db_session.execute(
            select(FeeAuditLog).where(FeeAuditLog.reference_table == "fee_payments")
        )
    ).scalar_one()
    assert audit.action_type == "CREATE"
    assert audit.changed_by == "admin-1"
    assert audit.new_value["amount"] == "120.50"


@pytest.mark.asyncio
async def test_backdated_payment_is_posted_on_its_paid_date(db_session, school) -> None:
    fee = await _class_fee(db_session, school)
    receipt = await payments_service.record_payment(
        db_session, school.tenant_id, school.ama_id, fee.id, "80.00",
        paid_at=datetime(2025, 12, 30, 9, 30, tzinfo=timezone.utc),
    )

    txn = (
        await db_session.execute(
            select(LedgerTransaction).where(LedgerTransaction.source_id == receipt.payment.id)
        )
    ).scalar_one()
    assert txn.transaction_date == date(2025, 12, 30)
    assert txn.reference == "FEE-2025-0001"


@pytest.mark.asyncio
async def test_ledger_failure_rolls_back_payment(db_session, school, monkeypatch) -> None:
    fee = await _class_fee(db_session, school)

    async def broken_ledger(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(ledger_service, "record_fee_income", broken_ledger)

    with pytest.raises(RuntimeError):
        await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "100")

    assert await _payment_count(db_session) == 0
    ledger_rows = (await db_session.execute(select(func.count(LedgerTransaction.id)))).scalar()
    assert ledger_rows == 0


@pytest.mark.asyncio
async def test_receipt_goes_to_student_and_guardian(db_session, school, sms_sender) -> None:
    fee = await _class_fee(db_session, school)
    sms = sms_sender

    receipt = await payments_service.record_payment(
        db_session, school.tenant_id, school.ama_id, fee.id, "200", sms_sender=sms
    )

    assert receipt.sms_sent is True
    assert [phone for phone, _ in sms.sent] == ["0241111111", "0243333333"]
    message = sms.sent[0][1]
    assert "Ama Mensah" in message
    assert "GHS 300.00" in message


@pytest.mark.asyncio
async def test_failed_receipt_does_not_undo_payment(db_session, school, sms_sender) -> None:
    fee = await _class_fee(db_session, school)
    sms = sms_sender
    sms.succeed = False

    receipt = await payments_service.record_payment(
        db_session, school.tenant_id, school.kofi_id, fee.id, "50", sms_sender=sms
    )

    assert receipt.sms_sent is False
    assert len(sms.sent) == 1
    assert await _payment_count(db_session) == 1


@pytest.mark.asyncio
async def test_reversal_deletes_payment_but_keeps_ledger_row(db_session, school) -> None:
    fee = await _class_fee(db_session, school)
    receipt = await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "500")
    assert receipt.balance.status == FeeStatus.PAID

    await payments_service.reverse_payment(db_session, school.tenant_id, receipt.payment.id, changed_by="admin-1")

    balance = await fees_service.get_balance(db_session, school.tenant_id, school.ama_id, fee.id)
    assert balance.status == FeeStatus.UNPAID
    assert balance.remaining == Decimal("500.00")
    ledger_rows = (await db_session.execute(select(func.count(LedgerTransaction.id)))).scalar()
    assert ledger_rows == 1
    actions = (
        await db_session.execute(
            select(FeeAuditLog.action_type)
            .where(FeeAuditLog.reference_id == receipt.payment.id)
            .order_by(FeeAuditLog.created_at)
        )
    ).scalars().all()
    assert list(actions) == ["CREATE", "DELETE"]

    with pytest.raises(NotFoundError):
        await payments_service.reverse_payment(db_session, school.tenant_id, receipt.payment.id)


@pytest.mark.asyncio
async def test_record_payment_endpoint(client, db_session, auth, school, sms_sender) -> None:
    fee = await _class_fee(db_session, school)
    response = await client.post(
        "/api/v1/payments",
        json={
            "student_id": str(school.kofi_id),
            "fee_id": str(fee.id),
            "amount": "150.00",
            "payment_method": "MOBILE_MONEY",
        },
        headers=auth(),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["payment"]["payment_method"] == "MOBILE_MONEY"
    assert data["payment"]["recorded_by"] == "admin-1"
    assert Decimal(data["balance"]["remaining"]) == Decimal("350.00")
    assert data["balance"]["status"] == "PARTIALLY_PAID"
    assert len(sms_sender.sent) == 1

    over = await client.post(
        "/api/v1/payments",
        json={"student_id": str(school.kofi_id), "fee_id": str(fee.id), "amount": "351.00"},
        headers=auth(),
    )
    assert over.status_code == 400


@pytest.mark.asyncio
async def test_reverse_endpoint_is_admin_only(client, db_session, auth, school) -> None:
    fee = await _class_fee(db_session, school)
    receipt = await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "100")

    teacher = await client.delete(
        f"/api/v1/payments/{receipt.payment.id}", headers=auth(Role.TEACHER, sub="teacher-1")
    )
    assert teacher.status_code == 403

    admin = await client.delete(f"/api/v1/payments/{receipt.payment.id}", headers=auth())
    assert admin.status_code == 204


@pytest.mark.asyncio
async def test_payment_history(client, db_session, auth, school) -> None:
    fee = await _class_fee(db_session, school)
    await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "100")
    await payments_service.record_payment(db_session, school.tenant_id, school.ama_id, fee.id, "50")

    response = await client.get(
        f"/api/v1/payments/students/{school.ama_id}/history",
        headers=auth(Role.PARENT, sub="parent-ama"),
    )
    assert response.status_code == 200
    data = response.json()
    assert len(data["payments"]) == 2
    assert Decimal(data["total_paid"]) == Decimal("150.00")
    assert data["payments"][0]["fee_type_name"] == "Tuition"
