from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.fees import service as fees_service
from app.core.enums import Role
from app.core.models import Fee, FeeAuditLog, FeeEligibility, Student


DUE = (date.today() + timedelta(days=30)).isoformat()


async def _create_class_fee(client: AsyncClient, auth, school, amount: str = "500.00") -> dict:
    response = await client.post(
        "/api/v1/fees",
        json={
            "fee_type_id": str(school.fee_type_id),
            "scope": "CLASS_WIDE",
            "class_id": str(school.class_id),
            "amount": amount,
            "due_date": DUE,
        },
        headers=auth(),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _eligible_ids(db_session: AsyncSession, fee_id) -> set:
    result = await db_session.execute(
        select(FeeEligibility.student_id).where(FeeEligibility.fee_id == UUID(str(fee_id)))
    )
    return {str(sid) for sid in result.scalars().all()}


@pytest.mark.asyncio
async def test_class_wide_fee_snapshots_active_roster(client, db_session, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)

    assert fee["scope"] == "CLASS_WIDE"
    assert Decimal(fee["amount"]) == Decimal("500.00")
    assert fee["eligible_count"] == 3
    assert fee["fee_type_name"] == "Tuition"
    eligible = await _eligible_ids(db_session, fee["id"])
    assert eligible == {str(school.ama_id), str(school.kofi_id), str(school.esi_id)}

    audit = (
        await db_session.execute(
            select(FeeAuditLog).where(FeeAuditLog.reference_table == "fees")
        )
    ).scalars().all()
    assert [a.action_type for a in audit] == ["CREATE"]


@pytest.mark.asyncio
async def test_student_joining_later_is_not_made_eligible(client, db_session, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)

    late = Student(tenant_id=school.tenant_id, class_id=school.class_id, first_name="Late", last_name="Comer")
    db_session.add(late)
    await db_session.commit()

    eligible = await _eligible_ids(db_session, fee["id"])
    assert str(late.id) not in eligible
    assert len(eligible) == 3


@pytest.mark.asyncio
async def test_class_wide_fee_requires_class(client, auth, school) -> None:
    response = await client.post(
        "/api/v1/fees",
        json={"fee_type_id": str(school.fee_type_id), "scope": "CLASS_WIDE", "amount": "100", "due_date": DUE},
        headers=auth(),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_class_wide_fee_rejects_student_list(client, db_session, auth, school) -> None:
    response = await client.post(
        "/api/v1/fees",
        json={
            "fee_type_id": str(school.fee_type_id),
            "scope": "CLASS_WIDE",
            "class_id": str(school.class_id),
            "student_ids": [str(school.ama_id)],
            "amount": "100",
            "due_date": DUE,
        },
        headers=auth(),
    )
    assert response.status_code == 400
    assert "student_ids" in response.json()["detail"]
    assert (await db_session.execute(select(func.count(Fee.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_class_from_other_school_is_not_found(client, auth, school) -> None:
    response = await client.post(
        "/api/v1/fees",
        json={
            "fee_type_id": str(school.fee_type_id),
            "scope": "CLASS_WIDE",
            "class_id": str(uuid4()),
            "amount": "100",
            "due_date": DUE,
        },
        headers=auth(),
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_individual_fee_with_foreign_student_creates_nothing(client, db_session, auth, school) -> None:
    response = await client.post(
        "/api/v1/fees",
        json={
            "fee_type_id": str(school.fee_type_id),
            "scope": "INDIVIDUAL",
            "student_ids": [str(school.yaa_id), str(school.outsider_id)],
            "amount": "80.00",
            "due_date": DUE,
        },
        headers=auth(),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Some students not found or not in your school"

    fees = (await db_session.execute(select(func.count(Fee.id)))).scalar()
    eligibilities = (await db_session.execute(select(func.count(FeeEligibility.id)))).scalar()
    assert fees == 0
    assert eligibilities == 0


@pytest.mark.asyncio
async def test_individual_fee_collapses_duplicates(client, db_session, auth, school) -> None:
    response = await client.post(
        "/api/v1/fees",
        json={
            "fee_type_id": str(school.fee_type_id),
            "scope": "INDIVIDUAL",
            "student_ids": [str(school.yaa_id), str(school.yaa_id), str(school.ama_id)],
            "amount": "80.00",
            "due_date": DUE,
        },
        headers=auth(),
    )
    assert response.status_code == 201
    assert response.json()["eligible_count"] == 2


@pytest.mark.asyncio
async def test_fee_amount_must_be_positive(client, auth, school) -> None:
    response = await client.post(
        "/api/v1/fees",
        json={
            "fee_type_id": str(school.fee_type_id),
            "scope": "CLASS_WIDE",
            "class_id": str(school.class_id),
            "amount": "0",
            "due_date": DUE,
        },
        headers=auth(),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_remove_eligibility_before_and_after_payment(client, db_session, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)

    response = await client.delete(
        f"/api/v1/fees/{fee['id']}/eligibility/{school.kofi_id}", headers=auth()
    )
    assert response.status_code == 204
    assert str(school.kofi_id) not in await _eligible_ids(db_session, fee["id"])

    pay = await client.post(
        "/api/v1/payments",
        json={"student_id": str(school.esi_id), "fee_id": fee["id"], "amount": "100.00"},
        headers=auth(),
    )
    assert pay.status_code == 201

    response = await client.delete(
        f"/api/v1/fees/{fee['id']}/eligibility/{school.esi_id}", headers=auth()
    )
    assert response.status_code == 409
    assert str(school.esi_id) in await _eligible_ids(db_session, fee["id"])


@pytest.mark.asyncio
async def test_remove_missing_eligibility_is_not_found(client, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)
    response = await client.delete(
        f"/api/v1/fees/{fee['id']}/eligibility/{school.yaa_id}", headers=auth()
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_remove_eligibility_locks_row_before_payment_check(client, db_session, auth, school, monkeypatch) -> None:
    fee = await _create_class_fee(client, auth, school)
    executed = []
    original_execute = db_session.execute

    async def recording_execute(statement, *args, **kwargs):
        executed.append(statement)
        return await original_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", recording_execute)
    await fees_service.remove_eligibility(db_session, school.tenant_id, UUID(fee["id"]), school.kofi_id)
    monkeypatch.undo()

    eligibility_selects = [
        s for s in executed
        if getattr(s, "column_descriptions", None) and s.column_descriptions[0]["entity"] is FeeEligibility
    ]
    assert eligibility_selects
    assert eligibility_selects[0]._for_update_arg is not None
    assert str(school.kofi_id) not in await _eligible_ids(db_session, fee["id"])


@pytest.mark.asyncio
async def test_add_eligibility_skips_existing_pairs(client, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)

    available = await client.get(f"/api/v1/fees/{fee['id']}/available-students", headers=auth())
    assert available.status_code == 200
    assert {s["id"] for s in available.json()} == {str(school.yaa_id)}

    response = await client.post(
        f"/api/v1/fees/{fee['id']}/eligibility",
        json={"student_ids": [str(school.yaa_id), str(school.ama_id)]},
        headers=auth(),
    )
    assert response.status_code == 200
    assert response.json()["added"] == 1

    response = await client.post(
        f"/api/v1/fees/{fee['id']}/eligibility",
        json={"student_ids": [str(school.outsider_id)]},
        headers=auth(),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_fee_report_and_status_filter(client, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)
    await client.post(
        "/api/v1/payments",
        json={"student_id": str(school.ama_id), "fee_id": fee["id"], "amount": "500.00"},
        headers=auth(),
    )
    await client.post(
        "/api/v1/payments",
        json={"student_id": str(school.kofi_id), "fee_id": fee["id"], "amount": "120.00"},
        headers=auth(),
    )

    report = await client.get(f"/api/v1/fees/{fee['id']}/students", headers=auth())
    assert report.status_code == 200
    by_student = {row["student_id"]: row for row in report.json()}
    assert by_student[str(school.ama_id)]["status"] == "PAID"
    assert by_student[str(school.kofi_id)]["status"] == "PARTIALLY_PAID"
    assert Decimal(by_student[str(school.kofi_id)]["remaining"]) == Decimal("380.00")
    assert by_student[str(school.esi_id)]["status"] == "UNPAID"

    unpaid = await client.get(f"/api/v1/fees/{fee['id']}/students?status=UNPAID", headers=auth())
    assert [row["student_id"] for row in unpaid.json()] == [str(school.esi_id)]


@pytest.mark.asyncio
async def test_update_fee_amount_cannot_drop_below_paid(client, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)
    await client.post(
        "/api/v1/payments",
        json={"student_id": str(school.ama_id), "fee_id": fee["id"], "amount": "300.00"},
        headers=auth(),
    )

    response = await client.patch(f"/api/v1/fees/{fee['id']}", json={"amount": "250.00"}, headers=auth())
    assert response.status_code == 400

    response = await client.patch(f"/api/v1/fees/{fee['id']}", json={"amount": "300.00"}, headers=auth())
    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("300.00")


@pytest.mark.asyncio
async def test_delete_fee_blocked_by_payments(client, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)
    other = await _create_class_fee(client, auth, school, amount="50.00")
    await client.post(
        "/api/v1/payments",
        json={"student_id": str(school.ama_id), "fee_id": fee["id"], "amount": "10.00"},
        headers=auth(),
    )

    assert (await client.delete(f"/api/v1/fees/{fee['id']}", headers=auth())).status_code == 409
    assert (await client.delete(f"/api/v1/fees/{other['id']}", headers=auth())).status_code == 204
    assert (await client.get(f"/api/v1/fees/{other['id']}", headers=auth())).status_code == 404


@pytest.mark.asyncio
async def test_fees_are_scoped_to_tenant(client, auth, school) -> None:
    fee = await _create_class_fee(client, auth, school)
    outsider_headers = auth(Role.ADMIN, sub="admin-2", tenant_id=school.other_tenant_id)

    response = await client.get(f"/api/v1/fees/{fee['id']}", headers=outsider_headers)
    assert response.status_code == 404
    listed = await client.get("/api/v1/fees", headers=outsider_headers)
    assert listed.json() == []
