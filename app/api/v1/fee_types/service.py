"""Fee type service layer."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.core.models import FeeType

from .schemas import FeeTypeCreate, FeeTypeResponse, FeeTypeUpdate


def _to_response(ft: FeeType) -> FeeTypeResponse:
    return FeeTypeResponse(
        id=ft.id,
        tenant_id=ft.tenant_id,
        name=ft.name,
        description=ft.description,
        is_optional=ft.is_optional,
        is_active=ft.is_active,
        created_at=ft.created_at,
        updated_at=ft.updated_at,
    )


async def create_fee_type(
    db: AsyncSession,
    tenant_id: UUID,
    payload: FeeTypeCreate,
) -> FeeTypeResponse:
    try:
        ft = FeeType(
            tenant_id=tenant_id,
            name=payload.name.strip(),
            description=(payload.description or "").strip() or None,
            is_optional=payload.is_optional,
            is_active=True,
        )
        db.add(ft)
        await db.commit()
        await db.refresh(ft)
        return _to_response(ft)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Fee type name already exists for this school")


async def list_fee_types(
    db: AsyncSession,
    tenant_id: UUID,
    active_only: bool = True,
) -> List[FeeTypeResponse]:
    stmt = select(FeeType).where(FeeType.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(FeeType.is_active.is_(True))
    stmt = stmt.order_by(FeeType.name)
    result = await db.execute(stmt)
    return [_to_response(ft) for ft in result.scalars().all()]


async def update_fee_type(
    db: AsyncSession,
    tenant_id: UUID,
    fee_type_id: UUID,
    payload: FeeTypeUpdate,
) -> Optional[FeeTypeResponse]:
    result = await db.execute(
        select(FeeType).where(
            FeeType.id == fee_type_id,
            FeeType.tenant_id == tenant_id,
        )
    )
    ft = result.scalar_one_or_none()
    if not ft:
        return None
    if payload.name is not None:
        ft.name = payload.name.strip()
    if payload.description is not None:
        ft.description = payload.description.strip() or None
    if payload.is_optional is not None:
        ft.is_optional = payload.is_optional
    if payload.is_active is not None:
        ft.is_active = payload.is_active
    try:
        await db.commit()
        await db.refresh(ft)
        return _to_response(ft)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Fee type name already exists for this school")
