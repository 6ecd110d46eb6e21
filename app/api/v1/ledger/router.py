"""Ledger router: accounts, transactions, income summary."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import Capability, require_capability
from app.auth.schemas import CurrentUser
from app.core.enums import LedgerEntryType, LedgerSource
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AccountCreate,
    AccountResponse,
    LedgerSummary,
    LedgerTransactionResponse,
    ManualTransactionCreate,
)
from . import service

router = APIRouter(prefix="/api/v1/ledger", tags=["ledger"])


@router.get(
    "/accounts",
    response_model=List[AccountResponse],
    dependencies=[Depends(require_capability(Capability.LEDGER_READ))],
)
async def list_accounts(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AccountResponse]:
    return await service.list_accounts(db, current_user.tenant_id)


@router.post(
    "/accounts",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.LEDGER_WRITE))],
)
async def create_account(
    payload: AccountCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AccountResponse:
    try:
        return await service.create_account(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/transactions",
    response_model=List[LedgerTransactionResponse],
    dependencies=[Depends(require_capability(Capability.LEDGER_READ))],
)
async def list_transactions(
    transaction_type: Optional[LedgerEntryType] = Query(None),
    source_type: Optional[LedgerSource] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[LedgerTransactionResponse]:
    return await service.list_transactions(
        db,
        current_user.tenant_id,
        transaction_type=transaction_type,
        source_type=source_type,
        start_date=start_date,
        end_date=end_date,
    )


@router.post(
    "/transactions",
    response_model=LedgerTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_capability(Capability.LEDGER_WRITE))],
)
async def create_transaction(
    payload: ManualTransactionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LedgerTransactionResponse:
    try:
        return await service.create_manual_transaction(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/summary",
    response_model=LedgerSummary,
    dependencies=[Depends(require_capability(Capability.LEDGER_READ))],
)
async def get_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LedgerSummary:
    return await service.get_ledger_summary(db, current_user.tenant_id, start_date, end_date)
