"""Reminders router: admin trigger and the external scheduler's cron endpoint."""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_cron_token
from app.auth.rbac import Capability, require_capability
from app.auth.schemas import CurrentUser
from app.db.session import get_db
from app.integrations.sms import HubtelSmsSender, get_sms_sender

from .schemas import CronRunResult, ReminderRunRequest, ReminderRunResult
from . import service

router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


@router.post(
    "",
    response_model=ReminderRunResult,
    dependencies=[Depends(require_capability(Capability.REMINDERS_SEND))],
)
async def send_reminders(
    payload: ReminderRunRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    sms_sender: HubtelSmsSender = Depends(get_sms_sender),
) -> ReminderRunResult:
    return await service.send_fee_reminders(
        db,
        current_user.tenant_id,
        payload.kind,
        payload.today or date.today(),
        sms_sender,
    )


@router.get(
    "/cron",
    response_model=CronRunResult,
    dependencies=[Depends(require_cron_token)],
)
async def run_cron(
    db: AsyncSession = Depends(get_db),
    sms_sender: HubtelSmsSender = Depends(get_sms_sender),
) -> CronRunResult:
    return await service.run_scheduled_reminders(db, date.today(), sms_sender)
