import logging
import secrets
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import Role
from app.core.models import Tenant
from app.db.session import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> dict:
    options = {"verify_aud": settings.jwt_audience is not None}
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        options=options,
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the caller from a token issued by the hosted identity provider."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = _decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception

    subject = payload.get("sub")
    tenant_id_str = payload.get("tenant_id")
    role_name = payload.get("role")
    if not subject or not tenant_id_str or not role_name:
        raise credentials_exception

    try:
        tenant_id = UUID(str(tenant_id_str))
        role = Role(str(role_name).upper())
    except ValueError:
        raise credentials_exception

    tenant = await db.get(Tenant, tenant_id)
    if not tenant or tenant.status != "ACTIVE":
        logger.warning("Rejected token for inactive or unknown tenant %s", tenant_id)
        raise credentials_exception

    return CurrentUser(
        id=str(subject),
        tenant_id=tenant_id,
        role=role,
    )


async def require_cron_token(authorization: Optional[str] = Header(None)) -> None:
    """Authenticate the external scheduler that polls the sweep endpoints."""
    expected = settings.cron_secret_token
    if not expected or not authorization or not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized",
        )
