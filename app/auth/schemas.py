from uuid import UUID

from pydantic import BaseModel

from app.core.enums import Role


class CurrentUser(BaseModel):
    """Authenticated caller, built from the identity provider's verified token claims.
    id is the provider's subject; tenant_id is the school the session is bound to.
    """

    id: str
    tenant_id: UUID
    role: Role
