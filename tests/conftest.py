import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET_TOKEN", "test-cron-token")

from types import SimpleNamespace
from typing import AsyncGenerator, List, Optional, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.enums import Role
from app.core.models import (
    FeeType,
    Parent,
    ParentStudent,
    SchoolClass,
    Student,
    Teacher,
    Tenant,
)
from app.db.session import Base, get_db
from app.integrations.paystack import GatewayVerification, get_payment_verifier
from app.integrations.sms import SmsResult, get_sms_sender
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeSmsSender:
    """Records messages instead of calling Hubtel."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: List[Tuple[str, str]] = []

    async def send(self, phone: str, message: str, sender: Optional[str] = None) -> SmsResult:
        self.sent.append((phone, message))
        if self.succeed:
            return SmsResult(success=True, message_id=f"msg-{len(self.sent)}")
        return SmsResult(success=False, error="rejected")


class FakeVerifier:
    """Returns a canned gateway verification."""

    def __init__(self) -> None:
        self.status = "success"
        self.amount_minor_units = 0
        self.calls: List[str] = []

    async def verify_transaction(self, reference: str) -> GatewayVerification:
        self.calls.append(reference)
        return GatewayVerification(
            reference=reference,
            status=self.status,
            amount_minor_units=self.amount_minor_units,
            currency="GHS",
        )


def make_token(sub: str, tenant_id, role: Role) -> str:
    claims = {"sub": sub, "tenant_id": str(tenant_id), "role": role.value}
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; the app shares the test's session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
def sms_sender() -> FakeSmsSender:
    sender = FakeSmsSender()
    app.dependency_overrides[get_sms_sender] = lambda: sender
    yield sender
    app.dependency_overrides.pop(get_sms_sender, None)


@pytest.fixture()
def verifier() -> FakeVerifier:
    fake = FakeVerifier()
    app.dependency_overrides[get_payment_verifier] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_payment_verifier, None)


@pytest.fixture()
async def client(db_session: AsyncSession, sms_sender: FakeSmsSender) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def school(db_session: AsyncSession) -> SimpleNamespace:
    """
    One school with a class of three active students and one inactive, a parent
    linked to the first student, a teacher and a Tuition fee type. A second school
    holds one student. Only ids are returned.
    """
    tenant = Tenant(name="Accra Academy", status="ACTIVE")
    other_tenant = Tenant(name="Other School", status="ACTIVE")
    db_session.add_all([tenant, other_tenant])
    await db_session.flush()

    jhs1 = SchoolClass(tenant_id=tenant.id, name="JHS 1")
    jhs2 = SchoolClass(tenant_id=tenant.id, name="JHS 2")
    other_class = SchoolClass(tenant_id=other_tenant.id, name="JHS 1")
    db_session.add_all([jhs1, jhs2, other_class])
    await db_session.flush()

    ama = Student(tenant_id=tenant.id, class_id=jhs1.id, first_name="Ama", last_name="Mensah", phone="0241111111")
    kofi = Student(
        tenant_id=tenant.id, class_id=jhs1.id, first_name="Kofi", last_name="Boateng",
        phone="0242222222", user_id="student-kofi",
    )
    esi = Student(tenant_id=tenant.id, class_id=jhs1.id, first_name="Esi", last_name="Owusu")
    gone = Student(tenant_id=tenant.id, class_id=jhs1.id, first_name="Yaw", last_name="Left", is_active=False)
    yaa = Student(tenant_id=tenant.id, class_id=jhs2.id, first_name="Yaa", last_name="Asante")
    outsider = Student(tenant_id=other_tenant.id, class_id=other_class.id, first_name="Out", last_name="Sider")
    db_session.add_all([ama, kofi, esi, gone, yaa, outsider])
    await db_session.flush()

    parent = Parent(tenant_id=tenant.id, user_id="parent-ama", first_name="Akosua", last_name="Mensah", phone="0243333333")
    db_session.add(parent)
    await db_session.flush()
    db_session.add(ParentStudent(parent_id=parent.id, student_id=ama.id))

    teacher = Teacher(tenant_id=tenant.id, user_id="teacher-1", first_name="Kwame", last_name="Nkrumah")
    other_teacher = Teacher(tenant_id=tenant.id, user_id="teacher-2", first_name="Adjoa", last_name="Badu")
    tuition = FeeType(tenant_id=tenant.id, name="Tuition")
    db_session.add_all([teacher, other_teacher, tuition])
    await db_session.commit()

    return SimpleNamespace(
        tenant_id=tenant.id,
        other_tenant_id=other_tenant.id,
        class_id=jhs1.id,
        class2_id=jhs2.id,
        ama_id=ama.id,
        kofi_id=kofi.id,
        esi_id=esi.id,
        inactive_id=gone.id,
        yaa_id=yaa.id,
        outsider_id=outsider.id,
        teacher_id=teacher.id,
        other_teacher_id=other_teacher.id,
        fee_type_id=tuition.id,
    )


@pytest.fixture()
def auth(school: SimpleNamespace):
    """Build Authorization headers for a role in the main school."""

    def _headers(role: Role = Role.ADMIN, sub: str = "admin-1", tenant_id=None) -> dict:
        token = make_token(sub, tenant_id or school.tenant_id, role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
