# ============================================================================
# Test Configuration & Fixtures
# ============================================================================
import re
import pytest
from datetime import date
from typing import AsyncGenerator, Callable, Dict, List
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from unittest.mock import AsyncMock

from app.config import Settings
from app.core.container import Container, build_container
from app.core.database import create_engine, create_session_maker, create_tables
from app.main import create_app
from app.schemas.user import RegisterRequest
from app.services.notifications.email_service import EmailService

TOKEN_RE = re.compile(r"token=([0-9a-f]{64})")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Fresh SQLite file per test, cheap bcrypt, fixed secrets"""
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        BCRYPT_ROUNDS=4,
        JWT_SECRET_KEY="test-access-secret",
        REFRESH_SECRET_KEY="test-refresh-secret",
        SMTP_HOST="",
    )

@pytest.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(engine)

@pytest.fixture
def email_service(settings: Settings) -> EmailService:
    """Real templates, mocked transport"""
    service = EmailService(settings)
    service.send_email = AsyncMock()
    return service

@pytest.fixture
def container(settings, session_maker, email_service) -> Container:
    return build_container(settings, session_maker, email_service=email_service)

@pytest.fixture
def auth_service(container: Container):
    return container.auth

@pytest.fixture
def user_repo(container: Container):
    return container.users

@pytest.fixture
async def client(settings: Settings, container: Container) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against an app wired to the test container"""
    app = create_app(settings)
    app.state.container = container
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ============================================================================
# Sample data
# ============================================================================
def years_ago(years: int) -> date:
    return date(date.today().year - years, 1, 1)

@pytest.fixture
def student_data() -> Callable[..., Dict]:
    def _make(**overrides) -> Dict:
        data = {
            "email": "tendai@example.com",
            "password": "SecurePass123",
            "first_name": "Tendai",
            "last_name": "Moyo",
            "role": "STUDENT",
            "date_of_birth": years_ago(16).isoformat(),
            "parent_email": "parent@example.com",
            "academic_goals": ["Pass mathematics"],
        }
        data.update(overrides)
        return data
    return _make

@pytest.fixture
def tutor_data() -> Callable[..., Dict]:
    def _make(**overrides) -> Dict:
        data = {
            "email": "rudo@example.com",
            "password": "SecurePass123",
            "first_name": "Rudo",
            "last_name": "Chikwanha",
            "role": "TUTOR",
            "subjects": ["Mathematics", "Physics"],
            "hourly_rate": 25.0,
            "bio": "A-level physics tutor",
        }
        data.update(overrides)
        return data
    return _make


# ============================================================================
# Email helpers
# ============================================================================
@pytest.fixture
def sent_tokens(email_service: EmailService) -> Callable[[str], List[str]]:
    """One-time tokens found in the emails sent to ``recipient``, oldest first"""
    def _tokens(recipient: str) -> List[str]:
        tokens = []
        for call in email_service.send_email.await_args_list:
            if call.kwargs.get("to") == recipient:
                tokens.extend(TOKEN_RE.findall(call.kwargs.get("html", "")))
        return tokens
    return _tokens

@pytest.fixture
def verified_tutor(auth_service, tutor_data, sent_tokens):
    """Register and verify a tutor; returns (email, password)"""
    async def _make(**overrides):
        data = tutor_data(**overrides)
        await auth_service.register(RegisterRequest(**data))
        await auth_service.verify_email(sent_tokens(data["email"])[-1])
        return data["email"], data["password"]
    return _make
