"""Shared pytest fixtures for the Flowline test suite.

Provides:
- A file-backed async SQLite database per test (no PostgreSQL needed)
- FastAPI test client (httpx.AsyncClient) wired to that database
- Fakes for the email, Slack and Claude collaborators
- An in-memory WorkflowStore for engine tests
- Pre-seeded test data (orgs, users) and JWT auth helpers
"""

import dataclasses
import os
from datetime import datetime
from typing import Any, AsyncGenerator, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from app.config import get_settings  # noqa: E402
from core.constants import RunStatus  # noqa: E402
from core.security import create_access_token  # noqa: E402
from db.base import Base  # noqa: E402
from notifications.channels import ChannelType, DeliveryResult  # noqa: E402
from workflow.context import StepResources  # noqa: E402
from workflow.store import (  # noqa: E402
    RunRecord,
    StepResult,
    WorkflowDefinition,
    WorkflowStore,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeMailer:
    """Records emails instead of talking SMTP."""

    def __init__(self, fail_with: Optional[str] = None):
        self.sent: list[dict] = []
        self.fail_with = fail_with

    async def send(self, to, subject, body_html, body_text=None, from_name=None):
        if self.fail_with:
            return DeliveryResult(False, ChannelType.EMAIL, to, error=self.fail_with)
        self.sent.append({"to": to, "subject": subject, "body_html": body_html})
        return DeliveryResult(True, ChannelType.EMAIL, to, message="sent")


class FakeSlack:
    """Records Slack calls."""

    def __init__(self):
        self.messages: list[dict] = []
        self.channels: list[dict] = []
        self.invites: list[tuple] = []

    async def post_message(self, channel, text, blocks=None, username=None, icon_emoji=None):
        self.messages.append({"channel": channel, "text": text, "blocks": blocks})
        return DeliveryResult(
            True, ChannelType.SLACK, channel, data={"channel": "C123", "ts": "1700000000.000100"}
        )

    async def create_channel(self, name, is_private=False):
        self.channels.append({"name": name, "is_private": is_private})
        return DeliveryResult(True, ChannelType.SLACK, name, data={"channel": {"id": "C999"}})

    async def invite(self, channel_id, user_ids):
        self.invites.append((channel_id, list(user_ids)))
        return DeliveryResult(True, ChannelType.SLACK, channel_id)


class FakeAI:
    """Canned Claude answers."""

    is_configured = True

    def __init__(self, answer: str = "generated text", category: str = "Sales"):
        self.answer = answer
        self.category = category
        self.prompts: list[str] = []

    async def ask(self, prompt, system=None):
        self.prompts.append(prompt)
        return self.answer

    async def ask_json(self, prompt, system=None):
        self.prompts.append(prompt)
        return {"answer": self.answer}

    async def classify(self, text, categories):
        self.prompts.append(text)
        return self.category

    async def summarize(self, text, max_length=None):
        self.prompts.append(text)
        return "summary: " + text

    async def close(self):
        pass


class InMemoryWorkflowStore(WorkflowStore):
    """WorkflowStore kept in dicts, for engine and trigger tests."""

    def __init__(self, workflows: Optional[list[WorkflowDefinition]] = None):
        self.workflows: dict[str, WorkflowDefinition] = {w.id: w for w in workflows or []}
        self.runs: dict[str, RunRecord] = {}
        self.run_counts: dict[str, int] = {}
        self.fail_appends = False

    def add(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        self.workflows[workflow.id] = workflow
        return workflow

    async def get_workflow(self, workflow_id, organization_id=None):
        workflow = self.workflows.get(workflow_id)
        if workflow is None:
            return None
        if organization_id is not None and workflow.organization_id != organization_id:
            return None
        return workflow

    async def list_active_workflows(self, trigger_type, organization_id=None):
        return [
            w for w in self.workflows.values()
            if w.is_active
            and w.trigger_type == trigger_type
            and (organization_id is None or w.organization_id == organization_id)
        ]

    async def create_run(
        self,
        workflow,
        trigger_type,
        trigger_data,
        context,
        started_at,
        triggered_by_id=None,
    ):
        run = RunRecord(
            id=str(uuid4()),
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            trigger_type=trigger_type,
            status=RunStatus.PENDING,
            started_at=started_at,
            trigger_data=dict(trigger_data),
            context=dict(context),
            triggered_by_id=triggered_by_id,
        )
        self.runs[run.id] = dataclasses.replace(run, steps=[])
        return run

    async def update_run_status(self, run_id, status, error_message=None, ended_at=None):
        stored = self.runs[run_id]
        stored.status = RunStatus(status)
        if error_message is not None:
            stored.error_message = error_message
        if ended_at is not None:
            stored.ended_at = ended_at

    async def append_step_result(self, run_id, result: StepResult):
        if self.fail_appends:
            raise RuntimeError("store unavailable")
        self.runs[run_id].steps.append(result)

    async def list_runs(self, workflow_id, organization_id, status=None, limit=50, offset=0):
        runs = [
            r for r in self.runs.values()
            if r.workflow_id == workflow_id
            and r.organization_id == organization_id
            and (status is None or r.status.value == status)
        ]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[offset:offset + limit], len(runs)

    async def get_run(self, run_id, organization_id):
        run = self.runs.get(run_id)
        if run is None or run.organization_id != organization_id:
            return None
        return run

    async def record_workflow_run(self, workflow_id: str, started_at: datetime):
        self.run_counts[workflow_id] = self.run_counts.get(workflow_id, 0) + 1
        if workflow_id in self.workflows:
            self.workflows[workflow_id].last_run_at = started_at


@pytest.fixture
def memory_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def slack() -> FakeSlack:
    return FakeSlack()


@pytest.fixture
def ai() -> FakeAI:
    return FakeAI()


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database file for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding data. Fixtures commit so the app can read their rows."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def resources(session_factory, mailer, slack, ai) -> StepResources:
    """Step collaborators with every external service faked."""
    return StepResources(
        session_factory=session_factory,
        settings=get_settings(),
        ai=ai,
        mailer=mailer,
        slack=slack,
    )


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db_engine, session_factory, resources, monkeypatch):
    """Create a FastAPI app instance wired to the test database."""
    import db.database as db_mod

    monkeypatch.setattr(db_mod, "engine", db_engine)
    monkeypatch.setattr(db_mod, "AsyncSessionLocal", session_factory)

    from app.main import create_app
    test_app = create_app(resources=resources)

    yield test_app

    await test_app.state.dispatcher.drain(timeout=5)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

async def create_org(session: AsyncSession, plan: str = "enterprise", is_active: bool = True):
    from db.models.organization import Organization

    suffix = uuid4().hex[:8]
    org = Organization(
        id=str(uuid4()),
        name=f"Test Organization {suffix}",
        slug=f"test-org-{suffix}",
        subscription_plan=plan,
        is_active=is_active,
        settings={"timezone": "UTC"},
    )
    session.add(org)
    await session.commit()
    return org


async def create_user(session: AsyncSession, org, role: str = "admin", is_active: bool = True):
    from db.models.user import User

    user = User(
        id=str(uuid4()),
        organization_id=org.id,
        email=f"test-{uuid4().hex[:8]}@example.com",
        first_name="Test",
        last_name="User",
        role=role,
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    return user


def headers_for(user, role: Optional[str] = None) -> dict:
    """Authorization header with a token for ``user``."""
    token = create_access_token(
        user_id=user.id,
        email=user.email,
        org_id=user.organization_id,
        role=role or user.role,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_org(db_session):
    """An organization on a plan with workflow automation."""
    return await create_org(db_session)


@pytest_asyncio.fixture
async def test_user(db_session, test_org):
    """An admin of test_org."""
    return await create_user(db_session, test_org, role="admin")


@pytest.fixture
def auth_headers(test_user) -> dict:
    """Generate Authorization headers with a valid JWT token (admin)."""
    return headers_for(test_user)


@pytest_asyncio.fixture
async def member_headers(db_session, test_org) -> dict:
    """Authorization headers of a plain member of test_org."""
    member = await create_user(db_session, test_org, role="member")
    return headers_for(member)


@pytest_asyncio.fixture
async def free_org_headers(db_session) -> dict:
    """Authorization headers of an admin in a free-plan organization."""
    org = await create_org(db_session, plan="free")
    admin = await create_user(db_session, org, role="admin")
    return headers_for(admin)


@pytest_asyncio.fixture
async def other_org_headers(db_session) -> dict:
    """Authorization headers of an admin in a second organization."""
    org = await create_org(db_session)
    admin = await create_user(db_session, org, role="admin")
    return headers_for(admin)


@pytest.fixture
def make_workflow(db_session, test_org, test_user):
    """Factory inserting a workflow with steps straight into the database."""
    from db.models.workflow import Workflow
    from db.models.workflow_step import WorkflowStep

    async def _make(
        trigger_type: str = "webhook",
        trigger_config: Optional[dict] = None,
        steps: Optional[list[dict[str, Any]]] = None,
        is_active: bool = True,
        name: str = "Test Workflow",
        organization_id: Optional[str] = None,
    ):
        workflow = Workflow(
            id=str(uuid4()),
            organization_id=organization_id or test_org.id,
            created_by_id=test_user.id,
            name=name,
            description="A workflow for testing",
            trigger_type=trigger_type,
            trigger_config=trigger_config or {},
            is_active=is_active,
            steps=[WorkflowStep(id=str(uuid4()), **step) for step in steps or []],
        )
        db_session.add(workflow)
        await db_session.commit()
        return workflow

    return _make


@pytest.fixture
def email_step() -> dict:
    """An action step that sends an email built from templates."""
    return {
        "step_order": 0,
        "step_type": "action",
        "action_type": "send_email",
        "action_config": {
            "to": "ops@example.com",
            "subject": "Hello {{ workflow.name }}",
            "body_html": "<p>{{ trigger.type }}</p>",
        },
    }
