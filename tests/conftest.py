import os
import tempfile

# Keep the module-level engine away from the repo's default SQLite file.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'contentgen-test-default.db')}",
)
os.environ.setdefault("RUNS_RETRY_BASE_DELAY", "0")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentgen.api import deps
from contentgen.core.database import build_engine, create_tables, get_db
from contentgen.services import key_client, llm_service
from contentgen.services.llm_service import (
    CalendarOutput,
    EmailOutput,
    GenerationResult,
    SequenceOutput,
    SequenceStep,
)
from contentgen.services.template_service import substitute_variables

ORG_HEADER = {"x-clerk-org-id": "org_test"}


class FakeRunsClient:
    """Records ledger calls. `fail_on` maps a method name to the exception it raises."""

    def __init__(self):
        self.calls = []
        self.fail_on = {}
        self.run_id = "run_gen_1"

    def _record(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise self.fail_on[name]

    def calls_to(self, name):
        return [kw for n, kw in self.calls if n == name]

    async def create_run(self, **kwargs):
        self._record("create_run", **kwargs)
        return {"id": self.run_id}

    async def add_costs(self, run_id, items):
        self._record("add_costs", run_id=run_id, items=items)
        return {"costs": items}

    async def update_run(self, run_id, status):
        self._record("update_run", run_id=run_id, status=status)
        return {"id": run_id, "status": status}


class FakeLLM:
    """Stands in for the llm_service generators; token counts are fixed per call."""

    def __init__(self):
        self.calls = []
        self.tokens_input = 120
        self.tokens_output = 80

    def _result(self, output, prompt_raw, profile):
        return GenerationResult(
            output=output,
            tokens_input=self.tokens_input,
            tokens_output=self.tokens_output,
            prompt_raw=prompt_raw,
            response_raw={"id": f"msg_{len(self.calls)}"},
            profile=profile,
        )

    async def generate_sequence(self, api_key, prompt_template, variables, profile=llm_service.TEMPLATE_PROFILE):
        self.calls.append(("sequence", api_key, prompt_template, dict(variables)))
        steps = [
            SequenceStep(step=i, body_html=f"<p>Body {i}</p>", body_text=f"Body {i}", days_since_last_step=d)
            for i, d in enumerate(llm_service.SEQUENCE_DAY_OFFSETS, start=1)
        ]
        prompt = substitute_variables(prompt_template, variables)
        return self._result(SequenceOutput(subject="Quick question", steps=steps), prompt, profile)

    async def generate_email_content(self, api_key, prompt, variables=None, include_footer=False,
                                     profile=llm_service.CONTENT_PROFILE):
        self.calls.append(("email", api_key, prompt, variables, include_footer))
        output = EmailOutput(subject="Hello {{leadFirstName}}", body_html="<p>Hi there</p>", body_text="Hi there")
        return self._result(output, f"[SYSTEM]\nsys\n\n[USER]\n{prompt}", profile)

    async def generate_calendar(self, api_key, prompt, profile=llm_service.CALENDAR_PROFILE):
        self.calls.append(("calendar", api_key, prompt))
        output = CalendarOutput(title="Intro call", description="30 minutes to talk", location="Zoom")
        return self._result(output, f"[SYSTEM]\nsys\n\n[USER]\n{prompt}", profile)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def fake_runs():
    return FakeRunsClient()


@pytest.fixture
def fake_llm(monkeypatch):
    llm = FakeLLM()
    monkeypatch.setattr(llm_service, "generate_sequence", llm.generate_sequence)
    monkeypatch.setattr(llm_service, "generate_email_content", llm.generate_email_content)
    monkeypatch.setattr(llm_service, "generate_calendar", llm.generate_calendar)
    return llm


@pytest.fixture
def key_requests(monkeypatch):
    requests = []

    async def fake_resolve(key_mode, clerk_org_id, app_id, provider):
        requests.append((key_mode, clerk_org_id, app_id, provider))
        return "sk-test"

    monkeypatch.setattr(key_client, "resolve_api_key", fake_resolve)
    return requests


@pytest_asyncio.fixture
async def client(session_factory, fake_runs, fake_llm, key_requests):
    from contentgen.server import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_runs_client] = lambda: fake_runs

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", headers=ORG_HEADER) as c:
        yield c

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def registered_prompt(client):
    resp = await client.put("/prompts", json={
        "appId": "mcpfactory",
        "type": "email",
        "prompt": "Write to {{leadFirstName}} at {{leadCompanyName}} about {{topics}}.",
        "variables": ["leadFirstName", "leadCompanyName", "topics"],
    })
    assert resp.status_code == 200
    return resp.json()
