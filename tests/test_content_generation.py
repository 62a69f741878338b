import logging
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from contentgen.core.errors import LedgerPermanentError, LedgerTransientError, UpstreamKeyError
from contentgen.models.generation import Generation
from contentgen.models.org import Org
from contentgen.services import generation_service, key_client
from contentgen.services.generation_service import (
    FailurePolicy,
    GenerationJob,
    GenerationOrchestrator,
    GenerationStage,
    OrgContext,
)
from contentgen.services.model_profiles import CALENDAR_PROFILE, CONTENT_PROFILE

CONTENT_BODY = {
    "appId": "mcpfactory",
    "prompt": "Invite the lead to a product webinar.",
    "variables": ["leadFirstName", "leadCompanyName"],
    "includeFooter": True,
    "keyMode": "app",
    "parentRunId": "parent_run_1",
    "workflowName": "webinar-invite",
}

CALENDAR_BODY = {
    "appId": "mcpfactory",
    "prompt": "A 30 minute intro call.",
    "keyMode": "byok",
}


@pytest.mark.asyncio
async def test_content_generation_returns_email_and_tracks_costs(client, fake_llm, fake_runs):
    resp = await client.post("/generate/content", json=CONTENT_BODY)

    assert resp.status_code == 200
    data = resp.json()
    assert data["subject"] == "Hello {{leadFirstName}}"
    assert data["bodyHtml"] == "<p>Hi there</p>"
    assert data["bodyText"] == "Hi there"

    kind, _, prompt, variables, include_footer = fake_llm.calls[0]
    assert (kind, prompt, variables, include_footer) == (
        "email", CONTENT_BODY["prompt"], ["leadFirstName", "leadCompanyName"], True,
    )

    create = fake_runs.calls_to("create_run")[0]
    assert create["task_name"] == "content-generation"
    assert create["parent_run_id"] == "parent_run_1"
    assert create["workflow_name"] == "webinar-invite"
    assert fake_runs.calls_to("add_costs")[0]["items"] == [
        {"costName": CONTENT_PROFILE.input_cost_name, "quantity": 120},
        {"costName": CONTENT_PROFILE.output_cost_name, "quantity": 80},
    ]


@pytest.mark.asyncio
async def test_content_ledger_failure_fails_request(client, fake_runs, session_factory):
    fake_runs.fail_on["create_run"] = LedgerTransientError("POST", "/v1/runs", 502, "bad gateway")

    resp = await client.post("/generate/content", json=CONTENT_BODY)

    assert resp.status_code == 500
    assert resp.json() == {"error": "runs-service POST /v1/runs failed: 502 - bad gateway"}

    async with session_factory() as session:
        rows = (await session.execute(select(Generation))).scalars().all()
    assert len(rows) == 1
    assert rows[0].generation_run_id is None


@pytest.mark.asyncio
async def test_content_cost_rejection_fails_request_but_keeps_link(client, fake_runs, session_factory):
    fake_runs.fail_on["add_costs"] = LedgerPermanentError("POST", "/v1/runs/run_gen_1/costs", 400)

    resp = await client.post("/generate/content", json=CONTENT_BODY)

    assert resp.status_code == 500
    assert "failed: 400" in resp.json()["error"]
    async with session_factory() as session:
        row = (await session.execute(select(Generation))).scalar_one()
    assert row.generation_run_id == "run_gen_1"


@pytest.mark.asyncio
async def test_run_without_id_fails_strict_request(client, fake_runs):
    fake_runs.run_id = None

    resp = await client.post("/generate/content", json=CONTENT_BODY)

    assert resp.status_code == 500
    assert "returned no run id" in resp.json()["error"]


@pytest.mark.asyncio
async def test_calendar_generation(client, fake_llm, fake_runs, key_requests, session_factory):
    resp = await client.post("/generate/calendar", json=CALENDAR_BODY)

    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Intro call"
    assert data["description"] == "30 minutes to talk"
    assert data["location"] == "Zoom"
    assert key_requests == [("byok", "org_test", "mcpfactory", CALENDAR_PROFILE.provider)]
    assert fake_runs.calls_to("create_run")[0]["task_name"] == "calendar-generation"
    assert fake_runs.calls_to("add_costs")[0]["items"][0]["costName"] == CALENDAR_PROFILE.input_cost_name

    async with session_factory() as session:
        row = (await session.execute(select(Generation))).scalar_one()
    assert row.kind == "calendar"
    assert row.model == CALENDAR_PROFILE.model


@pytest.mark.asyncio
async def test_calendar_ledger_failure_fails_request(client, fake_runs):
    fake_runs.fail_on["update_run"] = LedgerTransientError("PATCH", "/v1/runs/run_gen_1", None, "timed out")

    resp = await client.post("/generate/calendar", json=CALENDAR_BODY)

    assert resp.status_code == 500
    assert resp.json()["error"] == "runs-service PATCH /v1/runs/run_gen_1 failed: network error - timed out"


@pytest.mark.asyncio
async def test_idempotency_key_reused_across_kinds_is_rejected(client, fake_llm):
    first = await client.post("/generate/calendar", json=dict(CALENDAR_BODY, idempotencyKey="idem-7"))
    second = await client.post("/generate/content", json=dict(CONTENT_BODY, idempotencyKey="idem-7"))

    assert first.status_code == 200
    assert second.status_code == 400
    assert "already used for a calendar generation" in second.json()["error"]
    assert len(fake_llm.calls) == 1


@pytest.mark.asyncio
async def test_content_idempotent_replay(client, fake_llm, fake_runs):
    body = dict(CONTENT_BODY, idempotencyKey="idem-8")
    first = await client.post("/generate/content", json=body)
    second = await client.post("/generate/content", json=body)

    assert first.json() == second.json()
    assert len(fake_llm.calls) == 1
    assert len(fake_runs.calls_to("create_run")) == 1


@pytest.mark.asyncio
async def test_losing_an_idempotency_race_returns_the_winner(session_factory, fake_llm, fake_runs,
                                                             key_requests, monkeypatch):
    org = OrgContext(org_id=str(uuid.uuid4()), clerk_org_id="org_race")
    async with session_factory() as session:
        session.add(Org(id=org.org_id, clerk_org_id=org.clerk_org_id))
        session.add(Generation(
            id="winner",
            org_id=org.org_id,
            app_id="mcpfactory",
            kind="calendar",
            key_mode="byok",
            idempotency_key="idem-race",
            title="Winner",
            description="Stored first",
            model=CALENDAR_PROFILE.model,
            tokens_input=10,
            tokens_output=5,
        ))
        await session.commit()

    # Both requests passed the lookup before either one committed.
    real_lookup = generation_service.find_idempotent_generation
    lookups = []

    async def racing_lookup(db, org_id, key):
        lookups.append(key)
        if len(lookups) == 1:
            return None
        return await real_lookup(db, org_id, key)

    monkeypatch.setattr(generation_service, "find_idempotent_generation", racing_lookup)

    job = GenerationJob(
        kind="calendar",
        app_id="mcpfactory",
        key_mode="byok",
        task_name="calendar-generation",
        prompt="Intro call",
        idempotency_key="idem-race",
    )
    async with session_factory() as session:
        outcome = await GenerationOrchestrator(session, fake_runs, FailurePolicy.STRICT).run(org, job)

    assert outcome.idempotent_hit is True
    assert outcome.stage is GenerationStage.IDEMPOTENT_HIT
    assert outcome.generation_id == "winner"
    assert outcome.response["title"] == "Winner"
    assert fake_runs.calls == []

    async with session_factory() as session:
        rows = (await session.execute(select(Generation))).scalars().all()
    assert [r.id for r in rows] == ["winner"]


@pytest.mark.asyncio
async def test_missing_key_fails_before_llm_and_ledger(client, fake_llm, fake_runs, session_factory, monkeypatch):
    async def no_key(key_mode, clerk_org_id, app_id, provider):
        raise UpstreamKeyError(f"{provider} key not configured for app {app_id}")

    monkeypatch.setattr(key_client, "resolve_api_key", no_key)

    resp = await client.post("/generate/calendar", json=CALENDAR_BODY)

    assert resp.status_code == 500
    assert resp.json() == {"error": f"{CALENDAR_PROFILE.provider} key not configured for app mcpfactory"}
    assert fake_llm.calls == []
    assert fake_runs.calls == []
    async with session_factory() as session:
        assert (await session.execute(select(Generation))).scalars().all() == []


async def run_with_failing_link_commit(session_factory, fake_runs, policy, monkeypatch):
    """Runs a calendar job whose second commit (the run-id link) fails."""
    org = OrgContext(org_id=str(uuid.uuid4()), clerk_org_id="org_link")
    async with session_factory() as session:
        session.add(Org(id=org.org_id, clerk_org_id=org.clerk_org_id))
        await session.commit()

    job = GenerationJob(
        kind="calendar",
        app_id="mcpfactory",
        key_mode="byok",
        task_name="calendar-generation",
        prompt="Intro call",
    )
    async with session_factory() as session:
        real_commit = session.commit
        commits = []

        async def flaky_commit():
            commits.append(1)
            if len(commits) == 2:
                raise OperationalError("UPDATE generations", {}, Exception("database is locked"))
            await real_commit()

        monkeypatch.setattr(session, "commit", flaky_commit)
        return await GenerationOrchestrator(session, fake_runs, policy).run(org, job)


@pytest.mark.asyncio
async def test_best_effort_survives_run_link_commit_failure(session_factory, fake_llm, fake_runs,
                                                            key_requests, monkeypatch, caplog):
    with caplog.at_level(logging.ERROR, logger="content-generation.pipeline"):
        outcome = await run_with_failing_link_commit(
            session_factory, fake_runs, FailurePolicy.BEST_EFFORT, monkeypatch,
        )

    assert isinstance(outcome.ledger_error, OperationalError)
    assert outcome.response["title"] == "Intro call"
    assert outcome.generation_run_id is None
    assert fake_runs.calls_to("add_costs") == []

    message = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR][0]
    assert "run_linked" in message
    assert outcome.generation_id in message
    assert CALENDAR_PROFILE.input_cost_name in message

    async with session_factory() as session:
        row = (await session.execute(select(Generation))).scalar_one()
    assert row.id == outcome.generation_id
    assert row.generation_run_id is None


@pytest.mark.asyncio
async def test_strict_fails_on_run_link_commit_failure(session_factory, fake_llm, fake_runs,
                                                       key_requests, monkeypatch):
    with pytest.raises(OperationalError):
        await run_with_failing_link_commit(session_factory, fake_runs, FailurePolicy.STRICT, monkeypatch)

    assert fake_runs.calls_to("add_costs") == []
    assert fake_runs.calls_to("update_run") == []


@pytest.mark.asyncio
async def test_oversized_content_fields_are_400_before_llm(client, fake_llm, key_requests):
    long_key = await client.post("/generate/content", json=dict(CONTENT_BODY, idempotencyKey="k" * 191))
    long_parent = await client.post("/generate/calendar", json=dict(CALENDAR_BODY, parentRunId="r" * 121))

    assert long_key.status_code == 400
    assert long_parent.status_code == 400
    assert key_requests == []
    assert fake_llm.calls == []
