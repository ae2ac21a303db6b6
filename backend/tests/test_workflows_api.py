"""Integration tests for the workflow endpoints.

These tests exercise the full HTTP stack: FastAPI -> route -> service -> DB.
"""

import pytest
from sqlalchemy import select

BASE = "/api/v1/workflows"


def definition(email_step, **overrides):
    body = {
        "name": "Notify ops",
        "description": "Mail ops on every call",
        "trigger_type": "webhook",
        "trigger_config": {},
        "steps": [email_step],
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
class TestCreateWorkflow:
    """POST /workflows"""

    async def test_create_starts_inactive(self, client, auth_headers, email_step, test_org):
        resp = await client.post(BASE, json=definition(email_step), headers=auth_headers)

        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["is_active"] is False
        assert data["organization_id"] == test_org.id
        assert data["run_count"] == 0
        assert len(data["steps"]) == 1
        assert data["steps"][0]["action_type"] == "send_email"

    async def test_requires_auth(self, client, email_step):
        resp = await client.post(BASE, json=definition(email_step))
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthorized"

    async def test_member_cannot_create(self, client, member_headers, email_step):
        resp = await client.post(BASE, json=definition(email_step), headers=member_headers)
        assert resp.status_code == 403

    async def test_pm_can_create(self, client, db_session, test_org, email_step):
        from conftest import create_user, headers_for

        pm = await create_user(db_session, test_org, role="pm")
        resp = await client.post(BASE, json=definition(email_step), headers=headers_for(pm))
        assert resp.status_code == 201

    async def test_free_plan_is_rejected(self, client, free_org_headers, email_step):
        resp = await client.post(BASE, json=definition(email_step), headers=free_org_headers)
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Workflow automation is not available on your plan"

    async def test_unknown_action_type(self, client, auth_headers, email_step):
        step = {**email_step, "action_type": "fax"}
        resp = await client.post(BASE, json=definition(email_step, steps=[step]), headers=auth_headers)

        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"
        assert "unknown action_type 'fax'" in resp.json()["detail"]

    async def test_duplicate_step_order(self, client, auth_headers, email_step):
        resp = await client.post(
            BASE, json=definition(email_step, steps=[email_step, email_step]), headers=auth_headers
        )
        assert resp.status_code == 422
        assert "duplicate step_order 0" in resp.json()["detail"]

    async def test_unknown_template_variable(self, client, auth_headers, email_step):
        step = {**email_step, "action_config": {**email_step["action_config"], "to": "{{ env.ADMIN }}"}}
        resp = await client.post(BASE, json=definition(email_step, steps=[step]), headers=auth_headers)
        assert resp.status_code == 422
        assert "unknown template variable 'env.ADMIN'" in resp.json()["detail"]

    async def test_condition_else_goto_must_point_forward(self, client, auth_headers, email_step):
        cond = {
            "step_order": 1,
            "step_type": "condition",
            "condition": {"operator": "equals", "field": "trigger.data.x", "value": 1},
            "else_goto_step": 1,
        }
        resp = await client.post(
            BASE, json=definition(email_step, steps=[email_step, cond]), headers=auth_headers
        )
        assert resp.status_code == 422
        assert "else_goto_step must be greater than step_order 1" in resp.json()["detail"]

    async def test_loop_step_config_is_validated(self, client, auth_headers, email_step):
        good = {"step_order": 1, "step_type": "loop", "action_config": {"collection_field": "trigger.data.items"}}
        bad = {"step_order": 2, "step_type": "loop", "action_config": {"item_variable": "two words"}}

        resp = await client.post(
            BASE, json=definition(email_step, steps=[email_step, good, bad]), headers=auth_headers
        )

        assert resp.status_code == 422
        detail = resp.json()["detail"]
        assert "steps[2].action_config.collection_field" in detail
        assert "steps[2].action_config.item_variable" in detail
        assert "steps[1]" not in detail

    async def test_invalid_trigger_config(self, client, auth_headers, email_step):
        body = definition(
            email_step, trigger_type="schedule", trigger_config={"schedule_type": "cron", "cron": "nope"}
        )
        resp = await client.post(BASE, json=body, headers=auth_headers)
        assert resp.status_code == 422
        assert "Invalid cron expression" in resp.json()["detail"]

    async def test_unknown_trigger_type_fails_schema(self, client, auth_headers, email_step):
        resp = await client.post(
            BASE, json=definition(email_step, trigger_type="email"), headers=auth_headers
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

    async def test_creation_is_audited(self, client, auth_headers, email_step, session_factory):
        from db.models.audit_log import AuditLog

        resp = await client.post(BASE, json=definition(email_step), headers=auth_headers)
        async with session_factory() as session:
            rows = (await session.execute(select(AuditLog))).scalars().all()
        assert [(r.resource_id, r.action) for r in rows] == [(resp.json()["id"], "create")]


@pytest.mark.asyncio
class TestReadWorkflows:
    """GET /workflows and /workflows/{id}"""

    async def test_list_and_filter(self, client, auth_headers, make_workflow):
        await make_workflow(trigger_type="webhook")
        await make_workflow(trigger_type="manual", is_active=False)

        resp = await client.get(BASE, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 2

        resp = await client.get(BASE, params={"trigger_type": "manual"}, headers=auth_headers)
        assert [w["trigger_type"] for w in resp.json()["data"]] == ["manual"]

        resp = await client.get(BASE, params={"is_active": "true"}, headers=auth_headers)
        assert resp.json()["total"] == 1

    async def test_get_one_with_steps(self, client, auth_headers, make_workflow, email_step):
        wf = await make_workflow(steps=[email_step])
        resp = await client.get(f"{BASE}/{wf.id}", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["steps"][0]["step_order"] == 0

    async def test_other_tenant_is_not_found(self, client, other_org_headers, make_workflow):
        wf = await make_workflow()
        resp = await client.get(f"{BASE}/{wf.id}", headers=other_org_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    async def test_catalog(self, client, auth_headers):
        resp = await client.get(f"{BASE}/catalog", headers=auth_headers)

        assert resp.status_code == 200
        actions = {a["action_type"]: a for a in resp.json()["action_types"]}
        assert "send_email" in actions
        assert "to" in actions["send_email"]["config_schema"]["properties"]
        assert actions["webhook_call"]["is_external"] is True
        assert {t["type"] for t in resp.json()["trigger_types"]} == {
            "event", "schedule", "webhook", "manual",
        }


@pytest.mark.asyncio
class TestUpdateWorkflow:
    """PUT, activate, deactivate, DELETE"""

    async def test_update_replaces_steps(self, client, auth_headers, make_workflow, email_step):
        wf = await make_workflow(steps=[email_step, {**email_step, "step_order": 1}])
        new_step = {**email_step, "step_order": 3, "name": "only"}

        resp = await client.put(
            f"{BASE}/{wf.id}", json={"name": "Renamed", "steps": [new_step]}, headers=auth_headers
        )

        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["name"] == "Renamed"
        assert [(s["step_order"], s["name"]) for s in data["steps"]] == [(3, "only")]

    async def test_update_without_steps_keeps_them(self, client, auth_headers, make_workflow, email_step):
        wf = await make_workflow(steps=[email_step])
        resp = await client.put(f"{BASE}/{wf.id}", json={"description": "new"}, headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["description"] == "new"
        assert len(resp.json()["steps"]) == 1

    async def test_activate_and_deactivate(self, client, auth_headers, make_workflow, email_step):
        wf = await make_workflow(is_active=False, steps=[email_step])

        resp = await client.post(f"{BASE}/{wf.id}/activate", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is True

        resp = await client.post(f"{BASE}/{wf.id}/deactivate", headers=auth_headers)
        assert resp.json()["is_active"] is False

    async def test_activate_revalidates_definition(self, client, auth_headers, make_workflow):
        wf = await make_workflow(
            is_active=False,
            steps=[{"step_order": 0, "step_type": "action", "action_type": None}],
        )
        resp = await client.post(f"{BASE}/{wf.id}/activate", headers=auth_headers)
        assert resp.status_code == 422

    async def test_delete_requires_admin(self, client, member_headers, make_workflow):
        wf = await make_workflow()
        resp = await client.delete(f"{BASE}/{wf.id}", headers=member_headers)
        assert resp.status_code == 403

    async def test_delete_unused_workflow(self, client, auth_headers, make_workflow):
        wf = await make_workflow()
        resp = await client.delete(f"{BASE}/{wf.id}", headers=auth_headers)

        assert resp.status_code == 200
        assert (await client.get(f"{BASE}/{wf.id}", headers=auth_headers)).status_code == 404

    async def test_delete_with_runs_conflicts(self, client, auth_headers, make_workflow, email_step):
        wf = await make_workflow(steps=[email_step])
        await client.post(f"{BASE}/{wf.id}/test", headers=auth_headers)

        resp = await client.delete(f"{BASE}/{wf.id}", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"


@pytest.mark.asyncio
class TestTestRuns:
    """POST /workflows/{id}/test"""

    async def test_runs_inactive_workflow_synchronously(
        self, client, auth_headers, make_workflow, email_step, mailer, test_user
    ):
        wf = await make_workflow(is_active=False, steps=[email_step])
        resp = await client.post(
            f"{BASE}/{wf.id}/test", json={"trigger_data": {"source": "builder"}}, headers=auth_headers
        )

        assert resp.status_code == 201, resp.text
        run = resp.json()
        assert run["status"] == "succeeded"
        assert run["trigger_type"] == "manual"
        assert run["trigger_data"] == {"is_test": True, "source": "builder"}
        assert run["triggered_by_id"] == test_user.id
        assert run["steps"][0]["status"] == "succeeded"
        assert mailer.sent == [{
            "to": "ops@example.com",
            "subject": "Hello Test Workflow",
            "body_html": "<p>manual</p>",
        }]

    async def test_failed_run_is_returned_not_raised(
        self, client, auth_headers, make_workflow, email_step, mailer
    ):
        mailer.fail_with = "mailbox full"
        wf = await make_workflow(steps=[email_step])
        resp = await client.post(f"{BASE}/{wf.id}/test", headers=auth_headers)

        assert resp.status_code == 201
        assert resp.json()["status"] == "failed"
        assert resp.json()["error_message"] == "Step 0 (send_email) failed: mailbox full"

    async def test_run_updates_workflow_counters(self, client, auth_headers, make_workflow, email_step):
        wf = await make_workflow(steps=[email_step])
        await client.post(f"{BASE}/{wf.id}/test", headers=auth_headers)

        data = (await client.get(f"{BASE}/{wf.id}", headers=auth_headers)).json()
        assert data["run_count"] == 1
        assert data["last_run_at"] is not None

    async def test_unknown_workflow(self, client, auth_headers):
        resp = await client.post(f"{BASE}/00000000-0000-0000-0000-000000000000/test", headers=auth_headers)
        assert resp.status_code == 404
