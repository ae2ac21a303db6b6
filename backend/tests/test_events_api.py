"""Integration tests for internal event emission."""

import pytest

URL = "/api/v1/events"

TASK_CREATED = {
    "event_type": "task.created",
    "entity_type": "task",
    "entity_id": "task-1",
    "data": {"title": "Call back", "priority": "high"},
}


@pytest.mark.asyncio
class TestEmitEvent:
    """POST /api/v1/events"""

    async def test_matching_workflow_runs(self, app, client, auth_headers, make_workflow, mailer, test_user):
        step = {
            "step_order": 0,
            "action_type": "send_email",
            "action_config": {
                "to": "ops@example.com",
                "subject": "New task: {{ trigger.data.task.title }}",
                "body_html": "<p>{{ trigger.data.task.priority }}</p>",
            },
        }
        wf = await make_workflow(
            trigger_type="event",
            trigger_config={"event_types": ["task.created"], "filters": {"priority": "high"}},
            steps=[step],
        )
        await make_workflow(trigger_type="event", trigger_config={"event_types": ["task.deleted"]})

        resp = await client.post(URL, json=TASK_CREATED, headers=auth_headers)

        assert resp.status_code == 202, resp.text
        assert resp.json() == {"matched": 1, "workflow_ids": [wf.id]}

        await app.state.dispatcher.drain()
        assert mailer.sent[0]["subject"] == "New task: Call back"
        runs, _ = await app.state.workflow_store.list_runs(wf.id, wf.organization_id)
        assert runs[0].trigger_type == "event"
        assert runs[0].triggered_by_id == test_user.id

    async def test_filters_exclude(self, client, auth_headers, make_workflow):
        await make_workflow(
            trigger_type="event",
            trigger_config={"event_types": ["task.created"], "filters": {"priority": "low"}},
        )
        resp = await client.post(URL, json=TASK_CREATED, headers=auth_headers)
        assert resp.json() == {"matched": 0, "workflow_ids": []}

    async def test_inactive_and_foreign_workflows_ignored(self, client, auth_headers, other_org_headers, make_workflow):
        await make_workflow(
            trigger_type="event", trigger_config={"event_types": ["task.created"]}, is_active=False
        )
        await make_workflow(trigger_type="event", trigger_config={"event_types": ["task.created"]})

        resp = await client.post(URL, json=TASK_CREATED, headers=other_org_headers)
        assert resp.json()["matched"] == 0

    async def test_requires_auth(self, client):
        resp = await client.post(URL, json=TASK_CREATED)
        assert resp.status_code == 401

    async def test_free_plan_rejected(self, client, free_org_headers):
        resp = await client.post(URL, json=TASK_CREATED, headers=free_org_headers)
        assert resp.status_code == 403

    async def test_event_type_required(self, client, auth_headers):
        resp = await client.post(URL, json={**TASK_CREATED, "event_type": ""}, headers=auth_headers)
        assert resp.status_code == 422
        assert isinstance(resp.json()["detail"], list)
