"""Integration tests for inbound workflow webhooks."""

import json

import pytest

from core.webhook_signing import compute_signature

BASE = "/api/webhooks/workflow"


async def stored_runs(app, workflow):
    runs, _ = await app.state.workflow_store.list_runs(workflow.id, workflow.organization_id)
    return runs


@pytest.mark.asyncio
class TestReceiveWebhook:
    """POST /api/webhooks/workflow/{id}"""

    async def test_unsigned_webhook_starts_run(self, app, client, make_workflow, email_step, mailer):
        wf = await make_workflow(steps=[email_step])

        resp = await client.post(
            f"{BASE}/{wf.id}",
            json={"order": 42},
            headers={"Authorization": "Bearer upstream-token", "X-Source": "shop"},
        )

        assert resp.status_code == 202, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Workflow triggered"
        assert body["workflow_id"] == wf.id
        assert body["workflow_name"] == "Test Workflow"

        await app.state.dispatcher.drain()
        [run] = await stored_runs(app, wf)
        assert run.status.value == "succeeded"
        assert run.trigger_type == "webhook"
        assert run.trigger_data["payload"] == {"order": 42}
        assert run.trigger_data["headers"]["x-source"] == "shop"
        assert "authorization" not in run.trigger_data["headers"]
        assert mailer.sent[0]["body_html"] == "<p>webhook</p>"

    async def test_signed_webhook(self, app, client, make_workflow, email_step):
        wf = await make_workflow(trigger_config={"secret": "s3cret"}, steps=[email_step])
        body = json.dumps({"event": "paid"}).encode()

        resp = await client.post(
            f"{BASE}/{wf.id}",
            content=body,
            headers={"Content-Type": "application/json", "X-Webhook-Signature": compute_signature(body, "s3cret")},
        )

        assert resp.status_code == 202
        await app.state.dispatcher.drain()
        assert len(await stored_runs(app, wf)) == 1

    async def test_missing_signature(self, app, client, make_workflow):
        wf = await make_workflow(trigger_config={"secret": "s3cret"})
        resp = await client.post(f"{BASE}/{wf.id}", json={})

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing webhook signature"
        assert await stored_runs(app, wf) == []

    async def test_wrong_signature(self, app, client, make_workflow):
        wf = await make_workflow(trigger_config={"secret": "s3cret"})
        resp = await client.post(
            f"{BASE}/{wf.id}", content=b"{}", headers={"X-Signature": compute_signature(b"{}", "other")}
        )

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid webhook signature"
        assert resp.json()["error"] == "unauthorized"

    async def test_ip_allow_list(self, client, make_workflow):
        wf = await make_workflow(trigger_config={"allowed_ips": ["203.0.113.7"]})

        allowed = await client.post(
            f"{BASE}/{wf.id}", json={}, headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        )
        denied = await client.post(
            f"{BASE}/{wf.id}", json={}, headers={"X-Forwarded-For": "198.51.100.1"}
        )

        assert allowed.status_code == 202
        assert denied.status_code == 401
        assert denied.json()["detail"] == "IP address not allowed"

    async def test_valid_signature_does_not_bypass_ip_allow_list(self, app, client, make_workflow):
        wf = await make_workflow(trigger_config={"secret": "s3cret", "allowed_ips": ["203.0.113.7"]})
        body = b'{"event": "paid"}'

        resp = await client.post(
            f"{BASE}/{wf.id}",
            content=body,
            headers={
                "X-Webhook-Signature": compute_signature(body, "s3cret"),
                "X-Forwarded-For": "198.51.100.1",
            },
        )

        assert resp.status_code == 401
        assert resp.json()["detail"] == "IP address not allowed"
        assert await stored_runs(app, wf) == []

    async def test_id_spelling_is_normalized(self, app, client, make_workflow):
        wf = await make_workflow()

        upper = await client.post(f"{BASE}/{wf.id.upper()}", json={})
        braced = await client.post(f"{BASE}/{{{wf.id}}}", json={})

        assert upper.status_code == 202, upper.text
        assert braced.status_code == 202, braced.text
        assert upper.json()["workflow_id"] == wf.id
        await app.state.dispatcher.drain()
        assert len(await stored_runs(app, wf)) == 2

    async def test_non_json_body_is_kept_raw(self, app, client, make_workflow):
        wf = await make_workflow()
        resp = await client.post(f"{BASE}/{wf.id}", content=b"name=ada&plan=pro")

        assert resp.status_code == 202
        await app.state.dispatcher.drain()
        [run] = await stored_runs(app, wf)
        assert run.trigger_data["payload"] == {"raw": "name=ada&plan=pro"}

    async def test_malformed_id(self, client):
        resp = await client.post(f"{BASE}/not-a-uuid", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid workflow ID format"

    async def test_unknown_workflow(self, client):
        resp = await client.post(f"{BASE}/00000000-0000-0000-0000-000000000000", json={})
        assert resp.status_code == 404

    async def test_non_webhook_workflow_is_not_found(self, client, make_workflow):
        wf = await make_workflow(trigger_type="manual")
        resp = await client.post(f"{BASE}/{wf.id}", json={})
        assert resp.status_code == 404

    async def test_inactive_workflow(self, client, make_workflow):
        wf = await make_workflow(is_active=False)
        resp = await client.post(f"{BASE}/{wf.id}", json={})

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Workflow is not active"


@pytest.mark.asyncio
class TestWebhookInfo:
    """GET /api/webhooks/workflow/{id}"""

    async def test_signed_workflow_info(self, client, make_workflow):
        wf = await make_workflow(trigger_config={"secret": "s3cret"})
        resp = await client.get(f"{BASE}/{wf.id}")

        assert resp.status_code == 200
        data = resp.json()
        assert data["endpoint"] == f"http://localhost:8000/api/webhooks/workflow/{wf.id}"
        assert data["method"] == "POST"
        assert data["signature_required"] is True
        assert "x-webhook-signature" in data["headers"]

    async def test_unsigned_workflow_info(self, client, make_workflow):
        wf = await make_workflow()
        data = (await client.get(f"{BASE}/{wf.id}")).json()

        assert data["signature_required"] is False
        assert data["headers"] == {"Content-Type": "application/json"}
