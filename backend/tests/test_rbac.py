"""Tests for token verification, role checks and the workflow plan gate."""

import jwt
import pytest

from app.config import get_settings
from core.exceptions import UnauthorizedError
from core.security import ALGORITHM, create_access_token, verify_token

from conftest import create_org, create_user, headers_for

WORKFLOWS = "/api/v1/workflows"


@pytest.mark.unit
class TestVerifyToken:
    """JWT decoding."""

    def test_round_trip(self):
        token = create_access_token("u-1", "a@example.com", "org-1", role="pm")
        payload = verify_token(token)
        assert (payload.sub, payload.org_id, payload.role) == ("u-1", "org-1", "pm")

    def test_expired(self):
        token = create_access_token("u-1", "a@example.com", "org-1", expires_minutes=-1)
        with pytest.raises(UnauthorizedError, match="Token has expired"):
            verify_token(token)

    def test_wrong_key(self):
        token = jwt.encode({"sub": "u-1"}, "another-key", algorithm=ALGORITHM)
        with pytest.raises(UnauthorizedError, match="Invalid token"):
            verify_token(token)

    def test_missing_org_claim(self):
        token = jwt.encode(
            {"sub": "u-1", "email": "a@example.com"}, get_settings().SECRET_KEY, algorithm=ALGORITHM
        )
        with pytest.raises(UnauthorizedError, match="Invalid token payload"):
            verify_token(token)

    def test_role_defaults_to_member(self):
        token = jwt.encode(
            {"sub": "u-1", "email": "a@example.com", "org_id": "o", "iat": 0, "exp": 4102444800},
            get_settings().SECRET_KEY,
            algorithm=ALGORITHM,
        )
        assert verify_token(token).role == "member"


@pytest.mark.asyncio
class TestAccessChecks:
    """Dependencies as seen through the workflow routes."""

    async def test_garbage_bearer_token(self, client):
        resp = await client.get(WORKFLOWS, headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    async def test_missing_header(self, client):
        resp = await client.get(WORKFLOWS)
        assert resp.json()["detail"] == "Missing authorization header"

    async def test_deactivated_user(self, client, db_session, test_org):
        user = await create_user(db_session, test_org, is_active=False)
        resp = await client.get(WORKFLOWS, headers=headers_for(user))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "User account is deactivated"

    async def test_token_for_another_org(self, client, db_session, test_user):
        other = await create_org(db_session)
        token = create_access_token(test_user.id, test_user.email, other.id, role="admin")
        resp = await client.get(WORKFLOWS, headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    async def test_role_comes_from_token(self, client, test_user, email_step):
        body = {"name": "x", "trigger_type": "manual", "steps": [email_step]}
        resp = await client.post(WORKFLOWS, json=body, headers=headers_for(test_user, role="member"))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Requires role: admin, pm"

    async def test_members_can_read(self, client, member_headers, make_workflow):
        await make_workflow()
        resp = await client.get(WORKFLOWS, headers=member_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

    async def test_inactive_org_is_gated(self, client, db_session):
        org = await create_org(db_session, is_active=False)
        admin = await create_user(db_session, org)
        resp = await client.get(WORKFLOWS, headers=headers_for(admin))
        assert resp.status_code == 403
