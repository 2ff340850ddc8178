"""
Tests for identity provisioning, session tokens and profile access.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlmodel import select

from foodnfun import crud
from foodnfun.config import DEV_JWT_SECRET, Settings, get_settings
from foodnfun.errors import ConstraintViolation, NotAuthenticated
from foodnfun.models import Identity, Profile, Role
from foodnfun.main import check_secrets
from foodnfun.security import JWT_ALGORITHM, decode_session_token


@pytest.mark.parametrize(
    "email, role",
    [
        ("a@manager.com", Role.MANAGER),
        ("Boss@Manager.COM", Role.MANAGER),
        ("b@servant.com", Role.SERVANT),
        ("b@unknown.com", Role.SERVANT),
        ("manager.com@gmail.com", Role.SERVANT),
    ],
)
def test_role_for_email(email, role):
    assert crud.role_for_email(email) == role


class TestProvisionIdentity:

    def test_profile_is_created_with_identity(self, client, session, access_headers):
        response = client.post("/auth/identities", json={"email": "a@manager.com"}, headers=access_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["profile"]["role"] == "manager"
        assert body["profile"]["id"] == body["id"]
        assert len(session.exec(select(Profile)).all()) == 1

    def test_supplied_identity_id_is_kept(self, client, access_headers):
        identity_id = uuid.uuid4()

        response = client.post(
            "/auth/identities",
            json={"email": "b@unknown.com", "id": str(identity_id)},
            headers=access_headers,
        )

        assert response.json()["id"] == str(identity_id)
        assert response.json()["profile"]["role"] == "servant"

    def test_access_key_is_required(self, client):
        response = client.post("/auth/identities", json={"email": "a@manager.com"})

        assert response.status_code == 401

    def test_wrong_access_key_is_rejected(self, client):
        response = client.post(
            "/auth/identities",
            json={"email": "a@manager.com"},
            headers={"X-Access-Key": "guess"},
        )

        assert response.status_code == 401

    def test_duplicate_email_is_rejected(self, session):
        crud.provision_identity(session, "a@manager.com")

        with pytest.raises(ConstraintViolation):
            crud.provision_identity(session, "A@Manager.com")

    def test_malformed_email_is_rejected(self, client, access_headers):
        response = client.post("/auth/identities", json={"email": "nobody"}, headers=access_headers)

        assert response.status_code == 422

    def test_profile_shares_identity_id(self, session):
        identity, profile = crud.provision_identity(session, "c@servant.com")

        assert profile.id == identity.id
        assert session.exec(select(Identity)).all() == [identity]


class TestSessionTokens:

    def test_token_carries_role_claim(self, client, manager, access_headers):
        identity, _ = manager

        response = client.post(f"/auth/identities/{identity.id}/token", headers=access_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "manager"
        principal = decode_session_token(body["access_token"])
        assert principal.identity_id == identity.id
        assert principal.role == Role.MANAGER

    def test_token_for_unknown_identity_is_404(self, client, access_headers):
        response = client.post(f"/auth/identities/{uuid.uuid4()}/token", headers=access_headers)

        assert response.status_code == 404

    def test_expired_token_is_rejected(self, manager):
        identity, _ = manager
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": str(identity.id), "role": "manager", "exp": past},
            get_settings().jwt_secret,
            algorithm=JWT_ALGORITHM,
        )

        with pytest.raises(NotAuthenticated):
            decode_session_token(token)

    def test_token_with_unknown_role_is_rejected(self, manager):
        identity, _ = manager
        token = jwt.encode(
            {"sub": str(identity.id), "role": "owner"},
            get_settings().jwt_secret,
            algorithm=JWT_ALGORITHM,
        )

        with pytest.raises(NotAuthenticated):
            decode_session_token(token)

    def test_token_signed_elsewhere_is_rejected(self, client, manager):
        identity, _ = manager
        token = jwt.encode(
            {"sub": str(identity.id), "role": "manager"},
            "someone-elses-secret-that-is-long-enough",
            algorithm=JWT_ALGORITHM,
        )

        response = client.post(
            "/tables",
            json={"id": 3},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401


class TestProfileAccess:

    def test_any_staff_member_reads_all_profiles(self, client, manager, servant_headers):
        response = client.get("/profiles", headers=servant_headers)

        assert response.status_code == 200
        assert sorted(p["role"] for p in response.json()) == ["manager", "servant"]

    def test_anonymous_cannot_read_profiles(self, client, manager):
        assert client.get("/profiles").status_code == 401

    def test_read_own_profile(self, client, servant, servant_headers):
        identity, _ = servant

        response = client.get("/profiles/me", headers=servant_headers)

        assert response.json()["id"] == str(identity.id)
        assert response.json()["role"] == "servant"

    def test_read_someone_elses_profile(self, client, manager, servant_headers):
        identity, _ = manager

        response = client.get(f"/profiles/{identity.id}", headers=servant_headers)

        assert response.status_code == 200
        assert response.json()["role"] == "manager"

    def test_owner_updates_display_name(self, client, servant, servant_headers):
        identity, _ = servant

        response = client.patch(
            f"/profiles/{identity.id}",
            json={"display_name": "Ravi"},
            headers=servant_headers,
        )

        assert response.status_code == 200
        assert response.json()["display_name"] == "Ravi"

    def test_cannot_update_another_profile(self, client, manager, servant_headers):
        identity, _ = manager

        response = client.patch(
            f"/profiles/{identity.id}",
            json={"display_name": "Boss"},
            headers=servant_headers,
        )

        assert response.status_code == 403

    def test_role_is_not_self_service(self, client, servant, servant_headers):
        identity, _ = servant

        response = client.patch(
            f"/profiles/{identity.id}",
            json={"role": "manager"},
            headers=servant_headers,
        )

        assert response.status_code == 422

    def test_deleting_identity_removes_profile(self, session, servant):
        identity, _ = servant

        session.delete(identity)
        session.commit()

        assert session.exec(select(Profile)).all() == []


class TestWithoutAccessKey:

    @pytest.fixture(autouse=True)
    def no_access_key(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "access_key", None)

    def test_provisioning_is_closed(self, client):
        response = client.post("/auth/identities", json={"email": "evil@manager.com"})

        assert response.status_code == 401

    def test_token_issuance_is_closed(self, client, manager):
        identity, _ = manager

        for headers in ({}, {"X-Access-Key": ""}, {"X-Access-Key": "anything"}):
            response = client.post(f"/auth/identities/{identity.id}/token", headers=headers)
            assert response.status_code == 401

    def test_anonymous_caller_cannot_become_staff(self, client, session):
        client.post("/auth/identities", json={"email": "evil@manager.com"})

        assert session.exec(select(Identity).where(Identity.email == "evil@manager.com")).first() is None
        response = client.post(
            "/menu-items",
            json={"title": "Free lunch", "description": "Not on the menu", "price": "1.00", "prep_time": 1, "category": "main"},
        )
        assert response.status_code == 401


class TestStartupSecrets:

    def test_default_secret_refused_outside_development(self):
        settings = Settings(environment="production", jwt_secret=DEV_JWT_SECRET, access_key="key")

        with pytest.raises(RuntimeError):
            check_secrets(settings)

    def test_default_secret_warns_in_development(self, caplog):
        settings = Settings(environment="development", jwt_secret=DEV_JWT_SECRET, access_key="key")

        check_secrets(settings)

        assert "development JWT secret" in caplog.text

    def test_missing_access_key_warns(self, caplog):
        settings = Settings(environment="production", jwt_secret="a-real-secret-0123456789abcdef", access_key=None)

        check_secrets(settings)

        assert "ACCESS_KEY is not set" in caplog.text
