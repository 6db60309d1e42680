"""Workspace registration: POST /api/v1/authentication/register."""

from fastapi.testclient import TestClient

from portal.core.constants import EmailType, RoleType, SubscriptionType
from portal.core.security import verify_password
from portal.main import app
from portal.models import Client, EmailVerificationCode, SentEmail, User, UserRole
from portal.services.mailer import Mailer

URL = "/api/v1/authentication/register"


def _payload(**overrides):
    payload = {
        "workspaceURL": "initech",
        "firstName": "Peter",
        "lastName": "Gibbons",
        "emailAddress": "Peter@Initech.com",
        "password": "tps-reports-2000",
        "language": "fr",
    }
    payload.update(overrides)
    return payload


def test_register_creates_workspace_owner_and_code(test_client, db_session):
    response = test_client.post(URL, json=_payload())

    assert response.status_code == 200
    assert response.json() == {"status": 200, "message": "Success"}

    client = db_session.query(Client).filter_by(workspace_url="initech").one()
    assert client.name == "initech"
    assert client.subscription_id == SubscriptionType.TRIAL
    assert client.default_language == 2
    assert (client.subscription_end_date - client.subscription_start_date).days == 14

    user = db_session.query(User).filter_by(client_id=client.id).one()
    assert user.email_address == "peter@initech.com"
    assert user.email_verified is False
    assert verify_password("tps-reports-2000", user.password)

    roles = db_session.query(UserRole).filter_by(user_id=user.id).all()
    assert [r.role_id for r in roles] == [RoleType.OWNER]
    assert roles[0].active is True

    code = db_session.query(EmailVerificationCode).filter_by(user_id=user.id).one()
    assert code.activated is False
    assert code.grace_period == 2
    assert code.client_id == client.id

    email = db_session.query(SentEmail).one()
    assert email.email_type == EmailType.CLIENT_WELCOME
    assert email.to_address == "peter@initech.com"
    assert email.user_id == user.id


def test_duplicate_workspace_is_rejected(test_client, make_workspace, db_session):
    make_workspace("initech")

    response = test_client.post(URL, json=_payload())

    assert response.status_code == 403
    body = response.json()
    assert body["message"] == "The workspace could not be validated"
    assert body["reason"] == {"workspaceURL": ["This workspace URL is already registered"]}
    assert db_session.query(Client).count() == 1


def test_inactive_workspace_url_can_be_reused(test_client, make_workspace, db_session):
    old, _ = make_workspace("initech")
    old.active = False
    db_session.commit()

    response = test_client.post(URL, json=_payload())

    assert response.status_code == 200
    assert db_session.query(Client).filter_by(workspace_url="initech", active=True).count() == 1


def test_workspace_url_is_normalized(test_client, db_session):
    response = test_client.post(URL, json=_payload(workspaceURL="  InitTech "))

    assert response.status_code == 200
    assert db_session.query(Client).filter_by(workspace_url="inittech").count() == 1


def test_invalid_body_uses_error_envelope(test_client, db_session):
    response = test_client.post(
        URL, json=_payload(workspaceURL="-bad-", emailAddress="not-an-email", password="short")
    )

    assert response.status_code == 403
    body = response.json()
    assert body["status"] == 403
    assert body["message"] == "The workspace could not be validated"
    assert set(body["reason"]) == {"workspaceURL", "emailAddress", "password"}
    assert db_session.query(Client).count() == 0


def test_failure_midway_rolls_back_everything(db_session, fake_redis, monkeypatch):
    """A failing email step leaves no client, user, role or code behind."""

    def explode(self, *args, **kwargs):
        raise RuntimeError("mail template missing")

    monkeypatch.setattr(Mailer, "send_email", explode)

    def override_get_db():
        yield db_session

    from portal.database import get_db
    app.dependency_overrides[get_db] = override_get_db
    try:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post(URL, json=_payload())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json()["message"] == "Internal server error"
    assert db_session.query(Client).count() == 0
    assert db_session.query(User).count() == 0
    assert db_session.query(UserRole).count() == 0
    assert db_session.query(EmailVerificationCode).count() == 0


def test_invalid_body_message_is_localized(test_client):
    response = test_client.post(
        URL, json={"workspaceURL": "acme"}, headers={"Accept-Language": "fr"}
    )

    assert response.status_code == 403
    assert response.json()["message"] == "L'espace de travail n'a pas pu être validé"
