"""Email verification codes: redeem and resend."""

from datetime import datetime, timedelta

from portal.core.constants import EmailType
from portal.models import EmailVerificationCode, SentEmail

VERIFY_URL = "/api/v1/authentication/verify-email"
RESEND_URL = "/api/v1/authentication/verify-email/resend"
SESSION_URL = "/api/v1/authentication/session"


def _add_code(db_session, client, user, code="verify-me", created_at=None, grace_period=2, activated=False):
    row = EmailVerificationCode(
        verification_code=code,
        user_id=user.id,
        client_id=client.id,
        grace_period=grace_period,
        activated=activated,
        created_at=created_at or datetime.utcnow(),
    )
    db_session.add(row)
    db_session.commit()
    return row


class TestVerifyEmail:
    def test_valid_code_verifies_user(self, test_client, make_workspace, db_session):
        client, user = make_workspace()
        code = _add_code(db_session, client, user)

        response = test_client.post(VERIFY_URL, json={"workspaceURL": "acme", "code": "verify-me"})

        assert response.status_code == 200
        assert response.json() == {"status": 200, "message": "Success"}
        assert user.email_verified is True
        assert code.activated is True

    def test_used_code_is_rejected(self, test_client, make_workspace, db_session):
        client, user = make_workspace()
        _add_code(db_session, client, user, activated=True)

        response = test_client.post(VERIFY_URL, json={"workspaceURL": "acme", "code": "verify-me"})

        assert response.status_code == 403
        body = response.json()
        assert body["message"] == "The email address could not be verified"
        assert body["reason"] == {"code": ["This verification code has already been used"]}
        assert user.email_verified is False

    def test_expired_code_is_rejected(self, test_client, make_workspace, db_session):
        client, user = make_workspace()
        code = _add_code(db_session, client, user, created_at=datetime.utcnow() - timedelta(hours=3))

        response = test_client.post(VERIFY_URL, json={"workspaceURL": "acme", "code": "verify-me"})

        assert response.status_code == 403
        assert response.json()["reason"] == {"code": ["This verification code expired after 2 hour(s)"]}
        assert code.activated is False
        assert user.email_verified is False

    def test_unknown_code_is_rejected(self, test_client, make_workspace):
        make_workspace()

        response = test_client.post(VERIFY_URL, json={"workspaceURL": "acme", "code": "nope"})

        assert response.status_code == 403
        assert response.json()["reason"] == {"code": ["This verification code does not exist"]}

    def test_code_from_another_workspace_is_rejected(self, test_client, make_workspace, db_session):
        acme, acme_user = make_workspace("acme")
        make_workspace("globex", email_address="other@example.com")
        _add_code(db_session, acme, acme_user)

        response = test_client.post(VERIFY_URL, json={"workspaceURL": "globex", "code": "verify-me"})

        assert response.status_code == 403
        assert acme_user.email_verified is False

    def test_code_for_another_user_is_rejected(self, test_client, make_workspace, db_session):
        client, user = make_workspace()
        _add_code(db_session, client, user)

        response = test_client.post(
            VERIFY_URL, json={"workspaceURL": "acme", "code": "verify-me", "userId": "someone-else"}
        )

        assert response.status_code == 403

    def test_unknown_workspace_is_rejected(self, test_client):
        response = test_client.post(VERIFY_URL, json={"workspaceURL": "nope", "code": "verify-me"})

        assert response.status_code == 403
        assert response.json()["reason"] == {"client": ["The workspace could not be loaded"]}

    def test_already_verified_user_is_rejected(self, test_client, make_workspace, db_session):
        client, user = make_workspace(email_verified=True)
        code = _add_code(db_session, client, user)

        response = test_client.post(VERIFY_URL, json={"workspaceURL": "acme", "code": "verify-me"})

        assert response.status_code == 403
        assert response.json()["message"] == "This email address has already been verified"
        # Rolled back: the code stays usable
        assert code.activated is False

    def test_registration_code_round_trip(self, test_client, db_session):
        test_client.post(
            "/api/v1/authentication/register",
            json={
                "workspaceURL": "initech",
                "firstName": "Peter",
                "lastName": "Gibbons",
                "emailAddress": "peter@initech.com",
                "password": "tps-reports-2000",
            },
        )
        code = db_session.query(EmailVerificationCode).one()

        response = test_client.post(
            VERIFY_URL, json={"workspaceURL": "initech", "code": code.verification_code}
        )

        assert response.status_code == 200
        second = test_client.post(
            VERIFY_URL, json={"workspaceURL": "initech", "code": code.verification_code}
        )
        assert second.status_code == 403


class TestResendVerifyEmail:
    def _sign_in(self, test_client, login):
        token = login()
        test_client.post(SESSION_URL, headers={"Authorization": f"Bearer {token}"})

    def test_requires_authentication(self, test_client):
        assert test_client.post(RESEND_URL).status_code == 401

    def test_sends_new_code(self, test_client, make_workspace, login, db_session):
        _, user = make_workspace()
        self._sign_in(test_client, login)

        response = test_client.post(RESEND_URL)

        assert response.status_code == 200
        assert db_session.query(EmailVerificationCode).filter_by(user_id=user.id).count() == 1
        email = db_session.query(SentEmail).one()
        assert email.email_type == EmailType.RESEND_VERIFY_EMAIL
        assert email.to_address == "owner@example.com"

    def test_throttled_within_window(self, test_client, make_workspace, login, db_session):
        make_workspace()
        self._sign_in(test_client, login)

        test_client.post(RESEND_URL)
        response = test_client.post(RESEND_URL)

        assert response.status_code == 200
        assert db_session.query(EmailVerificationCode).count() == 1
        assert db_session.query(SentEmail).count() == 1

    def test_throttled_after_welcome_email(self, test_client, make_workspace, login, db_session):
        client, user = make_workspace()
        db_session.add(SentEmail(
            to_address=user.email_address, email_type=EmailType.CLIENT_WELCOME,
            subject="Welcome", client_id=client.id, user_id=user.id,
        ))
        db_session.commit()
        self._sign_in(test_client, login)

        test_client.post(RESEND_URL)

        assert db_session.query(EmailVerificationCode).count() == 0

    def test_sends_again_after_window(self, test_client, make_workspace, login, db_session):
        client, user = make_workspace()
        db_session.add(SentEmail(
            to_address=user.email_address, email_type=EmailType.RESEND_VERIFY_EMAIL,
            subject="Verify", client_id=client.id, user_id=user.id,
            created_at=datetime.utcnow() - timedelta(minutes=6),
        ))
        db_session.commit()
        self._sign_in(test_client, login)

        test_client.post(RESEND_URL)

        assert db_session.query(EmailVerificationCode).count() == 1

    def test_verified_user_is_rejected(self, test_client, make_workspace, login):
        make_workspace(email_verified=True)
        self._sign_in(test_client, login)

        response = test_client.post(RESEND_URL)

        assert response.status_code == 403
        assert response.json()["message"] == "The user is invalid or the email address is already verified"
