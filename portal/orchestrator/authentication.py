"""
Authentication Orchestrator

Business logic behind the authentication endpoints. Each public function
is one unit of work: it opens transaction(db), performs its reads and
writes in order, and either commits everything or raises, in which case
every change made so far is rolled back.

Failures the caller can act on are raised as ServerResponseError with a
field-keyed reason, e.g. {"code": ["This password reset code has already
been used"]}. Anything else (database or driver errors) propagates to the
generic error handler.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.core.constants import (
    EmailType,
    Feature,
    RoleType,
    SubscriptionType,
    language_code,
    language_id,
)
from portal.core.exceptions import ServerResponseError
from portal.core.i18n import t
from portal.core.security import (
    create_user_token,
    decode_access_token,
    generate_code,
    get_password_hash,
    verify_password,
)
from portal.database import transaction
from portal.models import (
    Client,
    CodeState,
    EmailVerificationCode,
    PasswordReset,
    SubscriptionFeature,
    User,
    UserRole,
)
from portal.services.mailer import Mailer, recently_sent
from portal.utils.logging import get_logger, log_security_event
from portal.utils.urls import base_workspace_url, email_validation_url, reset_password_url

logger = get_logger(__name__)
settings = get_settings()

FORBIDDEN = 403


def _success(lng: str, **extra) -> Dict[str, Any]:
    response = {"status": 200, "message": t("label.success", lng)}
    response.update(extra)
    return response


def _error(lng: str, message_key: str, field: Optional[str] = None,
           reason_key: Optional[str] = None, **params) -> ServerResponseError:
    reason = None
    if field is not None:
        reason = {field: [t(reason_key, lng, **params)]}
    return ServerResponseError(FORBIDDEN, t(message_key, lng), reason)


def _normalize_email(email_address) -> str:
    return str(email_address).strip().lower()


def _load_active_client(db: Session, workspace_url: Optional[str]) -> Optional[Client]:
    if not workspace_url:
        return None
    return db.query(Client).filter(
        Client.workspace_url == workspace_url,
        Client.active == True  # noqa: E712
    ).first()


def _load_active_user(db: Session, user_id: str, client_id: str) -> Optional[User]:
    return db.query(User).filter(
        User.id == user_id,
        User.client_id == client_id,
        User.active == True  # noqa: E712
    ).first()


def _client_features(db: Session, subscription_id: int) -> List[int]:
    rows = db.query(SubscriptionFeature).filter(
        SubscriptionFeature.subscription_id == subscription_id
    ).order_by(SubscriptionFeature.feature_id).all()
    return [row.feature_id for row in rows]


def _client_style(client: Client, features: List[int]) -> Dict[str, Any]:
    if Feature.STYLING in features and client.styling is not None:
        return client.styling.as_dict()
    return {}


def validate_workspace_url(db: Session, workspace_url: Optional[str], lng: str) -> Dict[str, Any]:
    """
    Resolve a workspace by subdomain and return its login-page styling.

    Styling is only included when the subscription has the STYLING
    feature; defaultLanguage is always present ("" when unset).
    """
    with transaction(db):
        client = _load_active_client(db, workspace_url)
        if client is None:
            raise _error(lng, "validation.clientInvalidProperties",
                         "workspaceURL", "validation.emptyWorkspaceURL")

        features = _client_features(db, client.subscription_id)
        style = _client_style(client, features)
        style["defaultLanguage"] = language_code(client.default_language)

        return _success(lng, style=style)


def generate_user_email_validation_code(db: Session, user_id: str, client_id: str) -> str:
    """Store a fresh email verification code for user_id and return it."""
    code = generate_code()
    db.add(EmailVerificationCode(
        verification_code=code,
        activated=False,
        user_id=user_id,
        client_id=client_id,
        grace_period=settings.VERIFY_EMAIL_GRACE_HOURS,
    ))
    return code


def register_new_client(db: Session, received, lng: str, mailer: Mailer) -> Dict[str, Any]:
    """
    Create a workspace on a trial subscription together with its owner.

    Steps: client, owner user, OWNER role, email verification code,
    welcome email. A failure in any step leaves nothing behind.
    """
    workspace_url = received.workspace_url

    with transaction(db):
        if _load_active_client(db, workspace_url) is not None:
            raise _error(lng, "validation.clientInvalidProperties",
                         "workspaceURL", "validation.registeredWorkspaceURL")

        start_date = datetime.utcnow()
        end_date = start_date + timedelta(days=settings.TRIAL_PERIOD_DAYS)
        active_language = language_id(received.language) or language_id(lng)

        client = Client(
            name=workspace_url,
            workspace_url=workspace_url,
            subscription_id=SubscriptionType.TRIAL,
            subscription_start_date=start_date,
            subscription_end_date=end_date,
            default_language=active_language,
        )
        db.add(client)
        try:
            db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same URL
            raise _error(lng, "validation.clientInvalidProperties",
                         "workspaceURL", "validation.registeredWorkspaceURL")

        user = User(
            first_name=received.first_name,
            last_name=received.last_name,
            client_id=client.id,
            email_address=_normalize_email(received.email_address),
            password=get_password_hash(received.password),
            language=active_language,
        )
        db.add(user)
        db.flush()

        db.add(UserRole(user_id=user.id, role_id=RoleType.OWNER, active=True))

        validation_code = generate_user_email_validation_code(db, user.id, client.id)

        mailer.send_email(
            db,
            EmailType.CLIENT_WELCOME,
            user.language,
            user.email_address,
            {
                "firstName": user.first_name,
                "workspaceURL": client.workspace_url,
                "workspaceLink": base_workspace_url(client.workspace_url),
                "validationLink": email_validation_url(client.workspace_url, validation_code),
            },
            client_id=client.id,
            user_id=user.id,
        )

        logger.info(
            f"Registered workspace {client.workspace_url} with owner {user.id}",
            extra={"client_id": client.id, "user_id": user.id}
        )
        return _success(lng)


def authenticate_without_token(db: Session, received, lng: str) -> Dict[str, Any]:
    """
    Credential login: workspace + email + password -> JWT.

    keepSignedIn is echoed back for the client to decide how long to keep
    the token.
    """
    email_address = _normalize_email(received.email_address)

    with transaction(db):
        client = _load_active_client(db, received.workspace_url)
        if client is None:
            log_security_event(
                "failed_login",
                {"reason": "workspace_not_found", "workspace_url": received.workspace_url},
                logger
            )
            raise _error(lng, "validation.userInvalidProperties",
                         "workspaceURL", "validation.emptyWorkspaceURL")

        user = db.query(User).filter(
            User.client_id == client.id,
            User.email_address == email_address,
            User.active == True  # noqa: E712
        ).first()
        if user is None:
            log_security_event(
                "failed_login",
                {"reason": "user_not_found", "client_id": client.id},
                logger
            )
            raise _error(lng, "validation.userInvalidProperties",
                         "emailAddress", "validation.userDoesNotExist")

        if not verify_password(received.password, user.password):
            log_security_event(
                "failed_login",
                {"reason": "invalid_password", "client_id": client.id, "user_id": user.id},
                logger
            )
            raise _error(lng, "validation.userInvalidProperties",
                         "password", "validation.invalidPasswordSupplied")

        token = create_user_token(user.id, client.id, client.workspace_url)
        user.last_login_date = datetime.utcnow()

        logger.info(f"Successful login: user={user.id}, client={client.id}")
        return _success(lng, token=token, keepSignedIn=received.keep_signed_in)


def authenticate_with_token(db: Session, token: Optional[str], lng: str) -> Dict[str, str]:
    """
    Exchange a valid JWT for a session principal.

    Returns {"userId", "clientId", "workspaceURL"}; the route stores it in
    the session so later requests are authenticated by cookie.
    """
    payload = decode_access_token(token) if token else None
    if not payload or not payload.get("sub") or not payload.get("client_id"):
        log_security_event("failed_login", {"reason": "invalid_token"}, logger)
        raise _error(lng, "validation.tokenInvalidOrExpired",
                     "token", "validation.tokenInvalidOrExpired")

    with transaction(db):
        user = db.query(User).join(Client).filter(
            User.id == payload["sub"],
            User.client_id == payload["client_id"],
            User.active == True,  # noqa: E712
            Client.active == True  # noqa: E712
        ).first()
        if user is None:
            log_security_event(
                "failed_login",
                {"reason": "token_user_not_found", "client_id": payload["client_id"]},
                logger
            )
            raise _error(lng, "validation.tokenInvalidOrExpired",
                         "token", "validation.tokenInvalidOrExpired")

        user.last_login_date = datetime.utcnow()

        return {
            "userId": user.id,
            "clientId": user.client_id,
            "workspaceURL": user.client.workspace_url,
        }


def load_user(db: Session, principal: Dict[str, str], lng: str) -> Dict[str, Any]:
    """Everything the web client needs about the signed-in user and workspace."""
    with transaction(db):
        client = db.query(Client).filter(
            Client.id == principal["clientId"],
            Client.workspace_url == principal["workspaceURL"],
            Client.active == True  # noqa: E712
        ).first()
        if client is None:
            raise _error(lng, "validation.loadUserPropertiesFailed",
                         "client", "validation.loadClientFailed")

        user = _load_active_user(db, principal["userId"], client.id)
        if user is None:
            raise _error(lng, "validation.loadUserPropertiesFailed",
                         "user", "validation.loadUserPropertiesFailed")

        features = _client_features(db, client.subscription_id)
        if not features:
            raise _error(lng, "validation.loadUserPropertiesFailed",
                         "features", "validation.loadClientFeaturesFailed")

        roles = [
            role.role_id for role in db.query(UserRole).filter(
                UserRole.user_id == user.id,
                UserRole.active == True  # noqa: E712
            ).order_by(UserRole.role_id).all()
        ]
        if not roles:
            raise _error(lng, "validation.loadUserPropertiesFailed",
                         "roles", "validation.loadUserRolesFailed")

        login_time = datetime.utcnow()

        user_properties = {
            "loginTime": login_time,
            "userId": user.id,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "profilePhoto": user.profile_photo,
            "emailAddress": user.email_address,
            "emailVerified": bool(user.email_verified),
            "clientName": client.name,
            "workspaceURL": client.workspace_url,
            "subscriptionId": client.subscription_id,
            "subscriptionStartDate": client.subscription_start_date,
            "subscriptionEndDate": client.subscription_end_date,
            "subscriptionActive": client.subscription_active(login_time),
            "billingCycle": client.billing_cycle,
            "clientFeatures": features,
            "userRoles": roles,
            "language": language_code(user.language),
        }
        user_properties.update(_client_style(client, features))

        return _success(lng, user=user_properties)


def resend_verify_email(db: Session, user_id: Optional[str], client_id: Optional[str],
                        lng: str, mailer: Mailer) -> Dict[str, Any]:
    """
    Send a new verification link unless one went out recently.

    Throttled on both the welcome email and earlier resends, so repeated
    clicks inside the throttle window are answered with success but send
    nothing.
    """
    with transaction(db):
        if not user_id or not client_id:
            raise _error(lng, "validation.invalidUserId")

        user = _load_active_user(db, user_id, client_id)
        if user is None or user.email_verified:
            raise _error(lng, "validation.invalidUserId")

        client = db.query(Client).filter(
            Client.id == client_id,
            Client.active == True  # noqa: E712
        ).first()
        if client is None:
            raise _error(lng, "validation.invalidUserId",
                         "client", "validation.loadClientFailed")

        throttled = any(
            recently_sent(db, email_type, settings.EMAIL_THROTTLE_MINUTES,
                          client_id=client_id, user_id=user_id)
            for email_type in (EmailType.CLIENT_WELCOME, EmailType.RESEND_VERIFY_EMAIL)
        )
        if throttled:
            logger.info(f"Verification email throttled for user {user_id}")
            return _success(lng)

        validation_code = generate_user_email_validation_code(db, user.id, client.id)
        mailer.send_email(
            db,
            EmailType.RESEND_VERIFY_EMAIL,
            user.language,
            user.email_address,
            {
                "firstName": user.first_name,
                "validationLink": email_validation_url(client.workspace_url, validation_code),
            },
            client_id=client.id,
            user_id=user.id,
        )
        return _success(lng)


def forgot_account_password_email(db: Session, received, lng: str, mailer: Mailer) -> Dict[str, Any]:
    """
    Email a password reset link for one workspace.

    Without a known workspace this becomes forgot_account_email. The
    response is the same whether or not the address has an account.
    """
    email_address = _normalize_email(received.email_address)

    with transaction(db):
        client = _load_active_client(db, received.workspace_url)

        if client is not None and not recently_sent(
            db, EmailType.FORGOT_PASSWORD, settings.EMAIL_THROTTLE_MINUTES,
            to_address=email_address
        ):
            user = db.query(User).filter(
                User.email_address == email_address,
                User.client_id == client.id,
                User.active == True  # noqa: E712
            ).first()

            if user is not None:
                reset_code = generate_code()
                db.add(PasswordReset(
                    reset_code=reset_code,
                    activated=False,
                    user_id=user.id,
                    client_id=user.client_id,
                    grace_period=settings.RESET_PASSWORD_GRACE_HOURS,
                ))
                mailer.send_email(
                    db,
                    EmailType.FORGOT_PASSWORD,
                    user.language,
                    email_address,
                    {
                        "firstName": user.first_name,
                        "lastName": user.last_name,
                        "clientName": client.name,
                        "resetPasswordLink": reset_password_url(client.workspace_url, reset_code),
                    },
                    client_id=user.client_id,
                    user_id=user.id,
                )

    if client is None:
        return forgot_account_email(db, email_address, lng, mailer)
    return _success(lng)


def forgot_account_email(db: Session, email_address, lng: str, mailer: Mailer) -> Dict[str, Any]:
    """
    Email every workspace account registered to an address, each with its
    own reset link (shorter grace period than a targeted reset).
    """
    email_address = _normalize_email(email_address)

    with transaction(db):
        if recently_sent(db, EmailType.FORGOT_ACCOUNT_DETAILS, settings.EMAIL_THROTTLE_MINUTES,
                         to_address=email_address):
            return _success(lng)

        users = db.query(User).join(Client).filter(
            User.email_address == email_address,
            User.active == True,  # noqa: E712
            Client.active == True  # noqa: E712
        ).order_by(User.created_at).all()

        if not users:
            return _success(lng)

        accounts = []
        for user in users:
            reset_code = generate_code()
            db.add(PasswordReset(
                reset_code=reset_code,
                activated=False,
                user_id=user.id,
                client_id=user.client_id,
                grace_period=settings.FORGOT_ACCOUNT_GRACE_HOURS,
            ))
            accounts.append({
                "firstName": user.first_name,
                "lastName": user.last_name,
                "clientName": user.client.name,
                "workspaceLink": base_workspace_url(user.client.workspace_url),
                "resetPasswordLink": reset_password_url(user.client.workspace_url, reset_code),
            })

        mailer.send_email(
            db,
            EmailType.FORGOT_ACCOUNT_DETAILS,
            users[0].language,
            email_address,
            {"accounts": accounts},
        )
        return _success(lng)


def _load_usable_reset_code(db: Session, workspace_url: str, code: str, lng: str):
    """Return (client, reset) or raise for unknown, used or expired codes."""
    client = _load_active_client(db, workspace_url)
    if client is None:
        raise _error(lng, "validation.resetPasswordInvalidProperties",
                     "client", "validation.loadClientFailed")

    reset = db.query(PasswordReset).filter(
        PasswordReset.reset_code == code,
        PasswordReset.client_id == client.id
    ).first()
    if reset is None:
        log_security_event("invalid_reset_code", {"reason": "not_found", "client_id": client.id}, logger)
        raise _error(lng, "validation.resetPasswordInvalidProperties",
                     "code", "validation.emptyResetCode")

    state = reset.state(datetime.utcnow())
    if state == CodeState.ACTIVATED:
        log_security_event("invalid_reset_code", {"reason": "already_used", "client_id": client.id}, logger)
        raise _error(lng, "validation.resetPasswordInvalidProperties",
                     "code", "validation.resetCodeAlreadyUsed")
    if state == CodeState.EXPIRED:
        log_security_event("invalid_reset_code", {"reason": "expired", "client_id": client.id}, logger)
        raise _error(lng, "validation.resetPasswordInvalidProperties",
                     "code", "validation.resetCodeExpired", gracePeriod=reset.grace_period)

    return client, reset


def validate_reset_password_code(db: Session, received, lng: str) -> Dict[str, Any]:
    """Check a reset code before the client shows the new-password form."""
    with transaction(db):
        _load_usable_reset_code(db, received.workspace_url, received.code, lng)
        return _success(lng)


def reset_user_password(db: Session, received, lng: str, mailer: Mailer) -> Dict[str, Any]:
    """Redeem a reset code: store the new password and spend the code."""
    with transaction(db):
        client, reset = _load_usable_reset_code(db, received.workspace_url, received.code, lng)

        user = _load_active_user(db, reset.user_id, reset.client_id)
        if user is None:
            raise _error(lng, "validation.loadUserFailed")

        user.password = get_password_hash(received.password)
        reset.activate()

        mailer.send_email(
            db,
            EmailType.RESET_PASSWORD_SUCCESS,
            user.language,
            user.email_address,
            {
                "firstName": user.first_name,
                "workspaceName": client.workspace_url,
            },
            client_id=user.client_id,
            user_id=user.id,
        )

        logger.info(f"Password reset for user {user.id}", extra={"client_id": client.id})
        return _success(lng)


def verify_user_email(db: Session, received, lng: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Redeem an email verification code.

    user_id, when known (signed-in session or request body), restricts the
    lookup to that user's codes.
    """
    with transaction(db):
        client = _load_active_client(db, received.workspace_url)
        if client is None:
            raise _error(lng, "validation.verifyEmailInvalidProperties",
                         "client", "validation.loadClientFailed")

        query = db.query(EmailVerificationCode).filter(
            EmailVerificationCode.verification_code == received.code,
            EmailVerificationCode.client_id == client.id
        )
        if user_id is not None:
            query = query.filter(EmailVerificationCode.user_id == user_id)
        verification = query.first()

        if verification is None:
            log_security_event("invalid_verification_code", {"reason": "not_found", "client_id": client.id}, logger)
            raise _error(lng, "validation.verifyEmailInvalidProperties",
                         "code", "validation.emptyVerifyCode")

        state = verification.state(datetime.utcnow())
        if state == CodeState.ACTIVATED:
            log_security_event("invalid_verification_code", {"reason": "already_used", "client_id": client.id}, logger)
            raise _error(lng, "validation.verifyEmailInvalidProperties",
                         "code", "validation.verifyCodeAlreadyUsed")
        if state == CodeState.EXPIRED:
            log_security_event("invalid_verification_code", {"reason": "expired", "client_id": client.id}, logger)
            raise _error(lng, "validation.verifyEmailInvalidProperties",
                         "code", "validation.verifyCodeExpired", gracePeriod=verification.grace_period)

        user = _load_active_user(db, verification.user_id, verification.client_id)
        if user is None:
            raise _error(lng, "validation.loadUserFailed")

        if user.email_verified:
            raise _error(lng, "validation.emailAlreadyVerified")

        user.email_verified = True
        verification.activate()

        logger.info(f"Email verified for user {user.id}", extra={"client_id": client.id})
        return _success(lng)
