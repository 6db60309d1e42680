"""
Authentication Endpoints

Thin HTTP layer over portal.orchestrator.authentication: parse the
request, pick the language, call the orchestrator, shape the response.
"""
from typing import Dict, Optional
from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.api.deps import (
    SESSION_USER_KEY,
    bearer_scheme,
    get_browser_language,
    get_current_principal,
    get_current_principal_optional,
    get_mailer,
    get_workspace_url,
)
from portal.core.i18n import t
from portal.orchestrator import authentication as orchestrator
from portal.schemas.authentication import (
    ForgotAccountRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    ResetCodeRequest,
    ResetPasswordRequest,
    StatusResponse,
    UserResponse,
    VerifyEmailRequest,
    WorkspaceResponse,
)
from portal.services.mailer import Mailer
from portal.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/authentication", tags=["authentication"])

# Message for request bodies that fail validation, by route path
INVALID_PROPERTIES_MESSAGES = {
    "/register": "validation.clientInvalidProperties",
    "/login": "validation.userInvalidProperties",
    "/verify-email": "validation.verifyEmailInvalidProperties",
    "/forgot-password": "validation.resetPasswordInvalidProperties",
    "/forgot-account": "validation.resetPasswordInvalidProperties",
    "/reset-password/validate": "validation.resetPasswordInvalidProperties",
    "/reset-password": "validation.resetPasswordInvalidProperties",
}


@router.get("/workspace", response_model=WorkspaceResponse)
def validate_workspace_url(
    workspace_url: Optional[str] = Depends(get_workspace_url),
    lng: str = Depends(get_browser_language),
    db: Session = Depends(get_db)
):
    """Resolve the workspace from the WorkspaceURL header or subdomain."""
    return orchestrator.validate_workspace_url(db, workspace_url, lng)


@router.post("/register", response_model=StatusResponse)
def register(
    registration: RegisterRequest,
    lng: str = Depends(get_browser_language),
    mailer: Mailer = Depends(get_mailer),
    db: Session = Depends(get_db)
):
    return orchestrator.register_new_client(db, registration, lng, mailer)


@router.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    lng: str = Depends(get_browser_language),
    db: Session = Depends(get_db)
):
    """Verify credentials and issue a JWT."""
    return orchestrator.authenticate_without_token(db, credentials, lng)


@router.post("/session", response_model=StatusResponse)
def create_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    lng: str = Depends(get_browser_language),
    db: Session = Depends(get_db)
):
    """
    Sign in with a JWT and start a cookie session.

    Subsequent requests carrying the session cookie are authenticated
    without the token.
    """
    token = credentials.credentials if credentials else None
    principal = orchestrator.authenticate_with_token(db, token, lng)
    session = request.state.session
    session.regenerate()
    session[SESSION_USER_KEY] = principal
    logger.info(f"Session started for user {principal['userId']}", extra={"client_id": principal["clientId"]})
    return {"status": 200, "message": t("label.success", lng)}


@router.post("/logout", response_model=StatusResponse)
def logout(
    request: Request,
    lng: str = Depends(get_browser_language)
):
    request.state.session.clear()
    return {"status": 200, "message": t("label.success", lng)}


@router.get("/user", response_model=UserResponse)
def load_user(
    principal: Dict[str, str] = Depends(get_current_principal),
    lng: str = Depends(get_browser_language),
    db: Session = Depends(get_db)
):
    return orchestrator.load_user(db, principal, lng)


@router.post("/verify-email/resend", response_model=StatusResponse)
def resend_verify_email(
    principal: Dict[str, str] = Depends(get_current_principal),
    lng: str = Depends(get_browser_language),
    mailer: Mailer = Depends(get_mailer),
    db: Session = Depends(get_db)
):
    return orchestrator.resend_verify_email(
        db, principal["userId"], principal["clientId"], lng, mailer
    )


@router.post("/verify-email", response_model=StatusResponse)
def verify_email(
    body: VerifyEmailRequest,
    principal: Optional[Dict[str, str]] = Depends(get_current_principal_optional),
    lng: str = Depends(get_browser_language),
    db: Session = Depends(get_db)
):
    """Redeem a verification code; scoped to the signed-in user if any."""
    user_id = body.user_id
    if principal is not None:
        user_id = principal["userId"]
    return orchestrator.verify_user_email(db, body, lng, user_id=user_id)


@router.post("/forgot-password", response_model=StatusResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    lng: str = Depends(get_browser_language),
    mailer: Mailer = Depends(get_mailer),
    db: Session = Depends(get_db)
):
    return orchestrator.forgot_account_password_email(db, body, lng, mailer)


@router.post("/forgot-account", response_model=StatusResponse)
def forgot_account(
    body: ForgotAccountRequest,
    lng: str = Depends(get_browser_language),
    mailer: Mailer = Depends(get_mailer),
    db: Session = Depends(get_db)
):
    return orchestrator.forgot_account_email(db, body.email_address, lng, mailer)


@router.post("/reset-password/validate", response_model=StatusResponse)
def validate_reset_code(
    body: ResetCodeRequest,
    lng: str = Depends(get_browser_language),
    db: Session = Depends(get_db)
):
    return orchestrator.validate_reset_password_code(db, body, lng)


@router.post("/reset-password", response_model=StatusResponse)
def reset_password(
    body: ResetPasswordRequest,
    lng: str = Depends(get_browser_language),
    mailer: Mailer = Depends(get_mailer),
    db: Session = Depends(get_db)
):
    return orchestrator.reset_user_password(db, body, lng, mailer)
