"""
API Dependencies

Reusable FastAPI dependencies: response language, workspace, mailer and
the authenticated principal.

A principal is the dict {"userId", "clientId", "workspaceURL"}. It comes
from the session cookie when the user has signed in with
POST /session, otherwise from a Bearer JWT.
"""
from typing import Dict, Optional
from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from portal.core.exceptions import AuthenticationError
from portal.core.i18n import negotiate_language, t
from portal.core.security import decode_access_token
from portal.services.mailer import Mailer
import logging

logger = logging.getLogger(__name__)

# auto_error=False: a missing header falls through to the session check
bearer_scheme = HTTPBearer(auto_error=False)

SESSION_USER_KEY = "user"


def get_browser_language(request: Request) -> str:
    return negotiate_language(request.headers.get("Accept-Language"))


def get_workspace_url(request: Request) -> Optional[str]:
    """Workspace resolved by WorkspaceMiddleware (header or subdomain)."""
    return getattr(request.state, "workspace_url", None)


def get_mailer(background_tasks: BackgroundTasks) -> Mailer:
    return Mailer(background_tasks)


def _principal_from_token(token: str) -> Optional[Dict[str, str]]:
    payload = decode_access_token(token)
    if not payload:
        return None
    user_id = payload.get("sub")
    client_id = payload.get("client_id")
    workspace_url = payload.get("workspace_url")
    if not user_id or not client_id or not workspace_url:
        return None
    return {"userId": user_id, "clientId": client_id, "workspaceURL": workspace_url}


def get_current_principal_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Dict[str, str]]:
    """Session principal, else Bearer principal, else None."""
    session = getattr(request.state, "session", None)
    if session and session.get(SESSION_USER_KEY):
        return session[SESSION_USER_KEY]

    if credentials is not None:
        return _principal_from_token(credentials.credentials)

    return None


def get_current_principal(
    principal: Optional[Dict[str, str]] = Depends(get_current_principal_optional),
    lng: str = Depends(get_browser_language),
) -> Dict[str, str]:
    if principal is None:
        raise AuthenticationError(
            t("validation.notAuthenticated", lng),
            {"token": [t("validation.tokenInvalidOrExpired", lng)]}
        )
    return principal
