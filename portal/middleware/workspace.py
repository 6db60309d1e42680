"""
Workspace Middleware

Works out which workspace a request is for and puts its URL on
request.state.workspace_url. Lookups against the database happen later,
inside the handler's transaction, so that unknown workspaces are
reported with the usual error envelope.

Resolution order:
1. WorkspaceURL header (sent by the web client and API callers)
2. Subdomain of BASE_DOMAIN in the Host header: with BASE_DOMAIN
   "example.com", acme.example.com -> "acme"
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from typing import Optional
import logging

from portal.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

WORKSPACE_HEADER = "WorkspaceURL"
NON_WORKSPACE_SUBDOMAINS = {"www", "api", "app"}


def _hostname(host: str) -> str:
    return host.split(":")[0].strip().lower().rstrip(".")


def workspace_from_host(host: str, base_domain: str = settings.BASE_DOMAIN) -> Optional[str]:
    """
    The single label in front of base_domain, or None.

    The bare base domain, hosts outside it and nested subdomains
    (a.b.example.com) are not workspaces.
    """
    hostname = _hostname(host)
    base = _hostname(base_domain)
    if not hostname or not base or not hostname.endswith("." + base):
        return None

    subdomain = hostname[:-(len(base) + 1)]
    if not subdomain or "." in subdomain or subdomain in NON_WORKSPACE_SUBDOMAINS:
        return None
    return subdomain


def extract_workspace_url(request: Request) -> Optional[str]:
    header_value = request.headers.get(WORKSPACE_HEADER)
    if header_value:
        return header_value.strip().lower()

    return workspace_from_host(request.headers.get("Host", ""))


class WorkspaceMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        workspace_url = extract_workspace_url(request)
        request.state.workspace_url = workspace_url
        if workspace_url:
            logger.debug(f"Request for workspace: {workspace_url}")
        return await call_next(request)
