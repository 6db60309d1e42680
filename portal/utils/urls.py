"""Links into a workspace, used in outgoing email."""
from portal.config import get_settings

settings = get_settings()


def base_workspace_url(workspace_url: str) -> str:
    return f"{settings.URL_SCHEME}://{workspace_url}.{settings.BASE_DOMAIN}"


def reset_password_url(workspace_url: str, code: str) -> str:
    return f"{base_workspace_url(workspace_url)}/reset-password#code={code}"


def email_validation_url(workspace_url: str, code: str) -> str:
    return f"{base_workspace_url(workspace_url)}/verify-email#code={code}"
