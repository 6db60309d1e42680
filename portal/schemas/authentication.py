"""
Authentication Schemas

Request/response models for the authentication endpoints.

The wire format keeps the camelCase names the web client sends
(workspaceURL, emailAddress, ...); Python code uses snake_case through
field aliases.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator, model_serializer

WORKSPACE_URL_PATTERN = r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$"

STYLING_FIELDS = (
    "logo_image",
    "background_image",
    "background_color",
    "primary_color",
    "secondary_color",
)


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True


def _normalize_workspace_url(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class RegisterRequest(CamelModel):
    """New workspace plus its owner account."""
    workspace_url: str = Field(..., alias="workspaceURL", pattern=WORKSPACE_URL_PATTERN)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=255)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=255)
    email_address: EmailStr = Field(..., alias="emailAddress")
    password: str = Field(..., min_length=8, max_length=72)
    language: Optional[str] = Field(None, max_length=8)

    normalize_workspace_url = field_validator("workspace_url", mode="before")(_normalize_workspace_url)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "workspaceURL": "acme",
                "firstName": "Jane",
                "lastName": "Doe",
                "emailAddress": "jane@example.com",
                "password": "securepassword123",
                "language": "en"
            }
        }


class LoginRequest(CamelModel):
    workspace_url: str = Field(..., alias="workspaceURL", min_length=1, max_length=63)
    email_address: EmailStr = Field(..., alias="emailAddress")
    password: str = Field(..., min_length=1)
    keep_signed_in: bool = Field(False, alias="keepSignedIn")

    normalize_workspace_url = field_validator("workspace_url", mode="before")(_normalize_workspace_url)


class ForgotPasswordRequest(CamelModel):
    """workspaceURL is optional: without it every account for the address is listed."""
    workspace_url: Optional[str] = Field(None, alias="workspaceURL", max_length=63)
    email_address: EmailStr = Field(..., alias="emailAddress")

    normalize_workspace_url = field_validator("workspace_url", mode="before")(_normalize_workspace_url)


class ForgotAccountRequest(CamelModel):
    email_address: EmailStr = Field(..., alias="emailAddress")


class ResetCodeRequest(CamelModel):
    workspace_url: str = Field(..., alias="workspaceURL", min_length=1, max_length=63)
    code: str = Field(..., min_length=1, max_length=64)

    normalize_workspace_url = field_validator("workspace_url", mode="before")(_normalize_workspace_url)


class ResetPasswordRequest(ResetCodeRequest):
    password: str = Field(..., min_length=8, max_length=72)


class VerifyEmailRequest(CamelModel):
    workspace_url: str = Field(..., alias="workspaceURL", min_length=1, max_length=63)
    code: str = Field(..., min_length=1, max_length=64)
    # Narrows the lookup to the signed-in user when the client knows it
    user_id: Optional[str] = Field(None, alias="userId")

    normalize_workspace_url = field_validator("workspace_url", mode="before")(_normalize_workspace_url)


class StatusResponse(CamelModel):
    """The success envelope shared by every endpoint."""
    status: int = 200
    message: str


class WorkspaceResponse(StatusResponse):
    style: Dict[str, Any] = Field(default_factory=dict)


class LoginResponse(StatusResponse):
    token: str
    keep_signed_in: bool = Field(False, alias="keepSignedIn")


class UserProperties(CamelModel):
    login_time: datetime = Field(..., alias="loginTime")
    user_id: str = Field(..., alias="userId")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    profile_photo: Optional[str] = Field(None, alias="profilePhoto")
    email_address: str = Field(..., alias="emailAddress")
    email_verified: bool = Field(..., alias="emailVerified")
    client_name: str = Field(..., alias="clientName")
    workspace_url: str = Field(..., alias="workspaceURL")
    subscription_id: int = Field(..., alias="subscriptionId")
    subscription_start_date: Optional[datetime] = Field(None, alias="subscriptionStartDate")
    subscription_end_date: Optional[datetime] = Field(None, alias="subscriptionEndDate")
    subscription_active: bool = Field(..., alias="subscriptionActive")
    billing_cycle: Optional[int] = Field(None, alias="billingCycle")
    client_features: List[int] = Field(..., alias="clientFeatures")
    user_roles: List[int] = Field(..., alias="userRoles")
    language: str = ""

    # Present only when the workspace is entitled to custom styling
    logo_image: Optional[str] = Field(None, alias="logoImage")
    background_image: Optional[str] = Field(None, alias="backgroundImage")
    background_color: Optional[str] = Field(None, alias="backgroundColor")
    primary_color: Optional[str] = Field(None, alias="primaryColor")
    secondary_color: Optional[str] = Field(None, alias="secondaryColor")

    @model_serializer(mode="wrap")
    def drop_unset_styling(self, handler):
        data = handler(self)
        for name in STYLING_FIELDS:
            for key in (name, type(self).model_fields[name].alias):
                if key in data and data[key] is None:
                    del data[key]
        return data


class UserResponse(StatusResponse):
    user: UserProperties
