"""
Database Models

Every tenant-owned row carries client_id.
"""
from portal.models.client import Client, ClientStyling
from portal.models.user import User, UserRole
from portal.models.codes import EmailVerificationCode, PasswordReset, CodeState
from portal.models.subscription import SubscriptionFeature
from portal.models.sent_email import SentEmail

__all__ = [
    "Client",
    "ClientStyling",
    "User",
    "UserRole",
    "EmailVerificationCode",
    "PasswordReset",
    "CodeState",
    "SubscriptionFeature",
    "SentEmail",
]
