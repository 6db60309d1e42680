"""
One-Time Code Models

Email verification and password reset codes share one lifecycle:

    UNUSED --(redeemed)--> ACTIVATED

A code that was never redeemed stops being usable once now leaves
[created_at, created_at + grace_period hours). It is reported as EXPIRED
but the row itself is never changed or deleted.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index
from datetime import datetime, timedelta
from portal.database import Base
import enum
import uuid


class CodeState(str, enum.Enum):
    UNUSED = "unused"
    ACTIVATED = "activated"
    EXPIRED = "expired"


class OneTimeCodeMixin:
    """Columns and state checks common to every one-time code table."""

    activated = Column(Boolean, default=False, nullable=False)
    grace_period = Column(Integer, nullable=False)  # hours
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(hours=self.grace_period)

    def state(self, now: datetime) -> CodeState:
        # Activation wins over expiry: a redeemed code reports as used.
        if self.activated:
            return CodeState.ACTIVATED
        if self.created_at <= now < self.expires_at:
            return CodeState.UNUSED
        return CodeState.EXPIRED

    def activate(self):
        self.activated = True


class EmailVerificationCode(OneTimeCodeMixin, Base):
    __tablename__ = "email_verification_code"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    verification_code = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("client.id", ondelete="CASCADE"), nullable=False, index=True)

    def __repr__(self):
        return f"<EmailVerificationCode user={self.user_id} activated={self.activated}>"


class PasswordReset(OneTimeCodeMixin, Base):
    __tablename__ = "password_reset"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reset_code = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("client.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (
        Index("idx_password_reset_client_code", "client_id", "reset_code"),
    )

    def __repr__(self):
        return f"<PasswordReset user={self.user_id} activated={self.activated}>"
