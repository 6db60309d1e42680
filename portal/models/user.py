"""
User Model

Users belong to exactly one client. The same email address may exist in
several clients, which is why forgotten-account emails can list more
than one workspace.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from portal.database import Base
import uuid


class User(Base):
    __tablename__ = "user"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    client_id = Column(
        String(36),
        ForeignKey("client.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Credentials and profile
    email_address = Column(String(255), nullable=False, index=True)
    password = Column(String(255), nullable=False)  # bcrypt hash
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    profile_photo = Column(String(512), nullable=True)
    language = Column(Integer, nullable=True)

    email_verified = Column(Boolean, default=False, nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)

    last_login_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    client = relationship("Client", back_populates="users")
    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_user_client_email", "client_id", "email_address", unique=True),
        Index("idx_user_client_active", "client_id", "active"),
    )

    def __repr__(self):
        return f"<User {self.email_address} (client={self.client_id})>"


class UserRole(Base):
    """Role assignment. A user keeps at least one active role."""
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role_id = Column(Integer, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="roles")

    def __repr__(self):
        return f"<UserRole user={self.user_id} role={self.role_id}>"
