"""
Client Model

A client is a workspace (tenant): one customer account reached through
its own subdomain. workspace_url is that subdomain and must be unique
among active clients; deactivated clients release their URL.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from portal.database import Base
import uuid


class Client(Base):
    __tablename__ = "client"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    workspace_url = Column(String(63), nullable=False, index=True)

    # Subscription
    subscription_id = Column(Integer, nullable=False)
    subscription_start_date = Column(DateTime, nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)  # NULL = never ends
    billing_cycle = Column(Integer, nullable=True)

    default_language = Column(Integer, nullable=True)

    active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="client", cascade="all, delete-orphan")
    styling = relationship("ClientStyling", back_populates="client", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        Index(
            "uq_client_active_workspace_url",
            "workspace_url",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )

    def __repr__(self):
        return f"<Client {self.workspace_url}>"

    def subscription_active(self, now: datetime) -> bool:
        """A subscription without an end date never lapses."""
        if self.subscription_end_date is None:
            return True
        return self.subscription_end_date > now


class ClientStyling(Base):
    """Custom branding, only served when the subscription has STYLING."""
    __tablename__ = "client_styling"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(
        String(36),
        ForeignKey("client.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    logo_image = Column(String(512), nullable=True)
    background_image = Column(String(512), nullable=True)
    background_color = Column(String(32), nullable=True)
    primary_color = Column(String(32), nullable=True)
    secondary_color = Column(String(32), nullable=True)

    client = relationship("Client", back_populates="styling")

    def as_dict(self):
        return {
            "logoImage": self.logo_image,
            "backgroundImage": self.background_image,
            "backgroundColor": self.background_color,
            "primaryColor": self.primary_color,
            "secondaryColor": self.secondary_color,
        }
