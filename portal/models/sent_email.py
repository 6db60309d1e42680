"""
Sent Email Model

Audit log of outgoing mail. Also the source of truth for throttling:
a flow that recently sent the same email type does not send again.
"""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index
from datetime import datetime
from portal.database import Base
import uuid


class SentEmail(Base):
    __tablename__ = "sent_emails"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    to_address = Column(String(255), nullable=False, index=True)
    email_type = Column(Integer, nullable=False)
    subject = Column(String(255), nullable=False)

    client_id = Column(String(36), ForeignKey("client.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_sent_email_to_type", "to_address", "email_type", "created_at"),
        Index("idx_sent_email_user_type", "client_id", "user_id", "email_type", "created_at"),
    )

    def __repr__(self):
        return f"<SentEmail type={self.email_type} to={self.to_address}>"
