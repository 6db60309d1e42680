"""
Subscription Feature Model

Feature entitlements keyed by subscription id.
"""
from sqlalchemy import Column, Integer, Index
from portal.database import Base


class SubscriptionFeature(Base):
    __tablename__ = "subscription_features"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, nullable=False, index=True)
    feature_id = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_subscription_feature", "subscription_id", "feature_id", unique=True),
    )

    def __repr__(self):
        return f"<SubscriptionFeature sub={self.subscription_id} feature={self.feature_id}>"
