from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Text, Numeric, ForeignKey, Enum,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

# Import Base from database module to ensure consistency
from database import Base


class IdentitySpace(str, enum.Enum):
    """Partition of credential records. Emails are unique per space."""
    USER = "user"
    ADMIN = "admin"


class CampaignStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Identity(Base):
    __tablename__ = "identities"
    __table_args__ = (
        UniqueConstraint("space", "email", name="uq_identities_space_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    space = Column(
        Enum(IdentitySpace, name="identity_space", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(50), nullable=True)  # Users only
    password_hash = Column(String(255), nullable=False)
    photo = Column(String(255), nullable=True)  # Filename under the images directory
    created_at = Column(DateTime, default=datetime.utcnow)

    donations = relationship("Donation", back_populates="donor", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Identity(id={self.id}, space='{self.space.value}', email='{self.email}')>"


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    goal = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    start = Column(Date, nullable=True)
    end = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=CampaignStatus.ACTIVE.value)
    raised = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)  # Derived, see CampaignLedger.recompute_raised
    image = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    donations = relationship("Donation", back_populates="campaign", cascade="all, delete-orphan", passive_deletes=True)


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("identities.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    message = Column(Text, nullable=False)
    date = Column(DateTime, default=datetime.utcnow, index=True)

    donor = relationship("Identity", back_populates="donations")
    campaign = relationship("Campaign", back_populates="donations")
