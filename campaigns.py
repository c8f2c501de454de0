"""
Campaign Ledger

Campaign records and their derived ``raised`` amount. ``raised`` is never
written directly: ``recompute_raised`` re-derives it for every campaign from
the donations table.
"""

import logging
from typing import Dict, List

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from database import store_errors
from errors import NotFound, ValidationFailure
from models import Campaign, CampaignStatus, Donation
from schemas import CampaignCreate, normalize_status

logger = logging.getLogger(__name__)


class CampaignLedger:

    def __init__(self, db: Session):
        self.db = db

    def create(self, data: CampaignCreate, image: str = None) -> Campaign:
        campaign = Campaign(
            title=data.title,
            description=data.description,
            goal=data.goal,
            start=data.start,
            end=data.end,
            status=data.status,
            raised=0,
            image=image,
        )
        with store_errors(self.db):
            self.db.add(campaign)
            self.db.commit()
            self.db.refresh(campaign)
        logger.info(f"Campaign created: {campaign.title} (id={campaign.id})")
        return campaign

    def list(self) -> List[Campaign]:
        """All campaigns, newest first."""
        with store_errors(self.db):
            return self.db.query(Campaign).order_by(Campaign.id.desc()).all()

    def get(self, campaign_id: int) -> Campaign:
        with store_errors(self.db):
            campaign = self.db.query(Campaign).filter(Campaign.id == campaign_id).first()
        if campaign is None:
            raise NotFound("Campaign not found")
        return campaign

    def set_status(self, campaign_id: int, status: str) -> Campaign:
        try:
            status = normalize_status(status)
        except ValueError as e:
            raise ValidationFailure(str(e)) from e

        campaign = self.get(campaign_id)
        with store_errors(self.db):
            campaign.status = status
            self.db.commit()
            self.db.refresh(campaign)
        logger.info(f"Campaign {campaign_id} status set to {status}")
        return campaign

    def recompute_raised(self) -> List[Campaign]:
        """
        Re-derive ``raised`` for every campaign as the sum of its donations.

        The UPDATE and the read-back run in one transaction so callers see the
        values that were just written. Campaigns without donations get 0.
        """
        donated = (
            select(func.coalesce(func.sum(Donation.amount), 0))
            .where(Donation.campaign_id == Campaign.id)
            .scalar_subquery()
        )
        with store_errors(self.db):
            self.db.execute(
                update(Campaign)
                .values(raised=donated)
                .execution_options(synchronize_session=False)
            )
            self.db.expire_all()
            campaigns = self.db.query(Campaign).order_by(Campaign.id.desc()).all()
            self.db.commit()
        logger.info(f"Recomputed raised amounts for {len(campaigns)} campaigns")
        return campaigns

    def count_by_status(self) -> Dict[str, int]:
        """Campaign counts keyed by status. Unknown statuses are left out."""
        counts = {status.value: 0 for status in CampaignStatus}
        with store_errors(self.db):
            rows = (
                self.db.query(Campaign.status, func.count(Campaign.id))
                .group_by(Campaign.status)
                .all()
            )
        for status, count in rows:
            key = (status or "").lower()
            if key in counts:
                counts[key] += count
        return counts

    def count(self) -> int:
        with store_errors(self.db):
            return self.db.query(Campaign).count()

    def remove(self, campaign_id: int) -> None:
        campaign = self.get(campaign_id)
        with store_errors(self.db):
            self.db.delete(campaign)
            self.db.commit()
        logger.info(f"Campaign {campaign_id} deleted")
