"""Donation Ledger: contribution records. Donations are never updated."""

import logging
import math

from sqlalchemy.orm import Session

from database import store_errors
from errors import NotFound, ValidationFailure
from models import Campaign, Donation, Identity, IdentitySpace

logger = logging.getLogger(__name__)


class DonationLedger:

    def __init__(self, db: Session):
        self.db = db

    def record(self, user_id, campaign_id, amount, message) -> Donation:
        """Insert a donation after checking its fields and references."""
        if not user_id or not campaign_id or not amount or not message or not str(message).strip():
            raise ValidationFailure("All fields are required!")
        try:
            amount = float(amount)
        except (TypeError, ValueError) as e:
            raise ValidationFailure("Amount must be a number") from e
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationFailure("Amount must be greater than zero")

        with store_errors(self.db):
            donor = (
                self.db.query(Identity.id)
                .filter(Identity.id == user_id, Identity.space == IdentitySpace.USER)
                .first()
            )
            if donor is None:
                raise NotFound("User not found")
            if self.db.query(Campaign.id).filter(Campaign.id == campaign_id).first() is None:
                raise NotFound("Campaign not found")

            donation = Donation(
                user_id=user_id,
                campaign_id=campaign_id,
                amount=amount,
                message=str(message).strip(),
            )
            self.db.add(donation)
            self.db.commit()
            self.db.refresh(donation)

        logger.info(f"Donation {donation.id} recorded: user={user_id} campaign={campaign_id} amount={amount}")
        return donation

    def remove(self, donation_id: int) -> None:
        with store_errors(self.db):
            donation = self.db.query(Donation).filter(Donation.id == donation_id).first()
            if donation is None:
                raise NotFound("Donation not found")
            self.db.delete(donation)
            self.db.commit()
        logger.info(f"Donation {donation_id} deleted")

    def count(self) -> int:
        with store_errors(self.db):
            return self.db.query(Donation).count()
