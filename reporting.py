"""
Reporting Engine

Read-only views that join donations with their campaigns and donors:
the donation feed, a per-user feed, the contributor leaderboard and the
CSV/Excel export of the feed.
"""

from datetime import datetime
from io import BytesIO
from typing import List, Tuple
import logging

import pandas as pd
from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from database import store_errors
from errors import ValidationFailure
from models import Campaign, Donation, Identity, IdentitySpace

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": ("text/csv", "csv"),
    "excel": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
}


class ReportingEngine:

    def __init__(self, db: Session):
        self.db = db

    def _donation_feed(self):
        return (
            self.db.query(
                Donation.id,
                Donation.amount,
                Donation.message,
                Donation.date,
                Campaign.id.label("campaign_id"),
                Campaign.title.label("campaign_title"),
                Campaign.image.label("campaign_image"),
                Identity.id.label("donor_id"),
                Identity.name.label("donor_name"),
                Identity.photo.label("donor_photo"),
            )
            .join(Identity, Donation.user_id == Identity.id)
            .join(Campaign, Donation.campaign_id == Campaign.id)
        )

    def list_donations(self) -> List[dict]:
        """Every donation with campaign and donor details, newest first."""
        with store_errors(self.db):
            rows = self._donation_feed().order_by(desc(Donation.date), desc(Donation.id)).all()
        return [dict(row._mapping) for row in rows]

    def list_donations_for_user(self, user_id: int) -> List[dict]:
        """
        Donations made by one user, newest first.

        Inner-join semantics: only campaigns the user actually gave to appear,
        and an unknown user yields an empty list.
        """
        with store_errors(self.db):
            rows = (
                self._donation_feed()
                .filter(Donation.user_id == user_id)
                .order_by(desc(Donation.date), desc(Donation.id))
                .all()
            )
        return [dict(row._mapping) for row in rows]

    def leaderboard(self) -> List[dict]:
        """
        Contributors ranked by total donated.

        Exact ties on the total are ordered by user id so the ranking is
        stable between calls.
        """
        total = func.sum(Donation.amount).label("total_donated")
        with store_errors(self.db):
            rows = (
                self.db.query(
                    Identity.id.label("user_id"),
                    Identity.name.label("contributor_name"),
                    Identity.photo.label("photo"),
                    total,
                    func.count(Donation.id).label("donation_count"),
                    func.max(Donation.date).label("last_donation_date"),
                    func.count(func.distinct(Donation.campaign_id)).label("campaigns_supported"),
                )
                .select_from(Donation)
                .join(Identity, Donation.user_id == Identity.id)
                .filter(Identity.space == IdentitySpace.USER)
                .group_by(Identity.id, Identity.name, Identity.photo)
                .order_by(desc(total), Identity.id)
                .all()
            )

        leaderboard = []
        for rank, row in enumerate(rows, start=1):
            entry = dict(row._mapping)
            entry["rank"] = rank
            entry["total_donated"] = float(entry["total_donated"] or 0)
            leaderboard.append(entry)
        return leaderboard

    def export_donations(self, format: str = "csv") -> Tuple[BytesIO, str, str]:
        """Render the donation feed as CSV or Excel.

        Returns the in-memory file, its media type and a download filename.
        """
        if format not in EXPORT_FORMATS:
            raise ValidationFailure(f"Unsupported export format: {format}")
        media_type, extension = EXPORT_FORMATS[format]

        data = []
        for donation in self.list_donations():
            data.append({
                "Donation ID": donation["id"],
                "Donor": donation["donor_name"],
                "Campaign": donation["campaign_title"],
                "Amount": donation["amount"],
                "Message": donation["message"] or "",
                "Date": donation["date"].strftime("%Y-%m-%d %H:%M:%S") if donation["date"] else "",
            })
        columns = ["Donation ID", "Donor", "Campaign", "Amount", "Message", "Date"]
        df = pd.DataFrame(data, columns=columns)

        output = BytesIO()
        if format == "excel":
            df.to_excel(output, index=False, engine='openpyxl')
        else:
            df.to_csv(output, index=False)
        output.seek(0)

        filename = f"donations_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{extension}"
        logger.info(f"Exported {len(data)} donations as {format}")
        return output, media_type, filename
