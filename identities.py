"""
Credential Store

Identity records for both identity spaces live in one table, partitioned by
``space``. A store instance is bound to one space, so the same email can be
registered once as a user and once as an admin.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import store_errors
from errors import AlreadyExists, NotFound
from models import Identity, IdentitySpace
from schemas import normalize_email

logger = logging.getLogger(__name__)


class CredentialStore:
    """Persistence for the identities of a single space."""

    def __init__(self, db: Session, space: IdentitySpace):
        self.db = db
        self.space = space

    @property
    def label(self) -> str:
        return self.space.value.capitalize()

    def _query(self):
        return self.db.query(Identity).filter(Identity.space == self.space)

    def get(self, identity_id: int) -> Optional[Identity]:
        with store_errors(self.db):
            return self._query().filter(Identity.id == identity_id).first()

    def get_by_email(self, email: str) -> Optional[Identity]:
        with store_errors(self.db):
            return self._query().filter(Identity.email == normalize_email(email)).first()

    def add(self, identity: Identity) -> Identity:
        identity.space = self.space
        identity.email = normalize_email(identity.email)
        with store_errors(self.db):
            self.db.add(identity)
            try:
                self.db.commit()
            except IntegrityError as e:
                # Lost a race with a concurrent registration of the same email
                self.db.rollback()
                raise AlreadyExists(f"{self.label} already exists. Please log in.") from e
            self.db.refresh(identity)
        return identity

    def list(self) -> List[Identity]:
        with store_errors(self.db):
            return self._query().order_by(Identity.id.desc()).all()

    def count(self) -> int:
        with store_errors(self.db):
            return self._query().count()

    def remove(self, identity_id: int) -> None:
        with store_errors(self.db):
            identity = self._query().filter(Identity.id == identity_id).first()
            if identity is None:
                raise NotFound(f"{self.label} not found")
            self.db.delete(identity)
            self.db.commit()
        logger.info(f"{self.label} {identity_id} deleted")
