from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import JWTError, jwt
from sqlalchemy.orm import Session
import bcrypt

from config import Config
from errors import AlreadyExists, InvalidCredentials, NotFound
from identities import CredentialStore
from models import Identity, IdentitySpace
from schemas import IdentityCreate

logger = logging.getLogger(__name__)

SESSION_CLAIMS = ("id", "name", "email", "photo")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash using bcrypt.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The bcrypt hashed password to check against

    Returns:
        bool: True if password matches, False otherwise
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError as e:
        logger.warning(f"Error verifying password: {e}")
        return False


def get_password_hash(password: str, rounds: int = None) -> str:
    """
    Hash a password using bcrypt with salt.

    Args:
        password: The plain text password to hash
        rounds: bcrypt work factor, defaults to Config.BCRYPT_ROUNDS

    Returns:
        str: The bcrypt hashed password
    """
    salt = bcrypt.gensalt(rounds=rounds or Config.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def session_claims(identity: Identity) -> dict:
    """The profile claims a session token carries."""
    return {
        "id": identity.id,
        "name": identity.name,
        "email": identity.email,
        "photo": identity.photo,
    }


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    expires_at: Optional[datetime] = None,
):
    """Create a JWT access token expiring at ``expires_at``, or ``expires_delta`` from now."""
    to_encode = data.copy()
    if expires_at is None:
        if expires_delta is None:
            expires_delta = timedelta(hours=Config.ACCESS_TOKEN_EXPIRE_HOURS)
        expires_at = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expires_at})
    encoded_jwt = jwt.encode(to_encode, Config.SECRET_KEY, algorithm=Config.ALGORITHM)
    return encoded_jwt


def verify_token(token: str) -> Optional[dict]:
    """Check signature and expiry of a session token and return its claims."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, Config.SECRET_KEY, algorithms=[Config.ALGORITHM])
    except JWTError:
        return None
    if any(claim not in payload for claim in SESSION_CLAIMS):
        return None
    return payload


@dataclass
class LoginSession:
    identity: Identity
    token: str
    expires_at: datetime


class Authenticator:
    """Registration and login for one identity space."""

    def __init__(self, db: Session, space: IdentitySpace):
        self.store = CredentialStore(db, space)

    def register(self, data: IdentityCreate, photo: Optional[str] = None) -> Identity:
        if self.store.get_by_email(data.email) is not None:
            logger.info(f"{self.store.label} already exists: {data.email}")
            raise AlreadyExists(f"{self.store.label} already exists. Please log in.")

        identity = Identity(
            name=data.name,
            email=data.email,
            role=data.role if self.store.space == IdentitySpace.USER else None,
            password_hash=get_password_hash(data.password),
            photo=photo,
        )
        identity = self.store.add(identity)
        logger.info(f"{self.store.label} registered: {identity.email} (id={identity.id})")
        return identity

    def login(self, email: str, password: str) -> LoginSession:
        identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFound(f"{self.store.label} not found. Please register.")

        if not verify_password(password, identity.password_hash):
            logger.info(f"Password verification failed for {email}")
            raise InvalidCredentials("Incorrect password.")

        # JWT exp has whole-second precision
        expires_at = datetime.now(timezone.utc).replace(microsecond=0)
        expires_at += timedelta(hours=Config.ACCESS_TOKEN_EXPIRE_HOURS)
        token = create_access_token(session_claims(identity), expires_at=expires_at)
        logger.info(f"{self.store.label} logged in: {email}")
        return LoginSession(
            identity=identity,
            token=token,
            expires_at=expires_at,
        )
