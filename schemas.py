from pydantic import BaseModel, EmailStr, validator
from pydantic.networks import validate_email
from typing import Optional
from datetime import datetime, date

from models import CampaignStatus, IdentitySpace

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    """Canonical form of an email address, the same one EmailStr stores."""
    email = (email or "").strip()
    try:
        return validate_email(email)[1]
    except ValueError:
        # Not a valid address, so it cannot match a stored identity either
        return email


def normalize_status(v: str) -> str:
    status = (v or "").strip().lower()
    allowed = [s.value for s in CampaignStatus]
    if status not in allowed:
        raise ValueError(f"Status must be one of: {', '.join(allowed)}")
    return status


class IdentityCreate(BaseModel):
    name: str
    email: EmailStr
    role: Optional[str] = None
    password: str

    @validator('name')
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Name is required')
        if len(v) > 100:
            raise ValueError('Name must be less than 100 characters')
        return v.strip()

    @validator('role')
    def validate_role(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    @validator('password')
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        if len(v.encode('utf-8')) > MAX_PASSWORD_BYTES:
            raise ValueError(f'Password must be at most {MAX_PASSWORD_BYTES} bytes')
        return v


class Identity(BaseModel):
    id: int
    space: IdentitySpace
    name: str
    email: str
    role: Optional[str] = None
    photo: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionProfile(BaseModel):
    """The profile claims carried by a session token."""
    id: int
    name: str
    email: str
    photo: Optional[str] = None


class CampaignCreate(BaseModel):
    title: str
    description: Optional[str] = None
    goal: float
    start: Optional[date] = None
    end: Optional[date] = None
    status: str = CampaignStatus.ACTIVE.value

    @validator('title')
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError('Title is required')
        if len(v) > 200:
            raise ValueError('Title must be less than 200 characters')
        return v.strip()

    @validator('goal')
    def validate_goal(cls, v):
        if v <= 0:
            raise ValueError('Goal amount must be greater than zero')
        return v

    @validator('end')
    def validate_end(cls, v, values):
        start = values.get('start')
        if v is not None and start is not None and v < start:
            raise ValueError('End date cannot be before start date')
        return v

    @validator('status')
    def validate_status(cls, v):
        return normalize_status(v)


class CampaignStatusUpdate(BaseModel):
    status: str

    @validator('status')
    def validate_status(cls, v):
        return normalize_status(v)


class Campaign(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    goal: float
    start: Optional[date] = None
    end: Optional[date] = None
    status: str
    raised: float
    image: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DonationCreate(BaseModel):
    user_id: int
    campaign_id: int
    amount: float
    message: str

    @validator('amount')
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError('Amount must be greater than zero')
        return v

    @validator('message')
    def validate_message(cls, v):
        if not v.strip():
            raise ValueError('Message is required')
        return v.strip()


class Donation(BaseModel):
    id: int
    user_id: int
    campaign_id: int
    amount: float
    message: str
    date: Optional[datetime] = None

    class Config:
        from_attributes = True


class DonationView(BaseModel):
    """A donation joined with its campaign and donor."""
    id: int
    amount: float
    message: Optional[str] = None
    date: Optional[datetime] = None
    campaign_id: int
    campaign_title: str
    campaign_image: Optional[str] = None
    donor_id: int
    donor_name: str
    donor_photo: Optional[str] = None


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    contributor_name: str
    photo: Optional[str] = None
    total_donated: float
    donation_count: int
    last_donation_date: Optional[datetime] = None
    campaigns_supported: int
