"""SQLModel data models.

Each class maps to a table: registered users (clients and admins), the
service requests they book, and single-use password reset tokens.
"""

from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


SERVICE_TYPES = ("fumigation", "painting", "mapping", "elevation", "rental")
REQUEST_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
ROLES = ("client", "admin")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered account.

    Fields:
    - `email`: unique login, stored lower-cased
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `client` or `admin`
    - `language`: preferred notification language tag
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = "client"
    name: Optional[str] = None
    phone: Optional[str] = None
    language: str = "es"
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class ServiceRequest(SQLModel, table=True):
    """A drone service booked by a client.

    `status` walks pending -> confirmed -> in_progress -> completed, or
    ends in `cancelled`.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    service: str
    scheduled_date: str
    scheduled_end_date: Optional[str] = None
    scheduled_time: str
    name: str
    email: str
    phone: str
    location: str
    area: Optional[str] = None
    notes: Optional[str] = None
    status: str = Field(default="pending", index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class PasswordResetToken(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(index=True, unique=True)
    user_id: int = Field(foreign_key="user.id")
    expires_at: datetime
    used: bool = False
