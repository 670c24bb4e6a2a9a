"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
auxiliary logic. Services are intentionally thin: they validate input,
execute domain rules and persist aggregates via repositories. They raise
builtin exceptions (`ValueError` for bad input, `PermissionError` for bad
credentials, `LookupError` for missing rows) which the controllers map to
HTTP status codes.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .config import settings

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValueError("invalid email address")
    return email


def user_to_dict(user: models.User) -> dict:
    """Public representation of a user (never includes the hash)."""
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "name": user.name,
        "language": user.language,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def profile_to_dict(user: models.User) -> dict:
    out = user_to_dict(user)
    out.update({
        "phone": user.phone,
        "address": user.address,
        "city": user.city,
        "country": user.country,
        "postal_code": user.postal_code,
        "company_name": user.company_name,
        "tax_id": user.tax_id,
    })
    return out


def request_to_dict(req: models.ServiceRequest) -> dict:
    return {
        "id": req.id,
        "user_id": req.user_id,
        "service": req.service,
        "scheduledDate": req.scheduled_date,
        "scheduledEndDate": req.scheduled_end_date,
        "scheduledTime": req.scheduled_time,
        "name": req.name,
        "email": req.email,
        "phone": req.phone,
        "location": req.location,
        "area": req.area,
        "notes": req.notes,
        "status": req.status,
        "created_at": req.created_at.isoformat() if req.created_at else None,
    }


def is_admin(user: models.User) -> bool:
    return user.role == "admin" or settings.is_admin_email(user.email)


class AuthService:
    """Registration, login tokens and password changes."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, email: str, password: str, name: Optional[str] = None, role: Optional[str] = None) -> models.User:
        """Create a new user with a hashed password.

        Emails listed in `ADMIN_EMAILS` register with the admin role.
        Raises ValueError if the email is already taken.
        """
        email = _normalize_email(email)
        if self.user_repo.get_by_email(email):
            raise ValueError("email already registered")
        if role is None:
            role = "admin" if settings.is_admin_email(email) else "client"
        user = models.User(email=email, password_hash=PWD_CTX.hash(password), name=name, role=role)
        return self.user_repo.create(user)

    def issue_token(self, user: models.User) -> str:
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "email": user.email, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def authenticate(self, email: str, password: str) -> Tuple[models.User, str]:
        """Verify credentials and return `(user, token)`.

        Raises PermissionError when the email/password pair is wrong.
        """
        user = self.user_repo.get_by_email(email or "")
        if not user or not PWD_CTX.verify(password, user.password_hash):
            raise PermissionError("invalid credentials")
        return user, self.issue_token(user)

    def change_password(self, user: models.User, current_password: str, new_password: str) -> None:
        if not PWD_CTX.verify(current_password, user.password_hash):
            raise PermissionError("current password is incorrect")
        self.set_password(user, new_password)

    def set_password(self, user: models.User, new_password: str) -> None:
        if len(new_password) < 6:
            raise ValueError("password must be at least 6 characters")
        user.password_hash = PWD_CTX.hash(new_password)
        self.user_repo.save(user)


class PasswordResetService:
    """Issue and redeem single-use password reset tokens."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.token_repo = repositories.PasswordResetRepository(session)

    def issue(self, user: models.User) -> str:
        expires = datetime.now(timezone.utc) + timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES)
        token = models.PasswordResetToken(token=secrets.token_urlsafe(32), user_id=user.id, expires_at=expires)
        return self.token_repo.create(token).token

    def reset_link(self, token: str) -> str:
        return f"{settings.APP_BASE_URL}/reset-password?token={token}"

    def redeem(self, token: str, new_password: str) -> models.User:
        """Set a new password using `token`; the token cannot be reused."""
        row = self.token_repo.get_by_token(token)
        if not row or row.used:
            raise ValueError("invalid or expired token")
        expires_at = row.expires_at
        if expires_at.tzinfo is None:
            # SQLite hands datetimes back naive
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            raise ValueError("invalid or expired token")
        user = self.user_repo.get(row.user_id)
        if not user:
            raise LookupError("user not found")
        AuthService(self.session).set_password(user, new_password)
        self.token_repo.mark_used(row)
        return user


class ProfileService:
    def __init__(self, session: Session):
        self.user_repo = repositories.UserRepository(session)

    def update(self, user: models.User, changes: dict) -> models.User:
        """Apply the non-None `changes` to the user's profile columns."""
        editable = ("name", "phone", "language", "address", "city", "country", "postal_code", "company_name", "tax_id")
        for field in editable:
            if changes.get(field) is not None:
                setattr(user, field, changes[field])
        return self.user_repo.save(user)


class ServiceRequestService:
    """Booking and status workflow for service requests."""
    def __init__(self, session: Session):
        self.repo = repositories.ServiceRequestRepository(session)

    def create(self, user: models.User, data: dict) -> models.ServiceRequest:
        if data.get("service") not in models.SERVICE_TYPES:
            raise ValueError(f"unknown service '{data.get('service')}'")
        for field in ("scheduled_date", "scheduled_time", "name", "email", "phone", "location"):
            if not str(data.get(field) or "").strip():
                raise ValueError(f"{field} is required")
        req = models.ServiceRequest(user_id=user.id, **data)
        return self.repo.create(req)

    def list_for_user(self, user: models.User) -> List[models.ServiceRequest]:
        return self.repo.list_for_user(user.id)

    def list_all(self) -> List[models.ServiceRequest]:
        return self.repo.list_all()

    def update_status(self, request_id: int, status: str) -> models.ServiceRequest:
        if status not in models.REQUEST_STATUSES:
            raise ValueError(f"invalid status '{status}'")
        req = self.repo.get(request_id)
        if not req:
            raise LookupError("service request not found")
        return self.repo.set_status(req, status)

    def delete(self, request_id: int) -> None:
        req = self.repo.get(request_id)
        if not req:
            raise LookupError("service request not found")
        self.repo.delete(req)


class AdminUserService:
    """Client account management for administrators."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def list_users(self) -> List[models.User]:
        return self.user_repo.list_all()

    def create_user(self, email: str, password: str, name: Optional[str] = None) -> models.User:
        return AuthService(self.session).register(email, password, name=name, role="client")

    def get(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise LookupError("user not found")
        return user

    def delete_user(self, acting_admin: models.User, user_id: int) -> None:
        user = self.get(user_id)
        if user.id == acting_admin.id:
            raise ValueError("administrators cannot delete their own account")
        self.user_repo.delete(user)

    def change_password(self, user_id: int, new_password: str) -> None:
        AuthService(self.session).set_password(self.get(user_id), new_password)
