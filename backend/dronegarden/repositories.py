"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
service requests, reset tokens). Repositories return SQLModel objects and
perform commits/refreshes where appropriate.
"""

from typing import List, Optional
from sqlmodel import Session, select
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by (case-insensitive) email or `None`."""
        stmt = select(models.User).where(models.User.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list_all(self) -> List[models.User]:
        stmt = select(models.User).order_by(models.User.created_at.desc())
        return self.session.exec(stmt).all()

    def delete(self, user: models.User) -> None:
        """Delete a user together with their requests and reset tokens."""
        for req in self.session.exec(select(models.ServiceRequest).where(models.ServiceRequest.user_id == user.id)).all():
            self.session.delete(req)
        for tok in self.session.exec(select(models.PasswordResetToken).where(models.PasswordResetToken.user_id == user.id)).all():
            self.session.delete(tok)
        self.session.delete(user)
        self.session.commit()


class ServiceRequestRepository:
    """Queries and updates for `ServiceRequest` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, request: models.ServiceRequest) -> models.ServiceRequest:
        self.session.add(request)
        self.session.commit()
        self.session.refresh(request)
        return request

    def get(self, request_id: int) -> Optional[models.ServiceRequest]:
        return self.session.get(models.ServiceRequest, request_id)

    def list_for_user(self, user_id: int) -> List[models.ServiceRequest]:
        """Return the requests of one client, newest first."""
        stmt = (
            select(models.ServiceRequest)
            .where(models.ServiceRequest.user_id == user_id)
            .order_by(models.ServiceRequest.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.ServiceRequest]:
        stmt = select(models.ServiceRequest).order_by(models.ServiceRequest.created_at.desc())
        return self.session.exec(stmt).all()

    def set_status(self, request: models.ServiceRequest, status: str) -> models.ServiceRequest:
        request.status = status
        self.session.add(request)
        self.session.commit()
        self.session.refresh(request)
        return request

    def delete(self, request: models.ServiceRequest) -> None:
        self.session.delete(request)
        self.session.commit()


class PasswordResetRepository:
    """Issue and consume password reset tokens."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, token: models.PasswordResetToken) -> models.PasswordResetToken:
        self.session.add(token)
        self.session.commit()
        self.session.refresh(token)
        return token

    def get_by_token(self, token: str) -> Optional[models.PasswordResetToken]:
        stmt = select(models.PasswordResetToken).where(models.PasswordResetToken.token == token)
        return self.session.exec(stmt).first()

    def mark_used(self, token: models.PasswordResetToken) -> None:
        token.used = True
        self.session.add(token)
        self.session.commit()
