import logging
from typing import Iterable, List, Optional

from sqlmodel import Session, select

from . import bookings
from .database import atomic
from .exceptions import ConflictError, DependencyExistsError, NotFoundError
from .models import Role, User, utcnow
from .policy import Action, Principal, UserChange, require
from .schemas import UserUpdate

logger = logging.getLogger(__name__)


def find_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == email.strip().lower())).first()


def provision_user(
    session: Session,
    email: str,
    name: Optional[str] = None,
    admin_emails: Iterable[str] = (),
) -> User:
    """Return the user owning ``email``, creating a customer (or listed admin) on first sight."""
    email = email.strip().lower()
    user = find_by_email(session, email)
    if user:
        return user
    role = Role.admin if email in {e.strip().lower() for e in admin_emails} else Role.customer
    try:
        with atomic(session):
            user = User(name=name or "New User", email=email, role=role)
            session.add(user)
    except ConflictError:
        # a concurrent first request provisioned it
        return find_by_email(session, email)
    session.refresh(user)
    logger.info("Provisioned %s user %s for %s", role.value, user.id, email)
    return user


def list_users(session: Session, principal: Principal) -> List[User]:
    require(principal, Action.LIST_USERS)
    return list(session.exec(select(User).order_by(User.id)).all())


def get_user(session: Session, principal: Principal, user_id: int) -> User:
    require(principal, Action.GET_USER, user_id)
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_user(session: Session, principal: Principal, user_id: int, patch: UserUpdate) -> User:
    changes = patch.changes()
    require(principal, Action.UPDATE_USER, UserChange(user_id, frozenset(changes)))
    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()

    with atomic(session):
        user = session.exec(select(User).where(User.id == user_id).with_for_update()).one_or_none()
        if not user:
            raise NotFoundError("User not found")
        if "email" in changes and changes["email"] != user.email and find_by_email(session, changes["email"]):
            raise ConflictError("Email already exists")
        for k, v in changes.items():
            setattr(user, k, v)
        user.updated_at = utcnow()
        session.add(user)

    session.refresh(user)
    return user


def delete_user(session: Session, principal: Principal, user_id: int) -> None:
    require(principal, Action.DELETE_USER)
    with atomic(session):
        user = session.exec(select(User).where(User.id == user_id).with_for_update()).one_or_none()
        if not user:
            raise NotFoundError("User not found")
        if bookings.count_active(session, customer_id=user_id):
            raise DependencyExistsError("Cannot delete user with active bookings")
        purged = bookings.purge_closed(session, customer_id=user_id)
        session.delete(user)
    logger.info("User %s deleted by admin %s (%s closed bookings removed)", user_id, principal.id, purged)
