from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import bcrypt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .config import ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD, BCRYPT_ROUNDS
from .database import get_db
from .errors import AdminRequired, LoginRequired
from .models import User, UserRole

logger = logging.getLogger(__name__)

USER_SESSION_KEY = "user_id"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter_by(email=email.strip().lower()).first()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        return None
    return user


def login_user(request: Request, user: User) -> None:
    request.session.clear()
    request.session[USER_SESSION_KEY] = user.id
    logger.info("User %s logged in", user.id)


def logout_user(request: Request) -> None:
    request.session.clear()


@dataclass(frozen=True)
class CurrentOperator:
    id: int
    name: str
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.Admin


def _requested_path(request: Request) -> str:
    path = request.url.path
    if request.url.query:
        path += "?" + request.url.query
    return path


def get_optional_operator(request: Request, db: Session = Depends(get_db)) -> Optional[CurrentOperator]:
    user_id = request.session.get(USER_SESSION_KEY)
    if user_id is None:
        return None
    user = db.query(User).filter_by(id=user_id).first()
    if user is None:
        # user was deleted while logged in
        logout_user(request)
        return None
    return CurrentOperator(id=user.id, name=user.name, email=user.email, role=user.role)


def require_user(
    request: Request, operator: Optional[CurrentOperator] = Depends(get_optional_operator)
) -> CurrentOperator:
    if operator is None:
        raise LoginRequired(_requested_path(request))
    return operator


def require_admin(operator: CurrentOperator = Depends(require_user)) -> CurrentOperator:
    """Dependency for admin routes."""
    if not operator.is_admin:
        logger.warning("User %s is not allowed to use the admin area", operator.id)
        raise AdminRequired()
    return operator


def ensure_admin_user(db: Session) -> Optional[User]:
    """Create the bootstrap admin from ADMIN_EMAIL / ADMIN_PASSWORD if missing."""
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return None
    email = ADMIN_EMAIL.strip().lower()
    user = db.query(User).filter_by(email=email).first()
    if user is None:
        user = User(
            email=email,
            name=ADMIN_NAME,
            role=UserRole.Admin,
            password_hash=hash_password(ADMIN_PASSWORD),
        )
        db.add(user)
        db.commit()
        logger.info("Created bootstrap admin %s", email)
    return user
