"""
Authentication service: credentials, login sessions, roles and CSRF tokens.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from email_validator import EmailNotValidError, validate_email
from passlib.context import CryptContext
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from kbcms.config import Settings
from kbcms.db.database import transaction
from kbcms.db.models import User
from kbcms.errors import DuplicateIdentity, InvalidCredentials, InvalidToken, SaveError, ValidationError
from kbcms.security.sessions import ServerSession

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

USER_ROLES = ("admin", "editor", "viewer")
ADMIN_ROLES = frozenset({"admin", "editor"})

SESSION_USER_KEYS = ("user_id", "username", "email", "role", "logged_in", "login_time")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unrecognized or malformed hash
        return False


@dataclass(frozen=True)
class SessionUser:
    id: int
    username: str
    email: str
    role: str


class AuthService:
    def __init__(self, db: Session, session: ServerSession, settings: Settings):
        self.db = db
        self.session = session
        self.settings = settings

    # =========================================================================
    # LOGIN / LOGOUT
    # =========================================================================

    def get_user_by_identifier(self, identifier: str) -> Optional[User]:
        """Look a user up by username or email."""
        stmt = select(User).where(or_(User.username == identifier, User.email == identifier)).limit(1)
        return self.db.execute(stmt).scalars().first()

    def login(self, identifier: str, password: str) -> SessionUser:
        identifier = (identifier or "").strip()
        if not identifier or not password:
            raise ValidationError("Username and password are required")

        user = self.get_user_by_identifier(identifier)
        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"Failed login attempt for {identifier!r}")
            raise InvalidCredentials()

        # New id for the authenticated session (fixation)
        self.session.regenerate()
        self.session.update({
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
            "role": user.role,
            "logged_in": True,
            "login_time": int(time.time()),
        })
        logger.info(f"User {user.username} logged in")
        return SessionUser(id=user.id, username=user.username, email=user.email, role=user.role)

    def logout(self) -> None:
        username = self.session.get("username")
        self.session.destroy()
        if username:
            logger.info(f"User {username} logged out")

    def is_authenticated(self) -> bool:
        return self.session.get("logged_in") is True

    def has_role(self, roles: Iterable[str]) -> bool:
        return self.is_authenticated() and self.session.get("role") in set(roles)

    def is_admin(self) -> bool:
        return self.has_role(ADMIN_ROLES)

    def current_user(self) -> Optional[SessionUser]:
        if not self.is_authenticated():
            return None
        return SessionUser(
            id=self.session["user_id"],
            username=self.session["username"],
            email=self.session["email"],
            role=self.session["role"],
        )

    # =========================================================================
    # CSRF
    # =========================================================================

    def issue_csrf_token(self) -> str:
        """Return the session's CSRF token, creating it on first use."""
        token = self.session.get(self.settings.csrf_token_name)
        if not token:
            token = secrets.token_hex(32)
            self.session[self.settings.csrf_token_name] = token
        return token

    def validate_csrf_token(self, token: Optional[str]) -> None:
        expected = self.session.get(self.settings.csrf_token_name)
        if not expected or not token or not secrets.compare_digest(expected, token):
            logger.warning("Rejected request with invalid CSRF token")
            raise InvalidToken()

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, username: str, email: str, password: str, role: str = "admin") -> User:
        username = (username or "").strip()
        email = (email or "").strip()

        if not 1 <= len(username) <= 50:
            raise ValidationError("Username is required and must be between 1-50 characters.")

        if len(password or "") < self.settings.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.settings.min_password_length} characters"
            )

        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError:
            raise ValidationError("Invalid email format")

        if role not in USER_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")

        stmt = select(User.id).where(or_(User.username == username, User.email == email)).limit(1)
        if self.db.execute(stmt).first() is not None:
            raise DuplicateIdentity()

        user = User(username=username, email=email, password_hash=hash_password(password), role=role)
        with transaction(self.db, "Failed to create user", SaveError):
            self.db.add(user)
        self.db.refresh(user)

        logger.info(f"Created {role} user {username}")
        return user

    def list_users(self) -> list[User]:
        return list(self.db.execute(select(User).order_by(User.username)).scalars())
