"""Signed-in identity for a request.

``SessionContext`` owns the lifecycle

    unauthenticated -> authenticating -> authenticated -> signed_out

and is built per request from the cookie session. Views receive it through
the ``get_session`` / ``require_user`` / ``require_admin`` dependencies.
"""
import enum
import logging
from dataclasses import dataclass
from typing import MutableMapping, Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from .database import get_db
from .errors import AuthenticationError
from .models import ROLE_ADMIN, User
from .repository import UserRepository
from .schemas import LoginCredentials, SignupCredentials

logger = logging.getLogger(__name__)

SESSION_KEY = "user_id"
DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_RATES = {"admin": 0.0, "employee": 25.0}


class SessionState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str
    role: str
    name: str

    @classmethod
    def from_user(cls, user: User) -> "AuthUser":
        return cls(uid=user.id, email=user.email, role=user.role, name=user.name)


class SessionContext:
    def __init__(self, users: UserRepository, storage: MutableMapping):
        self.users = users
        self.storage = storage
        self.state = SessionState.UNAUTHENTICATED
        self.current_user: Optional[AuthUser] = None

    @classmethod
    def restore(cls, users: UserRepository, storage: MutableMapping) -> "SessionContext":
        context = cls(users, storage)
        user_id = storage.get(SESSION_KEY)
        if user_id is None:
            return context
        user = users.get_by_id(user_id)
        if user is None or not user.is_active:
            storage.pop(SESSION_KEY, None)
            return context
        context._authenticated(user)
        return context

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.current_user.role == ROLE_ADMIN

    def _authenticated(self, user: User) -> AuthUser:
        self.current_user = AuthUser.from_user(user)
        self.state = SessionState.AUTHENTICATED
        self.storage[SESSION_KEY] = user.id
        return self.current_user

    def _fail(self, message: str) -> AuthenticationError:
        self.state = SessionState.UNAUTHENTICATED
        self.current_user = None
        return AuthenticationError(message)

    def login(self, credentials: LoginCredentials) -> AuthUser:
        self.state = SessionState.AUTHENTICATING
        user = self.users.get_by_email(credentials.email)
        if user is None or not check_password_hash(user.password_hash, credentials.password):
            logger.info("Failed login for %s", credentials.email)
            raise self._fail("Invalid email or password.")
        if not user.is_active:
            raise self._fail("This account has been deactivated.")
        self.storage.clear()
        return self._authenticated(user)

    def signup(self, credentials: SignupCredentials) -> AuthUser:
        self.state = SessionState.AUTHENTICATING
        if self.users.get_by_email(credentials.email) is not None:
            raise self._fail("Email already registered.")
        user_id = self.users.create(
            name=credentials.name,
            email=credentials.email,
            password_hash=generate_password_hash(credentials.password),
            role=credentials.role,
            timezone=DEFAULT_TIMEZONE,
            hourly_rate=DEFAULT_RATES[credentials.role],
            is_active=True,
        )
        logger.info("Registered %s user %s", credentials.role, user_id)
        self.storage.clear()
        return self._authenticated(self.users.get_by_id(user_id))

    def logout(self) -> None:
        self.storage.clear()
        self.current_user = None
        self.state = SessionState.SIGNED_OUT


def get_session(request: Request, db: Session = Depends(get_db)) -> SessionContext:
    return SessionContext.restore(UserRepository(db), request.session)


def require_user(context: SessionContext = Depends(get_session)) -> AuthUser:
    if not context.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return context.current_user


def require_admin(context: SessionContext = Depends(get_session)) -> AuthUser:
    if not context.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not context.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return context.current_user
