"""Credential store, session tokens and the per-request auth gate.

Sessions are stateless: login mints a signed JWT that the client keeps in an
httpOnly cookie, and every protected request re-verifies it. Nothing about
the session is stored server-side, so logout only clears the cookie.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import current_app, g, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import DuplicateUsername, InvalidCredentials, PersistenceError, Unauthenticated, ValidationError
from models import User, db

logger = logging.getLogger(__name__)

_JWT_ALG = 'HS256'
DEFAULT_LIFETIME = timedelta(hours=24)

# Column sizes in models.User
USERNAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255


@dataclass(frozen=True)
class Identity:
    id: int
    username: str


def normalize_username(username: Any) -> str:
    if not isinstance(username, str):
        return ''
    return username.strip()


# ---------------------- Credential Store ----------------------
class CredentialStore:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def find_by_username(self, username: str) -> Optional[User]:
        u = normalize_username(username)
        if not u:
            return None
        return self.session.query(User).filter_by(username=u).first()

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, int(user_id))

    def register(self, username: str, password: str, email: Optional[str] = None) -> User:
        u = normalize_username(username)
        if not u:
            raise ValidationError('Username is required.')
        if not isinstance(password, str) or not password:
            raise ValidationError('Password is required.')
        if len(u) > USERNAME_MAX_LENGTH:
            raise ValidationError(f'Username must be at most {USERNAME_MAX_LENGTH} characters.')
        if email is not None and not isinstance(email, str):
            raise ValidationError('Email must be text.')
        email = (email or '').strip() or None
        if email and len(email) > EMAIL_MAX_LENGTH:
            raise ValidationError(f'Email must be at most {EMAIL_MAX_LENGTH} characters.')
        if self.find_by_username(u) is not None:
            raise DuplicateUsername()

        user = User(username=u, password_hash=generate_password_hash(password), email=email)
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race against a concurrent register for the same name.
            self.session.rollback()
            raise DuplicateUsername()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError() from exc
        logger.info('registered user id=%s username=%s', user.id, user.username)
        return user

    def verify(self, username: str, password: str) -> Identity:
        user = self.find_by_username(username)
        # Same error for 'no such user' and 'wrong password'.
        if user is None or not isinstance(password, str) or not check_password_hash(user.password_hash, password):
            raise InvalidCredentials()
        return Identity(id=user.id, username=user.username)


# ---------------------- Session Issuer ----------------------
class SessionIssuer:
    def __init__(self, secret: str, lifetime: timedelta = DEFAULT_LIFETIME):
        if not secret:
            raise ValueError('jwt_secret_blank')
        self.secret = secret
        self.lifetime = lifetime

    def issue(self, identity: Identity, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        exp = now + self.lifetime
        payload: Dict[str, Any] = {
            'id': identity.id,
            'username': identity.username,
            'iat': int(now.timestamp()),
            'exp': int(exp.timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=_JWT_ALG)

    def verify(self, token: Optional[str]) -> Optional[Identity]:
        """Return the identity in ``token``, or None for any kind of failure."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[_JWT_ALG],
                options={'require': ['exp', 'iat']},
            )
        except jwt.InvalidTokenError:
            return None

        user_id = payload.get('id')
        username = payload.get('username')
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            return None
        if not isinstance(username, str) or not username:
            return None
        return Identity(id=user_id, username=username)


def session_issuer() -> SessionIssuer:
    cfg = current_app.config
    secret = cfg.get('JWT_SECRET') or cfg.get('SECRET_KEY')
    hours = int(cfg.get('SESSION_LIFETIME_HOURS') or 24)
    return SessionIssuer(secret, lifetime=timedelta(hours=hours))


# ---------------------- Auth Gate ----------------------
def current_identity() -> Optional[Identity]:
    token = request.cookies.get(current_app.config.get('AUTH_COOKIE_NAME', 'token'))
    return session_issuer().verify(token)


def login_required(view_func):
    @wraps(view_func)
    def wrapped(*args, **kwargs):
        identity = current_identity()
        if identity is None:
            raise Unauthenticated()
        g.identity = identity
        return view_func(*args, **kwargs)
    return wrapped
