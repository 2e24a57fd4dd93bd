"""
Accounts, sessions and profiles.

Sign-in hands back an explicit AuthSession; every operation that needs to
know who is calling takes that session as an argument. Failures are raised
as AuthError with one of the codes listed in errors.AUTH_MESSAGES.
"""
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, EmailStr, TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from config import Config, get_config
from database import DocumentStore
from dates import parse_timestamp, utcnow
from errors import AuthError, NotFoundError, StoreError, ValidationError
from mailer import reset_notifier
from schemas import Identity, PasswordReset, ProfileUpdate, Session, User

logger = logging.getLogger(__name__)

USERS = "users"
SESSIONS = "sessions"
RESETS = "password_resets"

ROLES = ("Customer", "Admin")
MIN_PASSWORD_LENGTH = 6
PRIVATE_FIELDS = ("password_hash", "failed_logins", "locked_until")

_email_adapter = TypeAdapter(EmailStr)


class AuthSession(BaseModel):
    token: str
    identity: Identity
    expires_at: Optional[datetime] = None

    @property
    def user_id(self) -> str:
        return self.identity.id

    @property
    def role(self) -> str:
        return self.identity.role

    @property
    def is_admin(self) -> bool:
        return is_admin(self.identity.role)


def is_admin(role: Optional[str]) -> bool:
    return (role or "").strip().lower() == "admin"


def normalize_role(role: Optional[str]) -> str:
    for candidate in ROLES:
        if (role or "").strip().lower() == candidate.lower():
            return candidate
    raise ValidationError(f"Unknown role: {role}")


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(8)
    return salt + "$" + hashlib.sha256((salt + password).encode()).hexdigest()


def verify_password(password: str, stored: str) -> bool:
    try:
        salt, _ = stored.split("$")
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt), stored)


def _check_email(email: str) -> str:
    try:
        return str(_email_adapter.validate_python((email or "").strip())).lower()
    except SchemaValidationError:
        raise AuthError("invalid-email", status_code=400)


def _public_profile(doc: dict) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in PRIVATE_FIELDS}


def _network_guard(func):
    """Report an unreachable store as the network-failure auth error."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StoreError as e:
            raise AuthError("network-failure", status_code=503) from e
    return wrapper


class IdentityService:
    def __init__(self, store: DocumentStore, config: Optional[Config] = None,
                 notifier: Optional[Callable[[str, str], None]] = None):
        self.store = store
        self.config = config or get_config()
        self.notifier = notifier or self.config.RESET_NOTIFIER or reset_notifier(self.config)

    # ---------- Accounts ----------

    @_network_guard
    def create_account(self, email: str, password: str, display_name: str, phone: str = "", role: str = "Customer") -> AuthSession:
        email = _check_email(email)
        if not (display_name or "").strip():
            raise ValidationError("Full name is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError("weak-password", status_code=400)
        role = normalize_role(role)
        if self.store.find_one(USERS, {"email": email}):
            raise AuthError("email-already-in-use", status_code=400)

        user_id = self.store.create(USERS, User(
            email=email,
            full_name=display_name.strip(),
            phone=(phone or "").strip(),
            role=role,
            password_hash=hash_password(password),
            created_at=utcnow(),
        ))
        logger.info("Account created: %s (%s)", email, role)
        return self._open_session(Identity(id=user_id, email=email, full_name=display_name.strip(), role=role))

    @_network_guard
    def authenticate(self, email: str, password: str) -> AuthSession:
        email = _check_email(email)
        user = self.store.find_one(USERS, {"email": email})
        if not user:
            logger.warning("Sign-in for unknown account %s", email)
            raise AuthError("user-not-found")

        now = utcnow()
        locked_until = parse_timestamp(user.get("locked_until"))
        if locked_until and locked_until > now:
            raise AuthError("too-many-requests")

        if not verify_password(password or "", user.get("password_hash", "")):
            failures = int(user.get("failed_logins") or 0) + 1
            if failures >= self.config.MAX_FAILED_LOGINS:
                lock = now + timedelta(minutes=self.config.LOCKOUT_MINUTES)
                self.store.update(USERS, user["id"], {"failed_logins": 0, "locked_until": lock})
                logger.warning("Account %s locked after %d failed sign-ins", email, failures)
                raise AuthError("too-many-requests")
            self.store.update(USERS, user["id"], {"failed_logins": failures})
            logger.warning("Wrong password for %s (%d)", email, failures)
            raise AuthError("wrong-password")

        self.store.update(USERS, user["id"], {"failed_logins": 0, "locked_until": None, "last_login": now})
        identity = Identity(id=user["id"], email=user["email"], full_name=user.get("full_name", ""), role=user.get("role") or "Customer")
        return self._open_session(identity)

    def _open_session(self, identity: Identity) -> AuthSession:
        token = secrets.token_urlsafe(24)
        now = utcnow()
        expires_at = now + timedelta(hours=self.config.SESSION_TTL_HOURS)
        self.store.create(SESSIONS, Session(user_id=identity.id, token=token, created_at=now, expires_at=expires_at))
        return AuthSession(token=token, identity=identity, expires_at=expires_at)

    @_network_guard
    def session_from_token(self, token: Optional[str]) -> AuthSession:
        if not token:
            raise AuthError("invalid-session")
        session = self.store.find_one(SESSIONS, {"token": token})
        if not session:
            raise AuthError("invalid-session")
        expires_at = parse_timestamp(session.get("expires_at"))
        if expires_at and expires_at <= utcnow():
            self.store.delete(SESSIONS, session["id"])
            raise AuthError("invalid-session")
        user = self.store.read(USERS, session["user_id"])
        if not user:
            raise AuthError("invalid-session")
        identity = Identity(id=user["id"], email=user["email"], full_name=user.get("full_name", ""), role=user.get("role") or "Customer")
        return AuthSession(token=token, identity=identity, expires_at=expires_at)

    @_network_guard
    def sign_out(self, token: str) -> None:
        self.store.delete_many(SESSIONS, {"token": token})

    # ---------- Password reset ----------

    @_network_guard
    def send_password_reset(self, email: str) -> str:
        """Issue a reset token, hand it to the notifier for delivery and return it."""
        email = _check_email(email)
        user = self.store.find_one(USERS, {"email": email})
        if not user:
            raise AuthError("user-not-found", status_code=404)
        token = secrets.token_urlsafe(32)
        self.store.create(RESETS, PasswordReset(
            user_id=user["id"],
            token=token,
            expires_at=utcnow() + timedelta(minutes=self.config.RESET_TOKEN_TTL_MINUTES),
        ))
        self.notifier(email, token)
        logger.info("Password reset issued for %s", email)
        return token

    @_network_guard
    def confirm_password_reset(self, token: str, new_password: str) -> None:
        reset = self.store.find_one(RESETS, {"token": token, "used": False})
        expires_at = parse_timestamp(reset.get("expires_at")) if reset else None
        if not reset or (expires_at and expires_at <= utcnow()):
            raise AuthError("invalid-reset-token", status_code=400)
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError("weak-password", status_code=400)
        self.store.update(USERS, reset["user_id"], {
            "password_hash": hash_password(new_password),
            "failed_logins": 0,
            "locked_until": None,
        })
        self.store.update(RESETS, reset["id"], {"used": True})
        self.store.delete_many(SESSIONS, {"user_id": reset["user_id"]})
        logger.info("Password reset completed for user %s", reset["user_id"])

    # ---------- Profiles ----------

    def get_profile(self, session: AuthSession) -> Dict[str, Any]:
        user = self.store.read(USERS, session.user_id)
        if not user:
            raise NotFoundError("Profile not found")
        return _public_profile(user)

    def update_profile(self, session: AuthSession, changes: ProfileUpdate) -> Dict[str, Any]:
        # role and email are not part of ProfileUpdate, so they cannot change here
        data = {k: v.strip() for k, v in changes.model_dump().items() if v is not None}
        if "full_name" in data and not data["full_name"]:
            raise ValidationError("Full name is required")
        if not data:
            return self.get_profile(session)
        user = self.store.update(USERS, session.user_id, data)
        if not user:
            raise NotFoundError("Profile not found")
        return _public_profile(user)

    def list_customers(self, q: Optional[str] = None) -> List[Dict[str, Any]]:
        docs = self.store.query(USERS, {"role": {"$regex": "^customer$", "$options": "i"}})
        customers = [_public_profile(d) for d in docs]
        if q:
            needle = q.lower()
            customers = [
                c for c in customers
                if needle in (c.get("full_name") or "").lower() or needle in (c.get("email") or "").lower()
            ]
        return sorted(customers, key=lambda c: (c.get("full_name") or "").lower())
