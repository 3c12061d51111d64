"""Simulated email/password and OAuth authentication.

Each ``MockAuth`` owns at most one session. Identities live in the ``users``
table of the database it is attached to, with a ``user_profiles`` row kept in
sync. Passwords are kept as bcrypt hashes and sessions carry signed JWTs.
"""

import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeAlias
from urllib.parse import urlencode
from uuid import uuid4

from jose import JWTError, jwt
from loguru import logger
from passlib.context import CryptContext

from job_tracker.database import MockDatabase
from job_tracker.exceptions import AuthArgumentError
from job_tracker.schema import AuthData, AuthError, AuthResult, AuthUser, Session

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

OAUTH_PROVIDERS = {
    "github": "https://github.com/login/oauth/authorize",
    "google": "https://accounts.google.com/o/oauth2/v2/auth",
}


class AuthChangeEvent(StrEnum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"


AuthListener: TypeAlias = Callable[[AuthChangeEvent, Session | None], Any]


@dataclass
class AuthSubscription:
    id: str
    callback: AuthListener
    _listeners: dict[str, "AuthSubscription"] = field(repr=False)

    def unsubscribe(self) -> None:
        self._listeners.pop(self.id, None)


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def _bcrypt_input(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return encoded[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")
    return password


@dataclass(frozen=True)
class _Credential:
    user_id: str
    password_hash: str = field(repr=False)


def _failure(message: str, code: str, status: int = 400) -> AuthResult:
    return AuthResult(error=AuthError(message=message, code=code, status=status))


class MockAuth:
    def __init__(
        self,
        database: MockDatabase,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        session_ttl: int = 3600,
        refresh_token_ttl: int = 7 * 24 * 3600,
        min_password_length: int = 6,
        hash_rounds: int = 12,
    ):
        self.database = database
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.session_ttl = session_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.min_password_length = min_password_length
        self._pwd = pwd_context.copy(bcrypt__rounds=hash_rounds)
        self._session: Session | None = None
        self._credentials: dict[str, _Credential] = {}
        self._listeners: dict[str, AuthSubscription] = {}

    # ── Session state ──────────────────────────────────────────────────────────

    @property
    def current_session(self) -> Session | None:
        """The live session, or None once it has expired."""
        if self._session is not None and self._session.is_expired:
            logger.info(f"Session for {self._session.user.email} expired")
            self._session = None
        return self._session

    # ── Passwords & tokens ─────────────────────────────────────────────────────

    def _credential(self, user_id: str, password: str) -> _Credential:
        return _Credential(user_id, self._pwd.hash(_bcrypt_input(password)))

    def _verify(self, credential: _Credential, password: str) -> bool:
        return self._pwd.verify(_bcrypt_input(password), credential.password_hash)

    def _encode(self, claims: dict[str, Any]) -> str:
        return jwt.encode(claims, self.jwt_secret, algorithm=self.jwt_algorithm)

    def decode_token(self, token: str, token_type: str = "access") -> dict[str, Any] | None:
        """Claims of a token this auth issued, or None if it is forged, expired or of another type."""
        try:
            claims = jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except JWTError as e:
            logger.debug(f"Rejected {token_type} token: {e}")
            return None
        if claims.get("type") != token_type:
            return None
        return claims

    def _start_session(self, user: AuthUser) -> Session:
        expires_at = int(time.time()) + self.session_ttl
        claims = {"sub": user.id, "email": user.email, "session_id": str(uuid4())}
        self._session = Session(
            access_token=self._encode({**claims, "exp": expires_at, "type": "access"}),
            refresh_token=self._encode({**claims, "exp": expires_at + self.refresh_token_ttl, "type": "refresh"}),
            expires_at=expires_at,
            user=user,
        )
        self._notify(AuthChangeEvent.SIGNED_IN)
        return self._session

    def on_auth_state_change(self, callback: AuthListener) -> AuthSubscription:
        sub = AuthSubscription(id=str(uuid4()), callback=callback, _listeners=self._listeners)
        self._listeners[sub.id] = sub
        return sub

    def _notify(self, event: AuthChangeEvent) -> None:
        for sub in list(self._listeners.values()):
            try:
                sub.callback(event, self._session)
            except Exception:
                logger.exception(f"Auth listener {sub.id} failed on {event}")

    def _network_failure(self) -> AuthResult | None:
        if self.database.network_error:
            return _failure("Network error", "network_error", status=0)
        return None

    def reset(self) -> None:
        self._session = None
        self._credentials.clear()
        self._listeners.clear()

    # ── Operations ─────────────────────────────────────────────────────────────

    async def sign_up(
        self,
        email: str | None = None,
        password: str | None = None,
        name: str | None = None,
        avatar_url: str | None = None,
        bio: str | None = None,
    ) -> AuthResult:
        """Create an identity (plus its profile row) and sign it in.

        Raises:
            AuthArgumentError if email or password is missing
        """
        if not email or not password:
            raise AuthArgumentError("sign_up needs both email and password")
        await self.database.latency.wait()
        if failure := self._network_failure():
            return failure
        if not EMAIL_RE.match(email):
            return _failure(f"Invalid email address: {email}", "invalid_email", status=422)
        if len(password) < self.min_password_length:
            return _failure(
                f"Password should be at least {self.min_password_length} characters",
                "weak_password",
                status=422,
            )
        key = email.lower()
        if key in self._credentials:
            return _failure("User already registered", "user_already_exists", status=422)

        user_id = str(uuid4())
        metadata = {"name": name or email.split("@")[0], "avatar_url": avatar_url, "bio": bio}
        user = AuthUser.model_validate(
            self.database.put("users", {"id": user_id, "email": email, "user_metadata": metadata})
        )
        self.database.put("user_profiles", {"id": user_id, "email": email, **metadata})
        self._credentials[key] = self._credential(user_id, password)
        logger.info(f"Signed up {email}")
        session = self._start_session(user)
        return AuthResult(data=AuthData(user=user, session=session))

    async def sign_in_with_password(self, email: str | None = None, password: str | None = None) -> AuthResult:
        """
        Raises:
            AuthArgumentError if email or password is missing
        """
        if not email or not password:
            raise AuthArgumentError("sign_in_with_password needs both email and password")
        await self.database.latency.wait()
        if failure := self._network_failure():
            return failure
        credential = self._credentials.get(email.lower())
        row = self.database.get("users", credential.user_id) if credential else None
        if credential is None or row is None or not self._verify(credential, password):
            logger.info(f"Failed sign-in for {email}")
            return _failure("Invalid login credentials", "invalid_credentials")
        user = AuthUser.model_validate(row)
        logger.info(f"Signed in {user.email}")
        session = self._start_session(user)
        return AuthResult(data=AuthData(user=user, session=session))

    async def sign_out(self) -> AuthResult:
        if self._session is not None:
            logger.info(f"Signed out {self._session.user.email}")
            self._session = None
            self._notify(AuthChangeEvent.SIGNED_OUT)
        return AuthResult()

    async def get_user(self, jwt: str | None = None) -> AuthResult:
        """The signed-in user, or the user an access token was issued to."""
        if jwt is None:
            session = self.current_session
            return AuthResult(data=AuthData(user=session.user if session else None))
        claims = self.decode_token(jwt)
        if claims is None:
            return _failure("Invalid JWT", "bad_jwt", status=401)
        row = self.database.get("users", claims["sub"])
        if row is None:
            return _failure("User from sub claim in JWT does not exist", "user_not_found", status=404)
        return AuthResult(data=AuthData(user=AuthUser.model_validate(row)))

    async def get_session(self) -> AuthResult:
        session = self.current_session
        return AuthResult(data=AuthData(user=session.user if session else None, session=session))

    async def update_user(
        self,
        email: str | None = None,
        password: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> AuthResult:
        """Change email, password or metadata of the signed-in user; the profile row follows."""
        await self.database.latency.wait()
        if failure := self._network_failure():
            return failure
        session = self.current_session
        if session is None:
            return _failure("No user to update", "no_user", status=401)

        user = session.user
        old_key = user.email.lower()
        new_email = email or user.email
        if email and email.lower() != old_key:
            if not EMAIL_RE.match(email):
                return _failure(f"Invalid email address: {email}", "invalid_email", status=422)
            if email.lower() in self._credentials:
                return _failure("User already registered", "user_already_exists", status=422)
        if password is not None and len(password) < self.min_password_length:
            return _failure(
                f"Password should be at least {self.min_password_length} characters",
                "weak_password",
                status=422,
            )

        metadata = {**user.user_metadata.model_dump(), **(data or {})}
        now = self.database.clock.now()
        updated = AuthUser.model_validate(self.database.put("users", {
            **user.model_dump(mode="json"),
            "email": new_email,
            "user_metadata": metadata,
            "updated_at": now,
        }))

        profile = self.database.get("user_profiles", user.id) or {"id": user.id}
        profile_fields = {k: metadata[k] for k in ("name", "bio", "avatar_url") if k in metadata}
        self.database.put("user_profiles", {**profile, **profile_fields, "email": new_email, "updated_at": now})

        credential = self._credentials.pop(old_key)
        if password is not None:
            credential = self._credential(user.id, password)
        self._credentials[new_email.lower()] = credential

        self._session = session.model_copy(update={"user": updated})
        logger.info(f"Updated user {updated.email}")
        self._notify(AuthChangeEvent.USER_UPDATED)
        return AuthResult(data=AuthData(user=updated))

    async def reset_password_for_email(self, email: str, redirect_to: str | None = None) -> AuthResult:
        await self.database.latency.wait()
        if failure := self._network_failure():
            return failure
        if not email or not EMAIL_RE.match(email):
            return _failure(f"Invalid email address: {email}", "invalid_email", status=422)
        logger.info(f"Password reset requested for {email}" + (f" (redirect {redirect_to})" if redirect_to else ""))
        return AuthResult()

    async def sign_in_with_oauth(self, provider: str | None = None, redirect_to: str | None = None) -> AuthResult:
        """Return the provider's authorize URL; the redirect itself is not simulated.

        Raises:
            AuthArgumentError if provider is missing
        """
        if not provider:
            raise AuthArgumentError("sign_in_with_oauth needs a provider")
        await self.database.latency.wait()
        if failure := self._network_failure():
            return failure
        base = OAUTH_PROVIDERS.get(provider)
        if base is None:
            return _failure(f"Unsupported OAuth provider: {provider}", "invalid_provider")
        url = f"{base}?{urlencode({'redirect_uri': redirect_to})}" if redirect_to else base
        return AuthResult(data=AuthData(url=url))
