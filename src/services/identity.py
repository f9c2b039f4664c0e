"""Accounts, sessions and viewer resolution.

Stands in for a hosted identity provider.  Key layout::

    user:<id>            -> StoredUser document
    user_email:<email>   -> id            (lower-cased email)
    all_users            -> [id, ...]     registration order
    session:<token>      -> user id       (expires after ``session_ttl``)

Passwords are stored only as bcrypt hashes, computed in a worker thread
so the event loop is never blocked.  Resolving a request never fails: no
header, the shared anonymous key, or an unknown token all yield :meth:`ViewerContext.anonymous`.
"""

from __future__ import annotations

import asyncio
import hmac
import secrets
from typing import Final

import structlog
from passlib.context import CryptContext

from src.middleware.privacy import sanitize_email
from src.models.enums import Role
from src.models.user import StoredUser, User, ViewerContext
from src.services.errors import NotFoundError, UnauthorizedError, ValidationError
from src.services.store import KeyValueStore

logger = structlog.get_logger(__name__)

_USER_PREFIX: Final[str] = "user:"
_EMAIL_PREFIX: Final[str] = "user_email:"
_USERS_INDEX: Final[str] = "all_users"
_SESSION_PREFIX: Final[str] = "session:"

_PASSWORD_CONTEXT: Final[CryptContext] = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt only looks at the first 72 bytes of a password.
_MAX_PASSWORD_BYTES: Final[int] = 72


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValidationError("Password cannot exceed 72 bytes")
    return _PASSWORD_CONTEXT.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _PASSWORD_CONTEXT.verify(password, hashed)
    except ValueError:
        # Unrecognised or malformed hash.
        return False


def _public(user: StoredUser) -> User:
    return User.model_validate(user.model_dump(exclude={"password_hash"}))


class IdentityService:
    """User directory and session store on top of :class:`KeyValueStore`."""

    __slots__ = ("_anon_key", "_lock", "_session_ttl", "_store")

    def __init__(self, store: KeyValueStore, *, anon_key: str = "", session_ttl: int = 86_400) -> None:
        self._store = store
        self._anon_key = anon_key
        self._session_ttl = session_ttl
        self._lock = asyncio.Lock()

    # -- accounts -----------------------------------------------------------

    async def signup(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: str = Role.STUDENT,
        department: str | None = None,
    ) -> User:
        name, email = name.strip(), email.strip().lower()
        if not name or not email or not password:
            raise ValidationError("Missing required fields: name, email, password")
        try:
            parsed_role = Role(role)
        except ValueError:
            raise ValidationError("Invalid role selected") from None
        department = (department or "").strip() or None
        if parsed_role == Role.HOD and not department:
            raise ValidationError("Department is required for Head of Department role")

        password_hash = await asyncio.to_thread(hash_password, password)

        async with self._lock:
            if await self._store.exists(f"{_EMAIL_PREFIX}{email}"):
                raise ValidationError("A user with this email address has already been registered")
            user = StoredUser(
                name=name,
                email=email,
                role=parsed_role,
                department=department,
                password_hash=password_hash,
            )
            await self._store.set(f"{_USER_PREFIX}{user.id}", user.to_wire())
            await self._store.set(f"{_EMAIL_PREFIX}{email}", user.id)
            ids: list[str] = await self._store.get(_USERS_INDEX) or []
            ids.append(user.id)
            await self._store.set(_USERS_INDEX, ids)

        logger.info("identity.user_created", user_id=user.id, role=user.role.value, email=sanitize_email(email))
        return _public(user)

    async def _get_stored(self, user_id: str) -> StoredUser | None:
        raw = await self._store.get(f"{_USER_PREFIX}{user_id}")
        if raw is None:
            return None
        return StoredUser.model_validate(raw)

    async def get_user(self, user_id: str) -> User | None:
        stored = await self._get_stored(user_id)
        return _public(stored) if stored is not None else None

    async def _all_users(self) -> list[User]:
        ids: list[str] = await self._store.get(_USERS_INDEX) or []
        users = await asyncio.gather(*(self.get_user(user_id) for user_id in ids))
        return [user for user in users if user is not None]

    async def list_users(self, actor: ViewerContext) -> list[User]:
        if not actor.is_admin:
            raise UnauthorizedError("Unauthorized. Admin access required.")
        return await self._all_users()

    async def delete_user(self, user_id: str, actor: ViewerContext) -> None:
        if not actor.is_admin:
            raise UnauthorizedError("Unauthorized. Admin access required.")
        if user_id == actor.user_id:
            raise ValidationError("Cannot delete your own account")

        async with self._lock:
            stored = await self._get_stored(user_id)
            if stored is None:
                raise NotFoundError("User not found")
            await self._store.delete(f"{_USER_PREFIX}{user_id}")
            await self._store.delete(f"{_EMAIL_PREFIX}{stored.email}")
            ids: list[str] = await self._store.get(_USERS_INDEX) or []
            await self._store.set(_USERS_INDEX, [other for other in ids if other != user_id])

        logger.info("identity.user_deleted", user_id=user_id, actor_id=actor.user_id)

    async def notification_recipients(self, department: str) -> list[User]:
        """Admins plus the HODs of *department*."""
        return [
            user
            for user in await self._all_users()
            if user.role == Role.ADMIN or (user.role == Role.HOD and user.department == department)
        ]

    # -- sessions -----------------------------------------------------------

    async def login(self, email: str, password: str) -> tuple[str, User]:
        email = email.strip().lower()
        user_id = await self._store.get(f"{_EMAIL_PREFIX}{email}")
        stored = await self._get_stored(user_id) if user_id else None
        valid = stored is not None and await asyncio.to_thread(verify_password, password, stored.password_hash)
        if not valid:
            logger.warning("identity.login_failed", email=sanitize_email(email))
            raise UnauthorizedError("Invalid login credentials")

        token = secrets.token_urlsafe(32)
        await self._store.set(f"{_SESSION_PREFIX}{token}", stored.id, ttl_seconds=self._session_ttl)
        logger.info("identity.login", user_id=stored.id)
        return token, _public(stored)

    async def logout(self, token: str) -> None:
        await self._store.delete(f"{_SESSION_PREFIX}{token}")

    async def resolve_token(self, token: str | None) -> ViewerContext:
        """Map a bearer token to a viewer; anything unrecognised is anonymous."""
        if not token:
            return ViewerContext.anonymous()
        if self._anon_key and hmac.compare_digest(token.encode(), self._anon_key.encode()):
            return ViewerContext.anonymous()

        user_id = await self._store.get(f"{_SESSION_PREFIX}{token}")
        if not user_id:
            return ViewerContext.anonymous()
        user = await self.get_user(user_id)
        if user is None:
            return ViewerContext.anonymous()
        return ViewerContext.from_user(user)
