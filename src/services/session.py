from __future__ import annotations

import random
import secrets
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from db import crud
from db.models import User
from db.store import DocumentStore, Snapshot, Unsubscribe, new_id
from services.identity import IdentityProvider
from utils.errors import (
    BACKEND_ERRORS,
    AuthFailure,
    BackendUnavailable,
    ConditionFailed,
    DuplicateUsername,
    Result,
    ShopError,
    operation,
)
from utils.logger import get_logger
from utils.pure import generate_ref_code, ref_code_from_email

_logger = get_logger(__name__)

REF_CODE_ATTEMPTS = 50

UserListener = Callable[[User], None]


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class SessionManager:
    """
    Authenticates users and holds the active session.

    Passwords are stored as werkzeug hashes. A successful login issues a token
    persisted in the ``sessions`` collection; privileged operations call
    ``authorize`` which re-reads session and user from the store instead of
    trusting the in-memory user.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity_provider: Optional[IdentityProvider] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.identity_provider = identity_provider
        self._rng = rng or random.Random()

        self.state = SessionState.ANONYMOUS
        self.current_user: Optional[User] = None
        self.token: Optional[str] = None

        self._unsubscribe: Optional[Unsubscribe] = None
        self._listeners: List[UserListener] = []

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def add_listener(self, listener: UserListener) -> Callable[[], None]:
        """Called with the fresh user whenever the stored profile changes."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ---------------------------
    # Login
    # ---------------------------

    @operation("Login successful.")
    async def login(
        self, username: str, password: str, require_admin: bool = False
    ) -> User:
        previous = self.state
        self.state = SessionState.AUTHENTICATING
        try:
            user = await crud.find_user_by_username(self.store, username)
            if (
                user is None
                or not user.password_hash
                or not check_password_hash(user.password_hash, password)
            ):
                _logger.info(f"Rejected login for '{username}'")
                raise AuthFailure(reason="credentials")
            if require_admin and not user.is_admin:
                _logger.warning(f"'{username}' tried to open the admin console")
                raise AuthFailure("This account is not an admin.", reason="role")
            await self._start_session(user)
            return user
        except BaseException:
            self.state = previous
            raise

    @operation("Login successful.")
    async def login_with_google(self) -> Result[User]:
        if self.identity_provider is None:
            raise BackendUnavailable("Federated sign-in is not configured.")

        previous = self.state
        self.state = SessionState.AUTHENTICATING
        try:
            try:
                identity = await self.identity_provider.sign_in()
            except ShopError:
                raise
            except Exception as exc:
                _logger.warning(f"Federated sign-in failed: {exc!r}")
                raise BackendUnavailable("Federated sign-in failed.") from exc

            user = await crud.find_user_by_email(self.store, identity.email)
            message = "Login successful."
            if user is None:
                stem = ref_code_from_email(identity.email)
                user = await self._create_user(
                    {
                        "username": identity.display_name
                        or identity.email.split("@")[0],
                        "email": identity.email,
                        "uid": identity.uid,
                    },
                    lambda attempt: stem
                    if attempt == 0
                    else f"{stem}{self._rng.randint(0, 99)}",
                    rename_on_clash=True,
                )
                _logger.info(f"Registered federated user {identity.email}")
                message = "Account created and logged in."
            await self._start_session(user)
            return Result.ok(user, message)
        except BaseException:
            self.state = previous
            raise

    # ---------------------------
    # Registration & provisioning
    # ---------------------------

    @operation("Registration successful.")
    async def register(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        ref_code: Optional[str] = None,
    ) -> User:
        if await crud.find_user_by_username(self.store, username):
            raise DuplicateUsername(f"Username '{username}' already exists.")

        referrer = await crud.find_user_by_ref_code(self.store, ref_code)
        user = await self._create_user(
            {
                "username": username,
                "passwordHash": generate_password_hash(password),
                "email": email or None,
                "referredBy": referrer.ref_code if referrer else None,
            },
            lambda _: generate_ref_code(username, self._rng),
        )
        _logger.info(
            f"Registered '{username}' ({user.ref_code})"
            + (f", referred by {referrer.ref_code}" if referrer else "")
        )
        return user

    @operation("Admin account provisioned.")
    async def provision_admin(self, username: str, password: str) -> User:
        """Out-of-band creation of an admin account."""
        if await crud.find_user_by_username(self.store, username):
            raise DuplicateUsername(f"Username '{username}' already exists.")
        user = await self._create_user(
            {
                "username": username,
                "passwordHash": generate_password_hash(password),
                "role": "admin",
            },
            lambda _: generate_ref_code(username, self._rng),
        )
        _logger.info(f"Provisioned admin '{username}'")
        return user

    async def _ref_code(
        self, candidate: Callable[[int], str], attempt: int
    ) -> Optional[str]:
        """Next referral code to try, or None if candidate(attempt) is taken."""
        if attempt >= REF_CODE_ATTEMPTS:
            # crowded stem, fall back to a random suffix
            return candidate(0) + new_id()[:6].upper()
        code = candidate(attempt)
        return None if await crud.ref_code_taken(self.store, code) else code

    async def _free_username(self, base: str) -> str:
        name = base
        for _ in range(REF_CODE_ATTEMPTS):
            if await crud.find_user_by_username(self.store, name) is None:
                return name
            name = f"{base}{self._rng.randint(0, 99)}"
        return f"{base}{new_id()[:6]}"

    async def _create_user(
        self,
        fields: Dict[str, Any],
        ref_candidate: Callable[[int], str],
        rename_on_clash: bool = False,
    ) -> User:
        """
        Insert a user with a fresh referral code. The store rejects the write
        if username or refCode is already taken, including by a concurrent
        registration. A refCode clash draws a new code; a username clash is
        DuplicateUsername unless rename_on_clash picks a suffixed name.
        """
        base = fields["username"]
        username = await self._free_username(base) if rename_on_clash else base
        for attempt in range(REF_CODE_ATTEMPTS + 1):
            code = await self._ref_code(ref_candidate, attempt)
            if code is None:
                continue
            try:
                return await crud.create_user(
                    self.store, {**fields, "username": username, "refCode": code}
                )
            except ConditionFailed as exc:
                if exc.field != "username":
                    _logger.debug(f"Referral code {code} was taken meanwhile")
                elif rename_on_clash:
                    username = await self._free_username(base)
                else:
                    raise DuplicateUsername(
                        f"Username '{base}' already exists."
                    ) from exc
        raise ShopError("Could not allocate a referral code, please retry.")

    # ---------------------------
    # Session lifecycle
    # ---------------------------

    async def _start_session(self, user: User) -> None:
        self._stop_watching()
        token = secrets.token_urlsafe(32)
        await self.store.create(
            crud.SESSIONS,
            {"token": token, "userId": user.id, "role": user.role, "revoked": False},
        )
        self.token = token
        self.current_user = user
        self.state = SessionState.AUTHENTICATED
        self._unsubscribe = self.store.subscribe(crud.USERS, self._on_users_snapshot)
        _logger.info(f"Session started for '{user.username}' ({user.role})")

    async def authorize(self, token: Optional[str], require_admin: bool = False) -> User:
        """
        Resolve a session token to its user, from the store.
        Raises AuthFailure for unknown or revoked tokens and for missing roles.
        """
        session = await crud.find_session(self.store, token) if token else None
        user = (
            await crud.get_user(self.store, session.user_id)
            if session and not session.revoked
            else None
        )
        if user is None:
            raise AuthFailure("Session expired, please log in again.", reason="session")
        if require_admin and not user.is_admin:
            raise AuthFailure("This account is not an admin.", reason="role")
        return user

    async def logout(self) -> None:
        token, session_user = self.token, self.current_user
        self._stop_watching()
        self.token = None
        self.current_user = None
        self.state = SessionState.ANONYMOUS
        if token:
            try:
                session = await crud.find_session(self.store, token)
                if session:
                    await self.store.update(crud.SESSIONS, session.id, {"revoked": True})
            except BACKEND_ERRORS:
                # the local session is gone either way
                _logger.exception("Could not revoke session token")
        if session_user:
            _logger.info(f"Session ended for '{session_user.username}'")

    def _stop_watching(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_users_snapshot(self, snapshot: Snapshot) -> None:
        if self.current_user is None:
            return
        for doc in snapshot:
            if doc.get("id") != self.current_user.id:
                continue
            fresh = User.from_doc(doc)
            if fresh != self.current_user:
                self.current_user = fresh
                for listener in list(self._listeners):
                    listener(fresh)
            return
