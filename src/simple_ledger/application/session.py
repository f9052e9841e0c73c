from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlparse

from pydantic import ValidationError

from simple_ledger.domain.errors import NotAuthenticatedError, StorageError
from simple_ledger.domain.schemas import AuthResult, User
from simple_ledger.infrastructure.identity.local_provider import LocalIdentityProvider
from simple_ledger.infrastructure.identity.provider import IdentityProvider
from simple_ledger.infrastructure.identity.supabase_provider import SupabaseIdentityProvider
from simple_ledger.infrastructure.persistence.store import CURRENT_USER_KEY, REMOTE_CONFIG_KEY, KeyValueStore
from simple_ledger.infrastructure.settings import Settings

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

SessionListener = Callable[[User | None], None]
RemoteFactory = Callable[[str, str], IdentityProvider]

REMOTE_OWNER = "remote"
LOCAL_OWNER = "local"


class SessionContext:
    """
    Owns the signed-in user for one process.

    Build it explicitly, call ``initialize()`` once, pass it to the
    components that need the current user id, and ``teardown()`` at exit.
    A remote provider is used when configured; local accounts are the
    fallback whenever the remote side refuses in a recoverable way. The
    stored user records which side signed it in so a restart keeps routing
    account changes to the same provider.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings | None = None,
        local_provider: LocalIdentityProvider | None = None,
        remote_factory: RemoteFactory | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._local = local_provider or LocalIdentityProvider(store)
        self._remote_factory = remote_factory or self._default_remote_factory
        self._remote: IdentityProvider | None = None
        self._active: IdentityProvider | None = None
        self._user: User | None = None
        self._remote_owned = False
        self._listeners: list[SessionListener] = []
        self._initialized = False

    def _default_remote_factory(self, url: str, anon_key: str) -> IdentityProvider:
        timeout = self._settings.supabase_timeout_seconds if self._settings else 15.0
        return SupabaseIdentityProvider(url, anon_key, timeout_seconds=timeout)

    # ---- lifecycle ----
    def initialize(self) -> User | None:
        if self._initialized:
            return self._user
        self._remote = self._build_remote()
        stored = self._store.read_mapping(CURRENT_USER_KEY)
        if stored:
            try:
                self._user = User.model_validate(stored)
            except ValidationError:
                logger.warning("SessionContext ignored unreadable stored user")
                self._user = None
        if self._user is not None:
            self._remote_owned = stored.get("provider") == REMOTE_OWNER
            if self._remote_owned:
                self._active = self._remote
            else:
                self._local.restore(self._user)
                self._active = self._local
        self._initialized = True
        logger.info(
            "SessionContext initialized remote=%s user_id=%s",
            self.remote_configured,
            self._user.id if self._user else None,
        )
        return self._user

    def teardown(self) -> None:
        self._listeners.clear()
        self._initialized = False
        logger.info("SessionContext torn down")

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._user)
            except Exception:
                logger.exception("SessionContext listener failed")

    def _set_user(self, user: User | None, provider: IdentityProvider | None) -> None:
        self._user = user
        self._active = provider if user is not None else None
        self._remote_owned = user is not None and provider is not None and provider is self._remote
        try:
            if user is None:
                self._store.remove(CURRENT_USER_KEY)
            else:
                payload = user.model_dump(mode="json", by_alias=True, exclude_none=True)
                payload["provider"] = REMOTE_OWNER if self._remote_owned else LOCAL_OWNER
                self._store.write(CURRENT_USER_KEY, None, payload)
        except StorageError:
            logger.exception("SessionContext could not persist the current user")
        self._notify()

    # ---- remote configuration ----
    def _remote_config(self) -> tuple[str, str] | None:
        if self._settings is not None and self._settings.remote_configured:
            return str(self._settings.supabase_url), str(self._settings.supabase_anon_key)
        stored = self._store.read_mapping(REMOTE_CONFIG_KEY)
        url, key = stored.get("url"), stored.get("anonKey")
        if isinstance(url, str) and url and isinstance(key, str) and key:
            return url, key
        return None

    def _build_remote(self) -> IdentityProvider | None:
        config = self._remote_config()
        if config is None:
            return None
        return self._remote_factory(*config)

    @property
    def remote_configured(self) -> bool:
        return self._remote is not None

    def configure_remote(self, url: str, anon_key: str) -> bool:
        url, anon_key = (url or "").strip(), (anon_key or "").strip()
        if not url or not anon_key:
            return False
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.info("SessionContext rejected remote url=%s", url)
            return False
        config = {"url": url, "anonKey": anon_key, "configured_at": datetime.now(timezone.utc).isoformat()}
        try:
            self._store.write(REMOTE_CONFIG_KEY, None, config)
        except StorageError:
            logger.exception("SessionContext could not save the remote config")
            return False
        self._remote = self._remote_factory(url, anon_key)
        logger.info("SessionContext remote identity configured url=%s", url)
        return True

    def clear_remote_config(self) -> None:
        try:
            self._store.remove(REMOTE_CONFIG_KEY)
        except StorageError:
            logger.exception("SessionContext could not remove the remote config")
        self._remote = self._build_remote()

    # ---- identity operations ----
    def current_user(self) -> User | None:
        return self._user

    def require_user_id(self) -> str:
        if self._user is None:
            raise NotAuthenticatedError("No user is signed in")
        return self._user.id

    def sign_in(self, identifier: str, password: str) -> AuthResult:
        identifier = (identifier or "").strip()
        if not identifier or not password:
            return AuthResult.failure("Username and password are required")

        if self._remote is not None:
            result = self._remote.sign_in(identifier, password)
            if result.ok:
                self._set_user(result.user, self._remote)
                return result
            if not result.fallback_allowed:
                return result
            logger.info("SessionContext remote sign-in unavailable (%s); trying local accounts", result.message)

        result = self._local.sign_in(identifier, password)
        if result.ok:
            self._set_user(result.user, self._local)
        return result

    def sign_up(
        self,
        username: str,
        password: str,
        email: str | None = None,
        confirm_password: str | None = None,
    ) -> AuthResult:
        username = (username or "").strip()
        if confirm_password is not None and password != confirm_password:
            return AuthResult.failure("Passwords do not match")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            return AuthResult.failure(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(username) < MIN_USERNAME_LENGTH:
            return AuthResult.failure(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
        email = (email or "").strip() or None

        if self._remote is not None:
            result = self._remote.sign_up(username, password, email)
            if result.ok:
                if result.session_active:
                    self._set_user(result.user, self._remote)
                return result
            if not result.fallback_allowed:
                return result
            logger.info("SessionContext remote sign-up unavailable (%s); registering locally", result.message)

        result = self._local.sign_up(username, password, email)
        if result.ok:
            self._set_user(result.user, self._local)
        return result

    def sign_out(self) -> None:
        provider = self._active
        if provider is not None:
            try:
                provider.sign_out()
            except Exception:
                logger.exception("SessionContext provider sign-out failed; clearing local state anyway")
        self._set_user(None, None)

    def update_username(self, username: str) -> AuthResult:
        if self._user is None:
            return AuthResult.failure("No user is signed in")
        username = (username or "").strip()
        if len(username) < MIN_USERNAME_LENGTH:
            return AuthResult.failure(f"Username must be at least {MIN_USERNAME_LENGTH} characters")

        if self._remote_owned:
            if self._remote is None:
                return AuthResult.failure("Remote identity is not configured")
            provider: IdentityProvider = self._remote
        else:
            provider = self._local
        result = provider.update_username(self._user, username)
        if not result.ok:
            return result
        self._set_user(result.user, provider)
        return result

    def reset_password(self, email: str) -> AuthResult:
        email = (email or "").strip()
        if not email:
            return AuthResult.failure("Email is required")
        if self._remote is not None:
            result = self._remote.reset_password(email)
            if result.ok or not result.fallback_allowed:
                return result
        return self._local.reset_password(email)
