from __future__ import annotations

import json
import logging
import socket
import time
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any

from simple_ledger.domain.schemas import AuthResult, User
from simple_ledger.infrastructure.identity.provider import IdentityProvider

logger = logging.getLogger(__name__)

LOCAL_EMAIL_DOMAIN = "local.dev"

# Remote refusals that should be retried against the local provider.
FALLBACK_MESSAGES = ("Email not confirmed", "Email logins are disabled")


class SupabaseRequestError(RuntimeError):
    def __init__(self, message: str, status: int | None = None, transport: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.transport = transport


def as_email(identifier: str) -> str:
    identifier = identifier.strip()
    return identifier if "@" in identifier else f"{identifier}@{LOCAL_EMAIL_DOMAIN}"


def error_message(body: Any, fallback: str) -> str:
    """Collapse the various GoTrue error shapes into one string."""
    if isinstance(body, str):
        return body.strip() or fallback
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict):
                return error_message(value, fallback)
    return fallback


class SupabaseIdentityProvider(IdentityProvider):
    """Supabase Auth (GoTrue) over its REST API."""

    name = "supabase"

    def __init__(self, url: str, anon_key: str, timeout_seconds: float = 15.0) -> None:
        self.base_url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds
        self._access_token: str | None = None
        self._user: User | None = None

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        started = time.perf_counter()
        headers = {
            "Content-Type": "application/json",
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self._access_token or self.anon_key}",
        }
        req = urllib.request.Request(
            url=f"{self.base_url}{path}",
            data=json.dumps(payload).encode("utf-8") if payload is not None else None,
            headers=headers,
            method=method,
        )
        logger.info("Supabase request start method=%s path=%s timeout=%.1fs", method, path.split("?")[0], self.timeout_seconds)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            try:
                body: Any = json.loads(exc.read().decode("utf-8") or "{}")
            except (json.JSONDecodeError, UnicodeDecodeError):
                body = {}
            message = error_message(body, f"HTTP {exc.code}")
            logger.warning("Supabase request failed status=%s path=%s message=%s", exc.code, path.split("?")[0], message)
            raise SupabaseRequestError(message, status=exc.code) from exc
        except (socket.timeout, urllib.error.URLError, TimeoutError, ConnectionError) as exc:
            elapsed = time.perf_counter() - started
            logger.warning("Supabase request unreachable after %.2fs: %s", elapsed, exc)
            raise SupabaseRequestError(f"Could not reach the authentication service: {exc}", transport=True) from exc

        logger.info("Supabase request complete in %.2fs path=%s", time.perf_counter() - started, path.split("?")[0])
        if not raw.strip():
            return {}
        try:
            body = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SupabaseRequestError(f"Unexpected response from the authentication service: {exc}") from exc
        return body if isinstance(body, dict) else {}

    def _failure(self, exc: SupabaseRequestError) -> AuthResult:
        message = str(exc)
        fallback = exc.transport or any(marker in message for marker in FALLBACK_MESSAGES)
        return AuthResult.failure(message, fallback_allowed=fallback)

    def _to_user(self, payload: dict[str, Any], username: str | None = None) -> User:
        email = payload.get("email")
        metadata = payload.get("user_metadata") if isinstance(payload.get("user_metadata"), dict) else {}
        resolved = (
            username
            or metadata.get("username")
            or (email.split("@")[0] if isinstance(email, str) and email else None)
            or "user"
        )
        return User(
            id=str(payload.get("id")),
            username=str(resolved),
            email=email,
            display_name=metadata.get("display_name") or metadata.get("full_name"),
            created_at=payload.get("created_at") or datetime.now(timezone.utc).isoformat(),
        )

    def _accept_session(self, body: dict[str, Any], username: str | None = None) -> User | None:
        user_payload = body.get("user") if isinstance(body.get("user"), dict) else None
        if user_payload is None and body.get("id"):
            # Sign-up without auto-confirm returns the bare user object.
            user_payload = body
        if user_payload is None:
            return None
        user = self._to_user(user_payload, username)
        token = body.get("access_token")
        if isinstance(token, str) and token:
            self._access_token = token
            self._user = user
        return user

    def sign_in(self, identifier: str, secret: str) -> AuthResult:
        try:
            body = self._request(
                "POST",
                "/auth/v1/token?grant_type=password",
                {"email": as_email(identifier), "password": secret},
            )
        except SupabaseRequestError as exc:
            return self._failure(exc)

        user = self._accept_session(body)
        if user is None or self._access_token is None:
            return AuthResult.failure("Authentication service returned no session")
        return AuthResult.success(user)

    def sign_up(self, identifier: str, secret: str, email: str | None = None) -> AuthResult:
        address = email or as_email(identifier)
        try:
            body = self._request(
                "POST",
                "/auth/v1/signup",
                {"email": address, "password": secret, "data": {"username": identifier}},
            )
        except SupabaseRequestError as exc:
            return self._failure(exc)

        user = self._accept_session(body, username=identifier)
        if user is None:
            return AuthResult.failure("Authentication service returned no user")
        session_active = isinstance(body.get("access_token"), str)
        message = "" if session_active else "Check your email to confirm the account before signing in."
        return AuthResult.success(user, session_active=session_active, message=message)

    def sign_out(self) -> None:
        if self._access_token is None:
            self._user = None
            return
        try:
            self._request("POST", "/auth/v1/logout")
        except SupabaseRequestError:
            logger.warning("Supabase sign-out failed; clearing the session locally anyway")
        finally:
            self._access_token = None
            self._user = None

    def current_user(self) -> User | None:
        return self._user

    def update_username(self, user: User, username: str) -> AuthResult:
        if self._access_token is None:
            return AuthResult.failure("No remote session", fallback_allowed=True)
        try:
            self._request("PUT", "/auth/v1/user", {"data": {"username": username}})
        except SupabaseRequestError as exc:
            return self._failure(exc)
        updated = user.model_copy(update={"username": username})
        self._user = updated
        return AuthResult.success(updated)

    def reset_password(self, email: str) -> AuthResult:
        try:
            self._request("POST", "/auth/v1/recover", {"email": email})
        except SupabaseRequestError as exc:
            return self._failure(exc)
        return AuthResult.success(message="Password reset email sent.")
