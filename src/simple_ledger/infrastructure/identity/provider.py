from __future__ import annotations

from abc import ABC, abstractmethod

from simple_ledger.domain.schemas import AuthResult, User


class IdentityProvider(ABC):
    """Base contract for sign-in backends. Errors travel inside AuthResult.message."""

    name: str = "identity"

    @abstractmethod
    def sign_in(self, identifier: str, secret: str) -> AuthResult:
        raise NotImplementedError

    @abstractmethod
    def sign_up(self, identifier: str, secret: str, email: str | None = None) -> AuthResult:
        raise NotImplementedError

    @abstractmethod
    def sign_out(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def current_user(self) -> User | None:
        raise NotImplementedError

    @abstractmethod
    def update_username(self, user: User, username: str) -> AuthResult:
        raise NotImplementedError

    @abstractmethod
    def reset_password(self, email: str) -> AuthResult:
        raise NotImplementedError
