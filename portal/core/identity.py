# portal/core/identity.py
"""
Who is acting.

A console session is either signed out, authenticated as one user, or an
Admin impersonating someone else. Permission checks use the effective
identity; audit attribution for impersonation uses the real one.
"""

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from portal.core.permissions import PermissionMatrix, as_matrix
from portal.models.user import User, UserRole


class UserIdentity(BaseModel):
    """Immutable snapshot of a user as seen by one console session."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    email: str
    role: UserRole
    permissions: PermissionMatrix = {}
    must_reset_password: bool = False

    @classmethod
    def from_user(cls, user: User) -> "UserIdentity":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            permissions=as_matrix(user.permissions),
            must_reset_password=bool(user.must_reset_password),
        )


@dataclass(frozen=True)
class SignedOut:
    pass


@dataclass(frozen=True)
class Authenticated:
    user: UserIdentity


@dataclass(frozen=True)
class Impersonating:
    real: UserIdentity
    target: UserIdentity


IdentityState = Union[SignedOut, Authenticated, Impersonating]


class ImpersonationError(ValueError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class IdentityResolver:
    def __init__(self, user: Optional[UserIdentity] = None):
        self._state: IdentityState = Authenticated(user) if user else SignedOut()

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return not isinstance(self._state, SignedOut)

    @property
    def is_impersonating(self) -> bool:
        return isinstance(self._state, Impersonating)

    def effective_identity(self) -> Optional[UserIdentity]:
        if isinstance(self._state, Impersonating):
            return self._state.target
        if isinstance(self._state, Authenticated):
            return self._state.user
        return None

    def real_identity(self) -> Optional[UserIdentity]:
        if isinstance(self._state, Impersonating):
            return self._state.real
        if isinstance(self._state, Authenticated):
            return self._state.user
        return None

    def start_impersonation(self, target: UserIdentity) -> Impersonating:
        state = self._state
        if isinstance(state, Impersonating):
            raise ImpersonationError("Already impersonating; stop first.")
        if not isinstance(state, Authenticated):
            raise ImpersonationError("Not signed in.", status_code=401)
        if state.user.role != UserRole.Admin:
            raise ImpersonationError("Only administrators can impersonate users.", status_code=403)
        if target.id == state.user.id:
            raise ImpersonationError("You cannot impersonate yourself.")

        self._state = Impersonating(real=state.user, target=target)
        return self._state

    def stop_impersonation(self) -> Impersonating:
        """Return to the real user exactly as it was; hands back the finished overlay."""
        state = self._state
        if not isinstance(state, Impersonating):
            raise ImpersonationError("Not impersonating anyone.")

        self._state = Authenticated(state.real)
        return state

    def refresh(self, user: UserIdentity) -> bool:
        """
        Swap in a newer snapshot of `user` (profile or permission edit).
        The real identity behind an impersonation is never touched.
        """
        state = self._state
        if isinstance(state, Authenticated) and state.user.id == user.id:
            self._state = Authenticated(user)
            return True
        if isinstance(state, Impersonating) and state.target.id == user.id:
            self._state = Impersonating(real=state.real, target=user)
            return True
        return False

    def sign_out(self) -> None:
        self._state = SignedOut()
