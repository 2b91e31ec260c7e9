# portal/services/sessions.py

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from loguru import logger

from portal.core.config import settings
from portal.core.identity import IdentityResolver, UserIdentity
from portal.core.security import new_session_id
from portal.services.collections import CollectionStore


@dataclass
class ConsoleSession:
    """One signed-in console: who is acting, plus its local canonical collections."""

    sid: str
    identity: IdentityResolver
    collections: CollectionStore = field(default_factory=CollectionStore)

    @property
    def is_active(self) -> bool:
        return self.identity.is_authenticated

    def force_logout(self) -> None:
        real = self.identity.real_identity()
        logger.warning(
            "Forcing logout of console session {} ({})",
            self.sid, real.email if real else "anonymous",
        )
        self.identity.sign_out()
        self.collections.clear()


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, ConsoleSession] = {}

    def open(self, user: UserIdentity, discard_stale: Optional[bool] = None) -> ConsoleSession:
        if discard_stale is None:
            discard_stale = settings.DISCARD_STALE_RESPONSES

        console = ConsoleSession(
            sid=new_session_id(),
            identity=IdentityResolver(user),
            collections=CollectionStore(discard_stale=discard_stale),
        )
        self._sessions[console.sid] = console
        return console

    def get(self, sid: Optional[str]) -> Optional[ConsoleSession]:
        if not sid:
            return None
        console = self._sessions.get(sid)
        if console is not None and not console.is_active:
            # Signed out (possibly forced); the sid is dead
            self._sessions.pop(sid, None)
            return None
        return console

    def close(self, sid: str) -> None:
        console = self._sessions.pop(sid, None)
        if console is not None:
            console.identity.sign_out()
            console.collections.clear()

    def refresh_user(self, user: UserIdentity) -> int:
        """Push a fresh snapshot of `user` into every console that shows it."""
        return sum(1 for console in self._sessions.values() if console.identity.refresh(user))

    def close_user(self, user_id: Any) -> int:
        """
        Called after a user is removed. Consoles signed in as that user are
        closed; consoles impersonating it drop back to their real identity.
        """
        affected = 0
        for sid, console in list(self._sessions.items()):
            real = console.identity.real_identity()
            effective = console.identity.effective_identity()
            if real is not None and str(real.id) == str(user_id):
                logger.warning("Closing console session {} of removed user {}", sid, real.email)
                self.close(sid)
                affected += 1
            elif console.identity.is_impersonating and str(effective.id) == str(user_id):
                logger.warning("Console session {} stops impersonating removed user {}", sid, effective.email)
                console.identity.stop_impersonation()
                affected += 1
        return affected

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


session_registry = SessionRegistry()
