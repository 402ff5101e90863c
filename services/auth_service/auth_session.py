"""
Authentication session - the identity collaborator of the support chat.

The hosted auth provider is out of scope; this service holds the identity it
reports, resolves the operator role and tells subscribers when the identity
changes so they can tear down their subscriptions.
"""

from typing import Callable, List, Optional

from config.app_config import AppConfig, get_config
from services.auth_service.models import Identity, ROLE_ADMIN, ROLE_USER
from infrastructure.monitoring.logging_service import get_logger


IdentityListener = Callable[[Optional[Identity]], None]


class AuthSession:
    """
    Current sign-in state for one browser session.
    Listeners are called synchronously on every identity change.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        self.logger = get_logger(__name__)
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def add_listener(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it"""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def sign_in(self, user_id: str, email: Optional[str] = None) -> Identity:
        """
        Record a signed-in account

        Args:
            user_id: Stable opaque id from the auth provider
            email: Contact address, if the provider has one

        Returns:
            The new identity
        """
        if not user_id:
            raise ValueError("user_id is required")

        role = ROLE_ADMIN if self.config.is_operator_email(email) else ROLE_USER
        identity = Identity(user_id=user_id, email=email, role=role)
        if identity == self._identity:
            return self._identity

        self._identity = identity
        self.logger.info(f"Signed in user {user_id} with role {role}")
        self._notify()
        return identity

    def sign_out(self) -> None:
        if self._identity is None:
            return
        self.logger.info(f"Signed out user {self._identity.user_id}")
        self._identity = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._identity)
            except Exception as e:
                self.logger.error(f"Identity listener failed: {e}", exc_info=True)


# Global auth session instance
_auth_session: Optional[AuthSession] = None


def get_auth_session() -> AuthSession:
    """Get the global auth session instance"""
    global _auth_session
    if _auth_session is None:
        _auth_session = AuthSession()
    return _auth_session
