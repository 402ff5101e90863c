"""
Identity data models for the authentication collaborator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Signed-in account as seen by the support chat"""
    user_id: str
    email: Optional[str] = None
    role: str = ROLE_USER  # user, admin
    signed_in_at: datetime = field(default_factory=datetime.now, compare=False)

    @property
    def is_operator(self) -> bool:
        return self.role == ROLE_ADMIN

    def contact_label(self, fallback: str = "anonymous") -> str:
        """Label shown to operators next to the conversation"""
        return self.email or fallback
