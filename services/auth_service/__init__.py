"""
Auth service - identity collaborator for the support chat.
"""

from .models import Identity, ROLE_ADMIN, ROLE_USER
from .auth_session import AuthSession, get_auth_session

__all__ = [
    'Identity',
    'ROLE_ADMIN',
    'ROLE_USER',
    'AuthSession',
    'get_auth_session'
]
