"""Backend access: REST transport and the shared session context."""

from .client import RestClient
from .session import AuthService, SessionContext

__all__ = ["RestClient", "AuthService", "SessionContext"]
