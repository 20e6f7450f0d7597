"""Process-wide session context and the login/logout flow.

:class:`SessionContext` is handed to every client and controller at
construction. Only :class:`AuthService` writes the token and user; everyone
else reads them.
"""

from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ValidationError
from ..services.notify_prefs import NotificationPreferences

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class SessionContext:
    """Bearer token, signed-in user and e-mail preferences.

    Args:
        cache_file: Optional JSON file so consecutive CLI runs share a login
        notifications: Initial notification preferences
    """

    def __init__(self, cache_file: str | None = None, notifications: NotificationPreferences | None = None):
        self.cache_file = cache_file
        self._token: Optional[str] = None
        self._user: Optional[Dict[str, Any]] = None
        self.notifications = notifications or NotificationPreferences()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return dict(self._user) if self._user else None

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    # ---------------- writer side (AuthService only) -----------------

    def _set(self, token: Optional[str], user: Optional[Dict[str, Any]]) -> None:
        self._token = token
        self._user = dict(user) if user else None
        self.save()

    def _set_user(self, user: Optional[Dict[str, Any]]) -> None:
        self._user = dict(user) if user else None
        self.save()

    def _clear(self) -> None:
        self._token = None
        self._user = None
        self.save()

    # ---------------- persistence -----------------

    def load(self) -> SessionContext:
        """Restore token, user and e-mail switches from the cache file.

        Switches saved by an earlier run win over ``notifications.emails_disabled``
        from the config, which only seeds a fresh cache.
        """
        if not self.cache_file or not os.path.exists(self.cache_file):
            return self
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session cache {self.cache_file}: {e}")
            return self
        self._token = data.get("token") or None
        self._user = data.get("user") or None
        if isinstance(data.get("emails_disabled"), list):
            # saved switches replace the configured seed
            self.notifications.replace(data["emails_disabled"])
        logger.debug(f"Loaded session cache from {self.cache_file}")
        return self

    def save(self) -> None:
        if not self.cache_file:
            return
        data = {
            "token": self._token,
            "user": self._user,
            "emails_disabled": self.notifications.to_list(),
        }
        path = Path(self.cache_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as fh:
            json.dump(data, fh)
        logger.debug(f"Saved session cache to {path}")


class AuthService:
    """Login, registration, profile refresh and logout."""

    def __init__(self, client, session: SessionContext):
        self.client = client
        self.session = session

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Sign in and store the returned token.

        Raises:
            ValidationError: if email or password is empty
            BackendError: on wrong credentials
        """
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required.", "email")
        if not password:
            raise ValidationError("Password is required.", "password")
        data = self.client.post_json("/api/auth/login", json={"email": email, "password": password})
        self.session._set(data.get("token"), data.get("user"))
        logger.info(f"Signed in as {email}")
        return self.session.user or {}

    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        username = (username or "").strip()
        email = (email or "").strip()
        if not username:
            raise ValidationError("Username is required.", "username")
        if not email:
            raise ValidationError("Email is required.", "email")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", "password"
            )
        data = self.client.post_json(
            "/api/auth/register", json={"username": username, "email": email, "password": password}
        )
        self.session._set(data.get("token"), data.get("user"))
        logger.info(f"Registered {username}")
        return self.session.user or {}

    def fetch_me(self) -> Optional[Dict[str, Any]]:
        """Refresh the stored user; None when not signed in."""
        if not self.session.token:
            return None
        data = self.client.get_json("/api/auth/me")
        self.session._set_user(data.get("user"))
        return self.session.user

    def logout(self) -> None:
        self.session._clear()
        logger.info("Signed out")


__all__ = ["SessionContext", "AuthService", "MIN_PASSWORD_LENGTH"]
