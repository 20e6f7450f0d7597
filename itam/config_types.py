"""Typed configuration dataclasses for it-asset-console.

Provides strongly-typed configuration objects that can be used throughout
the application for better type safety and IDE support.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any


@dataclass
class ApiConfig:
    """REST backend connection settings."""
    base_url: str = "http://localhost:4000"
    timeout: float = 30
    max_attempts: int = 3

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AuthConfig:
    """Where the bearer token is cached between CLI invocations."""
    cache_file: str = "data/session.json"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ListsConfig:
    """List view timing and paging defaults."""
    page_size: int = 10
    debounce_ms: int = 250
    min_latency_ms: int = 300  # loading-state floor, see itam.core.latency

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NotificationsConfig:
    """Resources whose e-mail notifications start switched off in a fresh session cache."""
    emails_disabled: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AppConfig:
    """Root application configuration with all subsections."""
    log_level: str = "INFO"
    api: ApiConfig = field(default_factory=ApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    lists: ListsConfig = field(default_factory=ListsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to nested dictionary.

        Returns:
            Nested dict structure matching config format
        """
        return {
            "log_level": self.log_level,
            "api": self.api.to_dict(),
            "auth": self.auth.to_dict(),
            "lists": self.lists.to_dict(),
            "notifications": self.notifications.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Create typed config from dictionary.

        Unknown keys are ignored so older .env files keep working.

        Args:
            data: Dictionary config (from load_config)

        Returns:
            Typed AppConfig instance
        """
        def _pick(section_cls, values: Dict[str, Any] | None):
            values = values or {}
            known = section_cls.__dataclass_fields__.keys()
            return section_cls(**{k: v for k, v in values.items() if k in known})

        disabled = (data.get("notifications") or {}).get("emails_disabled") or []
        if isinstance(disabled, str):
            disabled = [part.strip() for part in disabled.split(",") if part.strip()]

        return cls(
            log_level=data.get("log_level", "INFO"),
            api=_pick(ApiConfig, data.get("api")),
            auth=_pick(AuthConfig, data.get("auth")),
            lists=_pick(ListsConfig, data.get("lists")),
            notifications=NotificationsConfig(emails_disabled=list(disabled)),
        )


__all__ = [
    "ApiConfig",
    "AuthConfig",
    "ListsConfig",
    "NotificationsConfig",
    "AppConfig",
]
