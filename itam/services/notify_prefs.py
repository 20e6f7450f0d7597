"""Per-resource "send e-mail" switches.

The backend only mails people when a mutation body carries ``notify: true``.
Users can silence a whole section (repairs, maintenance, ...) and still opt
out per request; the flag sent is ``requested and section enabled``.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)


class NotificationPreferences:
    """Set of resource names whose e-mails are switched off."""

    def __init__(self, disabled: Iterable[str] = ()):
        self._disabled: Set[str] = {name for name in disabled if name}

    @property
    def disabled(self) -> Set[str]:
        return set(self._disabled)

    def emails_enabled(self, resource_name: str) -> bool:
        return resource_name not in self._disabled

    def set_emails_enabled(self, resource_name: str, enabled: bool) -> None:
        if enabled:
            self._disabled.discard(resource_name)
        else:
            self._disabled.add(resource_name)
        logger.info(f"E-mails for {resource_name}: {'ON' if enabled else 'OFF'}")

    def toggle(self, resource_name: str) -> bool:
        """Flip the switch; returns the new enabled state."""
        enabled = not self.emails_enabled(resource_name)
        self.set_emails_enabled(resource_name, enabled)
        return enabled

    def apply(self, resource_name: str, payload: Dict[str, Any], requested: Optional[bool] = None) -> Dict[str, Any]:
        """Return a copy of ``payload`` with the effective ``notify`` flag.

        Args:
            resource_name: Section the mutation belongs to
            payload: Request body
            requested: Per-request choice; defaults to ``payload['notify']``
                or True when absent
        """
        if requested is None:
            requested = bool(payload.get("notify", True))
        result = dict(payload)
        result["notify"] = bool(requested) and self.emails_enabled(resource_name)
        return result

    def replace(self, disabled: Iterable[str]) -> None:
        """Swap the whole set, e.g. for the switches saved by an earlier run."""
        self._disabled = {name for name in disabled if name}

    def to_list(self) -> list:
        return sorted(self._disabled)


__all__ = ["NotificationPreferences"]
