"""Singleton settings documents: billing reminders and expiry recipients.

These are not paginated collections, so they bypass the list controller and
use the blocking JSON helpers of :class:`~itam.api.client.RestClient`.
"""
from __future__ import annotations
import logging
import re
from typing import Any, Dict, Iterable, List

from ..errors import ValidationError

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
DAY_MODES = ("lastDay", "dayOfMonth")
DEFAULT_TIMEZONE = "Asia/Colombo"


def clamp_day(value: Any) -> int:
    """Clamp a day-of-month to 1..31 (blank means 1)."""
    try:
        day = int(value or 1)
    except (TypeError, ValueError):
        day = 1
    return max(1, min(31, day))


def normalize_emails(emails: Iterable[str], strict: bool = True) -> List[str]:
    """Trim, lower-case and de-duplicate e-mail addresses, keeping order.

    Raises:
        ValidationError: on a malformed address when ``strict``
    """
    result: List[str] = []
    for raw in emails:
        email = str(raw or "").strip().lower()
        if not email:
            continue
        if strict and not EMAIL_RE.match(email):
            raise ValidationError(f"Invalid email: {email}", "email")
        if email not in result:
            result.append(email)
    return result


def normalize_billing_reminders(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Build the PATCH body for the billing reminder configuration."""
    schedule = doc.get("schedule") or {}
    day_mode = schedule.get("dayMode", "lastDay")
    if day_mode not in DAY_MODES:
        raise ValidationError(f"dayMode must be one of: {', '.join(DAY_MODES)}", "schedule.dayMode")
    time_hhmm = str(schedule.get("timeHHmm", "09:30")).strip()
    if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", time_hhmm):
        raise ValidationError("Time must be HH:MM (24h).", "schedule.timeHHmm")
    categories = []
    for category in doc.get("categories") or []:
        key = str(category.get("key") or "").strip()
        label = str(category.get("label") or "").strip()
        if not key:
            raise ValidationError("Category key is required.", "categories.key")
        categories.append({"key": key, "label": label})
    return {
        "title": str(doc.get("title") or "Monthly Bills Reminder").strip(),
        "enabled": bool(doc.get("enabled", True)),
        "schedule": {
            "dayMode": day_mode,
            "dayOfMonth": clamp_day(schedule.get("dayOfMonth", 28)),
            "timeHHmm": time_hhmm,
            "timezone": schedule.get("timezone") or DEFAULT_TIMEZONE,
        },
        "categories": categories,
        "extraEmails": normalize_emails(doc.get("extraEmails") or []),
    }


class SettingsService:
    """Reads and writes the backend's settings documents."""

    def __init__(self, client):
        self.client = client

    def billing_reminders(self) -> Dict[str, Any]:
        """Return ``{config, status}`` for the monthly billing reminder."""
        return self.client.get_json("/api/billing-reminders")

    def save_billing_reminders(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        body = normalize_billing_reminders(doc)
        result = self.client.patch_json("/api/billing-reminders", json=body)
        logger.info("Billing reminder settings saved")
        return result

    def send_test_reminder(self) -> Dict[str, Any]:
        return self.client.post_json("/api/billing-reminders/test")

    def expiry_recipients(self) -> List[str]:
        data = self.client.get_json("/api/settings/notifications") or {}
        return [str(x) for x in data.get("softwareExpiryEmails") or []]

    def save_expiry_recipients(self, emails: Iterable[str]) -> List[str]:
        unique = normalize_emails(emails, strict=False)
        self.client.patch_json("/api/settings/notifications", json={"softwareExpiryEmails": unique})
        logger.info(f"Saved {len(unique)} expiry recipient(s)")
        return unique


__all__ = [
    "SettingsService",
    "clamp_day",
    "normalize_emails",
    "normalize_billing_reminders",
]
