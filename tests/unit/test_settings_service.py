"""Tests for billing reminder and expiry recipient settings."""

import pytest

from itam.errors import ValidationError
from itam.services.settings import (
    SettingsService,
    clamp_day,
    normalize_billing_reminders,
    normalize_emails,
)


class FakeClient:
    def __init__(self, documents=None):
        self.documents = documents or {}
        self.patched = []
        self.posted = []

    def get_json(self, path, params=None):
        return self.documents.get(path, {})

    def patch_json(self, path, json=None):
        self.patched.append((path, json))
        return {"ok": True}

    def post_json(self, path, json=None):
        self.posted.append(path)
        return {"sentTo": ["it@example.com"]}


@pytest.mark.parametrize("raw,expected", [(0, 1), ("", 1), (15, 15), ("31", 31), (45, 31), ("abc", 1)])
def test_clamp_day(raw, expected):
    assert clamp_day(raw) == expected


def test_normalize_emails_dedupes_and_lowercases():
    assert normalize_emails([" IT@Example.com", "it@example.com", "", "ops@example.com"]) == [
        "it@example.com",
        "ops@example.com",
    ]


def test_normalize_emails_strict_rejects_bad_address():
    with pytest.raises(ValidationError) as excinfo:
        normalize_emails(["not-an-email"])
    assert "not-an-email" in excinfo.value.message


def test_billing_reminder_body():
    body = normalize_billing_reminders({
        "title": "  Bills ",
        "schedule": {"dayMode": "dayOfMonth", "dayOfMonth": 40, "timeHHmm": "08:05"},
        "categories": [{"key": "internet", "label": "Internet"}],
        "extraEmails": ["Boss@Example.com"],
    })
    assert body["title"] == "Bills"
    assert body["enabled"] is True
    assert body["schedule"] == {
        "dayMode": "dayOfMonth",
        "dayOfMonth": 31,
        "timeHHmm": "08:05",
        "timezone": "Asia/Colombo",
    }
    assert body["categories"] == [{"key": "internet", "label": "Internet"}]
    assert body["extraEmails"] == ["boss@example.com"]


@pytest.mark.parametrize("doc,field", [
    ({"schedule": {"timeHHmm": "25:00"}}, "schedule.timeHHmm"),
    ({"schedule": {"dayMode": "weekly"}}, "schedule.dayMode"),
    ({"categories": [{"key": " ", "label": "x"}]}, "categories.key"),
])
def test_billing_reminder_validation(doc, field):
    with pytest.raises(ValidationError) as excinfo:
        normalize_billing_reminders(doc)
    assert excinfo.value.field == field


def test_service_saves_normalized_documents():
    client = FakeClient({"/api/settings/notifications": {"softwareExpiryEmails": ["a@example.com"]}})
    service = SettingsService(client)
    assert service.expiry_recipients() == ["a@example.com"]
    saved = service.save_expiry_recipients(["B@example.com", "b@example.com"])
    assert saved == ["b@example.com"]
    assert client.patched[-1] == ("/api/settings/notifications", {"softwareExpiryEmails": ["b@example.com"]})

    service.save_billing_reminders({"schedule": {"timeHHmm": "09:30"}})
    assert client.patched[-1][0] == "/api/billing-reminders"
    assert service.send_test_reminder() == {"sentTo": ["it@example.com"]}
    assert client.posted == ["/api/billing-reminders/test"]
