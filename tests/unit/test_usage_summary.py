"""Tests for the internet usage summary report."""

import pytest

from itam.errors import ValidationError
from itam.services.usage import UsageSummaryService, normalize_summary


class FakeClient:
    def __init__(self, body=None):
        self.body = body
        self.requests = []

    def get_json(self, path, params=None):
        self.requests.append((path, params))
        return self.body


def test_summary_request_and_shape():
    client = FakeClient({
        "currentTotalUsedGB": "512.5",
        "months": 2,
        "series": [{"month": "2026-09", "totalUsedGB": 480}, {"month": "2026-10", "totalUsedGB": "512.5"}],
    })
    data = UsageSummaryService(client).summary("2026-10", 2)
    assert client.requests == [("/api/internet/usage/summary", {"month": "2026-10", "months": 2})]
    assert data == {
        "currentTotalUsedGB": 512.5,
        "months": 2,
        "series": [{"month": "2026-09", "totalUsedGB": 480.0}, {"month": "2026-10", "totalUsedGB": 512.5}],
    }


def test_default_window_is_six_months():
    client = FakeClient({})
    UsageSummaryService(client).summary()
    path, params = client.requests[0]
    assert params["months"] == 6
    assert len(params["month"]) == 7


@pytest.mark.parametrize("month, months, field", [
    ("2026-13", 6, "month"),
    ("Oct 2026", 6, "month"),
    ("2026-10", 0, "months"),
    ("2026-10", 25, "months"),
])
def test_rejects_bad_window(month, months, field):
    client = FakeClient({})
    with pytest.raises(ValidationError) as excinfo:
        UsageSummaryService(client).summary(month, months)
    assert excinfo.value.field == field
    assert client.requests == []


def test_normalize_tolerates_junk():
    assert normalize_summary("ok") == {"currentTotalUsedGB": 0.0, "months": 0, "series": []}
    data = normalize_summary({"series": [{"month": "2026-10", "totalUsedGB": "n/a"}, "x", {"totalUsedGB": 3}]})
    assert data["series"] == [{"month": "2026-10", "totalUsedGB": 0.0}]
    assert data["months"] == 1
