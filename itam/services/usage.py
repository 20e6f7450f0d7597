"""Monthly internet usage summary.

``/api/internet/usage/summary`` answers a trend for the last N months rather
than a page of records, so it goes through the blocking JSON helpers like the
settings documents.
"""
from __future__ import annotations
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from ..errors import ValidationError

logger = logging.getLogger(__name__)

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
DEFAULT_MONTHS = 6
MAX_MONTHS = 24


def _gb(value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return parsed if parsed == parsed else 0.0


def normalize_summary(body: Any) -> Dict[str, Any]:
    """Coerce the backend answer to ``{currentTotalUsedGB, months, series}``."""
    body = body if isinstance(body, dict) else {}
    series: List[Dict[str, Any]] = []
    for point in body.get("series") or []:
        if isinstance(point, dict) and point.get("month"):
            series.append({"month": str(point["month"]), "totalUsedGB": _gb(point.get("totalUsedGB"))})
    months = body.get("months")
    return {
        "currentTotalUsedGB": _gb(body.get("currentTotalUsedGB")),
        "months": months if isinstance(months, int) else len(series),
        "series": series,
    }


class UsageSummaryService:
    def __init__(self, client):
        self.client = client

    def summary(self, month: Optional[str] = None, months: int = DEFAULT_MONTHS) -> Dict[str, Any]:
        """Usage totals for ``month`` (YYYY-MM, default this month) and the months before it.

        Raises:
            ValidationError: on a malformed month or a window outside 1..24
        """
        month = (month or date.today().strftime("%Y-%m")).strip()
        if not MONTH_RE.match(month):
            raise ValidationError("Month must look like YYYY-MM.", "month")
        if not 1 <= int(months) <= MAX_MONTHS:
            raise ValidationError(f"Months must be between 1 and {MAX_MONTHS}.", "months")
        logger.debug(f"Usage summary for {month} ({months} months)")
        body = self.client.get_json("/api/internet/usage/summary", params={"month": month, "months": int(months)})
        return normalize_summary(body)


__all__ = ["UsageSummaryService", "normalize_summary"]
