"""
Commission Tracker - Dashboard Service

Summary cards and the monthly payment trend shown on the records
dashboard, computed over the records visible to the caller.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.services.record_service import RecordService
from app.utils.payment_status import StatusCategory, classify_status


TREND_MONTHS = 8

MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _month_key(value: Optional[str]) -> Optional[str]:
    if not value or len(value) < 7:
        return None
    key = value[:7]
    year, _, month = key.partition("-")
    if not (year.isdigit() and month.isdigit()):
        return None
    return key


def _month_label(key: str) -> str:
    year, month = key.split("-")
    return f"{MONTH_LABELS[int(month) - 1]} {year}"


def build_trend(records: Iterable[Dict[str, Any]], months: int = TREND_MONTHS) -> List[Dict[str, Any]]:
    """Per-month paid/pending/rejected counts, oldest first, last ``months`` buckets."""
    buckets: Dict[str, Dict[str, Any]] = {}
    for record in records:
        key = _month_key(record.get("created_at"))
        if key is None:
            continue
        bucket = buckets.setdefault(key, {
            "key": key,
            "month": _month_label(key),
            "paid": 0,
            "pending": 0,
            "rejected": 0,
        })
        category = classify_status(record.get("status"))
        if category is not None:
            bucket[category.value] += 1
    ordered = [buckets[key] for key in sorted(buckets)]
    return ordered[-months:]


def build_summary(records: List[Dict[str, Any]], today: Optional[date] = None) -> Dict[str, Any]:
    """Aggregate the summary cards for a list of record views."""
    today = today or date.today()
    current_month = today.strftime("%Y-%m")

    summary = {
        "total_entries": len(records),
        "entries_this_month": 0,
        "paid": 0,
        "pending": 0,
        "rejected": 0,
        "total_amount": 0.0,
        "month_amount": 0.0,
        "paid_amount": 0.0,
        "pending_amount": 0.0,
        "rejected_amount": 0.0,
    }

    for record in records:
        amount = float(record.get("amount") or 0)
        summary["total_amount"] += amount

        if _month_key(record.get("created_at")) == current_month:
            summary["entries_this_month"] += 1
            summary["month_amount"] += amount

        category = classify_status(record.get("status"))
        if category is StatusCategory.PAID:
            summary["paid"] += 1
            summary["paid_amount"] += amount
        elif category is StatusCategory.PENDING:
            summary["pending"] += 1
            summary["pending_amount"] += amount
        elif category is StatusCategory.REJECTED:
            summary["rejected"] += 1
            summary["rejected_amount"] += amount

    summary["trend"] = build_trend(records)
    return summary


class DashboardService:
    """Service for generating dashboard data."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.records = RecordService(db)

    async def get_summary(self, user: User, today: Optional[date] = None) -> Dict[str, Any]:
        records = await self.records.list_all_visible(user)
        return build_summary(records, today)
