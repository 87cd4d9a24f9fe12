"""
Commission Tracker - Payment Status Classification

Payment states arrive as free text (stored enum values, spreadsheet cells,
gateway names). Dashboards and exports group them into three buckets by
keyword.
"""

from enum import Enum
from typing import Optional


class StatusCategory(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    REJECTED = "rejected"


# Checked in this order; the first bucket with a matching keyword wins, so
# "inactivo" lands in the paid bucket through "activo".
STATUS_KEYWORDS = (
    (StatusCategory.PAID, ("pagado", "aprobado", "paid", "activo")),
    (StatusCategory.PENDING, ("pendiente", "espera", "revision", "revisión", "pending")),
    (StatusCategory.REJECTED, ("rechazado", "observado", "rejected", "expirado", "inactivo", "cancelado")),
)


def classify_status(status: Optional[str]) -> Optional[StatusCategory]:
    """
    Classify a payment status text.

    Returns None for empty or unrecognised values.
    """
    if not status:
        return None
    value = str(status).strip().lower()
    if not value:
        return None
    for category, keywords in STATUS_KEYWORDS:
        if any(keyword in value for keyword in keywords):
            return category
    return None


def is_pending(status: Optional[str]) -> bool:
    return classify_status(status) == StatusCategory.PENDING
