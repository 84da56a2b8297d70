"""
Invoice-related Pydantic models, including the keyset pagination cursor.
"""
import re
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from invoicer.models.tables import MAX_ROW_ID, PaymentStatus
from invoicer.utils.errors import InvalidCursorError


def to_utc_naive(value: datetime) -> datetime:
    """Normalize a datetime to naive UTC, the storage convention."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class LineItem(BaseModel):
    description: str
    quantity: Optional[float] = None
    unit_price: Optional[float] = None


class InvoiceResponse(BaseModel):
    """Invoice as returned to its owner."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_id: int
    invoice_number: Optional[str] = None
    vendor_name: Optional[str] = None
    total_amount: Optional[str] = None
    currency: Optional[str] = None
    due_date: Optional[date] = None
    payment_status: PaymentStatus
    line_items: List[LineItem] = []
    created_at: datetime


class Cursor(BaseModel):
    """
    Position in the (created_at DESC, id DESC) ordering: the last row of the
    previous page.
    """
    id: int
    created_at: datetime

    @classmethod
    def from_params(cls, cursor_id: Optional[str], cursor_created_at: Optional[str]) -> Optional["Cursor"]:
        """
        Build a cursor from raw query parameters.

        Both parts absent means "first page". Anything else that does not
        form a valid (positive id, ISO-8601 timestamp) pair is rejected.

        Raises:
            InvalidCursorError: If only one part is given or a part is malformed
        """
        if cursor_id in (None, "") and cursor_created_at in (None, ""):
            return None
        if cursor_id in (None, "") or cursor_created_at in (None, ""):
            raise InvalidCursorError("Cursor requires both cursor_id and cursor_created_at.")

        row_id = None
        if re.fullmatch(r"[0-9]+", cursor_id):
            try:
                row_id = int(cursor_id)
            except ValueError:
                row_id = None
        if row_id is None or not 1 <= row_id <= MAX_ROW_ID:
            raise InvalidCursorError(f"Cursor id must be a positive integer, got '{cursor_id}'.")

        try:
            cursor = cls(id=row_id, created_at=cursor_created_at)
        except ValidationError:
            raise InvalidCursorError(f"Cursor timestamp is not ISO-8601: '{cursor_created_at}'.")

        cursor.created_at = to_utc_naive(cursor.created_at)
        return cursor


class InvoicePage(BaseModel):
    items: List[InvoiceResponse]
    next_cursor: Optional[Cursor] = None


class InvoiceStats(BaseModel):
    """Dashboard summary of a user's invoices."""
    total: int
    by_status: Dict[PaymentStatus, int]
    # Currency code -> summed total_amount, as decimal text
    amount_by_currency: Dict[str, str]
