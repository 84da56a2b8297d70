"""
Invoice service - read side of the dashboard.

Invoices are written by the ingestion pipeline; this service only reads
them, always scoped to the caller's user id.

The feed uses keyset pagination over (created_at DESC, id DESC). The id
breaks ties between invoices sharing a timestamp, and the cursor predicate is
a single disjunction so rows sharing the cursor's timestamp are neither
skipped nor repeated. There is no offset: rows inserted ahead of the cursor
(newer invoices) cannot shift later pages.
"""
from collections import Counter
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from invoicer.models.invoice import Cursor, InvoicePage, InvoiceResponse, InvoiceStats
from invoicer.models.session import SessionContext
from invoicer.models.tables import Invoice, PaymentStatus
from invoicer.services.session_service import require_session
from invoicer.utils.logger import get_logger
from invoicer.utils.errors import InvalidRequestError, InvoiceNotFoundError

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """Parse a decimal-as-text amount such as "2,450.00"."""
    if raw is None:
        return None
    try:
        amount = Decimal(raw.replace(",", "").strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


class InvoiceService:
    """
    Invoice feed and lookups for one request.

    Usage:
        service = InvoiceService(db)
        page = await service.get_invoice_page(ctx, cursor=None, limit=10)
        more = await service.get_invoice_page(ctx, cursor=page.next_cursor)
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_invoice_page(
        self,
        ctx: Optional[SessionContext],
        cursor: Optional[Cursor] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> InvoicePage:
        """
        Get one page of the caller's invoices, newest first.

        Args:
            ctx: Caller's session
            cursor: Last row of the previous page, None for the first page
            limit: Page size

        Returns:
            InvoicePage with next_cursor set only if more rows follow

        Raises:
            AuthError: If there is no session
            InvalidRequestError: If limit is out of range
        """
        ctx = require_session(ctx)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidRequestError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        query = select(Invoice).where(Invoice.user_id == ctx.user.id)

        if cursor is not None:
            query = query.where(
                or_(
                    Invoice.created_at < cursor.created_at,
                    and_(Invoice.created_at == cursor.created_at, Invoice.id < cursor.id),
                )
            )

        # Over-fetch by one to learn whether another page exists
        query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit + 1)

        result = await self.db.execute(query)
        rows: List[Invoice] = list(result.scalars().all())

        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            last = rows[-1]
            next_cursor = Cursor(id=last.id, created_at=last.created_at)

        logger.debug(
            f"Invoice page for {ctx.user.id}: {len(rows)} rows, more={next_cursor is not None}"
        )
        return InvoicePage(
            items=[InvoiceResponse.model_validate(row) for row in rows],
            next_cursor=next_cursor,
        )

    async def get_invoice(self, ctx: Optional[SessionContext], invoice_id: int) -> Invoice:
        """
        Get one of the caller's invoices.

        Raises:
            InvoiceNotFoundError: If missing or owned by another user
        """
        ctx = require_session(ctx)
        result = await self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.user_id == ctx.user.id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    async def get_invoice_stats(self, ctx: Optional[SessionContext]) -> InvoiceStats:
        """
        Summarize the caller's invoices for the dashboard cards.

        Amounts are summed per currency; amounts that do not parse as
        decimals are left out of the sums.
        """
        ctx = require_session(ctx)
        result = await self.db.execute(
            select(Invoice.payment_status, Invoice.currency, Invoice.total_amount)
            .where(Invoice.user_id == ctx.user.id)
        )
        rows = result.all()

        by_status = Counter({status: 0 for status in PaymentStatus})
        totals: Dict[str, Decimal] = {}

        for payment_status, currency, total_amount in rows:
            by_status[payment_status] += 1

            amount = parse_amount(total_amount)
            if amount is None:
                if total_amount is not None:
                    logger.warning(f"Skipping unparseable invoice amount: {total_amount!r}")
                continue

            key = (currency or "").upper() or "UNKNOWN"
            totals[key] = totals.get(key, Decimal("0")) + amount

        return InvoiceStats(
            total=len(rows),
            by_status=dict(by_status),
            amount_by_currency={currency: str(amount) for currency, amount in sorted(totals.items())},
        )
