"""
Invoice feed endpoints.

GET /api/invoices pages newest-first with a keyset cursor. The response's
next_cursor is passed back verbatim as cursor_id / cursor_created_at to
load the next page; it is null on the last page.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from invoicer.db import get_db
from invoicer.models.invoice import Cursor, InvoicePage, InvoiceResponse, InvoiceStats
from invoicer.models.session import SessionContext
from invoicer.models.tables import MAX_ROW_ID
from invoicer.services.invoice_service import DEFAULT_PAGE_SIZE, InvoiceService
from invoicer.services.session_service import get_current_session

router = APIRouter()


@router.get("", response_model=InvoicePage)
async def list_invoices(
    limit: int = Query(DEFAULT_PAGE_SIZE, description="Page size"),
    cursor_id: Optional[str] = Query(None, description="next_cursor.id of the previous page"),
    cursor_created_at: Optional[str] = Query(None, description="next_cursor.created_at of the previous page"),
    ctx: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """Get one page of the caller's invoices, newest first."""
    cursor = Cursor.from_params(cursor_id, cursor_created_at)
    return await InvoiceService(db).get_invoice_page(ctx, cursor=cursor, limit=limit)


@router.get("/stats", response_model=InvoiceStats)
async def invoice_stats(
    ctx: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """Totals for the dashboard summary cards."""
    return await InvoiceService(db).get_invoice_stats(ctx)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    ctx: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """Get a single invoice."""
    invoice = await InvoiceService(db).get_invoice(ctx, invoice_id)
    return InvoiceResponse.model_validate(invoice)
