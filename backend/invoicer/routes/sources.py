"""
Source routes: connecting Gmail accounts over OAuth.

Connect flow:
1. Frontend calls GET /api/sources/gmail/authorize → gets OAuth URL
2. Frontend redirects user to the OAuth URL
3. User grants mail access on Google
4. Google redirects to GET /api/sources/gmail/callback with code and state
5. Backend checks state, exchanges code for tokens and stores a Source
6. Backend redirects to frontend /dashboard (with ?error=... on failure)
"""
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Path
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from invoicer.config import get_settings
from invoicer.db import get_db
from invoicer.models.session import SessionContext
from invoicer.models.source import SourceResponse
from invoicer.models.tables import MAX_ROW_ID
from invoicer.services.session_service import (
    get_current_session,
    get_optional_session,
    verify_oauth_state,
)
from invoicer.services.source_service import SourceService
from invoicer.utils.errors import AppError
from invoicer.utils.logger import get_logger, mask

router = APIRouter()
logger = get_logger(__name__)
settings = get_settings()


def _dashboard_redirect(error: Optional[str] = None) -> RedirectResponse:
    url = f"{settings.frontend_url}/dashboard"
    if error:
        url = f"{url}?{urlencode({'error': error})}"
    return RedirectResponse(url=url, status_code=302)


@router.get("", response_model=List[SourceResponse])
async def list_sources(
    ctx: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's connected sources."""
    sources = await SourceService(db).list_sources(ctx)
    return [SourceResponse.model_validate(s) for s in sources]


@router.get("/gmail/authorize")
async def authorize_gmail(
    ctx: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the Google OAuth URL for connecting a Gmail account.

    Returns:
        { auth_url: "https://accounts.google.com/..." }
    """
    return {"auth_url": SourceService(db).get_authorization_url(ctx)}


@router.get("/gmail/callback")
async def gmail_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    ctx: Optional[SessionContext] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    """
    Handle Google OAuth callback.

    On success the new source is stored and the user lands on /dashboard.
    On failure the user lands on /dashboard?error=<message>.
    Without a session the user is sent to /login. A missing or foreign
    state is treated as a failure and no code is exchanged.

    Query params:
        code: Authorization code from Google (on success)
        state: Value issued with the authorization URL
        error: Error from Google (on denial)
    """
    if ctx is None:
        logger.warning("Gmail callback without a session")
        return RedirectResponse(url=f"{settings.frontend_url}/login", status_code=302)

    if error:
        logger.warning(f"OAuth error: {error}")
        return _dashboard_redirect(error)

    if not code:
        logger.warning("OAuth callback missing code")
        return _dashboard_redirect("No authorization code received")

    if not verify_oauth_state(ctx, state):
        logger.warning(f"OAuth state mismatch for user {ctx.user.id}")
        return _dashboard_redirect("Connection request expired or was not started here. Please try again.")

    try:
        logger.info(f"Exchange code: {mask(code, 10)}")
        await SourceService(db).connect_gmail(ctx, code)
    except AppError as e:
        logger.error(f"Gmail connect failed: {e.message}")
        return _dashboard_redirect(e.message)

    return _dashboard_redirect()


@router.delete("/{source_id}")
async def delete_source(
    source_id: int = Path(..., ge=1, le=MAX_ROW_ID),
    ctx: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete one of the caller's sources together with its invoices.

    Returns:
        { success: true }
    """
    await SourceService(db).delete_source(ctx, source_id)
    return {"success": True}
