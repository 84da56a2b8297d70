"""
Source service.

This module orchestrates connecting a Gmail account:
1. Exchange authorization code for tokens → google_auth
2. Resolve the account's email (verified ID token or userinfo)
3. Persist exactly one Source row

It also lists and deletes a user's sources.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from invoicer.integrations.google_auth import (
    get_oauth_url,
    exchange_code_for_tokens,
    resolve_email,
)
from invoicer.models.session import SessionContext
from invoicer.models.source import TokenResponse
from invoicer.models.tables import Source, SourceType
from invoicer.services.session_service import issue_oauth_state, require_session
from invoicer.utils.logger import get_logger
from invoicer.utils.errors import DuplicateSourceError, InvalidRequestError, SourceNotFoundError

logger = get_logger(__name__)


def source_name(user_name: str, source_type: SourceType, email_address: str) -> str:
    """Display name of a source: "{user}/{type}/{email}"."""
    return f"{user_name}/{source_type.value}/{email_address}"


def build_source(
    ctx: SessionContext,
    tokens: TokenResponse,
    email_address: str,
    issued_at: datetime,
    source_type: SourceType = SourceType.GMAIL,
) -> Source:
    """
    Build (but do not persist) a Source from a token response.

    Expiries are relative to issued_at, the moment the token endpoint
    answered.
    """
    refresh_expires_at = None
    if tokens.refresh_token_expires_in is not None:
        refresh_expires_at = issued_at + timedelta(seconds=tokens.refresh_token_expires_in)

    return Source(
        user_id=ctx.user.id,
        name=source_name(ctx.user.name, source_type, email_address),
        email_address=email_address,
        source_type=source_type,
        oauth2_access_token=tokens.access_token,
        oauth2_refresh_token=tokens.refresh_token,
        oauth2_access_token_expires_at=issued_at + timedelta(seconds=tokens.expires_in),
        oauth2_refresh_token_expires_at=refresh_expires_at,
    )


class SourceService:
    """
    Source service handling the Gmail connect flow and source management.

    Usage:
        service = SourceService(db)
        url = service.get_authorization_url(ctx)
        source = await service.connect_gmail(ctx, code)
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def get_authorization_url(self, ctx: Optional[SessionContext]) -> str:
        """
        Get the Google OAuth URL the user is sent to for connecting Gmail.

        The URL carries a `state` bound to the caller's session; the
        callback checks it with verify_oauth_state().

        Raises:
            AuthError: If there is no session
        """
        ctx = require_session(ctx)
        return get_oauth_url(issue_oauth_state(ctx))

    async def connect_gmail(self, ctx: Optional[SessionContext], code: str) -> Source:
        """
        Handle the OAuth callback: turn an authorization code into a Source.

        Flow:
        1. Exchange authorization code for tokens
        2. Resolve the connected account's email
        3. Insert one Source row (rejecting an already connected account)

        Nothing is written unless all three steps succeed.

        Args:
            ctx: Caller's session
            code: Authorization code from Google callback

        Returns:
            The persisted Source

        Raises:
            AuthError: If there is no session, or the identity token is invalid
            InvalidRequestError: If the code is empty
            OAuthProviderError: If Google rejects the exchange
            DuplicateSourceError: If this account is already connected
        """
        ctx = require_session(ctx)
        if not code:
            raise InvalidRequestError("No authorization code received")

        # Step 1: Exchange code for tokens
        tokens = await exchange_code_for_tokens(code)
        issued_at = datetime.utcnow()

        # Step 2: Resolve the account's email
        email_address = await resolve_email(tokens)

        # Step 3: Persist
        existing = await self._find(ctx.user.id, email_address, SourceType.GMAIL)
        if existing is not None:
            logger.warning(f"Source already connected for user {ctx.user.id}: {email_address}")
            raise DuplicateSourceError(email_address)

        source = build_source(ctx, tokens, email_address, issued_at)
        self.db.add(source)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent callback for the same account
            await self.db.rollback()
            logger.warning(f"Duplicate source insert for user {ctx.user.id}: {email_address}")
            raise DuplicateSourceError(email_address)

        await self.db.refresh(source)
        logger.info(f"Created Gmail source {source.id} for user {ctx.user.id}: {source.name}")
        return source

    async def list_sources(self, ctx: Optional[SessionContext]) -> List[Source]:
        """Get the caller's sources, oldest first."""
        ctx = require_session(ctx)
        result = await self.db.execute(
            select(Source)
            .where(Source.user_id == ctx.user.id)
            .order_by(Source.created_at, Source.id)
        )
        return list(result.scalars().all())

    async def delete_source(self, ctx: Optional[SessionContext], source_id: int) -> None:
        """
        Delete one of the caller's sources, with its folders and invoices.

        Raises:
            SourceNotFoundError: If the source does not exist or belongs to another user
        """
        ctx = require_session(ctx)
        result = await self.db.execute(
            select(Source).where(Source.id == source_id, Source.user_id == ctx.user.id)
        )
        source = result.scalar_one_or_none()
        if source is None:
            raise SourceNotFoundError(source_id)

        await self.db.delete(source)
        await self.db.commit()
        logger.info(f"Deleted source {source_id} for user {ctx.user.id}")

    async def _find(self, user_id: str, email_address: str, source_type: SourceType) -> Optional[Source]:
        result = await self.db.execute(
            select(Source).where(
                Source.user_id == user_id,
                Source.email_address == email_address,
                Source.source_type == source_type,
            )
        )
        return result.scalar_one_or_none()
