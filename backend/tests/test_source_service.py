"""
Unit tests for the Gmail connect flow and source management.

Google calls are mocked at the google_auth boundary; persistence runs
against an in-memory SQLite database.
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

from sqlmodel import select

from conftest import make_invoices, make_source
from invoicer.models.tables import Invoice, Source, SourceFolder, SourceType
from invoicer.services.session_service import verify_oauth_state
from invoicer.services.source_service import SourceService, build_source
from invoicer.utils.errors import (
    AuthError,
    DuplicateSourceError,
    InvalidRequestError,
    OAuthProviderError,
    SourceNotFoundError,
)

SERVICE = "invoicer.services.source_service"


async def count_sources(db_session) -> int:
    result = await db_session.execute(select(Source))
    return len(result.scalars().all())


class TestBuildSource:
    """Test Source construction from a token response."""

    def test_expiry_and_name(self, mock_session, mock_tokens):
        issued_at = datetime(2024, 5, 1, 12, 0, 0)

        source = build_source(mock_session, mock_tokens, "inbox@gmail.com", issued_at)

        assert source.user_id == mock_session.user.id
        assert source.name == "Test User/gmail/inbox@gmail.com"
        assert source.source_type == SourceType.GMAIL
        assert source.oauth2_access_token == "ya29.mock-access-token"
        assert source.oauth2_refresh_token == "1//mock-refresh-token"
        assert source.oauth2_access_token_expires_at == issued_at + timedelta(seconds=3599)
        assert source.oauth2_refresh_token_expires_at is None

    def test_refresh_token_expiry_when_provided(self, mock_session, mock_tokens):
        issued_at = datetime(2024, 5, 1, 12, 0, 0)
        tokens = mock_tokens.model_copy(update={"refresh_token_expires_in": 604799})

        source = build_source(mock_session, tokens, "inbox@gmail.com", issued_at)

        assert source.oauth2_refresh_token_expires_at == issued_at + timedelta(seconds=604799)


class TestConnectGmail:
    """Test the code → tokens → email → Source flow."""

    @pytest.mark.asyncio
    async def test_creates_exactly_one_source(self, db_session, user, mock_session, mock_tokens):
        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange, \
                patch(f"{SERVICE}.resolve_email", new_callable=AsyncMock) as mock_resolve:
            mock_exchange.return_value = mock_tokens
            mock_resolve.return_value = "inbox@gmail.com"

            before = datetime.utcnow()
            source = await SourceService(db_session).connect_gmail(mock_session, "4/auth-code")
            after = datetime.utcnow()

        mock_exchange.assert_awaited_once_with("4/auth-code")
        mock_resolve.assert_awaited_once_with(mock_tokens)

        assert await count_sources(db_session) == 1
        assert source.id is not None
        assert source.email_address == "inbox@gmail.com"
        assert source.name == "Test User/gmail/inbox@gmail.com"
        assert before + timedelta(seconds=3599) <= source.oauth2_access_token_expires_at
        assert source.oauth2_access_token_expires_at <= after + timedelta(seconds=3599)
        assert source.oauth2_refresh_token_expires_at is None

    @pytest.mark.asyncio
    async def test_token_exchange_failure_writes_nothing(self, db_session, mock_session):
        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange, \
                patch(f"{SERVICE}.resolve_email", new_callable=AsyncMock) as mock_resolve:
            mock_exchange.side_effect = OAuthProviderError("Failed to exchange code: Bad Request")

            with pytest.raises(OAuthProviderError):
                await SourceService(db_session).connect_gmail(mock_session, "used-code")

        mock_resolve.assert_not_called()
        assert await count_sources(db_session) == 0

    @pytest.mark.asyncio
    async def test_identity_failure_writes_nothing(self, db_session, mock_session, mock_tokens):
        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange, \
                patch(f"{SERVICE}.resolve_email", new_callable=AsyncMock) as mock_resolve:
            mock_exchange.return_value = mock_tokens
            mock_resolve.side_effect = AuthError("Identity token could not be verified", "INVALID_ID_TOKEN")

            with pytest.raises(AuthError):
                await SourceService(db_session).connect_gmail(mock_session, "4/auth-code")

        assert await count_sources(db_session) == 0

    @pytest.mark.asyncio
    async def test_already_connected_account_rejected(self, db_session, user, mock_session, mock_tokens):
        await make_source(db_session, user, "inbox@gmail.com")

        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange, \
                patch(f"{SERVICE}.resolve_email", new_callable=AsyncMock) as mock_resolve:
            mock_exchange.return_value = mock_tokens
            mock_resolve.return_value = "inbox@gmail.com"

            with pytest.raises(DuplicateSourceError):
                await SourceService(db_session).connect_gmail(mock_session, "4/auth-code")

        assert await count_sources(db_session) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callback_loses_at_commit(self, db_session, user, mock_session, mock_tokens):
        """A row inserted after the lookup still yields DuplicateSourceError."""
        await make_source(db_session, user, "inbox@gmail.com")

        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange, \
                patch(f"{SERVICE}.resolve_email", new_callable=AsyncMock) as mock_resolve, \
                patch.object(SourceService, "_find", new_callable=AsyncMock) as mock_find:
            mock_exchange.return_value = mock_tokens
            mock_resolve.return_value = "inbox@gmail.com"
            mock_find.return_value = None

            with pytest.raises(DuplicateSourceError):
                await SourceService(db_session).connect_gmail(mock_session, "4/auth-code")

        mock_find.assert_awaited_once()

        # Rolled back cleanly: the session still works and holds one row
        assert await count_sources(db_session) == 1
        sources = await SourceService(db_session).list_sources(mock_session)
        assert [s.email_address for s in sources] == ["inbox@gmail.com"]

    @pytest.mark.asyncio
    async def test_same_account_for_different_users(self, db_session, user, other_user, mock_session, mock_tokens):
        """Uniqueness is per user."""
        await make_source(db_session, other_user, "shared@gmail.com")

        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange, \
                patch(f"{SERVICE}.resolve_email", new_callable=AsyncMock) as mock_resolve:
            mock_exchange.return_value = mock_tokens
            mock_resolve.return_value = "shared@gmail.com"

            await SourceService(db_session).connect_gmail(mock_session, "4/auth-code")

        assert await count_sources(db_session) == 2

    @pytest.mark.asyncio
    async def test_unique_constraint_enforced_by_database(self, db_session, user):
        """A second row for the same (user, email, type) fails at commit."""
        from sqlalchemy.exc import IntegrityError

        await make_source(db_session, user, "inbox@gmail.com")

        with pytest.raises(IntegrityError):
            await make_source(db_session, user, "inbox@gmail.com")
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_unauthenticated_fails_before_anything(self, mock_tokens):
        db = MagicMock()
        db.execute = AsyncMock()
        db.commit = AsyncMock()

        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange:
            with pytest.raises(AuthError):
                await SourceService(db).connect_gmail(None, "4/auth-code")

        mock_exchange.assert_not_called()
        db.execute.assert_not_called()
        db.add.assert_not_called()
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_code_rejected(self, mock_session):
        db = MagicMock()

        with patch(f"{SERVICE}.exchange_code_for_tokens", new_callable=AsyncMock) as mock_exchange:
            with pytest.raises(InvalidRequestError):
                await SourceService(db).connect_gmail(mock_session, "")

        mock_exchange.assert_not_called()


class TestAuthorizationUrl:
    """Test the connect URL."""

    def test_requires_session(self):
        with pytest.raises(AuthError):
            SourceService(MagicMock()).get_authorization_url(None)

    def test_url_parameters(self, mock_session):
        url = SourceService(MagicMock()).get_authorization_url(mock_session)
        params = parse_qs(urlparse(url).query)

        assert params["response_type"] == ["code"]
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert "https://mail.google.com/" in params["scope"][0].split(" ")
        assert verify_oauth_state(mock_session, params["state"][0]) is True


class TestSourceManagement:
    """Test listing and deleting sources."""

    @pytest.mark.asyncio
    async def test_list_only_own_sources(self, db_session, user, other_user, mock_session):
        await make_source(db_session, user, "a@gmail.com")
        await make_source(db_session, other_user, "b@gmail.com")
        await make_source(db_session, user, "c@gmail.com")

        sources = await SourceService(db_session).list_sources(mock_session)

        assert [s.email_address for s in sources] == ["a@gmail.com", "c@gmail.com"]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_folders_and_invoices(self, db_session, user, source, mock_session):
        db_session.add(SourceFolder(source_id=source.id, name="INBOX"))
        await db_session.commit()
        await make_invoices(db_session, user, source, [(1, datetime(2024, 1, 1)), (2, datetime(2024, 1, 2))])
        db_session.expunge_all()

        await SourceService(db_session).delete_source(mock_session, source.id)

        assert await count_sources(db_session) == 0
        invoices = (await db_session.execute(select(Invoice))).scalars().all()
        folders = (await db_session.execute(select(SourceFolder))).scalars().all()
        assert invoices == []
        assert folders == []

    @pytest.mark.asyncio
    async def test_delete_other_users_source_not_found(self, db_session, other_user, mock_session):
        foreign = await make_source(db_session, other_user, "b@gmail.com")

        with pytest.raises(SourceNotFoundError):
            await SourceService(db_session).delete_source(mock_session, foreign.id)

        assert await count_sources(db_session) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_source(self, db_session, mock_session):
        with pytest.raises(SourceNotFoundError):
            await SourceService(db_session).delete_source(mock_session, 999)
