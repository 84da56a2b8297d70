"""
Session management service.

This module handles:
1. Issuing session tokens backed by rows in the session table
2. Validating session cookies (JWT-based)
3. Resolving a cookie into an explicit SessionContext for services
4. Issuing and checking the OAuth `state` bound to a session

The JWT carries only the session id; the session row decides validity, so
deleting the row revokes the cookie immediately.
"""
import jwt
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from invoicer.config import get_settings
from invoicer.db import get_db
from invoicer.models.session import SessionContext, SessionUser
from invoicer.models.tables import User, UserSession
from invoicer.utils.logger import get_logger
from invoicer.utils.errors import AuthError, SessionExpiredError

logger = get_logger(__name__)
settings = get_settings()

SESSION_COOKIE = "session"

OAUTH_STATE_PURPOSE = "oauth_state"
OAUTH_STATE_MINUTES = 10


async def create_session(
    db: AsyncSession,
    user: User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> str:
    """
    Create a session for a user and return a JWT session token.

    Called by the auth provider after it has authenticated the user.

    Args:
        db: Database session
        user: Authenticated user
        ip_address: Client address, for auditing
        user_agent: Client user agent, for auditing

    Returns:
        JWT session token (to be stored in cookie)
    """
    now = datetime.utcnow()
    session_expiry = now + timedelta(hours=settings.session_expire_hours)

    row = UserSession(
        user_id=user.id,
        expires_at=session_expiry,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(row)
    await db.commit()

    jwt_payload = {
        "session_id": row.id,
        "exp": session_expiry,
        "iat": now,
    }

    token = jwt.encode(jwt_payload, settings.session_secret, algorithm="HS256")
    logger.info(f"Created session for user: {user.email}")

    return token


def _decode_session_id(session_token: str, verify_exp: bool = True) -> Optional[str]:
    try:
        payload = jwt.decode(
            session_token,
            settings.session_secret,
            algorithms=["HS256"],
            options={"verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT: {e}")
        return None

    return payload.get("session_id")


async def get_session(db: AsyncSession, session_token: str) -> Optional[SessionContext]:
    """
    Resolve a JWT session token into a SessionContext.

    Returns None if the JWT is invalid, the session row is gone or the
    session has expired.

    Args:
        db: Database session
        session_token: JWT from session cookie

    Returns:
        SessionContext or None
    """
    session_id = _decode_session_id(session_token)
    if not session_id:
        return None

    result = await db.execute(
        select(UserSession, User)
        .join(User, User.id == UserSession.user_id)
        .where(UserSession.id == session_id)
    )
    row = result.first()
    if row is None:
        logger.warning("Session not found in store")
        return None

    user_session, user = row
    if datetime.utcnow() > user_session.expires_at:
        logger.info(f"Session expired for: {user.email}")
        return None

    return SessionContext(
        session_id=user_session.id,
        user=SessionUser(id=user.id, name=user.name, email=user.email),
        expires_at=user_session.expires_at,
    )


async def delete_session(db: AsyncSession, session_token: str) -> bool:
    """
    Delete a session (logout).

    Expired tokens are accepted so stale cookies can still be cleaned up.

    Returns:
        True if deleted, False if not found
    """
    session_id = _decode_session_id(session_token, verify_exp=False)
    if not session_id:
        return False

    row = await db.get(UserSession, session_id)
    if row is None:
        return False

    await db.delete(row)
    await db.commit()
    logger.info(f"Deleted session {session_id}")
    return True


def issue_oauth_state(ctx: SessionContext) -> str:
    """
    Issue the OAuth `state` value for a connect attempt.

    Binds the callback to the session that started the flow. Uses a
    different claim than session tokens so it never resolves as one.
    """
    now = datetime.utcnow()
    payload = {
        "sid": ctx.session_id,
        "purpose": OAUTH_STATE_PURPOSE,
        "exp": now + timedelta(minutes=OAUTH_STATE_MINUTES),
        "iat": now,
    }
    return jwt.encode(payload, settings.session_secret, algorithm="HS256")


def verify_oauth_state(ctx: SessionContext, state: Optional[str]) -> bool:
    """Check that `state` was issued to this session and is still fresh."""
    if not state:
        return False

    try:
        payload = jwt.decode(state, settings.session_secret, algorithms=["HS256"])
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid OAuth state: {e}")
        return False

    return payload.get("purpose") == OAUTH_STATE_PURPOSE and payload.get("sid") == ctx.session_id


def require_session(ctx: Optional[SessionContext]) -> SessionContext:
    """Guard used at the top of every protected service operation."""
    if ctx is None:
        raise AuthError("Authentication required")
    return ctx


# Dependencies for protected routes
async def get_optional_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[SessionContext]:
    """FastAPI dependency: the current session, or None."""
    session_cookie = request.cookies.get(SESSION_COOKIE)
    if not session_cookie:
        return None
    return await get_session(db, session_cookie)


async def get_current_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> SessionContext:
    """
    FastAPI dependency to get current authenticated session.

    Use this as a dependency in protected routes:

        @router.get("/protected")
        async def protected_route(ctx: SessionContext = Depends(get_current_session)):
            ...

    Raises:
        AuthError: If no cookie is present
        SessionExpiredError: If the cookie no longer maps to a live session
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)

    if not session_cookie:
        raise AuthError("Authentication required")

    ctx = await get_session(db, session_cookie)

    if not ctx:
        raise SessionExpiredError()

    return ctx
