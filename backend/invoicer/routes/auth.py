"""
Session routes.

Sign-up and sign-in belong to the external auth provider, which issues the
`session` cookie through session_service.create_session(). These endpoints
let the frontend inspect and end that session.

Security:
- Session token is HTTP-only cookie (prevents XSS)
- The JWT only names a session row; deleting the row revokes it
"""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from invoicer.db import get_db
from invoicer.services.session_service import (
    SESSION_COOKIE,
    delete_session,
    get_session,
)
from invoicer.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/logout")
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Logout user by clearing session.

    - Deletes session from the session table
    - Clears session cookie

    Returns:
        { success: true, message: "Logged out successfully" }
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)

    if session_cookie:
        await delete_session(db, session_cookie)

    response.delete_cookie(
        key=SESSION_COOKIE,
        path="/",
        httponly=True,
        samesite="lax",
    )

    logger.info("User logged out")
    return {"success": True, "message": "Logged out successfully"}


@router.get("/session")
async def get_session_info(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Check current session status.

    Returns:
        { authenticated: true/false, email?: string, name?: string }
    """
    session_cookie = request.cookies.get(SESSION_COOKIE)

    if not session_cookie:
        return {"authenticated": False}

    ctx = await get_session(db, session_cookie)

    if not ctx:
        return {"authenticated": False}

    return {
        "authenticated": True,
        "email": ctx.user.email,
        "name": ctx.user.name,
    }
