"""
User profile endpoint.
"""
from fastapi import APIRouter, Depends

from invoicer.models.session import SessionContext
from invoicer.models.user import UserResponse
from invoicer.services.session_service import get_current_session

router = APIRouter()


@router.get("/user", response_model=UserResponse)
async def get_user(ctx: SessionContext = Depends(get_current_session)):
    """
    Get current user's profile information.
    """
    return UserResponse(
        id=ctx.user.id,
        email=ctx.user.email,
        name=ctx.user.name,
    )
