"""
Session-related Pydantic models.
"""
from pydantic import BaseModel
from datetime import datetime


class SessionUser(BaseModel):
    """Identity of the signed-in user."""
    id: str
    name: str
    email: str


class SessionContext(BaseModel):
    """
    Resolved session, passed explicitly into every service operation.
    """
    session_id: str
    user: SessionUser
    expires_at: datetime
