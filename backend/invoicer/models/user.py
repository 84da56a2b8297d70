"""
User-related Pydantic models.
"""
from pydantic import BaseModel


class UserResponse(BaseModel):
    """User profile response."""
    id: str
    email: str
    name: str
