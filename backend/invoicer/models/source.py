"""
Source-related Pydantic models.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from invoicer.models.tables import SourceType


class TokenResponse(BaseModel):
    """
    Token endpoint response.

    https://developers.google.com/identity/openid-connect/openid-connect#exchangecode
    """
    access_token: str
    refresh_token: str
    expires_in: int
    id_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None
    # Only present when the refresh token itself expires
    refresh_token_expires_in: Optional[int] = None


class SourceResponse(BaseModel):
    """A connected source as shown to its owner. Tokens are never exposed."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email_address: str
    source_type: SourceType
    created_at: datetime
