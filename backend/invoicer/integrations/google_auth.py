"""
Google OAuth client integration.

This module handles:
1. Generating OAuth authorization URLs for connecting a Gmail source
2. Exchanging authorization codes for tokens
3. Verifying ID tokens against Google's published signing keys
4. Fetching the account's email from the userinfo endpoint

There is deliberately no refresh_token grant here: tokens are stored with
their expiry and refreshed by the ingestion side.
"""
import httpx
import jwt
from urllib.parse import urlencode

from pydantic import ValidationError

from invoicer.config import get_settings
from invoicer.models.source import TokenResponse
from invoicer.utils.logger import get_logger, mask
from invoicer.utils.errors import AuthError, OAuthProviderError

logger = get_logger(__name__)
settings = get_settings()

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"

GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds)


def get_oauth_url(state: str) -> str:
    """
    Generate Google OAuth authorization URL.

    The user will be redirected to this URL to grant mail access.
    After granting, Google redirects back to our callback with a code.

    Args:
        state: Opaque value Google echoes back on the callback

    Returns:
        OAuth authorization URL string
    """
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.oauth_redirect_uri,
        "response_type": "code",
        "scope": " ".join(settings.google_scopes),
        "access_type": "offline",  # Request refresh token
        "prompt": "consent",  # Force consent to get refresh token
        "state": state,
    }

    url = f"{GOOGLE_AUTH_URL}?{urlencode(params)}"
    logger.info("Generated OAuth URL")
    return url


async def exchange_code_for_tokens(code: str) -> TokenResponse:
    """
    Exchange authorization code for access and refresh tokens.

    Authorization codes are single-use, so a failure here is final:
    nothing is retried.

    Args:
        code: Authorization code from Google callback

    Returns:
        Parsed token response

    Raises:
        OAuthProviderError: If the exchange fails or the response is incomplete
    """
    data = {
        "code": code,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "redirect_uri": settings.oauth_redirect_uri,
        "grant_type": "authorization_code",
    }

    async with _http_client() as client:
        try:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.RequestError as e:
            logger.error(f"Token exchange request failed: {e}")
            raise OAuthProviderError("Failed to connect to Google to exchange the authorization code")

    if response.status_code != 200:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        logger.error(f"Token exchange failed: {response.status_code} {error_data or response.text}")
        raise OAuthProviderError(
            f"Failed to exchange code: {error_data.get('error_description', 'Unknown error')}"
        )

    try:
        tokens = TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error(f"Token response incomplete: {e}")
        raise OAuthProviderError("Google returned an incomplete token response")

    logger.info(f"Exchanged code {mask(code)} for tokens")
    return tokens


async def _fetch_signing_keys() -> jwt.PyJWKSet:
    async with _http_client() as client:
        try:
            response = await client.get(GOOGLE_CERTS_URL)
        except httpx.RequestError as e:
            logger.error(f"Fetching Google signing keys failed: {e}")
            raise OAuthProviderError("Failed to fetch Google signing keys")

    if response.status_code != 200:
        logger.error(f"Fetching Google signing keys failed: {response.status_code}")
        raise OAuthProviderError("Failed to fetch Google signing keys")

    try:
        return jwt.PyJWKSet.from_dict(response.json())
    except (ValueError, jwt.PyJWKSetError) as e:
        logger.error(f"Google signing keys unusable: {e}")
        raise OAuthProviderError("Google signing keys are unusable")


async def verify_id_token(id_token: str) -> dict:
    """
    Verify a Google ID token and return its claims.

    Checks the RS256 signature against Google's JWKS, the audience (our
    client id), the issuer and the expiry.

    Args:
        id_token: The id_token from the token response

    Returns:
        Verified claims dict

    Raises:
        AuthError: If the token is malformed or fails verification
        OAuthProviderError: If the signing keys cannot be fetched
    """
    try:
        header = jwt.get_unverified_header(id_token)
    except jwt.InvalidTokenError as e:
        logger.warning(f"Malformed ID token: {e}")
        raise AuthError("Google returned a malformed identity token", "INVALID_ID_TOKEN")

    key_set = await _fetch_signing_keys()
    signing_key = next((k for k in key_set.keys if k.key_id == header.get("kid")), None)
    if signing_key is None:
        logger.warning(f"No Google signing key matches kid={header.get('kid')}")
        raise AuthError("Identity token was signed with an unknown key", "INVALID_ID_TOKEN")

    try:
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.google_client_id,
            options={"require": ["exp", "iss", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("ID token expired")
        raise AuthError("Identity token has expired", "INVALID_ID_TOKEN")
    except jwt.InvalidTokenError as e:
        logger.warning(f"ID token verification failed: {e}")
        raise AuthError("Identity token could not be verified", "INVALID_ID_TOKEN")

    if claims.get("iss") not in GOOGLE_ISSUERS:
        logger.warning(f"ID token has unexpected issuer: {claims.get('iss')}")
        raise AuthError("Identity token was not issued by Google", "INVALID_ID_TOKEN")

    return claims


async def get_user_info(access_token: str) -> dict:
    """
    Fetch account information from Google.

    Args:
        access_token: Valid Google access token

    Returns:
        Dict with id, email and verified_email as Google reports them

    Raises:
        AuthError: If the token is rejected
        OAuthProviderError: If the request fails
    """
    headers = {"Authorization": f"Bearer {access_token}"}

    async with _http_client() as client:
        try:
            response = await client.get(GOOGLE_USERINFO_URL, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"User info request failed: {e}")
            raise OAuthProviderError("Failed to connect to Google for user information")

    if response.status_code == 401:
        logger.warning("Access token invalid when fetching user info")
        raise AuthError("Access token is invalid", "AUTH_ERROR")

    if response.status_code != 200:
        logger.error(f"Failed to get user info: {response.status_code}")
        raise OAuthProviderError("Failed to fetch user information")

    return response.json()


async def resolve_email(tokens: TokenResponse) -> str:
    """
    Resolve the connected account's email address.

    Uses the verified ID token or the userinfo endpoint depending on
    settings.identity_resolution.

    Raises:
        OAuthProviderError: If no email can be resolved
    """
    if settings.identity_resolution == "userinfo":
        info = await get_user_info(tokens.access_token)
        email = info.get("email")
    else:
        if not tokens.id_token:
            raise OAuthProviderError("Google did not return an identity token")
        claims = await verify_id_token(tokens.id_token)
        email = claims.get("email")

    if not email:
        raise OAuthProviderError("Google did not report an email address for this account")

    logger.info(f"Resolved Google account: {email}")
    return email
