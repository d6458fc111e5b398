"""Pydantic models for OAuth tokens and their storage records."""

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TokenStatus(str, Enum):
    """State of a stored token as seen from disk."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"
    INVALID = "invalid"


class OAuthToken(BaseModel):
    """OAuth2 token pair and its expiry.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token used to mint new access tokens.
            Without one the token cannot be renewed.
        expires_at: Expiry as a timezone-aware UTC datetime.
        scopes: Scopes granted by the user.
        token_type: Token type, always "Bearer" for Google.
    """

    access_token: str = Field(..., description="OAuth access token")
    refresh_token: str | None = Field(default=None, description="OAuth refresh token")
    expires_at: datetime = Field(..., description="Access token expiry (UTC)")
    scopes: list[str] = Field(default_factory=list, description="Granted scopes")
    token_type: str = Field(default="Bearer", description="Token type")

    @field_validator("expires_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Check whether the token is expired or will be within ``buffer_seconds``."""
        deadline = self.expires_at - timedelta(seconds=buffer_seconds)
        return datetime.now(timezone.utc) >= deadline


class TokenMetadata(BaseModel):
    """Bookkeeping stored alongside a token."""

    service_name: str = Field(..., description="Account email the token belongs to")
    provider: str = Field(default="google", description="OAuth provider")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the token was first stored",
    )
    last_refreshed: datetime | None = Field(default=None, description="Last successful refresh")


class StoredToken(BaseModel):
    """On-disk token record, one per account."""

    version: int = Field(default=1, description="Record schema version")
    metadata: TokenMetadata
    token: OAuthToken


class ValidationResult(BaseModel):
    """Outcome of validating an account's token. Never persisted.

    Attributes:
        valid: Whether ``token`` may be used right now.
        token: The usable token, or the stale one when invalid.
        reason: Diagnostic for an invalid result.
        refreshed: True when validation had to refresh the token.
        transient: True when invalidity came from a timeout or network error
            and a later attempt may succeed without user involvement.
    """

    valid: bool
    token: OAuthToken | None = None
    reason: str | None = None
    refreshed: bool = False
    transient: bool = False
