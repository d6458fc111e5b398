"""Token validation and refresh for a single account.

Validity is recomputed from the stored expiry on every call; nothing is
cached in memory. A token that expires within the safety margin is treated
as already expired so requests never race the provider's own clock.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from gworkspace_accounts.auth.models import OAuthToken, ValidationResult
from gworkspace_accounts.auth.token_storage import TokenStorage
from gworkspace_accounts.config import (
    DEFAULT_EXPIRY_MARGIN_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    GOOGLE_TOKEN_URI,
    OAuthClientConfig,
)
from gworkspace_accounts.exceptions import RefreshFailedError

logger = logging.getLogger(__name__)


class TokenManager:
    """Decides whether a stored token is usable and refreshes it when not.

    Attributes:
        storage: Token storage the manager reads from and writes refreshed tokens to.
        client_config: OAuth client credentials required by Google's token endpoint.
        expiry_margin_seconds: Safety margin subtracted from token expiry.
        refresh_timeout: Upper bound in seconds for one refresh call.
    """

    def __init__(
        self,
        storage: TokenStorage,
        client_config: OAuthClientConfig | None = None,
        expiry_margin_seconds: int = DEFAULT_EXPIRY_MARGIN_SECONDS,
        refresh_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.storage = storage
        self.client_config = client_config
        self.expiry_margin_seconds = expiry_margin_seconds
        self.refresh_timeout = refresh_timeout

    def _credentials_to_token(
        self, credentials: Credentials, previous: OAuthToken
    ) -> OAuthToken:
        """Convert refreshed google-auth Credentials to OAuthToken.

        A refresh token returned by the provider replaces the previous one;
        when none is returned the previous refresh token is kept.
        """
        if credentials.expiry:
            expires_at = credentials.expiry
            # google-auth reports naive UTC datetimes
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
        else:
            expires_at = datetime.now(timezone.utc) + timedelta(hours=1)

        return OAuthToken(  # nosec B106 - "Bearer" is OAuth token type, not a password
            access_token=credentials.token,
            refresh_token=credentials.refresh_token or previous.refresh_token,
            expires_at=expires_at,
            scopes=previous.scopes,
            token_type="Bearer",
        )

    def _token_to_credentials(self, token: OAuthToken) -> Credentials:
        """Convert OAuthToken to google-auth Credentials for refreshing."""
        client_id = self.client_config.client_id if self.client_config else None
        client_secret = self.client_config.client_secret if self.client_config else None
        token_uri = self.client_config.token_uri if self.client_config else GOOGLE_TOKEN_URI
        return Credentials(
            token=token.access_token,
            refresh_token=token.refresh_token,
            token_uri=token_uri,
            client_id=client_id,
            client_secret=client_secret,
            scopes=token.scopes,
        )

    async def validate_token(self, email: str) -> ValidationResult:
        """Check an account's token, refreshing it at most once if needed.

        Args:
            email: Account email.

        Returns:
            ValidationResult describing whether a usable token is available.
        """
        stored = self.storage.retrieve(email)
        if stored is None:
            return ValidationResult(valid=False, reason="no token stored")

        token = stored.token
        if not token.is_expired(buffer_seconds=self.expiry_margin_seconds):
            return ValidationResult(valid=True, token=token)

        if not token.refresh_token:
            return ValidationResult(
                valid=False,
                token=token,
                reason="token expired and no refresh token is stored",
            )

        logger.info(f"Token for {email} expired or near expiry, refreshing")
        try:
            new_token = await self.refresh_token(email)
        except RefreshFailedError as e:
            return ValidationResult(
                valid=False,
                token=token,
                reason=e.reason,
                transient=e.transient,
            )

        return ValidationResult(valid=True, token=new_token, refreshed=True)

    async def refresh_token(self, email: str) -> OAuthToken:
        """Exchange the stored refresh token for a new access token.

        The stored record is only rewritten after the provider succeeds, and
        only if it was not deleted while the refresh was in flight.

        Args:
            email: Account email.

        Returns:
            The newly persisted OAuthToken.

        Raises:
            RefreshFailedError: If no refresh token is stored, the provider
                rejects it, or the call fails or times out.
        """
        stored = self.storage.retrieve(email)
        if stored is None:
            raise RefreshFailedError(email, "no token stored")
        if not stored.token.refresh_token:
            raise RefreshFailedError(email, "no refresh token stored")

        credentials = self._token_to_credentials(stored.token)

        # google-auth refresh is blocking
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, credentials.refresh, Request()),
                timeout=self.refresh_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Token refresh for {email} timed out after {self.refresh_timeout}s")
            raise RefreshFailedError(email, "refresh timed out", transient=True) from e
        except google.auth.exceptions.RefreshError as e:
            retryable = bool(getattr(e, "retryable", False))
            logger.warning(f"Provider rejected token refresh for {email}: {e}")
            raise RefreshFailedError(email, f"provider rejected refresh: {e}", retryable) from e
        except google.auth.exceptions.TransportError as e:
            logger.warning(f"Network error refreshing token for {email}: {e}")
            raise RefreshFailedError(email, f"network error: {e}", transient=True) from e

        if not credentials.token:
            raise RefreshFailedError(email, "provider returned no access token")

        new_token = self._credentials_to_token(credentials, stored.token)

        metadata = stored.metadata.model_copy(
            update={"last_refreshed": datetime.now(timezone.utc)}
        )
        # The record may have been deleted while the refresh was in flight
        if not self.storage.replace(email, new_token, metadata):
            logger.warning(f"Discarding refreshed token for {email}: token record was removed")
            raise RefreshFailedError(email, "token record was removed during refresh")
        logger.info(f"Refreshed token for {email}, expires {new_token.expires_at.isoformat()}")

        return new_token

