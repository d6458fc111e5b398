"""OAuth authorization-code flow for adding Google accounts.

The flow is split in two steps so it works through an MCP tool as well as
the CLI: first an authorization URL is produced for the user to open, then
the code Google hands back is exchanged for tokens. The exchange itself is
delegated to google-auth-oauthlib.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from gworkspace_accounts.auth.models import OAuthToken, TokenMetadata
from gworkspace_accounts.auth.token_storage import TokenStorage
from gworkspace_accounts.config import (
    DEFAULT_REDIRECT_URI,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    GOOGLE_USERINFO_URI,
    OAuthClientConfig,
)
from gworkspace_accounts.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

# Google Workspace OAuth scopes
GOOGLE_WORKSPACE_SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
]


class OAuthManager:
    """Runs the consent flow for an account and stores the resulting token.

    Attributes:
        storage: Token storage that receives the authorized token.
        client_config: OAuth client credentials, or None if not configured.
        redirect_uri: Redirect URI registered for the OAuth client.
        scopes: Scopes requested during consent.
        account_exists: Check that an account is still configured before its
            token is stored, or None to skip it.
        timeout: Timeout for the signed-in account lookup.

    Example:
        ```python
        manager = OAuthManager(storage, client_config)
        url = manager.get_authorization_url("alice@example.com")
        # user visits url, Google redirects with ?code=...
        token = await manager.exchange_code("alice@example.com", code)
        ```
    """

    def __init__(
        self,
        storage: TokenStorage,
        client_config: OAuthClientConfig | None,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
        scopes: list[str] | None = None,
        account_exists: Callable[[str], bool] | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.storage = storage
        self.client_config = client_config
        self.redirect_uri = redirect_uri
        self.scopes = scopes or GOOGLE_WORKSPACE_SCOPES
        self.account_exists = account_exists
        self.timeout = timeout
        # Flows awaiting a code, keyed by email; each holds its PKCE verifier
        self._pending_flows: dict[str, Flow] = {}

    def _create_flow(self, autogenerate_code_verifier: bool = True) -> Flow:
        if self.client_config is None:
            raise AuthorizationError(
                "OAuth client credentials required. "
                "Set GWORKSPACE_OAUTH_CLIENT_FILE, or GOOGLE_OAUTH_CLIENT_ID and "
                "GOOGLE_OAUTH_CLIENT_SECRET."
            )
        return Flow.from_client_config(
            self.client_config.to_flow_config(self.redirect_uri),
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=autogenerate_code_verifier,
        )

    def get_authorization_url(self, email: str) -> str:
        """Start authorization for an account.

        Args:
            email: Account the user should sign in as.

        Returns:
            URL the user must open to grant access.
        """
        flow = self._create_flow()
        auth_url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            login_hint=email,
        )
        self._pending_flows[email] = flow
        logger.info(f"Generated authorization URL for {email}")
        return auth_url

    async def exchange_code(self, email: str, code: str) -> OAuthToken:
        """Exchange an authorization code and store the token for ``email``.

        The token is only stored if Google reports that the user signed in
        as ``email`` and the account still exists.

        Args:
            email: Account the code was issued for.
            code: Authorization code from Google's redirect.

        Returns:
            The stored OAuthToken.

        Raises:
            AuthorizationError: If the exchange fails, no refresh token is
                issued, the user signed in as another account, or the account
                was removed in the meantime.
        """
        # A flow from an earlier process has no verifier to replay
        flow = self._pending_flows.pop(email, None) or self._create_flow(
            autogenerate_code_verifier=False
        )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: flow.fetch_token(code=code.strip()))
        except Exception as e:
            logger.warning(f"Authorization code exchange failed for {email}: {e}")
            raise AuthorizationError(f"Authorization code exchange failed: {e}", email=email) from e

        token = self._credentials_to_token(flow.credentials, self.scopes)
        if not token.refresh_token:
            raise AuthorizationError(
                "Google did not return a refresh token; revoke the app's access "
                "and authorize again",
                email=email,
            )

        # login_hint is only a hint; the user may pick another account
        signed_in_as = await self._fetch_account_email(email, token.access_token)
        if signed_in_as != email.strip().lower():
            logger.warning(f"Authorization for {email} was granted by {signed_in_as}")
            raise AuthorizationError(
                f"Signed in as {signed_in_as}, expected {email}; authorize again "
                f"and choose {email}",
                email=email,
            )

        if self.account_exists is not None and not self.account_exists(email):
            raise AuthorizationError(
                f"Account {email} was removed before authorization completed",
                email=email,
            )

        self.storage.store(email, token, TokenMetadata(service_name=email, provider="google"))
        logger.info(f"Stored new token for {email}")
        return token

    async def _fetch_account_email(self, email: str, access_token: str) -> str:
        """Ask Google which account a freshly issued access token belongs to."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    GOOGLE_USERINFO_URI,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                userinfo = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AuthorizationError(
                f"Could not verify the signed-in account: {e}", email=email
            ) from e

        signed_in_as = userinfo.get("email") if isinstance(userinfo, dict) else None
        if not signed_in_as:
            raise AuthorizationError(
                "Could not verify the signed-in account: Google returned no email",
                email=email,
            )
        return signed_in_as.strip().lower()

    def _credentials_to_token(self, credentials: Credentials, scopes: list[str]) -> OAuthToken:
        """Convert google-auth Credentials to OAuthToken."""
        if credentials.expiry:
            expires_at = credentials.expiry
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
        else:
            # Default to 1 hour expiration
            expires_at = datetime.now(timezone.utc) + timedelta(hours=1)

        return OAuthToken(  # nosec B106 - "Bearer" is OAuth token type, not a password
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expires_at=expires_at,
            scopes=scopes,
            token_type="Bearer",
        )
