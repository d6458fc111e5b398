"""Account registry and the entry point for authenticated clients.

One ``AccountManager`` is built at startup and handed to every service
module. It owns the account store, the token store (through its
``TokenManager``), and the pooled HTTP client authenticated clients share.
"""

import logging

import httpx

from gworkspace_accounts.accounts.account_store import AccountStore
from gworkspace_accounts.accounts.client import AuthenticatedClient
from gworkspace_accounts.accounts.models import Account, normalize_email
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.auth.token_storage import TokenStorage
from gworkspace_accounts.config import DEFAULT_REQUEST_TIMEOUT_SECONDS
from gworkspace_accounts.exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    DuplicateAccountError,
    ReauthRequiredError,
    RefreshFailedError,
    ServiceCallError,
)

logger = logging.getLogger(__name__)


class AccountManager:
    """Owns the set of known accounts and hands out authenticated clients.

    Every token record belongs to an account; an account may exist without
    a token until it is authorized.

    Attributes:
        account_store: Persistence for account entries.
        token_manager: Validation and refresh of account tokens.
        request_timeout: Timeout applied to each API request.

    Example:
        ```python
        manager = AccountManager(AccountStore(accounts_path), TokenManager(storage, client_config))
        manager.add_account("alice@example.com", category="work")
        client = await manager.get_auth_client("alice@example.com")
        ```
    """

    def __init__(
        self,
        account_store: AccountStore,
        token_manager: TokenManager,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.account_store = account_store
        self.token_manager = token_manager
        self.request_timeout = request_timeout
        self._http_client = http_client
        self._prune_orphan_tokens()

    @property
    def token_storage(self) -> TokenStorage:
        return self.token_manager.storage

    def _prune_orphan_tokens(self) -> None:
        """Delete token records whose account no longer exists."""
        try:
            known = {a.email for a in self.account_store.load(strict=True)}
        except ConfigurationError as e:
            logger.warning(f"Skipping orphan token cleanup: {e}")
            return
        for email in self.token_storage.list_services():
            if email not in known:
                logger.warning(f"Removing token for unknown account {email}")
                self.token_storage.delete(email)

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                http2=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(self.request_timeout, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # -- account registry --------------------------------------------------

    def list_accounts(self) -> list[Account]:
        """Return all accounts in insertion order."""
        return self.account_store.load()

    def get_account(self, email: str) -> Account:
        """Look up an account.

        Raises:
            AccountNotFoundError: If no account has this email.
        """
        try:
            key = normalize_email(email)
        except ValueError:
            raise AccountNotFoundError(email) from None

        for account in self.account_store.load():
            if account.email == key:
                return account
        raise AccountNotFoundError(key)

    def has_account(self, email: str) -> bool:
        try:
            self.get_account(email)
        except AccountNotFoundError:
            return False
        return True

    def add_account(self, email: str, category: str = "", description: str = "") -> Account:
        """Register a new account.

        Raises:
            ValueError: If ``email`` is not a valid address.
            DuplicateAccountError: If the account already exists.
            ConfigurationError: If accounts.json exists but cannot be decoded.
        """
        account = Account(email=email, category=category or "", description=description or "")
        if not self.account_store.append(account):
            raise DuplicateAccountError(account.email)
        logger.info(f"Added account {account.email}")
        return account

    def remove_account(self, email: str) -> bool:
        """Remove an account and its token.

        Removing an unknown account is a no-op.

        Returns:
            True if the account existed and was removed, False otherwise.

        Raises:
            ConfigurationError: If accounts.json exists but cannot be decoded.
                Nothing is deleted in that case.
        """
        try:
            key = normalize_email(email)
        except ValueError:
            return False

        self.account_store.load(strict=True)
        token_deleted = self.token_storage.delete(key)
        removed = self.account_store.remove(key)
        if removed:
            logger.info(f"Removed account {key}")
        elif token_deleted:
            logger.warning(f"Removed orphan token for {key}")
        return removed

    def has_valid_token(self, email: str) -> bool:
        """Whether a stored token exists and is outside the expiry margin."""
        stored = self.token_storage.retrieve(normalize_email(email))
        if stored is None:
            return False
        return not stored.token.is_expired(
            buffer_seconds=self.token_manager.expiry_margin_seconds
        )

    # -- authentication ----------------------------------------------------

    def mark_reauth_required(self, email: str, reason: str | None = None) -> ReauthRequiredError:
        """Record that an account's refresh token is dead.

        The token record is deleted; the account entry is kept so the user
        can authorize it again.

        Returns:
            The error for the caller to raise.
        """
        if self.token_storage.delete(email):
            logger.warning(f"Cleared rejected token for {email}; re-authentication required")
        return ReauthRequiredError(email, reason)

    def _build_client(self, email: str, access_token: str) -> AuthenticatedClient:
        return AuthenticatedClient(
            email=email,
            access_token=access_token,
            http_client=self._get_http_client(),
            timeout=self.request_timeout,
        )

    async def get_auth_client(self, email: str) -> AuthenticatedClient:
        """Get a client carrying a valid access token for ``email``.

        Raises:
            AccountNotFoundError: If the account does not exist.
            ReauthRequiredError: If no valid or refreshable token exists.
            ServiceCallError: If refresh failed on a timeout or network error.
        """
        account = self.get_account(email)
        result = await self.token_manager.validate_token(account.email)

        if result.valid and result.token is not None:
            return self._build_client(account.email, result.token.access_token)

        if result.transient:
            raise ServiceCallError(
                f"Could not refresh token for {account.email}: {result.reason}",
                email=account.email,
                operation="token_refresh",
            )

        if result.token is None:
            # Never authorized; nothing to clear
            raise ReauthRequiredError(account.email, result.reason)

        if result.token.refresh_token:
            raise self.mark_reauth_required(account.email, result.reason)
        raise ReauthRequiredError(account.email, result.reason)

    async def refresh_auth_client(self, email: str) -> AuthenticatedClient:
        """Force a token refresh and return a client with the new token.

        Used after the provider rejected a request with 401/403.

        Raises:
            AccountNotFoundError: If the account does not exist.
            ReauthRequiredError: If the refresh token is missing or rejected.
            ServiceCallError: If refresh failed on a timeout or network error.
        """
        account = self.get_account(email)
        try:
            token = await self.token_manager.refresh_token(account.email)
        except RefreshFailedError as e:
            if e.transient:
                raise ServiceCallError(
                    f"Could not refresh token for {account.email}: {e.reason}",
                    email=account.email,
                    operation="token_refresh",
                ) from e
            if self.token_storage.retrieve(account.email) is None:
                raise ReauthRequiredError(account.email, e.reason) from e
            raise self.mark_reauth_required(account.email, e.reason) from e

        return self._build_client(account.email, token.access_token)
