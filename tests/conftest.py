"""Shared pytest fixtures for gworkspace-accounts-mcp tests.

This module provides reusable fixtures for token and account storage,
the token and account managers, and mocked Google HTTP responses.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from gworkspace_accounts.accounts.account_store import AccountStore
from gworkspace_accounts.accounts.manager import AccountManager
from gworkspace_accounts.auth.models import OAuthToken, StoredToken, TokenMetadata
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.auth.token_storage import TokenStorage
from gworkspace_accounts.config import OAuthClientConfig

ALICE = "alice@example.com"
BOB = "bob@example.com"

# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def valid_token() -> OAuthToken:
    """Create a valid, non-expired OAuth token."""
    return OAuthToken(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=[
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/gmail.modify",
        ],
        token_type="Bearer",
    )


@pytest.fixture
def expired_token() -> OAuthToken:
    """Create an expired OAuth token that can still be refreshed."""
    return OAuthToken(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        scopes=["https://www.googleapis.com/auth/calendar"],
        token_type="Bearer",
    )


@pytest.fixture
def token_metadata() -> TokenMetadata:
    """Create token metadata for testing."""
    return TokenMetadata(
        service_name=ALICE,
        provider="google",
        created_at=datetime.now(timezone.utc) - timedelta(days=1),
    )


@pytest.fixture
def stored_token(valid_token: OAuthToken, token_metadata: TokenMetadata) -> StoredToken:
    """Create a complete stored token for testing."""
    return StoredToken(version=1, metadata=token_metadata, token=valid_token)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def temp_accounts_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for account and token files."""
    accounts_dir = tmp_path / ".gworkspace-accounts"
    accounts_dir.mkdir(parents=True, mode=0o700)
    return accounts_dir


@pytest.fixture
def temp_token_path(temp_accounts_dir: Path) -> Path:
    """Get the path for a temporary tokens.json file."""
    return temp_accounts_dir / "tokens.json"


@pytest.fixture
def token_storage(temp_token_path: Path) -> TokenStorage:
    """Create a TokenStorage instance with temporary storage."""
    return TokenStorage(token_path=temp_token_path)


@pytest.fixture
def account_store(temp_accounts_dir: Path) -> AccountStore:
    """Create an AccountStore instance with temporary storage."""
    return AccountStore(temp_accounts_dir / "accounts.json")


# =============================================================================
# Manager Fixtures
# =============================================================================


@pytest.fixture
def client_config() -> OAuthClientConfig:
    """Create OAuth client credentials for testing."""
    return OAuthClientConfig(
        client_id="test_client_id",
        client_secret="test_client_secret",  # pragma: allowlist secret
    )


@pytest.fixture
def token_manager(token_storage: TokenStorage, client_config: OAuthClientConfig) -> TokenManager:
    """Create a TokenManager with the default 300 second margin."""
    return TokenManager(token_storage, client_config, refresh_timeout=5.0)


@pytest.fixture
def mock_http_client() -> MagicMock:
    """Create a mock shared httpx.AsyncClient.

    Tests set ``mock_http_client.request`` to an AsyncMock or coroutine.
    """
    client = MagicMock(spec=httpx.AsyncClient)
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def account_manager(
    account_store: AccountStore,
    token_manager: TokenManager,
    mock_http_client: MagicMock,
) -> AccountManager:
    """Create an AccountManager backed by temporary stores and a mock HTTP client."""
    return AccountManager(account_store, token_manager, http_client=mock_http_client)


@pytest.fixture
def alice_with_token(
    account_manager: AccountManager,
    valid_token: OAuthToken,
    token_metadata: TokenMetadata,
) -> str:
    """Register alice@example.com with a valid stored token."""
    account_manager.add_account(ALICE, category="work")
    account_manager.token_storage.store(ALICE, valid_token, token_metadata)
    return ALICE


# =============================================================================
# Mock Google Credentials
# =============================================================================


@pytest.fixture
def mock_google_credentials() -> MagicMock:
    """Create a mock Google OAuth2 Credentials object after a successful refresh."""
    mock_creds = MagicMock()
    mock_creds.token = "mock_access_token"
    mock_creds.refresh_token = "mock_refresh_token"
    mock_creds.expiry = datetime.now(timezone.utc) + timedelta(hours=1)
    mock_creds.expired = False
    mock_creds.valid = True
    mock_creds.scopes = ["https://www.googleapis.com/auth/calendar"]
    return mock_creds


# =============================================================================
# HTTP Response Helpers
# =============================================================================


def _create_mock_response(json_data: dict[str, Any] | None, status_code: int = 200) -> MagicMock:
    mock_response = MagicMock(spec=httpx.Response)
    mock_response.status_code = status_code
    mock_response.json.return_value = json_data or {}
    mock_response.content = b"" if json_data is None else b"{}"
    mock_response.text = "" if status_code < 400 else f"error {status_code}"

    if status_code >= 400:
        request = httpx.Request("GET", "https://www.googleapis.com/test")
        mock_response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError(
                f"HTTP {status_code}", request=request, response=mock_response
            )
        )
    else:
        mock_response.raise_for_status = MagicMock()
    return mock_response


@pytest.fixture
def create_mock_response() -> Callable[..., MagicMock]:
    """Factory for mock httpx Response objects.

    ``create_mock_response({"id": "1"})`` succeeds; a status code of 400 or
    more makes ``raise_for_status`` raise ``httpx.HTTPStatusError``.
    """
    return _create_mock_response


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
