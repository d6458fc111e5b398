"""Unit tests for AccountManager.

Tests cover the account registry, token cleanup on removal, and the
escalation from token validation to authenticated clients or errors.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gworkspace_accounts.accounts.account_store import AccountStore
from gworkspace_accounts.accounts.client import AuthenticatedClient
from gworkspace_accounts.accounts.manager import AccountManager
from gworkspace_accounts.auth.models import OAuthToken, TokenMetadata, ValidationResult
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    DuplicateAccountError,
    ReauthRequiredError,
    RefreshFailedError,
    ServiceCallError,
)

ALICE = "alice@example.com"
BOB = "bob@example.com"


@pytest.mark.unit
class TestAccountRegistry:
    """Tests for add/list/get/remove."""

    def test_should_add_and_list_accounts_in_order(self, account_manager: AccountManager) -> None:
        account_manager.add_account(BOB, category="personal")
        account_manager.add_account(ALICE, category="work", description="Day job")

        accounts = account_manager.list_accounts()

        assert [a.email for a in accounts] == [BOB, ALICE]
        assert accounts[1].description == "Day job"

    def test_should_reject_duplicate_account(self, account_manager: AccountManager) -> None:
        account_manager.add_account(ALICE)

        with pytest.raises(DuplicateAccountError) as exc_info:
            account_manager.add_account("Alice@Example.com")

        assert exc_info.value.email == ALICE

    def test_should_reject_invalid_email(self, account_manager: AccountManager) -> None:
        with pytest.raises(ValueError):
            account_manager.add_account("not-an-email")

    def test_should_get_account_case_insensitively(self, account_manager: AccountManager) -> None:
        account_manager.add_account(ALICE)
        assert account_manager.get_account("ALICE@example.com").email == ALICE

    def test_should_raise_for_unknown_account(self, account_manager: AccountManager) -> None:
        with pytest.raises(AccountNotFoundError):
            account_manager.get_account(ALICE)

    def test_should_remove_account_and_token(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
    ) -> None:
        """Verify removal deletes the token record along with the account."""
        assert account_manager.remove_account(alice_with_token) is True

        assert account_manager.list_accounts() == []
        assert account_manager.token_storage.retrieve(alice_with_token) is None

    def test_should_treat_removing_unknown_account_as_noop(
        self, account_manager: AccountManager
    ) -> None:
        account_manager.add_account(BOB)

        assert account_manager.remove_account(ALICE) is False
        assert account_manager.remove_account("garbage") is False
        assert [a.email for a in account_manager.list_accounts()] == [BOB]

    def test_should_prune_orphan_tokens_on_startup(
        self,
        account_store: AccountStore,
        token_manager: TokenManager,
        valid_token: OAuthToken,
    ) -> None:
        """Verify a token without an account entry is deleted when the manager starts."""
        token_manager.storage.store(BOB, valid_token, TokenMetadata(service_name=BOB))

        AccountManager(account_store, token_manager, http_client=MagicMock())

        assert token_manager.storage.retrieve(BOB) is None

    def test_should_keep_tokens_when_accounts_file_is_corrupt(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
        account_store: AccountStore,
        token_manager: TokenManager,
    ) -> None:
        """Verify a damaged accounts.json never turns every token into an orphan."""
        account_store.accounts_path.write_text('{"accounts": [{"email": "alice@example.com",}]}')

        AccountManager(account_store, token_manager, http_client=MagicMock())

        assert token_manager.storage.retrieve(alice_with_token) is not None

    def test_should_refuse_changes_when_accounts_file_is_corrupt(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
        account_store: AccountStore,
    ) -> None:
        """Verify add and remove leave a damaged accounts.json and its tokens alone."""
        corrupt = '{"accounts": [{"email": "alice@example.com",}]}'
        account_store.accounts_path.write_text(corrupt)

        with pytest.raises(ConfigurationError, match="Could not read"):
            account_manager.add_account(BOB)
        with pytest.raises(ConfigurationError):
            account_manager.remove_account(alice_with_token)

        assert account_store.accounts_path.read_text() == corrupt
        assert account_manager.token_storage.retrieve(alice_with_token) is not None

    def test_should_report_token_validity(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
        expired_token: OAuthToken,
    ) -> None:
        assert account_manager.has_valid_token(alice_with_token) is True

        account_manager.add_account(BOB)
        assert account_manager.has_valid_token(BOB) is False

        account_manager.token_storage.store(BOB, expired_token, TokenMetadata(service_name=BOB))
        assert account_manager.has_valid_token(BOB) is False


@pytest.mark.unit
class TestGetAuthClient:
    """Tests for AccountManager.get_auth_client()."""

    @pytest.mark.asyncio
    async def test_should_return_client_for_valid_token(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
        valid_token: OAuthToken,
    ) -> None:
        client = await account_manager.get_auth_client(alice_with_token)

        assert isinstance(client, AuthenticatedClient)
        assert client.email == ALICE
        assert client.access_token == valid_token.access_token

    @pytest.mark.asyncio
    async def test_should_raise_not_found_for_unknown_account(
        self, account_manager: AccountManager
    ) -> None:
        with pytest.raises(AccountNotFoundError):
            await account_manager.get_auth_client(ALICE)

    @pytest.mark.asyncio
    async def test_should_require_reauth_when_never_authorized(
        self, account_manager: AccountManager
    ) -> None:
        account_manager.add_account(ALICE)

        with pytest.raises(ReauthRequiredError) as exc_info:
            await account_manager.get_auth_client(ALICE)

        assert exc_info.value.email == ALICE
        assert exc_info.value.to_dict()["code"] == "REAUTH_REQUIRED"

    @pytest.mark.asyncio
    async def test_should_clear_token_when_refresh_rejected(
        self,
        account_manager: AccountManager,
        expired_token: OAuthToken,
    ) -> None:
        """Verify a dead refresh token is cleared and the account kept."""
        account_manager.add_account(ALICE)
        account_manager.token_storage.store(
            ALICE, expired_token, TokenMetadata(service_name=ALICE)
        )
        rejected = ValidationResult(
            valid=False, token=expired_token, reason="provider rejected refresh: invalid_grant"
        )

        with patch.object(
            account_manager.token_manager, "validate_token", AsyncMock(return_value=rejected)
        ):
            with pytest.raises(ReauthRequiredError, match="invalid_grant"):
                await account_manager.get_auth_client(ALICE)

        assert account_manager.token_storage.retrieve(ALICE) is None
        assert account_manager.get_account(ALICE).email == ALICE

    @pytest.mark.asyncio
    async def test_should_raise_service_error_for_transient_failure(
        self,
        account_manager: AccountManager,
        expired_token: OAuthToken,
    ) -> None:
        """Verify a network failure during refresh never asks for re-auth."""
        account_manager.add_account(ALICE)
        account_manager.token_storage.store(
            ALICE, expired_token, TokenMetadata(service_name=ALICE)
        )
        transient = ValidationResult(
            valid=False, token=expired_token, reason="refresh timed out", transient=True
        )

        with patch.object(
            account_manager.token_manager, "validate_token", AsyncMock(return_value=transient)
        ):
            with pytest.raises(ServiceCallError) as exc_info:
                await account_manager.get_auth_client(ALICE)

        assert exc_info.value.operation == "token_refresh"
        assert account_manager.token_storage.retrieve(ALICE) is not None

    @pytest.mark.asyncio
    async def test_should_not_mix_accounts(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
    ) -> None:
        """Verify one account's token is never handed out for another."""
        account_manager.add_account(BOB)
        bob_token = OAuthToken(
            access_token="bob_access_token",
            refresh_token="bob_refresh",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        account_manager.token_storage.store(BOB, bob_token, TokenMetadata(service_name=BOB))

        alice_client = await account_manager.get_auth_client(ALICE)
        bob_client = await account_manager.get_auth_client(BOB)

        assert alice_client.access_token != bob_client.access_token
        assert bob_client.access_token == "bob_access_token"


@pytest.mark.unit
class TestRefreshAuthClient:
    """Tests for AccountManager.refresh_auth_client()."""

    @pytest.mark.asyncio
    async def test_should_return_client_with_new_token(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
        valid_token: OAuthToken,
    ) -> None:
        refreshed = valid_token.model_copy(update={"access_token": "refreshed_access"})

        with patch.object(
            account_manager.token_manager, "refresh_token", AsyncMock(return_value=refreshed)
        ):
            client = await account_manager.refresh_auth_client(alice_with_token)

        assert client.access_token == "refreshed_access"

    @pytest.mark.asyncio
    async def test_should_mark_reauth_on_rejection(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
    ) -> None:
        with patch.object(
            account_manager.token_manager,
            "refresh_token",
            AsyncMock(side_effect=RefreshFailedError(ALICE, "invalid_grant")),
        ):
            with pytest.raises(ReauthRequiredError):
                await account_manager.refresh_auth_client(alice_with_token)

        assert account_manager.token_storage.retrieve(ALICE) is None

    @pytest.mark.asyncio
    async def test_should_raise_service_error_on_transient_failure(
        self,
        account_manager: AccountManager,
        alice_with_token: str,
    ) -> None:
        with patch.object(
            account_manager.token_manager,
            "refresh_token",
            AsyncMock(side_effect=RefreshFailedError(ALICE, "network error", transient=True)),
        ):
            with pytest.raises(ServiceCallError):
                await account_manager.refresh_auth_client(alice_with_token)

        assert account_manager.token_storage.retrieve(ALICE) is not None


@pytest.mark.unit
class TestRemovalDuringRefresh:
    """Tests for account removal racing an in-flight token refresh."""

    @pytest.mark.asyncio
    async def test_should_not_restore_token_after_account_removed(
        self,
        account_manager: AccountManager,
        expired_token: OAuthToken,
    ) -> None:
        """Verify a refresh that finishes after removal leaves no orphan token."""
        account_manager.add_account(ALICE)
        account_manager.token_storage.store(
            ALICE, expired_token, TokenMetadata(service_name=ALICE)
        )
        credentials = MagicMock()
        credentials.token = None
        credentials.refresh_token = None
        credentials.expiry = None

        def slow_refresh(request: object) -> None:
            time.sleep(0.2)
            credentials.token = "late_access_token"

        credentials.refresh.side_effect = slow_refresh

        async def remove_during_refresh() -> bool:
            await asyncio.sleep(0.05)
            return account_manager.remove_account(ALICE)

        with patch.object(
            TokenManager, "_token_to_credentials", return_value=credentials
        ), patch("gworkspace_accounts.auth.token_manager.Request"):
            auth_result, removed = await asyncio.gather(
                account_manager.get_auth_client(ALICE),
                remove_during_refresh(),
                return_exceptions=True,
            )

        assert removed is True
        assert isinstance(auth_result, ReauthRequiredError)
        assert account_manager.list_accounts() == []
        assert account_manager.token_storage.list_services() == []


@pytest.mark.unit
class TestClose:
    @pytest.mark.asyncio
    async def test_should_close_http_client(
        self, account_manager: AccountManager, mock_http_client: MagicMock
    ) -> None:
        await account_manager.close()
        mock_http_client.aclose.assert_awaited_once()
