"""CLI tests for gworkspace-accounts commands."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from gworkspace_accounts.auth.models import OAuthToken, TokenMetadata
from gworkspace_accounts.auth.oauth_manager import OAuthManager
from gworkspace_accounts.auth.token_storage import TokenStorage
from gworkspace_accounts.cli.main import main
from gworkspace_accounts.exceptions import AuthorizationError

ALICE = "alice@example.com"


@pytest.fixture
def accounts_dir(tmp_path: Path) -> Path:
    return tmp_path / ".gworkspace-accounts"


@pytest.fixture
def env(accounts_dir: Path) -> dict[str, str | None]:
    """Environment pointing the CLI at a temporary directory."""
    return {
        "GWORKSPACE_ACCOUNTS_DIR": str(accounts_dir),
        "GWORKSPACE_OAUTH_CLIENT_FILE": None,
        "GOOGLE_OAUTH_CLIENT_ID": "test_id",
        "GOOGLE_OAUTH_CLIENT_SECRET": "test_secret",  # pragma: allowlist secret
    }


@pytest.mark.unit
class TestAccountCommands:
    """Tests for list-accounts, add-account, and remove-account."""

    def test_should_list_no_accounts(self, cli_runner: CliRunner, env: dict) -> None:
        result = cli_runner.invoke(main, ["list-accounts"], env=env)

        assert result.exit_code == 0
        assert "No accounts configured" in result.output

    def test_should_add_and_list_account(self, cli_runner: CliRunner, env: dict) -> None:
        added = cli_runner.invoke(
            main,
            ["add-account", "Alice@Example.com", "--category", "work", "--description", "Job"],
            env=env,
        )
        listed = cli_runner.invoke(main, ["list-accounts"], env=env)

        assert added.exit_code == 0
        assert f"Added {ALICE}" in added.output
        assert f"✗ {ALICE} [work] - Job" in listed.output

    def test_should_fail_on_duplicate_account(self, cli_runner: CliRunner, env: dict) -> None:
        cli_runner.invoke(main, ["add-account", ALICE], env=env)

        result = cli_runner.invoke(main, ["add-account", ALICE], env=env)

        assert result.exit_code == 1
        assert "Account already exists" in result.output

    def test_should_fail_on_invalid_email(self, cli_runner: CliRunner, env: dict) -> None:
        result = cli_runner.invoke(main, ["add-account", "nope"], env=env)

        assert result.exit_code == 1
        assert "Invalid email address" in result.output

    def test_should_remove_account_and_token(
        self, cli_runner: CliRunner, env: dict, accounts_dir: Path
    ) -> None:
        cli_runner.invoke(main, ["add-account", ALICE], env=env)
        storage = TokenStorage(accounts_dir / "tokens.json")
        storage.store(
            ALICE,
            OAuthToken(
                access_token="a",
                refresh_token="r",
                expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            ),
            TokenMetadata(service_name=ALICE),
        )

        removed = cli_runner.invoke(main, ["remove-account", ALICE], env=env)
        again = cli_runner.invoke(main, ["remove-account", ALICE], env=env)

        assert f"Removed {ALICE}" in removed.output
        assert "nothing to remove" in again.output
        assert again.exit_code == 0
        assert storage.retrieve(ALICE) is None

    def test_should_refuse_changes_to_corrupt_accounts_file(
        self, cli_runner: CliRunner, env: dict, accounts_dir: Path
    ) -> None:
        cli_runner.invoke(main, ["add-account", ALICE], env=env)
        accounts_file = accounts_dir / "accounts.json"
        accounts_file.write_text('{"accounts": [{"email": "alice@example.com",}]}')

        added = cli_runner.invoke(main, ["add-account", "bob@example.com"], env=env)
        removed = cli_runner.invoke(main, ["remove-account", ALICE], env=env)

        assert added.exit_code == 1
        assert removed.exit_code == 1
        assert "Could not read" in removed.output
        assert "bob@example.com" not in accounts_file.read_text()


@pytest.mark.unit
class TestAuthenticateCommand:
    """Tests for the authenticate command."""

    def test_should_open_browser_and_exchange_code(
        self, cli_runner: CliRunner, env: dict
    ) -> None:
        exchange = AsyncMock()

        with patch("gworkspace_accounts.cli.main.webbrowser.open") as mock_open, patch.object(
            OAuthManager, "exchange_code", exchange
        ):
            result = cli_runner.invoke(main, ["authenticate", ALICE], input="code-123\n", env=env)

        assert result.exit_code == 0, result.output
        assert "Browser will open" in result.output
        assert "https://accounts.google.com/" in result.output
        assert "Authentication successful" in result.output
        mock_open.assert_called_once()
        exchange.assert_awaited_once_with(ALICE, "code-123")

    def test_should_skip_browser_when_asked(self, cli_runner: CliRunner, env: dict) -> None:
        with patch("gworkspace_accounts.cli.main.webbrowser.open") as mock_open, patch.object(
            OAuthManager, "exchange_code", AsyncMock()
        ):
            result = cli_runner.invoke(
                main, ["authenticate", ALICE, "--no-browser"], input="code-123\n", env=env
            )

        assert result.exit_code == 0
        mock_open.assert_not_called()

    def test_should_report_failed_exchange(self, cli_runner: CliRunner, env: dict) -> None:
        failure = AsyncMock(side_effect=AuthorizationError("invalid_grant", email=ALICE))

        with patch("gworkspace_accounts.cli.main.webbrowser.open"), patch.object(
            OAuthManager, "exchange_code", failure
        ):
            result = cli_runner.invoke(main, ["authenticate", ALICE], input="bad\n", env=env)

        assert result.exit_code == 1
        assert "Authentication failed: invalid_grant" in result.output

    def test_should_show_error_without_credentials(
        self, cli_runner: CliRunner, env: dict
    ) -> None:
        env = {**env, "GOOGLE_OAUTH_CLIENT_ID": None, "GOOGLE_OAUTH_CLIENT_SECRET": None}

        result = cli_runner.invoke(main, ["authenticate", ALICE], env=env)

        assert result.exit_code == 1
        assert "OAuth client credentials required" in result.output


@pytest.mark.unit
class TestDoctorCommand:
    """Tests for the doctor command."""

    def test_should_report_ready(self, cli_runner: CliRunner, env: dict) -> None:
        cli_runner.invoke(main, ["add-account", ALICE], env=env)

        result = cli_runner.invoke(main, ["doctor"], env=env)

        assert result.exit_code == 0
        assert "OAuth client credentials configured" in result.output
        assert f"{ALICE}: not authenticated" in result.output
        assert "Ready to use" in result.output

    def test_should_fail_without_credentials(self, cli_runner: CliRunner, env: dict) -> None:
        env = {**env, "GOOGLE_OAUTH_CLIENT_ID": None, "GOOGLE_OAUTH_CLIENT_SECRET": None}

        result = cli_runner.invoke(main, ["doctor"], env=env)

        assert result.exit_code == 1
        assert "not configured" in result.output


@pytest.mark.unit
class TestVersion:
    def test_should_print_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["--version"])
        assert result.exit_code == 0
