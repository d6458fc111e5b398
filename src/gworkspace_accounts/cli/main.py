"""Command-line interface for gworkspace-accounts-mcp."""

import asyncio
import sys
import webbrowser

import click

from gworkspace_accounts.__version__ import __version__
from gworkspace_accounts.auth.models import TokenStatus
from gworkspace_accounts.components import WorkspaceComponents, build_components
from gworkspace_accounts.exceptions import AccountNotFoundError, WorkspaceAuthError


def _components() -> WorkspaceComponents:
    try:
        return build_components()
    except WorkspaceAuthError as e:
        click.echo(f"❌ Error: {e.message}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Multi-account Google Workspace MCP Server.

    Manage the Google accounts the MCP server may act as, authorize them,
    and run the server. Each Gmail and Calendar tool takes the email of the
    account to use.
    """
    pass


@main.command("list-accounts")
def list_accounts() -> None:
    """List configured accounts and their token status."""
    components = _components()
    manager = components.account_manager
    accounts = manager.list_accounts()

    if not accounts:
        click.echo("No accounts configured.")
        click.echo("Run 'gworkspace-accounts add-account EMAIL' to add one.")
        return

    for account in accounts:
        marker = "✓" if manager.has_valid_token(account.email) else "✗"
        line = f"  {marker} {account.email}"
        if account.category:
            line += f" [{account.category}]"
        if account.description:
            line += f" - {account.description}"
        click.echo(line)


@main.command("add-account")
@click.argument("email")
@click.option("--category", default="", help="Account category, e.g. work or personal")
@click.option("--description", default="", help="Free-text description")
def add_account(email: str, category: str, description: str) -> None:
    """Add an account without authorizing it."""
    components = _components()
    try:
        account = components.account_manager.add_account(email, category, description)
    except ValueError as e:
        click.echo(f"❌ Error: {e}")
        sys.exit(1)
    except WorkspaceAuthError as e:
        click.echo(f"❌ Error: {e.message}")
        sys.exit(1)

    click.echo(f"✓ Added {account.email}")
    click.echo(f"Run 'gworkspace-accounts authenticate {account.email}' to authorize it.")


@main.command("remove-account")
@click.argument("email")
def remove_account(email: str) -> None:
    """Remove an account and its stored token."""
    components = _components()
    try:
        removed = components.account_manager.remove_account(email)
    except WorkspaceAuthError as e:
        click.echo(f"❌ Error: {e.message}")
        sys.exit(1)

    if removed:
        click.echo(f"✓ Removed {email}")
    else:
        click.echo(f"No account named {email}; nothing to remove.")


@main.command()
@click.argument("email")
@click.option("--no-browser", is_flag=True, help="Print the URL without opening a browser")
def authenticate(email: str, no_browser: bool) -> None:
    """Authorize an account through Google's consent page.

    This will:
    1. Add the account if it is not configured yet
    2. Print the authorization URL and open it in a browser
    3. Prompt for the code from the redirect URL and store the token
    """
    components = _components()
    manager = components.account_manager

    try:
        try:
            account = manager.get_account(email)
        except AccountNotFoundError:
            account = manager.add_account(email)
            click.echo(f"✓ Added {account.email}")

        auth_url = components.oauth_manager.get_authorization_url(account.email)
    except (ValueError, WorkspaceAuthError) as e:
        click.echo(f"❌ Error: {e}")
        sys.exit(1)

    click.echo(f"Sign in as {account.email} at:")
    click.echo("")
    click.echo(f"  {auth_url}")
    click.echo("")
    if not no_browser:
        click.echo("Browser will open for Google consent...")
        webbrowser.open(auth_url)

    code = click.prompt("Paste the 'code' parameter from the redirect URL")

    try:
        asyncio.run(components.oauth_manager.exchange_code(account.email, code))
    except WorkspaceAuthError as e:
        click.echo(f"❌ Authentication failed: {e.message}")
        sys.exit(1)

    click.echo("✓ Authentication successful!")
    click.echo(f"Token stored at: {components.config.tokens_path}")


@main.command()
def mcp() -> None:
    """Start the MCP server over stdio.

    This command is typically invoked by an MCP client such as Claude Desktop.
    """
    from gworkspace_accounts.server import main as server_main

    try:
        click.echo("Starting gworkspace-accounts MCP server...", err=True)
        server_main()
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


@main.command()
def doctor() -> None:
    """Check configuration and per-account token status.

    Verifies:
    1. OAuth client credentials configured
    2. Account and token file locations
    3. Token status of every account
    """
    components = _components()
    config = components.config
    storage = components.account_manager.token_storage

    click.echo("gworkspace-accounts status:")
    click.echo("")

    click.echo("Configuration:")
    click.echo(f"  Accounts file: {config.accounts_path}")
    click.echo(f"  Token file: {config.tokens_path}")
    if components.client_config is None:
        click.echo("  ❌ OAuth client credentials not configured")
    else:
        click.echo("  ✓ OAuth client credentials configured")
    click.echo("")

    accounts = components.account_manager.list_accounts()
    click.echo(f"Accounts ({len(accounts)}):")
    for account in accounts:
        status = storage.get_status(account.email, buffer_seconds=config.expiry_margin_seconds)
        if status == TokenStatus.VALID:
            click.echo(f"  ✓ {account.email}: authenticated")
        elif status == TokenStatus.EXPIRED:
            click.echo(f"  ⚠️  {account.email}: token expired (refreshes on use)")
        elif status == TokenStatus.INVALID:
            click.echo(f"  ❌ {account.email}: token record corrupted")
        else:
            click.echo(f"  ❌ {account.email}: not authenticated")
    click.echo("")

    if components.client_config is None:
        click.echo("Set GWORKSPACE_OAUTH_CLIENT_FILE, or GOOGLE_OAUTH_CLIENT_ID and")
        click.echo("GOOGLE_OAUTH_CLIENT_SECRET, then run this command again.")
        sys.exit(1)

    click.echo("✓ Ready to use!")


if __name__ == "__main__":
    main()
