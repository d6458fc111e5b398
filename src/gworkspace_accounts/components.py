"""Wiring of stores, managers, and services from a ``WorkspaceConfig``.

Both the MCP server and the CLI start from ``build_components`` so they
share one account store, one token store, and one retry policy.
"""

import logging
from dataclasses import dataclass

from gworkspace_accounts.accounts.account_store import AccountStore
from gworkspace_accounts.accounts.manager import AccountManager
from gworkspace_accounts.auth.oauth_manager import OAuthManager
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.auth.token_storage import TokenStorage
from gworkspace_accounts.config import OAuthClientConfig, WorkspaceConfig
from gworkspace_accounts.exceptions import ConfigurationError
from gworkspace_accounts.services.calendar import CalendarService
from gworkspace_accounts.services.call_wrapper import ServiceCallWrapper
from gworkspace_accounts.services.gmail import GmailService

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceComponents:
    config: WorkspaceConfig
    client_config: OAuthClientConfig | None
    account_manager: AccountManager
    oauth_manager: OAuthManager
    wrapper: ServiceCallWrapper
    gmail: GmailService
    calendar: CalendarService

    async def close(self) -> None:
        await self.account_manager.close()


def resolve_client_config(config: WorkspaceConfig) -> OAuthClientConfig | None:
    """Load OAuth client credentials, or None when none are configured.

    Without credentials, stored tokens that are still valid keep working;
    refresh and authorization fail with a descriptive error.
    """
    try:
        return config.load_client_config()
    except ConfigurationError as e:
        logger.warning(f"OAuth client not configured: {e}")
        return None


def build_components(config: WorkspaceConfig | None = None) -> WorkspaceComponents:
    """Build every long-lived object from configuration.

    Args:
        config: Configuration to use. Defaults to ``WorkspaceConfig.from_env()``.
    """
    config = config or WorkspaceConfig.from_env()
    client_config = resolve_client_config(config)

    storage = TokenStorage(config.tokens_path)
    token_manager = TokenManager(
        storage,
        client_config,
        expiry_margin_seconds=config.expiry_margin_seconds,
        refresh_timeout=config.request_timeout,
    )
    account_manager = AccountManager(
        AccountStore(config.accounts_path),
        token_manager,
        request_timeout=config.request_timeout,
    )
    oauth_manager = OAuthManager(
        storage,
        client_config,
        redirect_uri=config.redirect_uri,
        account_exists=account_manager.has_account,
        timeout=config.request_timeout,
    )
    wrapper = ServiceCallWrapper(account_manager, timeout=config.request_timeout)

    return WorkspaceComponents(
        config=config,
        client_config=client_config,
        account_manager=account_manager,
        oauth_manager=oauth_manager,
        wrapper=wrapper,
        gmail=GmailService(wrapper),
        calendar=CalendarService(wrapper),
    )
