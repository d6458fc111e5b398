"""Account registry for gworkspace-accounts-mcp."""

from gworkspace_accounts.accounts.account_store import AccountStore
from gworkspace_accounts.accounts.client import AuthenticatedClient
from gworkspace_accounts.accounts.manager import AccountManager
from gworkspace_accounts.accounts.models import Account, normalize_email

__all__ = [
    "Account",
    "AccountManager",
    "AccountStore",
    "AuthenticatedClient",
    "normalize_email",
]
