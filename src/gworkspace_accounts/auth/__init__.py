"""OAuth token handling for Google Workspace accounts.

This package provides per-account token storage, validation and refresh,
and the authorization-code flow used to add new accounts.

Quick Start:
    ```python
    from gworkspace_accounts.auth import TokenManager, TokenStorage

    storage = TokenStorage(token_path)
    manager = TokenManager(storage, client_config)

    result = await manager.validate_token("alice@example.com")
    if result.valid:
        access_token = result.token.access_token
    ```
"""

from gworkspace_accounts.auth.models import (
    OAuthToken,
    StoredToken,
    TokenMetadata,
    TokenStatus,
    ValidationResult,
)
from gworkspace_accounts.auth.oauth_manager import GOOGLE_WORKSPACE_SCOPES, OAuthManager
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.auth.token_storage import TokenStorage

__all__ = [
    "OAuthManager",
    "TokenManager",
    "TokenStorage",
    "OAuthToken",
    "StoredToken",
    "TokenMetadata",
    "TokenStatus",
    "ValidationResult",
    "GOOGLE_WORKSPACE_SCOPES",
]
