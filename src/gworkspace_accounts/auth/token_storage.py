"""JSON-based OAuth token storage, one record per account email.

Storage Location: ./.gworkspace-accounts/tokens.json by default (see
``WorkspaceConfig``). Token material lives in its own file, apart from the
account configuration, so it can be protected or rotated independently.

Tokens are stored without encryption; the directory is 0700 and the file 0600.
"""

import json
import logging
import threading
from pathlib import Path

from gworkspace_accounts.auth.models import (
    OAuthToken,
    StoredToken,
    TokenMetadata,
    TokenStatus,
)
from gworkspace_accounts.utils.files import ensure_private_dir, read_json, write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = Path.cwd() / ".gworkspace-accounts" / "tokens.json"


class TokenStorage:
    """Persists one ``StoredToken`` per account email.

    Pure data access: no refresh or validation decisions are made here.
    Every mutation rewrites the whole file through a temp-file replace while
    holding a lock, so a write for one account never clobbers another.

    Attributes:
        token_path: Path to the tokens.json file.

    Example:
        ```python
        storage = TokenStorage(Path("/tmp/tokens.json"))
        storage.store("alice@example.com", token, TokenMetadata(service_name="alice@example.com"))
        stored = storage.retrieve("alice@example.com")
        ```
    """

    _lock = threading.RLock()

    def __init__(self, token_path: Path | None = None) -> None:
        """Initialize token storage.

        Args:
            token_path: Custom path for tokens.json. Defaults to
                ./.gworkspace-accounts/tokens.json.
        """
        self.token_path = token_path or DEFAULT_TOKEN_PATH
        ensure_private_dir(self.token_path.parent)

    def _load_tokens(self) -> dict[str, dict]:
        return read_json(self.token_path)

    def _save_tokens(self, tokens: dict[str, dict]) -> None:
        write_json_atomic(self.token_path, tokens, mode=0o600)

    def store(self, email: str, token: OAuthToken, metadata: TokenMetadata) -> None:
        """Store or replace the token for an account.

        Args:
            email: Account email used as the record key.
            token: OAuth token data to store.
            metadata: Token metadata.
        """
        stored_token = StoredToken(version=1, metadata=metadata, token=token)

        with self._lock:
            tokens = self._load_tokens()
            tokens[email] = json.loads(stored_token.model_dump_json())
            self._save_tokens(tokens)

    def replace(self, email: str, token: OAuthToken, metadata: TokenMetadata) -> bool:
        """Replace the token for an account only if a record still exists.

        Returns:
            True if the record was replaced, False if it had been deleted.
        """
        stored_token = StoredToken(version=1, metadata=metadata, token=token)

        with self._lock:
            tokens = self._load_tokens()
            if email not in tokens:
                return False
            tokens[email] = json.loads(stored_token.model_dump_json())
            self._save_tokens(tokens)
            return True

    def retrieve(self, email: str) -> StoredToken | None:
        """Retrieve the token record for an account.

        Returns:
            StoredToken if present and parseable, None otherwise.
        """
        tokens = self._load_tokens()

        if email not in tokens:
            return None

        try:
            return StoredToken.model_validate(tokens[email])
        except (ValueError, KeyError):
            logger.warning(f"Token record for {email} is corrupted")
            return None

    def delete(self, email: str) -> bool:
        """Delete the token record for an account.

        Returns:
            True if a record was deleted, False if none existed.
        """
        with self._lock:
            tokens = self._load_tokens()

            if email not in tokens:
                return False

            del tokens[email]
            self._save_tokens(tokens)
            return True

    def list_services(self) -> list[str]:
        """List every account email that has a token record."""
        return sorted(self._load_tokens().keys())

    def get_status(self, email: str, buffer_seconds: int = 60) -> TokenStatus:
        """Get the status of the stored token for an account.

        Args:
            email: Account email.
            buffer_seconds: Tokens expiring within this window count as expired.
        """
        stored = self.retrieve(email)

        if stored is None:
            if email in self._load_tokens():
                return TokenStatus.INVALID
            return TokenStatus.MISSING

        if stored.token.is_expired(buffer_seconds=buffer_seconds):
            return TokenStatus.EXPIRED

        return TokenStatus.VALID
