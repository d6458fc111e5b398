"""Account configuration persistence.

Storage Location: ./.gworkspace-accounts/accounts.json by default.

File format:
    {"accounts": [{"email": "...", "category": "...", "description": "..."}]}

List order is insertion order and is preserved across rewrites.
"""

import logging
import threading
from pathlib import Path

from gworkspace_accounts.accounts.models import Account
from gworkspace_accounts.utils.files import ensure_private_dir, read_json, write_json_atomic

logger = logging.getLogger(__name__)


class AccountStore:
    """JSON file holding the ordered list of configured accounts.

    Attributes:
        accounts_path: Path to accounts.json.
    """

    _lock = threading.RLock()

    def __init__(self, accounts_path: Path) -> None:
        self.accounts_path = accounts_path
        ensure_private_dir(self.accounts_path.parent)

    def load(self, strict: bool = False) -> list[Account]:
        """Load accounts in insertion order, skipping malformed entries.

        Args:
            strict: Raise if accounts.json exists but cannot be decoded,
                instead of treating it as empty.

        Raises:
            ConfigurationError: If ``strict`` is set and the file is damaged.
        """
        data = read_json(self.accounts_path, strict=strict)
        accounts: list[Account] = []
        for entry in data.get("accounts", []):
            try:
                accounts.append(Account.model_validate(entry))
            except ValueError as e:
                logger.warning(f"Skipping malformed account entry in {self.accounts_path}: {e}")
        return accounts

    def save(self, accounts: list[Account]) -> None:
        """Replace the stored account list."""
        with self._lock:
            write_json_atomic(
                self.accounts_path,
                {"accounts": [a.model_dump() for a in accounts]},
                mode=0o600,
            )

    def append(self, account: Account) -> bool:
        """Append an account unless its email is already present.

        Returns:
            True if appended, False if the email already existed.

        Raises:
            ConfigurationError: If accounts.json exists but cannot be decoded.
        """
        with self._lock:
            accounts = self.load(strict=True)
            if any(a.email == account.email for a in accounts):
                return False
            accounts.append(account)
            self.save(accounts)
            return True

    def remove(self, email: str) -> bool:
        """Remove the account with ``email``.

        Returns:
            True if an account was removed.

        Raises:
            ConfigurationError: If accounts.json exists but cannot be decoded.
        """
        with self._lock:
            accounts = self.load(strict=True)
            remaining = [a for a in accounts if a.email != email]
            if len(remaining) == len(accounts):
                return False
            self.save(remaining)
            return True
