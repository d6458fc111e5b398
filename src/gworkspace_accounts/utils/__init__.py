"""Filesystem helpers shared by the account and token stores."""

from gworkspace_accounts.utils.files import ensure_private_dir, read_json, write_json_atomic

__all__ = ["ensure_private_dir", "read_json", "write_json_atomic"]
