"""Runtime configuration for gworkspace-accounts-mcp.

Environment Variables:
    GWORKSPACE_ACCOUNTS_DIR: Directory for account and token files
        (default: ./.gworkspace-accounts)
    GWORKSPACE_ACCOUNTS_FILE: Account configuration file (default: <dir>/accounts.json)
    GWORKSPACE_TOKENS_FILE: Token storage file (default: <dir>/tokens.json)
    GWORKSPACE_OAUTH_CLIENT_FILE: Google client-secrets JSON (optional)
    GOOGLE_OAUTH_CLIENT_ID: Google OAuth client ID (used when no client file is set)
    GOOGLE_OAUTH_CLIENT_SECRET: Google OAuth client secret
    GOOGLE_OAUTH_REDIRECT_URI: Redirect URI (default: http://127.0.0.1:8789/callback)
    GWORKSPACE_TOKEN_EXPIRY_MARGIN: Seconds before expiry a token counts as expired (default: 300)
    GWORKSPACE_REQUEST_TIMEOUT: Timeout in seconds for API and refresh calls (default: 30)
    GWORKSPACE_LOG_LEVEL: Logging level (default: INFO)
"""

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field

from gworkspace_accounts.exceptions import ConfigurationError

DEFAULT_ACCOUNTS_DIR = ".gworkspace-accounts"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8789/callback"
DEFAULT_EXPIRY_MARGIN_SECONDS = 300
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v3/userinfo"


class OAuthClientConfig(BaseModel):
    """OAuth client credentials registered with Google Cloud."""

    client_id: str
    client_secret: str
    auth_uri: str = GOOGLE_AUTH_URI
    token_uri: str = GOOGLE_TOKEN_URI

    def to_flow_config(self, redirect_uri: str) -> dict:
        """Build the client config dict expected by google-auth-oauthlib."""
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
                "redirect_uris": [redirect_uri],
            }
        }


class WorkspaceConfig(BaseModel):
    """Locations of backing stores and tuning knobs, read once at startup."""

    accounts_dir: Path = Field(default_factory=lambda: Path.cwd() / DEFAULT_ACCOUNTS_DIR)
    accounts_file: Path | None = None
    tokens_file: Path | None = None
    oauth_client_file: Path | None = None
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    expiry_margin_seconds: int = Field(default=DEFAULT_EXPIRY_MARGIN_SECONDS, ge=0)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)
    log_level: str = "INFO"

    @property
    def accounts_path(self) -> Path:
        return self.accounts_file or self.accounts_dir / "accounts.json"

    @property
    def tokens_path(self) -> Path:
        return self.tokens_file or self.accounts_dir / "tokens.json"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "WorkspaceConfig":
        """Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (for tests).
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("GWORKSPACE_ACCOUNTS_DIR"):
            values["accounts_dir"] = Path(env["GWORKSPACE_ACCOUNTS_DIR"]).expanduser()
        if env.get("GWORKSPACE_ACCOUNTS_FILE"):
            values["accounts_file"] = Path(env["GWORKSPACE_ACCOUNTS_FILE"]).expanduser()
        if env.get("GWORKSPACE_TOKENS_FILE"):
            values["tokens_file"] = Path(env["GWORKSPACE_TOKENS_FILE"]).expanduser()
        if env.get("GWORKSPACE_OAUTH_CLIENT_FILE"):
            values["oauth_client_file"] = Path(env["GWORKSPACE_OAUTH_CLIENT_FILE"]).expanduser()
        if env.get("GOOGLE_OAUTH_CLIENT_ID"):
            values["client_id"] = env["GOOGLE_OAUTH_CLIENT_ID"]
        if env.get("GOOGLE_OAUTH_CLIENT_SECRET"):
            values["client_secret"] = env["GOOGLE_OAUTH_CLIENT_SECRET"]
        if env.get("GOOGLE_OAUTH_REDIRECT_URI"):
            values["redirect_uri"] = env["GOOGLE_OAUTH_REDIRECT_URI"]
        if env.get("GWORKSPACE_LOG_LEVEL"):
            values["log_level"] = env["GWORKSPACE_LOG_LEVEL"].upper()

        try:
            if env.get("GWORKSPACE_TOKEN_EXPIRY_MARGIN"):
                values["expiry_margin_seconds"] = int(env["GWORKSPACE_TOKEN_EXPIRY_MARGIN"])
            if env.get("GWORKSPACE_REQUEST_TIMEOUT"):
                values["request_timeout"] = float(env["GWORKSPACE_REQUEST_TIMEOUT"])
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(**values)

    def load_client_config(self) -> OAuthClientConfig:
        """Resolve OAuth client credentials.

        The client-secrets file wins over environment variables.

        Raises:
            ConfigurationError: If no usable client credentials are configured.
        """
        if self.oauth_client_file is not None:
            return _read_client_file(self.oauth_client_file)

        if self.client_id and self.client_secret:
            return OAuthClientConfig(client_id=self.client_id, client_secret=self.client_secret)

        raise ConfigurationError(
            "OAuth client credentials required. "
            "Set GWORKSPACE_OAUTH_CLIENT_FILE, or GOOGLE_OAUTH_CLIENT_ID and "
            "GOOGLE_OAUTH_CLIENT_SECRET."
        )


def _read_client_file(path: Path) -> OAuthClientConfig:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read OAuth client file {path}: {e}") from e

    # Google Cloud console downloads nest the fields under "installed" or "web"
    section = data.get("installed") or data.get("web") or data
    try:
        return OAuthClientConfig.model_validate(section)
    except ValueError as e:
        raise ConfigurationError(f"OAuth client file {path} is missing fields: {e}") from e
