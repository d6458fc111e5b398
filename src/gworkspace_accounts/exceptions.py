"""Exceptions raised by account, token, and service operations.

Every error carries the account email it concerns so the tool layer can
tell the agent which account needs attention. ``ReauthRequiredError`` is the
only error that asks for a human to repeat the OAuth consent flow.
"""

from typing import Any


class WorkspaceAuthError(Exception):
    """Base exception class for gworkspace-accounts errors."""

    code = "WORKSPACE_ERROR"

    def __init__(
        self,
        message: str = "Google Workspace operation failed",
        email: str | None = None,
        operation: str | None = None,
    ):
        self.message = message
        self.email = email
        self.operation = operation
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for a tool response."""
        result: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.email:
            result["email"] = self.email
        if self.operation:
            result["operation"] = self.operation
        return result


class ConfigurationError(WorkspaceAuthError):
    """Raised when OAuth client configuration or a store file is missing or unreadable."""

    code = "CONFIGURATION_ERROR"


class AccountNotFoundError(WorkspaceAuthError):
    """Raised when an email has no account entry."""

    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, email: str):
        super().__init__(f"Account not found: {email}", email=email)


class DuplicateAccountError(WorkspaceAuthError):
    """Raised when adding an account whose email already exists."""

    code = "DUPLICATE_ACCOUNT"

    def __init__(self, email: str):
        super().__init__(f"Account already exists: {email}", email=email)


class RefreshFailedError(WorkspaceAuthError):
    """Raised when the provider could not exchange a refresh token.

    Attributes:
        reason: Short diagnostic of why refresh failed.
        transient: True when the failure was a timeout or network problem
            rather than the provider rejecting the refresh token.
    """

    code = "REFRESH_FAILED"

    def __init__(self, email: str, reason: str, transient: bool = False):
        super().__init__(f"Token refresh failed for {email}: {reason}", email=email)
        self.reason = reason
        self.transient = transient


class ReauthRequiredError(WorkspaceAuthError):
    """Raised when no valid or refreshable token exists for an account."""

    code = "REAUTH_REQUIRED"

    def __init__(self, email: str, reason: str | None = None, operation: str | None = None):
        message = f"Re-authentication required for {email}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, email=email, operation=operation)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["resolution"] = (
            f"Call authenticate_workspace_account with email '{self.email}' "
            "and have the user complete the Google consent flow."
        )
        return result


class ServiceCallError(WorkspaceAuthError):
    """Raised when a provider call fails for reasons unrelated to auth.

    Attributes:
        status_code: HTTP status from the provider, if one was received.
    """

    code = "SERVICE_CALL_FAILED"

    def __init__(
        self,
        message: str,
        email: str | None = None,
        operation: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, email=email, operation=operation)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


class AuthorizationError(WorkspaceAuthError):
    """Raised when the OAuth authorization-code exchange fails."""

    code = "AUTHORIZATION_FAILED"
