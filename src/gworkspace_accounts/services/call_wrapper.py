"""Uniform auth-error recovery for every Gmail and Calendar call.

Call flow:

    idle -> calling -> success
                    -> other_failed
                    -> auth_failed -> refreshing -> reauth_required
                                                 -> retrying -> success
                                                             -> other_failed

A 401 or 403 from the provider triggers one forced refresh and one retry.
The retry is final. Any other failure is reported immediately, tagged
with the operation name and account.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import httpx

from gworkspace_accounts.accounts.client import AuthenticatedClient
from gworkspace_accounts.accounts.manager import AccountManager
from gworkspace_accounts.config import DEFAULT_REQUEST_TIMEOUT_SECONDS
from gworkspace_accounts.exceptions import (
    ReauthRequiredError,
    ServiceCallError,
    WorkspaceAuthError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_ERROR_STATUSES = frozenset({401, 403})


class CallState(str, Enum):
    """States of a wrapped service call."""

    IDLE = "idle"
    CALLING = "calling"
    SUCCESS = "success"
    AUTH_FAILED = "auth_failed"
    REFRESHING = "refreshing"
    RETRYING = "retrying"
    REAUTH_REQUIRED = "reauth_required"
    OTHER_FAILED = "other_failed"


def _is_auth_failure(error: BaseException) -> bool:
    return (
        isinstance(error, httpx.HTTPStatusError)
        and error.response.status_code in AUTH_ERROR_STATUSES
    )


class ServiceCallWrapper:
    """Runs provider calls for an account with single-retry auth recovery.

    Attributes:
        account_manager: Source of authenticated clients.
        timeout: Upper bound in seconds for each attempt of a call.

    Example:
        ```python
        wrapper = ServiceCallWrapper(account_manager)
        labels = await wrapper.call(
            "alice@example.com",
            "list_labels",
            lambda client: client.get(f"{GMAIL_API_BASE}/users/me/labels"),
        )
        ```
    """

    def __init__(
        self,
        account_manager: AccountManager,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.account_manager = account_manager
        self.timeout = timeout

    def _transition(self, email: str, operation: str, state: CallState) -> None:
        logger.debug(f"{operation} [{email}] -> {state.value}")

    async def _attempt(
        self, client: AuthenticatedClient, func: Callable[[AuthenticatedClient], Awaitable[T]]
    ) -> T:
        return await asyncio.wait_for(func(client), timeout=self.timeout)

    def _to_service_error(
        self, error: BaseException, email: str, operation: str
    ) -> ServiceCallError:
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            return ServiceCallError(
                f"{operation} failed with HTTP {status}: {error.response.text[:500]}",
                email=email,
                operation=operation,
                status_code=status,
            )
        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            return ServiceCallError(
                f"{operation} timed out after {self.timeout}s",
                email=email,
                operation=operation,
            )
        return ServiceCallError(
            f"{operation} failed: {error}",
            email=email,
            operation=operation,
        )

    async def call(
        self,
        email: str,
        operation: str,
        func: Callable[[AuthenticatedClient], Awaitable[T]],
    ) -> T:
        """Run ``func`` with an authenticated client for ``email``.

        Args:
            email: Account to act as.
            operation: Operation name used in logs and errors.
            func: Coroutine function issuing the provider call(s).

        Returns:
            Whatever ``func`` returns, unchanged.

        Raises:
            AccountNotFoundError: If the account does not exist.
            ReauthRequiredError: If the account's token cannot be recovered.
            ServiceCallError: For any other failure, including a retry that
                is rejected again.
        """
        self._transition(email, operation, CallState.IDLE)
        try:
            client = await self.account_manager.get_auth_client(email)
        except (ReauthRequiredError, ServiceCallError) as e:
            e.operation = operation
            raise

        self._transition(email, operation, CallState.CALLING)
        try:
            result = await self._attempt(client, func)
        except WorkspaceAuthError:
            raise
        except Exception as e:
            if not _is_auth_failure(e):
                self._transition(email, operation, CallState.OTHER_FAILED)
                raise self._to_service_error(e, email, operation) from e
            status = e.response.status_code  # type: ignore[attr-defined]
        else:
            self._transition(email, operation, CallState.SUCCESS)
            return result

        self._transition(email, operation, CallState.AUTH_FAILED)
        logger.info(f"{operation} for {email} rejected with HTTP {status}, refreshing token")

        self._transition(email, operation, CallState.REFRESHING)
        try:
            client = await self.account_manager.refresh_auth_client(email)
        except ReauthRequiredError as e:
            self._transition(email, operation, CallState.REAUTH_REQUIRED)
            e.operation = e.operation or operation
            raise
        except ServiceCallError as e:
            self._transition(email, operation, CallState.OTHER_FAILED)
            e.operation = operation
            raise
        except WorkspaceAuthError:
            self._transition(email, operation, CallState.OTHER_FAILED)
            raise

        self._transition(email, operation, CallState.RETRYING)
        try:
            result = await self._attempt(client, func)
        except WorkspaceAuthError:
            raise
        except Exception as e:
            self._transition(email, operation, CallState.OTHER_FAILED)
            raise self._to_service_error(e, email, operation) from e

        self._transition(email, operation, CallState.SUCCESS)
        return result
