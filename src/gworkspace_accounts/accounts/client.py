"""Per-call authenticated HTTP client for Google APIs."""

from typing import Any

import httpx


class AuthenticatedClient:
    """Short-lived handle bound to one account's current access token.

    Built fresh by ``AccountManager`` for every service call, so each call
    sees the latest stored token. The underlying connection pool is shared.

    Attributes:
        email: Account the token belongs to.
        access_token: Bearer token sent with every request.
    """

    def __init__(
        self,
        email: str,
        access_token: str,
        http_client: httpx.AsyncClient,
        timeout: float = 30.0,
    ) -> None:
        self.email = email
        self.access_token = access_token
        self._http_client = http_client
        self._timeout = timeout

    def __repr__(self) -> str:
        return f"AuthenticatedClient(email={self.email!r})"

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to a Google API.

        Args:
            method: HTTP method (GET, POST, etc.).
            url: Full URL to request.
            params: Optional query parameters.
            json_data: Optional JSON body data.

        Returns:
            JSON response as a dictionary; empty for bodiless responses.

        Raises:
            httpx.HTTPStatusError: If the provider returns a non-2xx status.
        """
        response = await self._http_client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers=self._headers(),
            timeout=self._timeout,
        )
        response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.request("GET", url, params=params)

    async def post(
        self,
        url: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self.request("POST", url, params=params, json_data=json_data)

    async def delete(self, url: str, params: dict[str, Any] | None = None) -> None:
        await self.request("DELETE", url, params=params)
