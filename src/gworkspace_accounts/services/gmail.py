"""Gmail operations for configured accounts.

Each public method maps tool arguments onto Gmail API v1 requests and
routes them through ``ServiceCallWrapper`` so auth recovery is uniform.
"""

import asyncio
import base64
import logging
from email.mime.text import MIMEText
from typing import Any
from urllib.parse import quote

from gworkspace_accounts.accounts.client import AuthenticatedClient
from gworkspace_accounts.services.call_wrapper import ServiceCallWrapper

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"


def _message_url(message_id: str) -> str:
    return f"{GMAIL_API_BASE}/users/me/messages/{quote(message_id, safe='')}"


def build_email_message(
    to: str,
    subject: str,
    body: str,
    cc: str | None = None,
    bcc: str | None = None,
) -> str:
    """Build an RFC 2822 message and return it base64url encoded."""
    message = MIMEText(body)
    message["to"] = to
    message["subject"] = subject

    if cc:
        message["cc"] = cc
    if bcc:
        message["bcc"] = bcc

    return base64.urlsafe_b64encode(message.as_bytes()).decode()


def extract_message_body(payload: dict[str, Any]) -> str:
    """Extract the message body from a Gmail payload.

    Prefers text/plain, recursing into nested multiparts, and falls back
    to text/html.
    """
    if "body" in payload and payload["body"].get("data"):
        return _decode(payload["body"]["data"])

    parts = payload.get("parts", [])
    for part in parts:
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain":
            data = part.get("body", {}).get("data", "")
            if data:
                return _decode(data)
        elif mime_type.startswith("multipart/"):
            result = extract_message_body(part)
            if result:
                return result

    for part in parts:
        if part.get("mimeType") == "text/html":
            data = part.get("body", {}).get("data", "")
            if data:
                return _decode(data)

    return ""


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")


def _headers(payload: dict[str, Any]) -> dict[str, str]:
    return {h["name"]: h["value"] for h in payload.get("headers", [])}


class GmailService:
    """Gmail API access on behalf of configured accounts."""

    def __init__(self, wrapper: ServiceCallWrapper) -> None:
        self.wrapper = wrapper

    async def search_messages(
        self, email: str, query: str = "", max_results: int = 10
    ) -> list[dict[str, Any]]:
        """Search messages and return header summaries.

        Message details are fetched concurrently; a message whose detail
        fetch fails is skipped.
        """

        async def run(client: AuthenticatedClient) -> list[dict[str, Any]]:
            response = await client.get(
                f"{GMAIL_API_BASE}/users/me/messages",
                params={"q": query, "maxResults": max_results},
            )
            message_list = response.get("messages", [])
            if not message_list:
                return []

            details = await asyncio.gather(
                *[
                    client.get(
                        _message_url(msg["id"]),
                        params={"format": "metadata"},
                    )
                    for msg in message_list
                ],
                return_exceptions=True,
            )

            messages = []
            for msg, detail in zip(message_list, details, strict=False):
                if isinstance(detail, BaseException):
                    logger.warning("Failed to fetch message %s: %s", msg["id"], detail)
                    continue
                headers = _headers(detail.get("payload", {}))
                messages.append(
                    {
                        "id": msg["id"],
                        "thread_id": msg.get("threadId"),
                        "subject": headers.get("Subject"),
                        "from": headers.get("From"),
                        "to": headers.get("To"),
                        "date": headers.get("Date"),
                        "snippet": detail.get("snippet"),
                    }
                )
            return messages

        return await self.wrapper.call(email, "search_messages", run)

    async def get_message(self, email: str, message_id: str) -> dict[str, Any]:
        """Get the full content of a message."""
        response = await self.wrapper.call(
            email,
            "get_message",
            lambda client: client.get(
                _message_url(message_id),
                params={"format": "full"},
            ),
        )

        payload = response.get("payload", {})
        headers = _headers(payload)
        return {
            "id": response.get("id"),
            "thread_id": response.get("threadId"),
            "subject": headers.get("Subject"),
            "from": headers.get("From"),
            "to": headers.get("To"),
            "cc": headers.get("Cc"),
            "date": headers.get("Date"),
            "body": extract_message_body(payload),
            "labels": response.get("labelIds", []),
        }

    async def send_message(
        self,
        email: str,
        to: str,
        subject: str,
        body: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict[str, Any]:
        """Send a plain-text message from ``email``."""
        raw_message = build_email_message(to, subject, body, cc, bcc)

        response = await self.wrapper.call(
            email,
            "send_message",
            lambda client: client.post(
                f"{GMAIL_API_BASE}/users/me/messages/send", json_data={"raw": raw_message}
            ),
        )

        return {
            "status": "sent",
            "id": response.get("id"),
            "thread_id": response.get("threadId"),
            "label_ids": response.get("labelIds", []),
        }

    async def list_labels(self, email: str) -> dict[str, Any]:
        """List labels, system labels first, each group sorted by name."""
        response = await self.wrapper.call(
            email,
            "list_labels",
            lambda client: client.get(f"{GMAIL_API_BASE}/users/me/labels"),
        )

        labels = [
            {"id": label.get("id"), "name": label.get("name"), "type": label.get("type")}
            for label in response.get("labels", [])
        ]
        system_labels = sorted(
            [lbl for lbl in labels if lbl["type"] == "system"], key=lambda x: x["name"] or ""
        )
        user_labels = sorted(
            [lbl for lbl in labels if lbl["type"] != "system"], key=lambda x: x["name"] or ""
        )

        return {
            "total": len(labels),
            "system_labels": system_labels,
            "user_labels": user_labels,
        }

    async def modify_message(
        self,
        email: str,
        message_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """Add or remove labels on a message."""
        modify_body: dict[str, Any] = {}
        if add_label_ids:
            modify_body["addLabelIds"] = add_label_ids
        if remove_label_ids:
            modify_body["removeLabelIds"] = remove_label_ids

        response = await self.wrapper.call(
            email,
            "modify_message",
            lambda client: client.post(
                f"{_message_url(message_id)}/modify",
                json_data=modify_body,
            ),
        )

        return {
            "status": "message_modified",
            "id": response.get("id"),
            "thread_id": response.get("threadId"),
            "label_ids": response.get("labelIds", []),
        }
