"""Multi-account Google Workspace MCP server.

Every Gmail and Calendar tool takes an ``email`` argument naming the
configured account to act as. Tokens are validated and refreshed per
account; when a token cannot be recovered the tool returns a structured
``REAUTH_REQUIRED`` error telling the agent to run
``authenticate_workspace_account``.
"""

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from gworkspace_accounts.components import WorkspaceComponents, build_components
from gworkspace_accounts.config import WorkspaceConfig
from gworkspace_accounts.exceptions import (
    AccountNotFoundError,
    ReauthRequiredError,
    WorkspaceAuthError,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "gworkspace-accounts-mcp"

EMAIL_PROPERTY = {
    "type": "string",
    "description": "Email of the configured account to act as",
}


class WorkspaceAccountsServer:
    """MCP server exposing account management, Gmail, and Calendar tools.

    Attributes:
        server: MCP Server instance.
        components: Account manager, OAuth manager, and service modules.
    """

    def __init__(self, components: WorkspaceComponents | None = None) -> None:
        """Initialize the server.

        Args:
            components: Prebuilt components. Built from the environment if omitted.
        """
        self.server = Server(SERVER_NAME)
        self.components = components or build_components()
        self.account_manager = self.components.account_manager
        self.oauth_manager = self.components.oauth_manager
        self.gmail = self.components.gmail
        self.calendar = self.components.calendar
        self._setup_handlers()

    async def close(self) -> None:
        """Close the shared HTTP client and release resources."""
        await self.components.close()

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return TOOLS

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self.handle_tool_call(name, arguments)

    async def handle_tool_call(self, name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Run a tool and render its result or error as JSON text content."""
        try:
            result = await self._dispatch_tool(name, arguments or {})
        except WorkspaceAuthError as e:
            logger.warning(f"Tool {name} failed: {e.message}")
            result = e.to_dict()
        except Exception as e:
            logger.exception(f"Error calling tool {name}")
            result = {"error": str(e)}
        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Raises:
            ValueError: If tool name is not recognized.
        """
        handlers = {
            # Accounts
            "list_workspace_accounts": self._list_accounts,
            "authenticate_workspace_account": self._authenticate_account,
            "remove_workspace_account": self._remove_account,
            # Gmail
            "search_workspace_emails": self._search_emails,
            "get_workspace_email": self._get_email,
            "send_workspace_email": self._send_email,
            "list_workspace_labels": self._list_labels,
            "modify_workspace_email": self._modify_email,
            # Calendar
            "list_workspace_calendars": self._list_calendars,
            "list_workspace_calendar_events": self._list_events,
            "get_workspace_calendar_event": self._get_event,
            "create_workspace_calendar_event": self._create_event,
            "delete_workspace_calendar_event": self._delete_event,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")
        return await handler(arguments)

    # -- accounts ----------------------------------------------------------

    async def _list_accounts(self, arguments: dict[str, Any]) -> dict[str, Any]:
        accounts = [
            {
                "email": account.email,
                "category": account.category,
                "description": account.description,
                "has_valid_token": self.account_manager.has_valid_token(account.email),
            }
            for account in self.account_manager.list_accounts()
        ]
        return {"accounts": accounts, "count": len(accounts)}

    async def _authenticate_account(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Add an account if needed and bring it to a usable token.

        Args:
            arguments: Tool arguments with email and optionally category,
                description, and auth_code.

        Returns:
            ``authenticated`` status, or ``auth_required`` with the URL the
            user must open.
        """
        email = arguments["email"]
        try:
            account = self.account_manager.get_account(email)
        except AccountNotFoundError:
            account = self.account_manager.add_account(
                email,
                category=arguments.get("category", ""),
                description=arguments.get("description", ""),
            )

        auth_code = arguments.get("auth_code")
        if auth_code:
            await self.oauth_manager.exchange_code(account.email, auth_code)
            return {"status": "authenticated", "email": account.email}

        try:
            await self.account_manager.get_auth_client(account.email)
        except ReauthRequiredError:
            pass
        else:
            return {"status": "authenticated", "email": account.email}

        auth_url = self.oauth_manager.get_authorization_url(account.email)
        return {
            "status": "auth_required",
            "email": account.email,
            "auth_url": auth_url,
            "instructions": (
                f"Open the URL and sign in as {account.email}. After granting access, "
                "copy the 'code' parameter from the redirect URL and call "
                "authenticate_workspace_account again with auth_code set to it."
            ),
        }

    async def _remove_account(self, arguments: dict[str, Any]) -> dict[str, Any]:
        email = arguments["email"]
        removed = self.account_manager.remove_account(email)
        return {"status": "removed" if removed else "not_found", "email": email}

    # -- gmail -------------------------------------------------------------

    async def _search_emails(self, arguments: dict[str, Any]) -> dict[str, Any]:
        messages = await self.gmail.search_messages(
            arguments["email"],
            query=arguments.get("query", ""),
            max_results=arguments.get("max_results", 10),
        )
        return {"messages": messages, "count": len(messages)}

    async def _get_email(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return await self.gmail.get_message(arguments["email"], arguments["message_id"])

    async def _send_email(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return await self.gmail.send_message(
            arguments["email"],
            to=arguments["to"],
            subject=arguments["subject"],
            body=arguments["body"],
            cc=arguments.get("cc"),
            bcc=arguments.get("bcc"),
        )

    async def _list_labels(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return await self.gmail.list_labels(arguments["email"])

    async def _modify_email(self, arguments: dict[str, Any]) -> dict[str, Any]:
        add_labels = arguments.get("add_labels", [])
        remove_labels = arguments.get("remove_labels", [])
        if not add_labels and not remove_labels:
            raise ValueError("At least one of add_labels or remove_labels must be provided")
        return await self.gmail.modify_message(
            arguments["email"],
            arguments["message_id"],
            add_label_ids=add_labels,
            remove_label_ids=remove_labels,
        )

    # -- calendar ----------------------------------------------------------

    async def _list_calendars(self, arguments: dict[str, Any]) -> dict[str, Any]:
        calendars = await self.calendar.list_calendars(arguments["email"])
        return {"calendars": calendars, "count": len(calendars)}

    async def _list_events(self, arguments: dict[str, Any]) -> dict[str, Any]:
        events = await self.calendar.get_events(
            arguments["email"],
            query=arguments.get("query"),
            max_results=arguments.get("max_results"),
            time_min=arguments.get("time_min"),
            time_max=arguments.get("time_max"),
            calendar_id=arguments.get("calendar_id", "primary"),
        )
        return {"events": events, "count": len(events)}

    async def _get_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return await self.calendar.get_event(
            arguments["email"],
            arguments["event_id"],
            calendar_id=arguments.get("calendar_id", "primary"),
        )

    async def _create_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        timezone = arguments.get("timezone")
        result = await self.calendar.create_event(
            arguments["email"],
            summary=arguments["summary"],
            start=_event_time(arguments["start_time"], timezone),
            end=_event_time(arguments["end_time"], timezone),
            description=arguments.get("description"),
            attendees=arguments.get("attendees"),
            location=arguments.get("location"),
            calendar_id=arguments.get("calendar_id", "primary"),
        )
        return {"status": "created", **result}

    async def _delete_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return await self.calendar.delete_event(
            arguments["email"],
            arguments["event_id"],
            calendar_id=arguments.get("calendar_id", "primary"),
        )

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


def _event_time(value: str, timezone: str | None) -> dict[str, str]:
    # All-day events use a bare date
    if len(value) == 10:
        return {"date": value}
    result = {"dateTime": value}
    if timezone:
        result["timeZone"] = timezone
    return result


def _tool(name: str, description: str, properties: dict[str, Any], required: list[str]) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema={"type": "object", "properties": properties, "required": required},
    )


TOOLS: list[Tool] = [
    _tool(
        "list_workspace_accounts",
        "List configured Google Workspace accounts and whether each has a valid token",
        {},
        [],
    ),
    _tool(
        "authenticate_workspace_account",
        "Add an account if needed and authorize it. Returns an authorization URL "
        "when the user must sign in; call again with auth_code to finish.",
        {
            "email": EMAIL_PROPERTY,
            "category": {"type": "string", "description": "Account category, e.g. 'work' (optional)"},
            "description": {"type": "string", "description": "Account description (optional)"},
            "auth_code": {
                "type": "string",
                "description": "Authorization code from Google's redirect (optional)",
            },
        },
        ["email"],
    ),
    _tool(
        "remove_workspace_account",
        "Remove an account and its stored token",
        {"email": EMAIL_PROPERTY},
        ["email"],
    ),
    _tool(
        "search_workspace_emails",
        "Search Gmail messages using Gmail query syntax",
        {
            "email": EMAIL_PROPERTY,
            "query": {
                "type": "string",
                "description": "Gmail search query (e.g., 'from:alice is:unread')",
            },
            "max_results": {
                "type": "integer",
                "description": "Maximum messages to return (default: 10)",
                "default": 10,
            },
        },
        ["email"],
    ),
    _tool(
        "get_workspace_email",
        "Get the full content of a Gmail message",
        {
            "email": EMAIL_PROPERTY,
            "message_id": {"type": "string", "description": "Gmail message ID"},
        },
        ["email", "message_id"],
    ),
    _tool(
        "send_workspace_email",
        "Send a plain-text email from the account",
        {
            "email": EMAIL_PROPERTY,
            "to": {"type": "string", "description": "Recipient address(es), comma-separated"},
            "subject": {"type": "string", "description": "Email subject"},
            "body": {"type": "string", "description": "Email body (plain text)"},
            "cc": {"type": "string", "description": "CC recipients (optional)"},
            "bcc": {"type": "string", "description": "BCC recipients (optional)"},
        },
        ["email", "to", "subject", "body"],
    ),
    _tool(
        "list_workspace_labels",
        "List Gmail labels for the account",
        {"email": EMAIL_PROPERTY},
        ["email"],
    ),
    _tool(
        "modify_workspace_email",
        "Add or remove labels on a Gmail message",
        {
            "email": EMAIL_PROPERTY,
            "message_id": {"type": "string", "description": "Gmail message ID"},
            "add_labels": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Label IDs to add",
            },
            "remove_labels": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Label IDs to remove",
            },
        },
        ["email", "message_id"],
    ),
    _tool(
        "list_workspace_calendars",
        "List calendars accessible by the account",
        {"email": EMAIL_PROPERTY},
        ["email"],
    ),
    _tool(
        "list_workspace_calendar_events",
        "List calendar events ordered by start time",
        {
            "email": EMAIL_PROPERTY,
            "query": {"type": "string", "description": "Free-text search (optional)"},
            "max_results": {
                "type": "integer",
                "description": "Maximum events to return (default: 10)",
                "default": 10,
            },
            "time_min": {
                "type": "string",
                "description": "Earliest event end, date or ISO datetime (optional)",
            },
            "time_max": {
                "type": "string",
                "description": "Latest event start, date or ISO datetime (optional)",
            },
            "calendar_id": {
                "type": "string",
                "description": "Calendar ID (default: 'primary')",
                "default": "primary",
            },
        },
        ["email"],
    ),
    _tool(
        "get_workspace_calendar_event",
        "Get a single calendar event",
        {
            "email": EMAIL_PROPERTY,
            "event_id": {"type": "string", "description": "Event ID"},
            "calendar_id": {
                "type": "string",
                "description": "Calendar ID (default: 'primary')",
                "default": "primary",
            },
        },
        ["email", "event_id"],
    ),
    _tool(
        "create_workspace_calendar_event",
        "Create a calendar event and notify attendees",
        {
            "email": EMAIL_PROPERTY,
            "summary": {"type": "string", "description": "Event title"},
            "start_time": {
                "type": "string",
                "description": "Start as ISO datetime, or YYYY-MM-DD for all-day events",
            },
            "end_time": {
                "type": "string",
                "description": "End as ISO datetime, or YYYY-MM-DD for all-day events",
            },
            "description": {"type": "string", "description": "Event description (optional)"},
            "attendees": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Attendee email addresses (optional)",
            },
            "location": {"type": "string", "description": "Event location (optional)"},
            "timezone": {
                "type": "string",
                "description": "Timezone (e.g., 'America/New_York', optional)",
            },
            "calendar_id": {
                "type": "string",
                "description": "Calendar ID (default: 'primary')",
                "default": "primary",
            },
        },
        ["email", "summary", "start_time", "end_time"],
    ),
    _tool(
        "delete_workspace_calendar_event",
        "Delete a calendar event",
        {
            "email": EMAIL_PROPERTY,
            "event_id": {"type": "string", "description": "Event ID"},
            "calendar_id": {
                "type": "string",
                "description": "Calendar ID (default: 'primary')",
                "default": "primary",
            },
        },
        ["email", "event_id"],
    ),
]


def configure_logging(config: WorkspaceConfig) -> None:
    """Send logs to stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    """Entry point for the gworkspace-accounts MCP server."""
    config = WorkspaceConfig.from_env()
    configure_logging(config)
    server = WorkspaceAccountsServer(build_components(config))
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
