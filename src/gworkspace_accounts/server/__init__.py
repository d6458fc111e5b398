"""MCP server for multi-account Google Workspace access.

Account Tools:
- List configured accounts with token health
- Authenticate (add + authorize) an account
- Remove an account and its token

Gmail Tools (5):
- Search messages, get message content
- Send messages
- List labels, add/remove labels on a message

Calendar Tools (5):
- List calendars
- List, get, create, and delete events

Transport: Stdio
Authentication: per-account OAuth 2.0 with refresh-and-retry on 401/403
"""

from gworkspace_accounts.components import WorkspaceComponents
from gworkspace_accounts.server.workspace_server import (
    WorkspaceAccountsServer,
    main,
)


def create_server(components: WorkspaceComponents | None = None) -> WorkspaceAccountsServer:
    """Create and configure a gworkspace-accounts MCP server.

    Returns:
        WorkspaceAccountsServer: Configured server instance ready to run.

    Example:
        >>> server = create_server()
        >>> asyncio.run(server.run())
    """
    return WorkspaceAccountsServer(components)


__all__ = ["create_server", "WorkspaceAccountsServer", "main"]
