"""Google Workspace accounts MCP server.

Expose Gmail and Google Calendar to Claude for any number of Google accounts,
with per-account token storage and automatic refresh.
"""

from gworkspace_accounts.__version__ import __version__

__all__ = ["__version__"]
