"""Command-line interface for gworkspace-accounts-mcp."""
