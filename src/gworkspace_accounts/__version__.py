"""Version information for gworkspace-accounts-mcp."""

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path


def _get_version() -> str:
    """Get version from the installed distribution, a VERSION file, or fallback."""
    try:
        return version("gworkspace-accounts-mcp")
    except PackageNotFoundError:
        pass

    pkg_version = Path(__file__).parent / "VERSION"
    if pkg_version.exists():
        return pkg_version.read_text().strip()

    return "0.1.0"


__version__ = _get_version()
