"""Version information for the feature labeller."""

from __future__ import annotations

# Filled in at build time; left at these defaults for development builds.
VERSION = "unknown"
GIT_COMMIT = ""


def get_version_parts() -> list[str]:
    """Return the version components: the version and, if known, the commit."""
    parts = [VERSION]
    if GIT_COMMIT:
        parts.append(f"commit: {GIT_COMMIT}")
    return parts


def get_version_string(*more: str) -> str:
    """Return the version components and any extra lines joined by newlines."""
    return "\n".join([*get_version_parts(), *more])