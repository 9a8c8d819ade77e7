"""Interactive first-time installer for a standalone Discourse container."""

__version__ = "1.0.0"
