"""
Chat Sync Core Package.

This package contains the backup/restore business logic, separated from
the web layer.

ARCHITECTURE RULES:
- core/ modules may only import from:
  - Python standard library
  - utils/ (archive, database and file helpers)
  - config (for global configuration)

- core/ modules MUST NOT import from:
  - web/ (no Flask dependencies)
  - flask, werkzeug, or any web-specific packages
"""

__all__ = [
    "interfaces",
    "sync_core",
]
