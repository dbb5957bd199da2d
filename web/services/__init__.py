"""
Chat Sync Services Package.

This package contains service layer modules that wrap the core sync logic,
separating it from Flask routes for better testability.

ARCHITECTURE RULE:
- Services may ONLY import from core/* modules
- Services MUST NOT import directly from utils/
"""

from web.services import sync_service

__all__ = [
    "sync_service",
]
