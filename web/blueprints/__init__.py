"""
Chat Sync Web Blueprints Package.

This package contains Flask Blueprints for modular route organization.
"""

from web.blueprints.sync import sync_bp

__all__ = ["sync_bp"]
