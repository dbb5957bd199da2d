# ------------------------------------------------------------------------------
# web_interface.py
# ------------------------------------------------------------------------------

import logging

from flask import Flask


def create_web_interface(sync_manager=None):
    """
    Creates and returns the Flask app exposing the sync API.

    Args:
        sync_manager: Optional SyncManager to install as the global instance;
            when omitted one is built from configuration on first use.
    """
    logger = logging.getLogger(__name__)

    from core import sync_core
    from web.blueprints.sync import sync_bp

    if sync_manager is not None:
        sync_core.init_sync_manager(sync_manager)

    server = Flask(__name__)
    server.register_blueprint(sync_bp)

    logger.info("Sync web interface created.")
    return server
