# ------------------------------------------------------------------------------
# Main Script for the Chat Sync Backup/Restore Service
# main.py
# ------------------------------------------------------------------------------
import json
import os

from config import load_config
config = load_config()
from logging_config import get_logger
logger = get_logger(__name__)

# --------------------------------------------------------------------------
# Configuration Parameters
# --------------------------------------------------------------------------
_debug = config["DEBUG_MODE"]
data_dir = config["DATA_DIR"]

logger.info(f"Debug mode is {'enabled' if _debug else 'disabled'}.")
logger.info(
    f"Configuration: {json.dumps({k: v for k, v in config.items() if k != 'DB_CIPHER_KEY'}, indent=2)}"
)

os.makedirs(data_dir, exist_ok=True)

# -----------------------------
# Start the Sync Manager
# -----------------------------
from core.interfaces import LoggingSyncObserver
from core.sync_core import create_sync_manager, init_sync_manager

sync_manager = init_sync_manager(
    create_sync_manager(config, observer=LoggingSyncObserver())
)

# Register the cleanup function
import atexit
atexit.register(sync_manager.destroy)

# -----------------------------
# Import and Run the Web Interface
# -----------------------------
from web.web_interface import create_web_interface

app = create_web_interface(sync_manager)

if __name__ == '__main__':
    try:
        app.run(debug=_debug, host=config["WEB_HOST"], port=config["WEB_PORT"])
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received. Shutting down sync manager...")
        sync_manager.destroy()
