# config.py
import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file.
load_dotenv()

_config_cache = None


def load_config():
    """
    Loads configuration from environment variables and returns a dictionary.
    """
    data_dir = os.getenv("DATA_DIR", str(Path.home() / ".chatsync"))

    try:
        backup_delay = float(os.getenv("SYNC_BACKUP_DELAY_SECONDS", 60))
    except ValueError:
        # Fallback to the default quiescence window if parsing fails
        backup_delay = 60.0

    config = {
        # General Settings
        "DEBUG_MODE": os.getenv("DEBUG_MODE", "False").lower() == "true",
        "DATA_DIR": data_dir,
        "TEMP_DIR": os.getenv("TEMP_DIR", tempfile.gettempdir()),

        # Sync Settings
        "SYNC_FOLDER_PATH": os.getenv(
            "SYNC_FOLDER_PATH", str(Path(data_dir) / "sync")
        ),
        "SYNC_BACKUP_DELAY_SECONDS": backup_delay,

        # Database
        "DB_CIPHER_KEY": os.getenv("DB_CIPHER_KEY") or None,

        # Web Settings
        "WEB_HOST": os.getenv("WEB_HOST", "127.0.0.1"),
        "WEB_PORT": int(os.getenv("WEB_PORT", 8050)),
    }
    return config


def get_config():
    """Returns the cached configuration, loading it on first use."""
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache


if __name__ == "__main__":
    # For testing purposes, print the configuration
    config = load_config()
    from pprint import pprint

    pprint(config)
