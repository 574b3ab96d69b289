"""Application data locations"""

import os
from pathlib import Path

APP_DIR_NAME = 'Wurdump'


def get_data_dir() -> Path:
    """
    Resolve the application data directory

    WURDUMP_DATA_DIR wins, then %APPDATA%/Wurdump, then ~/.local/share/wurdump.
    """
    override = os.environ.get('WURDUMP_DATA_DIR')
    if override:
        return Path(override)

    app_data = os.environ.get('APPDATA')
    if app_data:
        return Path(app_data) / APP_DIR_NAME

    return Path.home() / '.local' / 'share' / APP_DIR_NAME.lower()


def get_log_dir() -> Path:
    return get_data_dir() / 'logs'
