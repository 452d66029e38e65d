"""
Entry point for running the watermark backend as a standalone server.
Also used as the PyInstaller entry when bundling the backend executable.
"""
import logging
import os
import sys
from pathlib import Path

import uvicorn

# Add the current directory to path for module resolution
if getattr(sys, 'frozen', False):
    # Running as compiled executable
    application_path = sys._MEIPASS
else:
    # Running as script
    application_path = os.path.dirname(os.path.abspath(__file__))

sys.path.insert(0, application_path)

logger = logging.getLogger("backend_entry")


def prepare_data_dir():
    """
    Bundled builds keep their data under ~/.watermarker so relative
    paths (like "data/") stay writable.
    """
    if not getattr(sys, 'frozen', False):
        return
    user_data_dir = Path.home() / ".watermarker"
    user_data_dir.mkdir(parents=True, exist_ok=True)
    os.chdir(user_data_dir)


def main():
    prepare_data_dir()

    # Import the app after setting up paths
    from backend.app.config import get_settings
    from backend.main import app

    settings = get_settings()
    logger.info("Starting watermark backend on %s:%s (data dir: %s)",
                settings.host, settings.port, os.path.abspath(settings.data_dir))

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
