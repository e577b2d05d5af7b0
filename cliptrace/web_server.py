import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from dependency_injector import providers
from flask import Flask

from cliptrace.api.clip_server import clip_bp, init_clip_server
from cliptrace.db.database_service import DatabaseService
from cliptrace.utils.config_loader import ConfigLoader, get_int
from cliptrace.utils.di_container import Container, create_container
from cliptrace.utils.logging_utils import setup_logging

memory_log_handler = setup_logging()

logger = logging.getLogger(__name__)

# ---------------- APP SETUP ----------------

app = Flask(__name__)
app.register_blueprint(clip_bp)

# Global variables - will be initialized via setup_dependencies()
container: Optional[Container] = None
database_service: Optional[DatabaseService] = None
DATA_DIR: Optional[Path] = None


def setup_dependencies(test_container=None):
    """
    Initialize dependencies for the web server.

    Args:
        test_container: Optional container for tests. If None, the production
                        container is created after settings are loaded.
    """
    global container, database_service, DATA_DIR

    if test_container is not None:
        container = test_container
        database_service = container.database_service()
    else:
        # The database location cannot come from the database itself
        data_dir = Path(os.environ.get("DATA_DIR", "/data"))
        database_service = DatabaseService(str(data_dir / "cliptrace.db"))

        ConfigLoader.bootstrap_config(database_service)
        ConfigLoader.load_settings(database_service)
        database_service.max_history_items = get_int('MAX_HISTORY_ITEMS')
        logger.info("✅ Settings loaded into environment variables")

        container = create_container()
        container.database_service.override(providers.Object(database_service))

    init_clip_server(
        database_service,
        container.capture_service(),
        container.relocation_service(),
        memory_log_handler=memory_log_handler,
    )

    DATA_DIR = container.data_dir()
    logger.info(f"Web server dependencies initialized (DATA_DIR={DATA_DIR})")


def main():
    setup_dependencies()

    def handle_exit_signal(signum, frame):
        logger.warning(f"⚠️ Received signal {signum} - Shutting down...")
        for handler in logging.getLogger().handlers:
            handler.flush()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_exit_signal)
    signal.signal(signal.SIGINT, handle_exit_signal)

    port = get_int('PORT')
    logger.info("=== ClipTrace Started ===")
    logger.info(f"🌐 Web interface starting on port {port}")
    app.run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    main()
