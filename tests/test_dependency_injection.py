"""
Checks that the DI container builds the services from the current settings.
"""

import os
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cliptrace.db.database_service import DatabaseService
from cliptrace.services.capture_service import CaptureService
from cliptrace.services.relocation_service import RelocationService
from cliptrace.utils.di_container import create_container


def test_dependency_injection():
    temp_dir = tempfile.mkdtemp()
    env = {
        'DATA_DIR': temp_dir,
        'MAX_HISTORY_ITEMS': '25',
        'HIGHLIGHT_DISPLAY_MS': '1000',
        'INCOGNITO_MODE': 'true',
        'CAPTURE_BLACKLIST': 'intranet.local',
    }
    try:
        with patch.dict(os.environ, env):
            container = create_container()

            database_service = container.database_service()
            capture_service = container.capture_service()
            relocation_service = container.relocation_service()

            assert isinstance(database_service, DatabaseService)
            assert isinstance(capture_service, CaptureService)
            assert isinstance(relocation_service, RelocationService)

            # Singletons share one database service
            assert container.database_service() is database_service
            assert capture_service.database_service is database_service
            assert relocation_service.database_service is database_service

            assert database_service.db_path == Path(temp_dir) / 'cliptrace.db'
            assert database_service.max_history_items == 25
            assert relocation_service.display_ms == 1000
            assert capture_service.capture_gate.incognito_mode is True
            assert capture_service.capture_gate.blacklist == ['intranet.local']
            assert container.data_dir() == Path(temp_dir)

            database_service.close()
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
