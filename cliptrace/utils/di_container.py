"""
Dependency Injection Container for ClipTrace.

Configuration is read from os.environ when a provider is first called, so
settings loaded from the database before that call take effect.
"""
import logging
import os
from pathlib import Path

from dependency_injector import containers, providers

from cliptrace.db.database_service import DatabaseService
from cliptrace.services.capture_gate import CaptureGate
from cliptrace.services.capture_service import CaptureService
from cliptrace.services.relocation_service import RelocationService
from cliptrace.utils import config_loader

logger = logging.getLogger(__name__)


def _data_dir() -> Path:
    return Path(os.environ.get("DATA_DIR", config_loader.DEFAULT_CONFIG['DATA_DIR']))


def _db_path() -> str:
    return str(_data_dir() / "cliptrace.db")


class Container(containers.DeclarativeContainer):
    data_dir = providers.Callable(_data_dir)

    database_service = providers.Singleton(
        DatabaseService,
        db_path=providers.Callable(_db_path),
        max_history_items=providers.Callable(config_loader.get_int, 'MAX_HISTORY_ITEMS'),
    )

    capture_gate = providers.Factory(
        CaptureGate,
        incognito_mode=providers.Callable(config_loader.get_bool, 'INCOGNITO_MODE'),
        blacklist=providers.Callable(config_loader.get_list, 'CAPTURE_BLACKLIST'),
    )

    capture_service = providers.Singleton(
        CaptureService,
        database_service=database_service,
        capture_gate=capture_gate,
        max_clip_chars=providers.Callable(config_loader.get_int, 'MAX_CLIP_CHARS'),
    )

    relocation_service = providers.Singleton(
        RelocationService,
        database_service=database_service,
        display_ms=providers.Callable(config_loader.get_int, 'HIGHLIGHT_DISPLAY_MS'),
        fade_ms=providers.Callable(config_loader.get_int, 'HIGHLIGHT_FADE_MS'),
        stability_initial_delay_ms=providers.Callable(config_loader.get_int, 'STABILITY_INITIAL_DELAY_MS'),
        stability_poll_ms=providers.Callable(config_loader.get_int, 'STABILITY_POLL_MS'),
        stability_timeout_ms=providers.Callable(config_loader.get_int, 'STABILITY_TIMEOUT_MS'),
    )


def create_container() -> Container:
    container = Container()
    logger.debug("Dependency container created")
    return container
