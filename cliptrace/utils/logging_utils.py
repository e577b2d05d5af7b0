import logging
import os
import time
from datetime import datetime
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FORMAT = '[%(asctime)s] %(levelname)s - %(name)s: %(message)s'


def _configured_level():
    return getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)


class MemoryLogHandler(logging.Handler):
    """Keeps the most recent log records in memory for /api/logs."""

    def __init__(self, maxlen=1000):
        super().__init__()
        self.logs = []
        self.maxlen = maxlen

    def emit(self, record):
        try:
            self.logs.append({
                'timestamp': datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S'),
                'level': record.levelname,
                'message': record.getMessage(),
                'module': record.name
            })
            if len(self.logs) > self.maxlen:
                self.logs.pop(0)
        except Exception:
            self.handleError(record)

    def get_recent_logs(self, count=100):
        return self.logs[-count:] if len(self.logs) > count else self.logs.copy()

    def clear(self):
        self.logs = []


def setup_file_logging():
    """Rotating log file under DATA_DIR/logs, only when DATA_DIR exists."""
    data_dir = Path(os.environ.get("DATA_DIR", "/data"))
    if not data_dir.exists():
        logger.warning("Not setting up file logging because missing data dir")
        return ""

    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "cliptrace.log"

    file_handler = RotatingFileHandler(str(log_path), maxBytes=10 * 1024 * 1024, backupCount=5, encoding='utf-8')
    file_handler.setLevel(_configured_level())
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)

    return log_path


def setup_console_logging():
    console_handler = logging.StreamHandler()
    console_handler.setLevel(_configured_level())
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

    root_logger = logging.getLogger()
    root_logger.addHandler(console_handler)
    # Handlers filter individually
    root_logger.setLevel(logging.DEBUG)

    # Werkzeug access lines would otherwise be printed twice
    werkzeug_logger = logging.getLogger('werkzeug')
    werkzeug_logger.propagate = False
    werkzeug_logger.setLevel(logging.WARNING)


def setup_memory_logging():
    memory_handler = MemoryLogHandler()
    memory_handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(memory_handler)
    return memory_handler


def sanitize_log_data(data):
    """Truncate long strings to "First 50... [truncated] ...Last 50"."""
    if data is None:
        return ""
    try:
        s = str(data)
    except Exception:
        return "[unrepresentable]"
    if len(s) <= 100:
        return s
    return f"{s[:50]}... [truncated] ...{s[-50:]}"


def time_execution(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.time()
        result = func(*args, **kwargs)
        ms = int((time.time() - start) * 1000)
        logger.info(f"⏱️ [{func.__name__}] took {ms}ms")
        return result
    return wrapper


_handlers_installed = False
LOG_PATH = ""
memory_log_handler = None


def setup_logging():
    """Install the file, console and memory handlers once per process."""
    global _handlers_installed, LOG_PATH, memory_log_handler
    if _handlers_installed:
        return memory_log_handler

    LOG_PATH = setup_file_logging()
    setup_console_logging()
    memory_log_handler = setup_memory_logging()
    _handlers_installed = True
    return memory_log_handler
