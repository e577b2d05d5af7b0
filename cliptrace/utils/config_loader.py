import logging
import os

logger = logging.getLogger(__name__)

# Full list of settings to manage
ALL_SETTINGS = [
    # Highlight lifecycle
    'HIGHLIGHT_DISPLAY_MS', 'HIGHLIGHT_FADE_MS',

    # Page stability wait before relocating
    'STABILITY_INITIAL_DELAY_MS', 'STABILITY_POLL_MS', 'STABILITY_TIMEOUT_MS',

    # Capture
    'MAX_HISTORY_ITEMS', 'MAX_CLIP_CHARS', 'INCOGNITO_MODE', 'CAPTURE_BLACKLIST',

    # System
    'LOG_LEVEL', 'DATA_DIR', 'PORT',
]

# Default values
DEFAULT_CONFIG = {
    'HIGHLIGHT_DISPLAY_MS': '3000',
    'HIGHLIGHT_FADE_MS': '500',
    'STABILITY_INITIAL_DELAY_MS': '200',
    'STABILITY_POLL_MS': '150',
    'STABILITY_TIMEOUT_MS': '1500',
    'MAX_HISTORY_ITEMS': '1000',
    'MAX_CLIP_CHARS': '10000',
    'INCOGNITO_MODE': 'false',
    'CAPTURE_BLACKLIST': '',
    'LOG_LEVEL': 'INFO',
    'DATA_DIR': '/data',
    'PORT': '5757',
}

# Read from the environment only; the database cannot override where it lives
BOOTSTRAP_ONLY_SETTINGS = {'DATA_DIR'}


def get_setting(key: str) -> str:
    """Current value from the environment, falling back to the default."""
    return os.environ.get(key, DEFAULT_CONFIG.get(key, ""))


def get_int(key: str) -> int:
    value = get_setting(key)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning(f"⚠️  Invalid value for {key}: '{value}', using default")
        return int(DEFAULT_CONFIG.get(key, "0"))


def get_bool(key: str) -> bool:
    return str(get_setting(key)).strip().lower() in ('true', '1', 'yes', 'on')


def get_list(key: str) -> list:
    """Comma-separated setting as a list of lowercase, non-empty entries."""
    return [item.strip().lower() for item in str(get_setting(key)).split(',') if item.strip()]


class ConfigLoader:
    """
    Loads configuration from the settings table into environment variables.
    Settings in the database take precedence over environment variables,
    except for DATA_DIR, which locates the database itself.
    """

    @staticmethod
    def bootstrap_config(db_service):
        """If the settings table is empty, seed it from os.environ or defaults."""
        try:
            if db_service.get_all_settings():
                return

            logger.info("🚀 Bootstrapping configuration from environment variables...")

            count = 0
            for key in ALL_SETTINGS:
                if key in BOOTSTRAP_ONLY_SETTINGS:
                    continue
                # Priority: 1. Env Var, 2. Default, 3. Empty string
                val = os.environ.get(key, DEFAULT_CONFIG.get(key, ""))
                db_service.set_setting(key, "" if val is None else str(val))
                count += 1

            logger.info(f"✅ Bootstrapped {count} settings to database")

        except Exception as e:
            logger.error(f"⚠️  Error bootstrapping config: {e}")

    @staticmethod
    def load_settings(db_service):
        """Copy all settings from the database into os.environ."""
        try:
            count = 0
            for key, value in db_service.get_all_settings().items():
                if key in BOOTSTRAP_ONLY_SETTINGS:
                    continue
                os.environ[key] = str(value) if value is not None else ""
                count += 1

            logger.info(f"⚙️  Loaded {count} settings from database")

        except Exception as e:
            # Fall back to existing env vars
            logger.error(f"⚠️  Error loading settings from database: {e}")
