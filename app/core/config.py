import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).lower() in ("1", "true", "yes")

APP_ENV = _get_env("APP_ENV", "local")
DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./venue_agent.db")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

# Firebase callable functions, e.g. https://us-central1-<project>.cloudfunctions.net
FUNCTIONS_BASE_URL = _get_env("FUNCTIONS_BASE_URL", "http://localhost:5001/hooked-development/us-central1")
FUNCTIONS_ID_TOKEN = os.getenv("FUNCTIONS_ID_TOKEN")
APP_CHECK_TOKEN = os.getenv("APP_CHECK_TOKEN")
FUNCTIONS_TIMEOUT_SECONDS = float(_get_env("FUNCTIONS_TIMEOUT_SECONDS", "15"))

EXPO_PUSH_URL = _get_env("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_PUSH_TOKEN = os.getenv("EXPO_PUSH_TOKEN")

DEVICE_PLATFORM = _get_env("DEVICE_PLATFORM", "ios")
BATTERY_OPTIMIZATION = _get_bool("BATTERY_OPTIMIZATION", "true")
STATUS_MONITORING_ENABLED = _get_bool("STATUS_MONITORING_ENABLED", "true")

logger.debug(
    f"Config loaded: APP_ENV={APP_ENV}, DATABASE_URL={DATABASE_URL}, LOG_LEVEL={LOG_LEVEL}, "
    f"FUNCTIONS_BASE_URL={FUNCTIONS_BASE_URL}"
)
