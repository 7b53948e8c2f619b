import os
import logging

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "jewelry_store")
DB_CONNECT_RETRIES = int(os.getenv("DB_CONNECT_RETRIES", 5))
DB_CONNECT_DELAY = float(os.getenv("DB_CONNECT_DELAY", 5))
DB_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv("DB_SERVER_SELECTION_TIMEOUT_MS", 10000))

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
TEMP_UPLOAD_DIR = os.getenv("TEMP_UPLOAD_DIR", "temp-uploads")
UPLOAD_URL_PREFIX = os.getenv("UPLOAD_URL_PREFIX", "/uploads")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))
IMAGE_FETCH_TIMEOUT = float(os.getenv("IMAGE_FETCH_TIMEOUT", 15))

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 30))
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level.upper())


def startup_summary() -> dict:
    return {
        "environment": ENVIRONMENT,
        "database_url": "Set (value hidden)" if os.getenv("DATABASE_URL") else "Not set",
        "database_name": DATABASE_NAME,
        "upload_dir": UPLOAD_DIR,
        "port": PORT,
    }
