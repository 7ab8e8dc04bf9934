"""Runtime configuration for the scope selector."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(ROOT_DIR / ".env")
# Optional local overrides (do not commit secrets)
load_dotenv(ROOT_DIR / ".env.local", override=True)

# Backend API
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000/api/v1")
API_TOKEN = os.environ.get("API_TOKEN") or None
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

# A generation still in flight after this long is abandoned and a retry offered
FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "15"))

# Geography listings are paged by the backend; one page covers a state
GEOGRAPHY_PAGE_LIMIT = int(os.environ.get("GEOGRAPHY_PAGE_LIMIT", "100"))

# Root of the hierarchy, shown as the location at State scope
STATE_NAME = os.environ.get("STATE_NAME", "Rajasthan")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def configure_logging(level: str = None) -> None:
    """Configure root logging the same way for every entry point."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
