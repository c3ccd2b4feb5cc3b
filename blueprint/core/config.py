import os
import secrets
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# Security Configuration
ORIGIN = os.getenv("ORIGIN", "http://localhost:8000")
SESSION_SECRET = os.getenv("SESSION_SECRET", secrets.token_hex(32))

# Decision Tree Configuration
DEFAULT_DECISION_TREE_FILE = os.path.join(os.path.dirname(__file__), "..", "data", "decision_tree.json")
DECISION_TREE_FILE = os.getenv("DECISION_TREE_FILE", DEFAULT_DECISION_TREE_FILE)

# Application Configuration
SESSIONS_DIR = os.getenv("SESSIONS_DIR", os.path.join(os.getcwd(), "data", "sessions"))
SETTINGS_FILE = os.getenv("SETTINGS_FILE", os.path.join(os.getcwd(), "data", "settings.json"))
MODEL_NAME = os.getenv("MODEL_NAME", "gemini-2.5-flash")
LOG_LEVEL = os.getenv("LOG_LEVEL", "NONE").upper()
GEMINI_CMD = os.getenv("GEMINI_CMD", "gemini")

import json
import logging

def get_all_global_settings():
    if os.path.exists(SETTINGS_FILE):
        try:
            with open(SETTINGS_FILE, "r") as f:
                return json.load(f)
        except Exception as e:
            logging.error(f"Error loading settings: {e}")
    return {}

def get_global_setting(key: str, default=None):
    settings = get_all_global_settings()
    value = settings.get(key)
    return default if value is None else value

def configure_logging():
    """Applies LOG_LEVEL to the blueprint loggers. NONE keeps the app silent."""
    package_logger = logging.getLogger("blueprint")
    if LOG_LEVEL == "NONE":
        package_logger.setLevel(logging.CRITICAL + 1)
        return
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    package_logger.setLevel(level)
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )
