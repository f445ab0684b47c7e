"""Centralized configuration management."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base paths
BASE_DIR = Path(__file__).parent.parent
PACKAGE_DIR = BASE_DIR / "gigflow"
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)

# One-time passcodes
OTP_VALIDITY_MINUTES = int(os.getenv("OTP_VALIDITY_MINUTES", "30"))
OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))

# Wages (fallback when a job carries no hourly rate)
DEFAULT_HOURLY_RATE = os.getenv("DEFAULT_HOURLY_RATE", "0")

# Flask Settings
FLASK_PORT = int(os.getenv("FLASK_PORT", "8002"))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "false").lower() == "true"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Database
DEFAULT_DB_PATH = DATA_DIR / "gigflow.db"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")
