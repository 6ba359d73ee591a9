import os
import logging

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# --- DATABASE ---
# Production provides DATABASE_URL. Local uses SQLite.
DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'cinelog.db')}")

# Postgres URLs must start with postgresql:// not postgres://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# --- AUTH ---
SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
ADMIN_UIDS = {uid.strip() for uid in os.environ.get("ADMIN_UIDS", "").split(",") if uid.strip()}

# --- CATALOG ---
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_IMAGE_URL = "https://image.tmdb.org/t/p/w500"

# --- FEED ---
# Max peer ids per feed query
FEED_BATCH_SIZE = int(os.environ.get("FEED_BATCH_SIZE", "30"))

# --- LOGGING ---
LOG_FILE = os.environ.get("LOG_FILE")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def setup_logging():
    kwargs = {
        "level": getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        "format": '%(asctime)s - %(levelname)s - %(message)s',
    }
    if LOG_FILE:
        kwargs["filename"] = LOG_FILE
    logging.basicConfig(**kwargs)
