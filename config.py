import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PORT = int(os.getenv("PORT", 5000))

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://127.0.0.1:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "product_order_management")

# Auth settings
DEFAULT_JWT_SECRET = "change-me"
JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", 7))

CLIENT_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CLIENT_ORIGIN", "http://localhost:5173").split(",")
    if origin.strip()
]

# Bootstrap admin account
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin User")

# Generative AI provider
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", 30))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def ensure_env():
    """Warn about missing secrets; the service still starts without them."""
    if not JWT_SECRET or JWT_SECRET == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set or using default value")
    if not GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set. AI features will be disabled.")
