import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = "pms"

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Avito OAuth application
AVITO_CLIENT_ID = os.getenv("AVITO_CLIENT_ID")
AVITO_CLIENT_SECRET = os.getenv("AVITO_CLIENT_SECRET")
if not AVITO_CLIENT_ID or not AVITO_CLIENT_SECRET:
    raise ValueError("AVITO_CLIENT_ID and AVITO_CLIENT_SECRET must be set in the environment")

AVITO_BASE_URL = os.getenv("AVITO_BASE_URL", "https://api.avito.ru").rstrip("/")
AVITO_REDIRECT_URI = os.getenv("AVITO_REDIRECT_URI")

# Fernet key used for access/refresh tokens at rest
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")
if not TOKEN_ENCRYPTION_KEY:
    raise ValueError("TOKEN_ENCRYPTION_KEY must be set in the environment")

# Value of the "source" field sent with closed intervals
CALENDAR_SOURCE = os.getenv("CALENDAR_SOURCE", "roomi")

SYNC_INTERVAL_SECONDS = int(os.getenv("SYNC_INTERVAL_SECONDS", "10"))
OAUTH_STATE_MAX_AGE_SECONDS = int(os.getenv("OAUTH_STATE_MAX_AGE_SECONDS", "3600"))
