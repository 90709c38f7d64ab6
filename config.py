import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Application environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"
TESTING = os.getenv("TESTING", "false").lower() == "true"

# Database settings
DATABASE_URL = os.getenv("DATABASE_URL")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
APP_LOG_PATH = os.getenv("APP_LOG_PATH", "")

# Application settings
APP_NAME = "Hetnaz Chat API"
APP_VERSION = "1.0.0"

# Descope settings
DESCOPE_PROJECT_ID = os.getenv("DESCOPE_PROJECT_ID", "")
DESCOPE_JWKS_URL = os.getenv("DESCOPE_JWKS_URL", f"https://api.descope.com/v2/keys/{DESCOPE_PROJECT_ID}")
DESCOPE_JWT_LEEWAY = int(os.getenv("DESCOPE_JWT_LEEWAY", "60"))  # default 60 seconds for JWT clock-skew tolerance
DESCOPE_JWT_LEEWAY_FALLBACK = int(os.getenv("DESCOPE_JWT_LEEWAY_FALLBACK", "120"))  # fallback 120 seconds for severe clock-skew

# Redis settings
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CHAT_EVENT_QUEUE_ENABLED = os.getenv("CHAT_EVENT_QUEUE_ENABLED", "true").lower() == "true"

# Realtime settings (Redis pub/sub, consumed by the socket gateway)
REALTIME_ENABLED = os.getenv("REALTIME_ENABLED", "true").lower() == "true"
REALTIME_CHANNEL_PREFIX = os.getenv("REALTIME_CHANNEL_PREFIX", "realtime")

# OneSignal settings
ONESIGNAL_ENABLED = os.getenv("ONESIGNAL_ENABLED", "true").lower() == "true"
ONESIGNAL_APP_ID = os.getenv("ONESIGNAL_APP_ID", "")
ONESIGNAL_REST_API_KEY = os.getenv("ONESIGNAL_REST_API_KEY", "")

# Message settings
MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "2000"))
MESSAGE_SANITIZE_ENABLED = os.getenv("MESSAGE_SANITIZE_ENABLED", "true").lower() == "true"
HI_MESSAGE_CONTENT = os.getenv("HI_MESSAGE_CONTENT", "👋 Hi!")
MESSAGE_HISTORY_LIMIT = int(os.getenv("MESSAGE_HISTORY_LIMIT", "50"))

# Intimacy points per message; images count double
TEXT_MESSAGE_INTENSITY = int(os.getenv("TEXT_MESSAGE_INTENSITY", "1"))
IMAGE_MESSAGE_INTENSITY = int(os.getenv("IMAGE_MESSAGE_INTENSITY", "2"))
GIFT_MESSAGE_INTENSITY = int(os.getenv("GIFT_MESSAGE_INTENSITY", "1"))

# Coin economy
LOW_BALANCE_THRESHOLD = int(os.getenv("LOW_BALANCE_THRESHOLD", "100"))
DAILY_REWARD_AMOUNT = int(os.getenv("DAILY_REWARD_AMOUNT", "20"))
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Kolkata")  # calendar day boundary for daily rewards

# Default costs, used to seed the app_settings row
DEFAULT_MESSAGE_COSTS = {
    "basic": int(os.getenv("DEFAULT_MESSAGE_COST_BASIC", "50")),
    "silver": int(os.getenv("DEFAULT_MESSAGE_COST_SILVER", "45")),
    "gold": int(os.getenv("DEFAULT_MESSAGE_COST_GOLD", "40")),
    "platinum": int(os.getenv("DEFAULT_MESSAGE_COST_PLATINUM", "35")),
}
DEFAULT_HI_MESSAGE_COST = int(os.getenv("DEFAULT_HI_MESSAGE_COST", "5"))
DEFAULT_IMAGE_MESSAGE_COST = int(os.getenv("DEFAULT_IMAGE_MESSAGE_COST", "100"))
DEFAULT_GIFT_COST = int(os.getenv("DEFAULT_GIFT_COST", "100"))

# Caching / batching
APP_SETTINGS_CACHE_SECONDS = int(os.getenv("APP_SETTINGS_CACHE_SECONDS", "300"))
GIFT_CATALOG_CACHE_SECONDS = int(os.getenv("GIFT_CATALOG_CACHE_SECONDS", "300"))
EARNING_BATCH_FLUSH_SECONDS = int(os.getenv("EARNING_BATCH_FLUSH_SECONDS", "30"))
EARNING_BATCH_ENABLED = os.getenv("EARNING_BATCH_ENABLED", "true").lower() == "true"
