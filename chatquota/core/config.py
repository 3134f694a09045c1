import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./chatquota.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# ✅ Completion provider (OpenAI-compatible)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
DEFAULT_CHAT_MODEL = os.getenv("DEFAULT_CHAT_MODEL", "gpt-3.5-turbo")
COMPLETION_TIMEOUT_SECONDS = float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "120"))

# ✅ Plans & quota
FREE_TIER_TOKEN_LIMIT = int(os.getenv("FREE_TIER_TOKEN_LIMIT", "500"))
PLAN_CATALOG_PATH = os.getenv("PLAN_CATALOG_PATH")
ENTITLEMENT_WRITE_ATTEMPTS = int(os.getenv("ENTITLEMENT_WRITE_ATTEMPTS", "3"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")

# ✅ Deployment
APP_ENV = os.getenv("APP_ENV", "production")
