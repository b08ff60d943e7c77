import os

DATABASE_URL = os.environ.get("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.environ.get("DATABASE_NAME", "quiz_app")

SECRET_KEY = os.environ.get("SECRET_KEY", "supersecretkey")
ALGORITHM = os.environ.get("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 8)))

# Attempts may only be started this long after a scheduled quiz opens
START_GRACE_MINUTES = int(os.environ.get("START_GRACE_MINUTES", "30"))

STATS_CACHE_SECONDS = int(os.environ.get("STATS_CACHE_SECONDS", str(5 * 60)))
STATS_CACHE_MAX_USERS = int(os.environ.get("STATS_CACHE_MAX_USERS", "10000"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

SEED_ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@university.edu")
SEED_ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "admin123")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
