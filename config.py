import os
import yaml

ROOT_PATH = os.path.dirname(__file__)
CONFIG_FILE_PATH = os.path.join(ROOT_PATH, "env.yaml")

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file)
else:
    data = dict()


class ApplicationConfig:
    DB_URI = data.get("DB_URI", "sqlite+aiosqlite:///./test.db")
    MIGRATION_DB_URI = data.get("MIGRATION_DB_URI", "sqlite:///./test.db")
    DB_TIMEOUT_SECONDS = data.get("DB_TIMEOUT_SECONDS", 5)
    REDIS_URL = data.get("REDIS_URL", "redis://localhost:6379/0")
    REDIS_TIMEOUT_SECONDS = data.get("REDIS_TIMEOUT_SECONDS", 2)
    API_PREFIX = data.get("API_PREFIX", "/api")
    API_PORT = data.get("API_PORT", 8000)
    API_HOST = data.get("API_HOST", "0.0.0.0")
    CORS_ORIGINS = data.get("CORS_ORIGINS", [])
    CORS_ALLOW_CREDENTIALS = data.get("CORS_ALLOW_CREDENTIALS", True)
    LOG_LEVEL = data.get("LOG_LEVEL", "INFO")
    # "redis" or "database" - backend for rate-limit counters
    CACHE_BACKEND = data.get("CACHE_BACKEND", "redis")
    ADMIN_API_KEY = data.get("ADMIN_API_KEY", "test-admin-key-12345")
    # Create missing tables on startup
    DB_CREATE_TABLES = bool(data.get("DB_CREATE_TABLES", True))

    # Tokens
    JWT_SECRET = data.get("JWT_SECRET", "dev-secret-key-change-in-production-0123456789")
    JWT_ALGORITHM = data.get("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_TTL_MINUTES = data.get("ACCESS_TOKEN_TTL_MINUTES", 15)
    REFRESH_TOKEN_TTL_DAYS = data.get("REFRESH_TOKEN_TTL_DAYS", 7)
    CHALLENGE_TTL_MINUTES = data.get("CHALLENGE_TTL_MINUTES", 5)

    # Sessions: "multi" or "single"
    SESSION_POLICY = data.get("SESSION_POLICY", "multi")

    # Passwords
    BCRYPT_ROUNDS = data.get("BCRYPT_ROUNDS", 12)
    PASSWORD_HISTORY_SIZE = data.get("PASSWORD_HISTORY_SIZE", 5)
    # Days before a password must be changed; 0 disables expiry
    PASSWORD_MAX_AGE_DAYS = data.get("PASSWORD_MAX_AGE_DAYS", 90)

    # Two-factor
    TOTP_ISSUER = data.get("TOTP_ISSUER", "IAM Service")
    BACKUP_CODE_COUNT = data.get("BACKUP_CODE_COUNT", 10)

    # Rate limits: (limit, window seconds)
    LOGIN_IP_RATE_LIMIT = data.get("LOGIN_IP_RATE_LIMIT", [20, 300])
    LOGIN_ACCOUNT_RATE_LIMIT = data.get("LOGIN_ACCOUNT_RATE_LIMIT", [5, 300])
    TWO_FACTOR_RATE_LIMIT = data.get("TWO_FACTOR_RATE_LIMIT", [5, 300])
    REFRESH_RATE_LIMIT = data.get("REFRESH_RATE_LIMIT", [60, 60])
    OAUTH_RATE_LIMIT = data.get("OAUTH_RATE_LIMIT", [20, 300])

    # OAuth
    OAUTH_AUTO_PROVISION = bool(data.get("OAUTH_AUTO_PROVISION", False))
    OAUTH_REDIRECT_URI = data.get(
        "OAUTH_REDIRECT_URI", "http://localhost:8000/auth/oauth/callback/{provider}"
    )
    OAUTH_STATE_TTL_MINUTES = data.get("OAUTH_STATE_TTL_MINUTES", 10)
    OAUTH_HTTP_TIMEOUT_SECONDS = data.get("OAUTH_HTTP_TIMEOUT_SECONDS", 10)
    GOOGLE_CLIENT_ID = data.get("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET = data.get("GOOGLE_CLIENT_SECRET", "")
    GITHUB_CLIENT_ID = data.get("GITHUB_CLIENT_ID", "")
    GITHUB_CLIENT_SECRET = data.get("GITHUB_CLIENT_SECRET", "")
    MICROSOFT_CLIENT_ID = data.get("MICROSOFT_CLIENT_ID", "")
    MICROSOFT_CLIENT_SECRET = data.get("MICROSOFT_CLIENT_SECRET", "")
