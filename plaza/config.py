import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Config:
    # Base paths
    BASE_DIR = Path(__file__).parent.parent

    # JWT Authentication
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRATION_HOURS = 24 * 7  # 1 week

    # Server
    PORT: int = int(os.getenv("PORT", "8000"))
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Slow query logging (only active in development/debug mode)
    SLOW_QUERY_THRESHOLD_MS: int = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))

    # Document store
    DATABASE_PATH: Path = BASE_DIR / os.getenv("DATABASE_PATH", "plaza.db")
    BLOB_STORAGE_PATH: Path = BASE_DIR / os.getenv("BLOB_STORAGE_PATH", "files.db")
    BLOB_PUBLIC_URL_PREFIX: str = os.getenv("BLOB_PUBLIC_URL_PREFIX", "/api/files")

    # Optimistic concurrency: attempts for a compare-and-swap read-modify-write
    STORE_CAS_MAX_ATTEMPTS: int = int(os.getenv("STORE_CAS_MAX_ATTEMPTS", "25"))
    # Transient I/O errors (e.g. "database is locked") are retried this many times
    STORE_IO_MAX_RETRIES: int = int(os.getenv("STORE_IO_MAX_RETRIES", "3"))
    STORE_RETRY_BASE_DELAY_SECONDS: float = float(
        os.getenv("STORE_RETRY_BASE_DELAY_SECONDS", "0.01")
    )
    STORE_RETRY_MAX_DELAY_SECONDS: float = float(os.getenv("STORE_RETRY_MAX_DELAY_SECONDS", "0.5"))
    # Page size used when walking a prefix in chunks
    STORE_SCAN_PAGE_SIZE: int = int(os.getenv("STORE_SCAN_PAGE_SIZE", "500"))

    # Featured posts
    FEATURE_WINDOW_DAYS: int = int(os.getenv("FEATURE_WINDOW_DAYS", "3"))

    # Comments
    COMMENT_MAX_DEPTH: int = int(os.getenv("COMMENT_MAX_DEPTH", "32"))
    COMMENT_MAX_PER_POST: int = int(os.getenv("COMMENT_MAX_PER_POST", "2000"))
    COMMENT_MAX_LENGTH: int = int(os.getenv("COMMENT_MAX_LENGTH", "2000"))

    # Profiles
    USERNAME_MIN_LENGTH: int = int(os.getenv("USERNAME_MIN_LENGTH", "3"))
    USERNAME_MAX_LENGTH: int = int(os.getenv("USERNAME_MAX_LENGTH", "32"))
    # Comma-separated user ids that are always treated as admins
    ADMIN_USER_IDS: set[str] = {
        uid.strip() for uid in os.getenv("ADMIN_USER_IDS", "").split(",") if uid.strip()
    }

    # Display names used in system-generated content
    SYSTEM_SENDER_ID = "system"
    SYSTEM_SENDER_NAME: str = os.getenv("SYSTEM_SENDER_NAME", "Sistema")
    UNKNOWN_USERNAME: str = os.getenv("UNKNOWN_USERNAME", "Usuário")

    # File upload settings
    MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10 MB default
    ALLOWED_IMAGE_TYPES: set[str] = set(
        os.getenv("ALLOWED_IMAGE_TYPES", "image/png,image/jpeg,image/gif,image/webp").split(",")
    )

    # Rate limiting
    RATE_LIMITING_ENABLED: bool = os.getenv("RATE_LIMITING_ENABLED", "true").lower() == "true"
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "200 per minute")
    RATE_LIMIT_WRITES: str = os.getenv("RATE_LIMIT_WRITES", "60 per minute")

    # Player stats
    STATS_DEFAULTS: dict[str, int] = {"health": 100, "hunger": 100, "thirst": 100, "alcoholism": 0}

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development mode."""
        return cls.FLASK_ENV == "development"

    @classmethod
    def is_testing(cls) -> bool:
        """Check if running in testing mode."""
        return cls.FLASK_ENV == "testing"

    @classmethod
    def validate(cls) -> list[str]:
        """Validate required configuration. Returns list of errors with clear guidance."""
        errors: list[str] = []

        # Production-only requirements
        if not cls.is_development() and not cls.is_testing():
            if cls.JWT_SECRET_KEY == "dev-secret-change-me":
                errors.append(
                    "JWT_SECRET_KEY must be set to a secure random value in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )
            elif len(cls.JWT_SECRET_KEY) < 32:
                errors.append(
                    f"JWT_SECRET_KEY must be at least 32 characters for security (got {len(cls.JWT_SECRET_KEY)}). "
                    'Generate a secure key with: python -c "import secrets; print(secrets.token_hex(32))"'
                )

        # Validate numeric ranges
        if cls.PORT < 1 or cls.PORT > 65535:
            errors.append(f"PORT must be between 1 and 65535, got {cls.PORT}")

        if cls.MAX_FILE_SIZE < 1:
            errors.append(f"MAX_FILE_SIZE must be positive, got {cls.MAX_FILE_SIZE}")

        if cls.STORE_CAS_MAX_ATTEMPTS < 1:
            errors.append(
                f"STORE_CAS_MAX_ATTEMPTS must be at least 1, got {cls.STORE_CAS_MAX_ATTEMPTS}"
            )

        if cls.STORE_IO_MAX_RETRIES < 0:
            errors.append(
                f"STORE_IO_MAX_RETRIES must not be negative, got {cls.STORE_IO_MAX_RETRIES}"
            )

        if cls.FEATURE_WINDOW_DAYS < 1:
            errors.append(f"FEATURE_WINDOW_DAYS must be at least 1, got {cls.FEATURE_WINDOW_DAYS}")

        if cls.COMMENT_MAX_DEPTH < 1:
            errors.append(f"COMMENT_MAX_DEPTH must be at least 1, got {cls.COMMENT_MAX_DEPTH}")

        # Validate log level
        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if cls.LOG_LEVEL not in valid_log_levels:
            errors.append(
                f"LOG_LEVEL '{cls.LOG_LEVEL}' is not valid. "
                f"Valid levels: {', '.join(sorted(valid_log_levels))}"
            )

        return errors
