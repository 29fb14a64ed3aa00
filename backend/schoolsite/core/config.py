from pydantic_settings import BaseSettings
from typing import List, Any, Optional
import json
from pathlib import Path


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


def parse_content_types(v: Any) -> List[str]:
    """Parse allowed MIME types from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [ct.strip().lower() for ct in v.split(',') if ct.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "SchoolSite"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SECRET_KEY: str
    API_VERSION: str = "v1"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000
    PUBLIC_BASE_URL: str = "http://localhost:8000"  # Used to build local storage URLs

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str
    DB_ECHO: bool = False

    # ==========================================
    # Storage Configuration
    # ==========================================
    STORAGE_MODE: str = "local"  # "local", "s3", or "minio"

    # AWS S3 / MinIO
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    S3_BUCKET_NAME: str = "schoolsite-images"
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_PUBLIC_ENDPOINT: str = ""
    STORAGE_URL_EXPIRY: int = 3600  # 1 hour
    UPLOAD_URL_EXPIRY: int = 600  # 10 minutes

    # Local storage
    LOCAL_STORAGE_PATH: str = "storage"

    # Images
    MAX_IMAGE_SIZE: int = 5242880  # 5MB
    ALLOWED_IMAGE_TYPES_STR: str = "image/jpeg,image/png,image/gif,image/webp"
    ORPHAN_GRACE_MINUTES: int = 60

    @property
    def ALLOWED_IMAGE_TYPES(self) -> List[str]:
        """Parse allowed image MIME types from comma-separated string"""
        return parse_content_types(self.ALLOWED_IMAGE_TYPES_STR)

    @property
    def use_minio(self) -> bool:
        return self.STORAGE_MODE.lower() == "minio"

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12  # 4 for dev (fast), 12 for prod (secure)

    # First-run admin provisioning. Empty disables the bootstrap grant.
    BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_PER_MINUTE: int = 120
    AUTH_RATE_LIMIT: str = "10/minute"

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    @property
    def LOCAL_STORAGE_DIR(self) -> Path:
        return Path(self.LOCAL_STORAGE_PATH).resolve()

    @property
    def bootstrap_admin_email(self) -> Optional[str]:
        """Normalized bootstrap email, or None when the grant is disabled"""
        if not self.BOOTSTRAP_ADMIN_EMAIL or not self.BOOTSTRAP_ADMIN_EMAIL.strip():
            return None
        return self.BOOTSTRAP_ADMIN_EMAIL.strip().lower()


# Create settings instance
settings = Settings()
