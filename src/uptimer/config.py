from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    app_name: str = "Uptimer"
    app_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./uptimer.db"

    # JWT
    secret_key: str = "change-me-in-production-use-a-real-secret-key"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # Shared secret for the probing engine and other internal callers
    internal_api_token: str = ""

    # Email (SMTP)
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "alerts@uptimer.app"
    smtp_use_tls: bool = True

    # Screenshots
    screenshot_enabled: bool = True
    screenshot_timeout: int = 45  # seconds
    screenshot_viewport_width: int = 1920
    screenshot_viewport_height: int = 1080
    screenshot_full_page: bool = True

    # Object storage (asset upload proxy)
    asset_upload_url: str = "http://localhost:8787/api/assets/upload"
    asset_public_url: str = ""
    asset_upload_timeout: int = 30  # seconds

    # Test runs left in "running" longer than this are considered abandoned
    load_test_stale_minutes: int = 5
    browser_test_stale_minutes: int = 10

    # Base URL
    base_url: str = "http://localhost:8000"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
